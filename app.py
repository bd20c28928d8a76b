from flask import Flask, render_template, request, jsonify
from jinja2 import TemplateNotFound
import logging
import sys
from pathlib import Path

from bots.dialog_bot import ActivityError, DialogBot
from config.settings import load_settings
from dialogs.engine import DialogEngine
from session.storage import SqliteConversationStore


logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).resolve().parent


# -------------------------------------------------
# Setup
# -------------------------------------------------

def create_app(settings=None, engine=None, store=None):
    """
    Build the Flask app. Tests pass their own engine and store;
    `flask --app app run` and `python app.py` build them from settings.
    """
    if settings is None:
        settings = load_settings()

    if engine is None:
        if store is None:
            store = SqliteConversationStore(ROOT_DIR / settings.db_path)
        engine = DialogEngine.from_settings(settings, store)

    bot = DialogBot(engine)

    app = Flask(
        __name__,
        template_folder=str(ROOT_DIR / "templates"),
    )
    app.config["BOT_SETTINGS"] = settings
    app.extensions["dialog_engine"] = engine
    app.extensions["dialog_bot"] = bot

    register_routes(app)
    return app


# -------------------------------------------------
# Routes
# -------------------------------------------------

def register_routes(app):

    @app.route("/")
    def index():
        settings = app.config["BOT_SETTINGS"]
        try:
            return render_template(settings.welcome_template)
        except TemplateNotFound:
            return "Welcome page not found.", 404, {"Content-Type": "text/plain"}

    @app.route("/api/messages", methods=["POST"])
    def messages():
        activity = request.get_json(silent=True)
        if not isinstance(activity, dict):
            return jsonify({"error": "Expected a JSON activity"}), 400

        bot = app.extensions["dialog_bot"]
        try:
            replies = bot.run(activity)
        except ActivityError as e:
            return jsonify({"error": str(e)}), 400

        return jsonify({
            "activities": [{"type": "message", "text": text} for text in replies]
        })

    @app.route("/api/conversations/<conversation_id>", methods=["GET"])
    def get_conversation(conversation_id):
        engine = app.extensions["dialog_engine"]
        conversation = engine.get_conversation(conversation_id)
        if conversation is None:
            return jsonify({"error": "Unknown conversation"}), 404

        return jsonify({
            "conversation_id": conversation.conversation_id,
            "state": conversation.state.value,
            "dialogs": conversation.stack.dialog_ids(),
            "slots": conversation.slots.values(),
            "updated_at": conversation.updated_at,
        })

    @app.route("/api/conversations/<conversation_id>", methods=["DELETE"])
    def reset_conversation(conversation_id):
        engine = app.extensions["dialog_engine"]
        engine.reset(conversation_id)
        return jsonify({"status": "reset"})

    @app.route("/api/bookings", methods=["GET"])
    def get_bookings():
        engine = app.extensions["dialog_engine"]
        conversation_id = request.args.get("conversation_id")
        bookings = engine.store.get_bookings(conversation_id=conversation_id)
        return jsonify({"status": "ok", "bookings": bookings})


# -------------------------------------------------
# Entry point
# -------------------------------------------------

def main():
    logging.basicConfig(level=logging.INFO)

    try:
        settings = load_settings()
        logging.getLogger().setLevel(settings.log_level)
        app = create_app(settings)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    logger.info("Listening on port %s", settings.port)
    app.run(host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()

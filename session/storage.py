import copy
import json
import logging
import sqlite3
import threading
import uuid
from pathlib import Path

from session.context import Conversation, utc_now

logger = logging.getLogger(__name__)


# -------------------------------------------------
# In-memory store
# -------------------------------------------------

class MemoryConversationStore:
    """
    Keeps serialized conversations in a dict. Used by tests and local runs.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._conversations = {}
        self._bookings = []

    def get(self, conversation_id):
        with self._lock:
            payload = self._conversations.get(conversation_id)
        if payload is None:
            return None
        return Conversation.from_dict(copy.deepcopy(payload))

    def set(self, conversation):
        payload = conversation.to_dict()
        with self._lock:
            self._conversations[conversation.conversation_id] = payload

    def delete(self, conversation_id):
        with self._lock:
            self._conversations.pop(conversation_id, None)

    def add_booking(self, conversation_id, booking):
        record = _booking_record(conversation_id, booking)
        with self._lock:
            self._bookings.append(record)
        return record

    def get_bookings(self, conversation_id=None, limit=None):
        with self._lock:
            rows = [
                dict(b) for b in self._bookings
                if conversation_id is None or b["conversation_id"] == conversation_id
            ]
        rows.reverse()
        return rows[:limit] if limit else rows


# -------------------------------------------------
# SQLite store
# -------------------------------------------------

class SqliteConversationStore:
    """
    Conversation id -> JSON blob of the stack and slots, plus the
    bookings the bot has confirmed.
    """

    def __init__(self, db_path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.init_db()

    def get_conn(self):
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self):
        logger.info("Conversation store using %s", self.db_path.resolve())
        conn = self.get_conn()
        cur = conn.cursor()

        cur.execute("""
            CREATE TABLE IF NOT EXISTS conversations (
                conversation_id TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                updated_at TEXT
            )
        """)

        cur.execute("""
            CREATE TABLE IF NOT EXISTS bookings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                uuid TEXT,
                conversation_id TEXT,
                origin TEXT,
                destination TEXT,
                travel_date TEXT,
                return_date TEXT,
                created_at TEXT
            )
        """)

        conn.commit()
        conn.close()

    # -------------------------------------------------
    # Conversations
    # -------------------------------------------------

    def get(self, conversation_id):
        conn = self.get_conn()
        cur = conn.cursor()
        cur.execute(
            "SELECT payload FROM conversations WHERE conversation_id = ?",
            (conversation_id,),
        )
        row = cur.fetchone()
        conn.close()

        if row is None:
            return None
        return Conversation.from_dict(json.loads(row["payload"]))

    def set(self, conversation):
        payload = json.dumps(conversation.to_dict(), ensure_ascii=False)

        conn = self.get_conn()
        cur = conn.cursor()
        cur.execute("""
            INSERT INTO conversations (conversation_id, payload, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(conversation_id) DO UPDATE SET
                payload = excluded.payload,
                updated_at = excluded.updated_at
        """, (conversation.conversation_id, payload, conversation.updated_at))
        conn.commit()
        conn.close()

    def delete(self, conversation_id):
        conn = self.get_conn()
        cur = conn.cursor()
        cur.execute(
            "DELETE FROM conversations WHERE conversation_id = ?",
            (conversation_id,),
        )
        conn.commit()
        conn.close()

    # -------------------------------------------------
    # Bookings
    # -------------------------------------------------

    def add_booking(self, conversation_id, booking):
        record = _booking_record(conversation_id, booking)

        conn = self.get_conn()
        cur = conn.cursor()
        cur.execute("""
            INSERT INTO bookings
            (uuid, conversation_id, origin, destination, travel_date, return_date, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            record["uuid"],
            record["conversation_id"],
            record["origin"],
            record["destination"],
            record["travel_date"],
            record["return_date"],
            record["created_at"],
        ))
        conn.commit()
        conn.close()
        return record

    def get_bookings(self, conversation_id=None, limit=None):
        conn = self.get_conn()
        cur = conn.cursor()

        query = "SELECT * FROM bookings"
        params = []

        if conversation_id:
            query += " WHERE conversation_id = ?"
            params.append(conversation_id)

        query += " ORDER BY id DESC"

        if limit:
            query += " LIMIT ?"
            params.append(limit)

        cur.execute(query, params)
        rows = cur.fetchall()
        conn.close()

        return [
            {
                "uuid": r["uuid"],
                "conversation_id": r["conversation_id"],
                "origin": r["origin"],
                "destination": r["destination"],
                "travel_date": r["travel_date"],
                "return_date": r["return_date"],
                "created_at": r["created_at"],
            }
            for r in rows
        ]


def _booking_record(conversation_id, booking):
    return {
        "uuid": str(uuid.uuid4()),
        "conversation_id": conversation_id,
        "origin": booking.origin,
        "destination": booking.destination,
        "travel_date": booking.travel_date,
        "return_date": booking.return_date,
        "created_at": utc_now().isoformat(),
    }

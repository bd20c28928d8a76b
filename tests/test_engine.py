import random
import threading

import pytest

from dialogs.base import DialogSet
from dialogs.booking_dialog import BookingDialog
from dialogs.engine import APOLOGY_MESSAGES, CANCEL_MESSAGE
from dialogs.main_dialog import MainDialog
from dialogs.messages.message_loader import load_help_message
from dialogs.prompts import ConfirmPrompt, DatePrompt, TextPrompt
from recognizers.result import RecognizerResult
from session.context import ConversationState

from conftest import ScriptedRecognizer, book_flight


DATE_QUESTION = "On what date would you like to travel?"
ORIGIN_QUESTION = "From what city will you be travelling?"
DESTINATION_QUESTION = "To what city would you like to travel?"


def dialogs_with(booking):
    return DialogSet([MainDialog(), booking, TextPrompt(), DatePrompt(), ConfirmPrompt()])


class TestBookingFlow:
    def test_full_booking_from_scratch(self, engine, say, store):
        assert say(engine, "book a flight").messages == [ORIGIN_QUESTION]
        assert say(engine, "Paris").messages == [DESTINATION_QUESTION]
        assert say(engine, "Tokyo").messages == [DATE_QUESTION]

        result = say(engine, "tomorrow")
        assert result.messages == [
            "Please confirm, I have you traveling to Tokyo from Paris on 2026-10-19. "
            "Is this correct?"
        ]
        assert result.state == ConversationState.AWAITING_INPUT

        result = say(engine, "yes")
        assert result.messages == [
            "I have you booked to Tokyo from Paris on 2026-10-19.",
            "What else can I do for you?",
        ]
        assert result.state == ConversationState.COMPLETED

        bookings = store.get_bookings("conv-1")
        assert len(bookings) == 1
        assert bookings[0]["origin"] == "Paris"
        assert bookings[0]["destination"] == "Tokyo"
        assert bookings[0]["travel_date"] == "2026-10-19"

        conversation = store.get("conv-1")
        assert conversation.stack.dialog_ids() == ["main"]
        assert len(conversation.slots) == 0

    def test_partial_prefill_only_asks_for_travel_date(self, engine, say, store):
        result = say(engine, "book a flight from Paris to Tokyo")
        assert result.messages == [DATE_QUESTION]

        conversation = store.get("conv-1")
        assert conversation.slots.get("origin") == "Paris"
        assert conversation.slots.get("destination") == "Tokyo"
        assert conversation.stack.dialog_ids() == ["main", "booking", "date_prompt"]

        result = say(engine, "tomorrow")
        assert ORIGIN_QUESTION not in result.messages
        assert DESTINATION_QUESTION not in result.messages
        assert result.messages[0].startswith("Please confirm")

    def test_full_prefill_with_return_date_goes_straight_to_confirmation(self, make_engine, say):
        recognizer = ScriptedRecognizer({
            "round trip": book_flight(
                origin="Paris",
                destination="Berlin",
                travel_date="2026-11-01",
                return_date="2026-11-08",
            ),
        })
        engine = make_engine(recognizer=recognizer)

        result = say(engine, "round trip")
        assert result.messages == [
            "Please confirm, I have you traveling to Berlin from Paris on 2026-11-01, "
            "returning on 2026-11-08. Is this correct?"
        ]

    def test_string_false_round_trip_is_one_way(self, make_engine, say):
        recognizer = ScriptedRecognizer({
            "one way": book_flight(
                origin="Paris",
                destination="Berlin",
                travel_date="2026-11-01",
                round_trip="false",
            ),
        })
        engine = make_engine(recognizer=recognizer)

        result = say(engine, "one way")
        assert result.messages == [
            "Please confirm, I have you traveling to Berlin from Paris on 2026-11-01. "
            "Is this correct?"
        ]

    def test_past_prefilled_date_is_asked_again(self, make_engine, say):
        recognizer = ScriptedRecognizer({
            "old trip": book_flight(origin="Paris", destination="Rome", travel_date="2020-03-22"),
        })
        engine = make_engine(recognizer=recognizer)

        assert say(engine, "old trip").messages == [DATE_QUESTION]

    def test_declining_confirmation_books_nothing(self, engine, say, store):
        say(engine, "book a flight from Paris to Tokyo")
        say(engine, "tomorrow")

        result = say(engine, "no")
        assert result.messages == ["OK, I won't book that. What else can I do for you?"]
        assert result.state == ConversationState.IDLE
        assert store.get_bookings("conv-1") == []

    def test_invalid_city_is_reprompted(self, engine, say):
        say(engine, "book a flight")
        result = say(engine, "12345")
        assert result.messages == ["I need a city name. From what city will you be travelling?"]

    def test_low_confidence_intent_is_not_acted_on(self, make_engine, say):
        recognizer = ScriptedRecognizer({"maybe fly": book_flight(score=0.3)})
        engine = make_engine(recognizer=recognizer)

        result = say(engine, "maybe fly")
        assert result.messages == [
            "Sorry, I didn't get that. Please try asking in a different way (intent was BookFlight)."
        ]
        assert result.state == ConversationState.IDLE

    def test_weather_is_answered_at_root(self, engine, say):
        result = say(engine, "what's the weather like")
        assert result.messages == ["Weather lookups aren't available yet."]


class TestInterruptions:
    def test_cancel_during_date_prompt_pops_to_root(self, engine, say, store):
        say(engine, "book a flight")
        say(engine, "Paris")
        say(engine, "Tokyo")

        result = say(engine, "cancel")
        assert result.messages == [CANCEL_MESSAGE]
        assert result.state == ConversationState.IDLE

        conversation = store.get("conv-1")
        assert conversation.stack.dialog_ids() == ["main"]
        assert len(conversation.slots) == 0

    @pytest.mark.parametrize("utterance", ["cancel", "Cancel", "quit", "stop", "never mind"])
    def test_cancel_wins_even_when_recognizer_disagrees(self, make_engine, say, store, utterance):
        recognizer = ScriptedRecognizer(
            {"book a flight from Paris to Tokyo": book_flight(origin="Paris", destination="Tokyo")},
            default=book_flight(score=0.99, travel_date="2026-12-24"),
        )
        engine = make_engine(recognizer=recognizer)

        say(engine, "book a flight from Paris to Tokyo")
        result = say(engine, utterance)

        assert result.messages == [CANCEL_MESSAGE]
        assert store.get("conv-1").stack.dialog_ids() == ["main"]

    def test_recognized_cancel_intent_also_cancels(self, make_engine, say, store):
        recognizer = ScriptedRecognizer({
            "book a flight": book_flight(),
            "forget about it": RecognizerResult(top_intent="Cancel", score=0.8),
        })
        engine = make_engine(recognizer=recognizer)

        say(engine, "book a flight")
        result = say(engine, "forget about it")

        assert result.messages == [CANCEL_MESSAGE]
        assert store.get("conv-1").stack.dialog_ids() == ["main"]

    def test_cancel_at_root_has_nothing_to_cancel(self, engine, say):
        result = say(engine, "cancel")
        assert result.messages == ["There's nothing to cancel right now."]

    def test_help_reissues_pending_prompt_without_touching_stack(self, engine, say, store):
        say(engine, "book a flight from Paris to Tokyo")
        before = store.get("conv-1").stack.to_dict()

        result = say(engine, "help")
        assert result.messages == [load_help_message(), DATE_QUESTION]
        assert store.get("conv-1").stack.to_dict() == before

        # the prompt still accepts an answer afterwards
        assert say(engine, "tomorrow").messages[0].startswith("Please confirm")

    def test_help_at_root(self, engine, say):
        result = say(engine, "help")
        assert result.messages == [load_help_message()]
        assert result.state == ConversationState.IDLE


class TestPromptExhaustion:
    def test_invalid_date_exhausts_exactly_once(self, make_engine, say, store):
        seen = []

        class RecordingBooking(BookingDialog):
            def resume(self, ctx, frame, outcome):
                seen.append(outcome.kind)
                return super().resume(ctx, frame, outcome)

        engine = make_engine(dialogs=dialogs_with(RecordingBooking()), max_retries=2)
        say(engine, "book a flight from Paris to Tokyo")

        replies = []
        for _ in range(3):
            replies.extend(say(engine, "banana").messages)

        assert seen.count("exhausted") == 1
        reprompts = [m for m in replies if "I need a date" in m]
        assert len(reprompts) == 2
        assert replies[-2:] == [
            "Sorry, I couldn't get that information. Let's start over.",
            "OK, I won't book that. What else can I do for you?",
        ]
        assert store.get("conv-1").stack.dialog_ids() == ["main"]

    def test_zero_retries_exhausts_on_first_invalid_answer(self, make_engine, say):
        engine = make_engine(max_retries=0)
        say(engine, "book a flight from Paris to Tokyo")

        result = say(engine, "banana")
        assert not any("I need a date" in m for m in result.messages)
        assert result.messages[0] == "Sorry, I couldn't get that information. Let's start over."

    def test_exhausted_return_date_falls_back_to_one_way(self, make_engine, say):
        recognizer = ScriptedRecognizer({
            "round trip": book_flight(
                origin="Paris", destination="Oslo", travel_date="2026-11-01", round_trip=True
            ),
        })
        engine = make_engine(recognizer=recognizer, max_retries=1)

        assert say(engine, "round trip").messages == ["On what date will you return?"]
        say(engine, "banana")
        result = say(engine, "banana")

        assert result.messages == [
            "No problem, I'll book it as a one-way trip.",
            "Please confirm, I have you traveling to Oslo from Paris on 2026-11-01. "
            "Is this correct?",
        ]

    def test_return_date_before_travel_date_is_rejected(self, make_engine, say):
        recognizer = ScriptedRecognizer({
            "round trip": book_flight(
                origin="Paris", destination="Oslo", travel_date="2026-11-10", round_trip=True
            ),
        })
        engine = make_engine(recognizer=recognizer)

        say(engine, "round trip")
        result = say(engine, "2026-11-01")
        assert result.messages == [
            "I need a date on or after your travel date. On what date will you return?"
        ]


class TestRecognizerOutage:
    def test_full_booking_without_nlu(self, make_engine, broken_recognizer, say, store):
        engine = make_engine(recognizer=broken_recognizer)

        assert say(engine, "I want to fly somewhere").messages == [ORIGIN_QUESTION]
        assert say(engine, "Paris").messages == [DESTINATION_QUESTION]
        assert say(engine, "New York").messages == [DATE_QUESTION]
        assert say(engine, "2026-12-01").messages[0].startswith("Please confirm")

        result = say(engine, "yes")
        assert result.messages[0] == "I have you booked to New York from Paris on 2026-12-01."
        assert broken_recognizer.calls == 5
        assert len(store.get_bookings("conv-1")) == 1

    def test_cancel_still_works_without_nlu(self, make_engine, broken_recognizer, say, store):
        engine = make_engine(recognizer=broken_recognizer)

        say(engine, "hello")
        assert say(engine, "cancel").messages == [CANCEL_MESSAGE]
        assert store.get("conv-1").stack.dialog_ids() == ["main"]

    def test_recognizer_crash_degrades_to_prompts(self, make_engine, say, store):
        class Crashing(ScriptedRecognizer):
            def recognize(self, utterance):
                raise AttributeError("'list' object has no attribute 'get'")

        engine = make_engine(recognizer=Crashing())

        result = say(engine, "book a flight")
        assert not result.faulted
        assert result.messages == [ORIGIN_QUESTION]
        assert store.get("conv-1").stack.dialog_ids() == ["main", "booking", "text_prompt"]

    def test_non_string_entities_are_not_prefilled(self, make_engine, say, store):
        recognizer = ScriptedRecognizer({
            "book it": book_flight(origin=42, destination=["Tokyo"], travel_date=20261101),
        })
        engine = make_engine(recognizer=recognizer)

        result = say(engine, "book it")
        assert not result.faulted
        assert result.messages == [ORIGIN_QUESTION]
        assert len(store.get("conv-1").slots) == 0


class TestFaults:
    def test_step_fault_resets_conversation_and_apologises(self, make_engine, say, store):
        class ExplodingBooking(BookingDialog):
            def resume(self, ctx, frame, outcome):
                raise RuntimeError("database column missing")

        engine = make_engine(dialogs=dialogs_with(ExplodingBooking()))

        say(engine, "book a flight")
        result = say(engine, "Paris")

        assert result.faulted
        assert result.messages == list(APOLOGY_MESSAGES)
        assert all("database" not in m for m in result.messages)

        conversation = store.get("conv-1")
        assert conversation.stack.dialog_ids() == ["main"]
        assert len(conversation.slots) == 0

        # the conversation keeps working afterwards
        assert say(engine, "book a flight").messages == [ORIGIN_QUESTION]

    def test_missing_dialog_is_a_fault_not_a_crash(self, make_engine, say, store):
        dialogs = DialogSet([MainDialog(), TextPrompt(), DatePrompt(), ConfirmPrompt()])
        engine = make_engine(dialogs=dialogs)

        result = say(engine, "book a flight")
        assert result.faulted
        assert store.get("conv-1").stack.dialog_ids() == ["main"]


class TestSequencing:
    def test_duplicate_turn_is_ignored(self, engine, say, store):
        say(engine, "book a flight", turn_id="a1")
        first = say(engine, "Paris", turn_id="a2")
        second = say(engine, "Paris", turn_id="a2")

        assert first.messages == [DESTINATION_QUESTION]
        assert second.duplicate
        assert second.messages == []
        assert store.get("conv-1").stack.top().options["field"] == "destination"

    def test_concurrent_duplicate_delivery_fills_slot_once(self, engine, say, store):
        say(engine, "book a flight", turn_id="b1")

        barrier = threading.Barrier(2)
        results = []

        def deliver():
            barrier.wait()
            results.append(say(engine, "Paris", turn_id="b2"))

        threads = [threading.Thread(target=deliver) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(r.duplicate for r in results) == [False, True]
        conversation = store.get("conv-1")
        assert conversation.slots.get("origin") == "Paris"
        assert not conversation.slots.is_filled("destination")
        assert conversation.stack.dialog_ids() == ["main", "booking", "text_prompt"]

    def test_conversations_are_independent(self, engine, say, store):
        say(engine, "book a flight", conversation_id="alice")
        say(engine, "book a flight from Paris to Tokyo", conversation_id="bob")
        say(engine, "Lisbon", conversation_id="alice")

        assert store.get("alice").slots.values() == {"origin": "Lisbon"}
        assert store.get("bob").slots.values() == {"origin": "Paris", "destination": "Tokyo"}

    def test_root_frame_survives_any_sequence(self, engine, say, store):
        utterances = [
            "book a flight", "book a flight from Paris to Tokyo", "Paris", "Tokyo",
            "tomorrow", "banana", "yes", "no", "cancel", "help", "hello",
            "what's the weather like", "2026-12-01", "",
        ]
        rng = random.Random(7)

        for _ in range(300):
            say(engine, rng.choice(utterances))
            conversation = store.get("conv-1")
            assert len(conversation.stack) >= 1
            assert conversation.stack.root().dialog_id == "main"

    def test_lock_registry_is_empty_between_turns(self, engine, say):
        for i in range(25):
            say(engine, "book a flight", conversation_id=f"user-{i}")
            say(engine, "cancel", conversation_id=f"user-{i}")

        assert len(engine.locks) == 0

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from hearing.core.slots import ALL_SLOTS
from hearing.models.session_model import Session, SessionSeed, SessionStatus

T0 = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)


class TestSession:
    def setup_method(self):
        self.session = Session.new("user-1", first_question="What kind of meeting did you have?")

    def test_new_session_is_blank(self):
        s = self.session
        assert s.status == SessionStatus.ACTIVE
        assert s.turn_count == 0
        assert s.summary is None and s.ended_at is None
        assert set(s.slots) == set(ALL_SLOTS)
        assert s.unfilled_slots() == list(ALL_SLOTS)

    def test_seed_sets_id_platform_metadata_and_slots(self):
        seed = SessionSeed(
            session_id="s-42", platform="ios", metadata={"crm": "x"}, slots={"customer": "Acme"}
        )
        s = Session.new("user-1", seed)
        assert s.id == "s-42"
        assert s.platform == "ios"
        assert s.metadata == {"crm": "x"}
        assert s.is_slot_filled("customer")
        assert s.unfilled_slots()[0] == "project"

    def test_seed_rejects_unknown_slot(self):
        with pytest.raises(ValidationError):
            SessionSeed(slots={"favourite_food": "ramen"})

    def test_is_slot_filled_rejects_unknown_name(self):
        with pytest.raises(KeyError):
            self.session.is_slot_filled("favourite_food")

    def test_transitions_return_new_objects(self):
        updated = self.session.with_slots({"customer": "Acme"}).with_answer("Q1", "A1", T0)
        assert updated is not self.session
        assert self.session.turn_count == 0
        assert updated.turn_count == 1
        assert updated.history[0].question == "Q1"
        assert updated.slots["customer"] == "Acme"

    def test_with_question_clears_lease(self):
        leased = self.session.with_pending_turn(T0)
        assert leased.lease_active(T0 + timedelta(seconds=10), 90)
        assert not leased.lease_active(T0 + timedelta(seconds=91), 90)
        cleared = leased.with_question("Next?", follow_up_slot="budget")
        assert cleared.pending_turn_at is None
        assert cleared.follow_up_slot == "budget"
        assert not cleared.lease_active(T0, 90)

    def test_completed_session_rejects_mutation(self):
        done = self.session.with_answer("Q1", "A1", T0).completed("Summary.", T0)
        assert done.is_completed
        assert done.current_question is None
        assert done.ended_at == T0
        with pytest.raises(ValueError):
            done.with_answer("Q2", "A2")
        with pytest.raises(ValueError):
            done.with_slots({"customer": "Acme"})
        with pytest.raises(ValueError):
            done.completed("Another summary.")

    def test_json_round_trip(self):
        s = self.session.with_slots({"customer": "Acme"}).with_answer("Q1", "A1", T0)
        restored = Session.model_validate_json(s.model_dump_json())
        assert restored == s

    def test_loading_unknown_slot_key_is_rejected(self):
        data = self.session.model_dump(mode="json")
        data["slots"]["weather"] = "sunny"
        with pytest.raises(ValidationError):
            Session.model_validate(data)

    def test_transcript_is_ordered(self):
        s = self.session.with_answer("Q1", "A1", T0).with_answer("Q2", "A2", T0)
        assert s.transcript() == [
            {"question": "Q1", "answer": "A1"},
            {"question": "Q2", "answer": "A2"},
        ]
        assert s.last_answer() == "A2"

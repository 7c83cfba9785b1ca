import pytest

from hearing.core.config import Settings
from hearing.core.policy import CompletionPolicy, PolicyParams
from hearing.core.slots import ALL_SLOTS
from hearing.models.session_model import Session

REQUIRED = {"customer": "Acme", "project": "Project X", "next_action": "send a quote"}
FOUR_QUALITY = {
    "budget": "5M yen",
    "schedule": "April",
    "participants": "Tanaka",
    "location": "Tokyo office",
}


def make_session(turns, slots=None, answer="ok", follow_up_slot=None):
    s = Session.new("user-1").with_slots(slots or {})
    for i in range(turns):
        s = s.with_answer(f"Q{i}", answer)
    if follow_up_slot:
        s = s.with_question("Follow-up?", follow_up_slot=follow_up_slot)
    return s


class TestShouldComplete:
    def setup_method(self):
        self.policy = CompletionPolicy()

    @pytest.mark.parametrize("turns", [0, 1, 2])
    def test_never_before_floor(self, turns):
        slots = {**REQUIRED, **FOUR_QUALITY}
        assert not self.policy.should_complete(make_session(turns, slots))

    def test_always_at_hard_cap(self):
        cap = self.policy.params.hard_cap_turns
        assert self.policy.should_complete(make_session(cap))
        assert not self.policy.should_complete(make_session(cap - 1))

    def test_default_cap_leaves_a_turn_per_slot(self):
        assert CompletionPolicy().params.hard_cap_turns > len(ALL_SLOTS)
        assert Settings().policy_hard_cap_turns > len(ALL_SLOTS)

    def test_missing_required_blocks_until_cap(self):
        slots = {"customer": "Acme", "project": "X", **FOUR_QUALITY}
        assert not self.policy.should_complete(make_session(10, slots))

    def test_required_only_is_not_enough_early(self):
        assert not self.policy.should_complete(make_session(5, REQUIRED))

    def test_four_quality_slots_complete_at_five_turns(self):
        slots = {**REQUIRED, **FOUR_QUALITY}
        assert not self.policy.should_complete(make_session(4, slots))
        assert self.policy.should_complete(make_session(5, slots))

    def test_late_threshold(self):
        # required (0.4) + 1/9 quality (~0.044) + depth 0.5 (0.1) = ~0.54
        slots = {**REQUIRED, "budget": "5M yen"}
        long_answer = "x" * 80
        assert not self.policy.should_complete(make_session(7, slots, long_answer))
        assert self.policy.should_complete(make_session(8, slots, long_answer))
        assert not self.policy.should_complete(make_session(8, slots, "short"))


class TestInformationScore:
    def test_blend(self):
        policy = CompletionPolicy()
        score = policy.information_score(make_session(3, {**REQUIRED, **FOUR_QUALITY}, "y" * 60))
        assert score.required == 1.0
        assert score.filled_quality == 4
        assert score.depth == 0.5
        assert score.total == pytest.approx(0.4 + 0.4 * 4 / 9 + 0.2 * 0.5)

    def test_params_from_settings(self):
        params = PolicyParams.from_settings(Settings(policy_hard_cap_turns=6))
        assert CompletionPolicy(params).should_complete(make_session(6))


class TestFollowUp:
    def setup_method(self):
        self.policy = CompletionPolicy()

    def test_competitor_mention(self):
        s = make_session(1, answer="They are also talking to a Competitor.")
        assert self.policy.has_urgent_follow_up(s)
        assert self.policy.urgent_slot(s) == "competitor_info"

    def test_rule_order_wins(self):
        s = make_session(1, answer="The competitor quoted a lower price")
        assert self.policy.urgent_slot(s) == "competitor_info"

    def test_filled_slot_does_not_trigger(self):
        s = make_session(1, {"competitor_info": "Globex"}, answer="the competitor again, and the budget")
        assert self.policy.urgent_slot(s) == "budget"

    def test_japanese_keywords(self):
        assert self.policy.urgent_slot(make_session(1, answer="予算は未定です")) == "budget"
        assert self.policy.urgent_slot(make_session(1, answer="課題が残っています")) == "issues"

    @pytest.mark.parametrize(
        "answer",
        ["They wore a costume", "Pass me a tissue", "Their arrival was late"],
    )
    def test_keywords_inside_other_words_do_not_trigger(self, answer):
        assert self.policy.urgent_slot(make_session(1, answer=answer)) is None

    @pytest.mark.parametrize(
        "answer, slot",
        [
            ("The costs were discussed", "budget"),
            ("Two issues remain", "issues"),
            ("It will be about $5k", "budget"),
            ("他社と比較中", "competitor_info"),
        ],
    )
    def test_plural_symbol_and_japanese_keywords_trigger(self, answer, slot):
        assert self.policy.urgent_slot(make_session(1, answer=answer)) == slot

    def test_only_latest_answer_counts(self):
        s = make_session(1, answer="competitor").with_answer("Q", "all fine")
        assert not self.policy.has_urgent_follow_up(s)


class TestDecide:
    def setup_method(self):
        self.policy = CompletionPolicy()
        self.slots = {**REQUIRED, **FOUR_QUALITY}

    def test_urgent_postpones_completion_once(self):
        s = make_session(5, self.slots, answer="a competitor came up")
        decision = self.policy.decide(s)
        assert not decision.complete
        assert decision.urgent_slot == "competitor_info"
        assert decision.deferred

    def test_no_second_postponement(self):
        s = make_session(5, self.slots, answer="a competitor came up", follow_up_slot="competitor_info")
        s = s.with_answer("Follow-up?", "another competitor")
        decision = self.policy.decide(s)
        assert decision.complete
        assert decision.urgent_slot is None

    def test_hard_cap_overrides_urgent(self):
        decision = self.policy.decide(make_session(self.policy.params.hard_cap_turns, answer="competitor"))
        assert decision.complete

    def test_urgent_hint_when_not_completing(self):
        decision = self.policy.decide(make_session(1, answer="there is a risk"))
        assert decision.complete is False
        assert decision.urgent_slot == "issues"
        assert not decision.deferred

import pytest

from hearing.core.errors import InvalidSlotSchema
from hearing.core.slots import (
    ALL_SLOTS,
    OPTIONAL_SLOTS,
    QUALITY_SLOTS,
    REQUIRED_SLOTS,
    empty_slots,
    is_filled,
    merge_slot_updates,
    validate_slot_update,
)


class TestCatalog:
    def test_required_come_first(self):
        assert ALL_SLOTS[:3] == ("customer", "project", "next_action")
        assert len(ALL_SLOTS) == len(REQUIRED_SLOTS) + len(OPTIONAL_SLOTS) == 17

    def test_quality_slots_are_optional(self):
        assert set(QUALITY_SLOTS) <= set(OPTIONAL_SLOTS)
        assert "competitor_info" not in QUALITY_SLOTS

    def test_empty_slots_has_every_key_unfilled(self):
        slots = empty_slots()
        assert set(slots) == set(ALL_SLOTS)
        assert not any(is_filled(v) for v in slots.values())

    @pytest.mark.parametrize("value,expected", [("Acme", True), ("  ", False), ("", False), (None, False)])
    def test_is_filled(self, value, expected):
        assert is_filled(value) is expected


class TestValidate:
    def test_known_keys_pass_and_are_coerced(self):
        update = validate_slot_update(
            {"customer": " Acme ", "participants": ["Tanaka", "", "Suzuki"], "closing_possibility": 70}
        )
        assert update == {
            "customer": "Acme",
            "participants": "Tanaka, Suzuki",
            "closing_possibility": "70",
        }

    def test_unknown_keys_raise_with_accepted_subset(self):
        with pytest.raises(InvalidSlotSchema) as excinfo:
            validate_slot_update({"customer": "Acme", "mood_of_cat": "sleepy"})
        assert excinfo.value.unknown_keys == ["mood_of_cat"]
        assert excinfo.value.accepted == {"customer": "Acme"}

    def test_unsupported_values_become_empty(self):
        assert validate_slot_update({"budget": None, "schedule": {"a": 1}, "issues": True}) == {
            "budget": "",
            "schedule": "",
            "issues": "",
        }


class TestMerge:
    def setup_method(self):
        self.current = empty_slots()
        self.current["customer"] = "Acme"

    def test_empty_value_never_clears_a_slot(self):
        merged = merge_slot_updates(self.current, {"customer": "", "project": "   "})
        assert merged["customer"] == "Acme"
        assert merged["project"] == ""

    def test_merge_is_idempotent(self):
        update = {"project": "Project X", "budget": "5M yen"}
        once = merge_slot_updates(self.current, update)
        twice = merge_slot_updates(once, update)
        assert once == twice

    def test_unknown_keys_have_no_effect(self):
        merged = merge_slot_updates(self.current, {"weather": "sunny"})
        assert merged == self.current

    def test_new_value_overwrites(self):
        merged = merge_slot_updates(self.current, {"customer": "Acme Holdings"})
        assert merged["customer"] == "Acme Holdings"

    def test_input_is_not_mutated(self):
        merge_slot_updates(self.current, {"project": "Project X"})
        assert self.current["project"] == ""

"""Validation gate and rule tests."""

import pytest

from escrowdesk.services.draft import Draft
from escrowdesk.services.validation_gate import (
    AMOUNT_REGEX,
    DateAfter,
    MaxLength,
    NumericRange,
    Pattern,
    Required,
    ValidationGate,
    to_date,
    to_decimal,
)


@pytest.mark.unit
class TestRules:
    """Individual rule behaviour."""

    def test_required_rejects_blank(self):
        draft = Draft({"name": "   "})
        assert Required().check("name", draft) == "This field is required"

    def test_required_accepts_zero(self):
        draft = Draft({"units": 0})
        assert Required().check("units", draft) is None

    def test_pattern_skips_empty(self):
        assert Pattern(AMOUNT_REGEX).check("amount", Draft({"amount": ""})) is None

    def test_pattern_rejects_three_decimals(self):
        rule = Pattern(AMOUNT_REGEX, "bad amount")
        assert rule.check("amount", Draft({"amount": "10.123"})) == "bad amount"
        assert rule.check("amount", Draft({"amount": "10.12"})) is None

    def test_numeric_range_bounds(self):
        rule = NumericRange(0, 100)
        assert rule.check("pct", Draft({"pct": "100"})) is None
        assert rule.check("pct", Draft({"pct": "100.01"})) == "Must be at most 100"
        assert rule.check("pct", Draft({"pct": "-1"})) == "Must be at least 0"
        assert rule.check("pct", Draft({"pct": "abc"})) == "Must be a number"

    def test_max_length(self):
        rule = MaxLength(3)
        assert rule.check("code", Draft({"code": "ABCD"})) == "Must be at most 3 characters"

    def test_date_after_requires_strictly_later(self):
        rule = DateAfter(other="start", message="too early")
        assert rule.check("end", Draft({"start": "2026-01-10", "end": "2026-01-10"})) == "too early"
        assert rule.check("end", Draft({"start": "2026-01-10", "end": "2026-01-11"})) is None

    def test_date_after_allow_equal(self):
        rule = DateAfter(other="start", allow_equal=True)
        assert rule.check("end", Draft({"start": "2026-01-10", "end": "2026-01-10"})) is None

    def test_date_after_ignores_missing_reference(self):
        assert DateAfter(other="start").check("end", Draft({"end": "2026-01-10"})) is None

    def test_coercion_helpers(self):
        assert to_decimal("12.50%") is not None
        assert to_decimal(True) is None
        assert to_decimal("nan") is None
        assert to_date("2026-03-01T10:00:00Z").isoformat() == "2026-03-01"
        assert to_date("not a date") is None


@pytest.mark.unit
class TestValidationGate:
    """Gate bookkeeping and cross-field re-validation."""

    @pytest.fixture
    def gate(self) -> ValidationGate:
        return ValidationGate(rules={
            "start": [Required()],
            "end": [Required(), DateAfter(other="start", message="End must be after start")],
            "note": [MaxLength(5)],
        })

    def test_validate_fields_returns_failures_only(self, gate):
        draft = Draft({"start": "2026-01-01", "note": "toolong"})
        failures = gate.validate_fields(draft, ["start", "end", "note"])
        assert set(failures) == {"end", "note"}
        assert gate.errors == failures

    def test_validate_subset_ignores_other_fields(self, gate):
        failures = gate.validate_fields(Draft(), ["note"])
        assert failures == {}

    def test_dependants_of(self, gate):
        assert gate.dependants_of("start") == ["end"]
        assert gate.dependants_of("end") == []

    def test_changing_reference_revalidates_untouched_dependant(self, gate):
        """End was filled earlier; moving start past it flags end without end being edited."""
        draft = Draft({"start": "2026-01-01", "end": "2026-02-01"})
        gate.validate_fields(draft, ["start", "end"])
        assert gate.errors == {}

        draft.set("start", "2026-03-01")
        errors = gate.on_field_changed(draft, "start")
        assert errors == {"end": "End must be after start"}
        assert gate.errors["end"] == "End must be after start"

        draft.set("start", "2026-01-15")
        assert gate.on_field_changed(draft, "start") == {}
        assert "end" not in gate.errors

    def test_empty_unvalidated_dependant_is_not_flagged(self, gate):
        draft = Draft({"start": "2026-01-01"})
        gate.on_field_changed(draft, "start")
        assert "end" not in gate.errors

    def test_derived_change_skips_untouched_empty_field(self, gate):
        draft = Draft()
        assert gate.on_field_changed(draft, "start", user_change=False) == {}
        assert gate.on_field_changed(draft, "start") == {"start": "This field is required"}

    def test_reset_clears_errors(self, gate):
        gate.validate_fields(Draft(), ["start"])
        gate.reset()
        assert gate.errors == {}

"""Validation gate — declarative per-field rules evaluated before a transition.

Each rule checks one field against the current draft and returns an error
message or None. Empty values pass every rule except ``Required`` so that
optional fields only get format checks once filled in.

Cross-field rules (``DateAfter``) name the field they compare against in
``references``; the gate uses that to re-validate the dependent field when
the referenced field changes, even if the dependent was not touched.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from escrowdesk.services.draft import Draft, is_empty

logger = logging.getLogger(__name__)

AMOUNT_REGEX = re.compile(r"^\d+(\.\d{1,2})?$")
PERCENTAGE_REGEX = re.compile(r"^\d+(\.\d{1,2})?%?$")
EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


# ── Value coercion ───────────────────────────────────────────


def to_decimal(value: Any) -> Decimal | None:
    """Parse a form value as a number; None when it isn't one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    if isinstance(value, str):
        text = value.strip().rstrip("%")
        if not text:
            return None
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None
        return number if number.is_finite() else None
    return None


def to_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    return None


# ── Rules ────────────────────────────────────────────────────


@dataclass
class Rule:
    message: str = "Invalid value"

    @property
    def references(self) -> tuple[str, ...]:
        return ()

    def check(self, name: str, draft: Draft) -> str | None:  # pragma: no cover - interface
        raise NotImplementedError


@dataclass
class Required(Rule):
    message: str = "This field is required"

    def check(self, name: str, draft: Draft) -> str | None:
        return self.message if draft.is_empty(name) else None


@dataclass
class Pattern(Rule):
    regex: re.Pattern | str = AMOUNT_REGEX
    message: str = "Invalid format"

    def check(self, name: str, draft: Draft) -> str | None:
        value = draft.get(name)
        if is_empty(value):
            return None
        regex = re.compile(self.regex) if isinstance(self.regex, str) else self.regex
        return None if regex.match(str(value).strip()) else self.message


@dataclass
class NumericRange(Rule):
    minimum: float | None = None
    maximum: float | None = None
    message: str = ""

    def check(self, name: str, draft: Draft) -> str | None:
        value = draft.get(name)
        if is_empty(value):
            return None
        number = to_decimal(value)
        if number is None:
            return "Must be a number"
        if self.minimum is not None and number < Decimal(str(self.minimum)):
            return self.message or f"Must be at least {self.minimum:g}"
        if self.maximum is not None and number > Decimal(str(self.maximum)):
            return self.message or f"Must be at most {self.maximum:g}"
        return None


@dataclass
class MaxLength(Rule):
    length: int = 255
    message: str = ""

    def check(self, name: str, draft: Draft) -> str | None:
        value = draft.get(name)
        if is_empty(value):
            return None
        if len(str(value)) > self.length:
            return self.message or f"Must be at most {self.length} characters"
        return None


@dataclass
class DateAfter(Rule):
    """This field's date must fall after ``other``'s date (or on it, if allowed)."""
    other: str = ""
    allow_equal: bool = False
    message: str = ""

    @property
    def references(self) -> tuple[str, ...]:
        return (self.other,)

    def check(self, name: str, draft: Draft) -> str | None:
        value = draft.get(name)
        if is_empty(value):
            return None
        this_date = to_date(value)
        if this_date is None:
            return "Invalid date"
        other_date = to_date(draft.get(self.other))
        if other_date is None:
            return None
        if this_date > other_date or (self.allow_equal and this_date == other_date):
            return None
        return self.message or f"Must be after {self.other}"


# ── Gate ─────────────────────────────────────────────────────


@dataclass
class ValidationGate:
    rules: dict[str, list[Rule]] = field(default_factory=dict)
    # Current error per field, kept in sync as fields change
    errors: dict[str, str] = field(default_factory=dict)
    _validated: set[str] = field(default_factory=set)

    def add_rule(self, name: str, rule: Rule) -> None:
        self.rules.setdefault(name, []).append(rule)

    def check_field(self, draft: Draft, name: str) -> str | None:
        """First failing message for one field, or None."""
        for rule in self.rules.get(name, []):
            message = rule.check(name, draft)
            if message:
                return message
        return None

    def validate_fields(self, draft: Draft, names: list[str]) -> dict[str, str]:
        """Validate a named subset; returns {field: message} for failures only."""
        failures: dict[str, str] = {}
        for name in names:
            self._validated.add(name)
            message = self.check_field(draft, name)
            if message:
                failures[name] = message
                self.errors[name] = message
            else:
                self.errors.pop(name, None)
        if failures:
            logger.debug(f"Validation failed for {sorted(failures)}")
        return failures

    def dependants_of(self, name: str) -> list[str]:
        """Fields whose rules compare against ``name``."""
        return [
            dependant
            for dependant, rules in self.rules.items()
            if any(name in rule.references for rule in rules)
        ]

    def on_field_changed(self, draft: Draft, name: str, user_change: bool = True) -> dict[str, str]:
        """Re-validate a changed field and every cross-field dependant.

        Derived changes (``user_change=False``) and dependants are only
        re-checked once they have a value or were validated before, so an
        untouched empty field doesn't light up as "required" just because
        its neighbour changed.
        """
        names = []
        if user_change or self._should_recheck(draft, name):
            names.append(name)
        for dependant in self.dependants_of(name):
            if self._should_recheck(draft, dependant):
                names.append(dependant)
        return self.validate_fields(draft, names)

    def _should_recheck(self, draft: Draft, name: str) -> bool:
        return name in self._validated or not draft.is_empty(name)

    def reset(self) -> None:
        self.errors.clear()
        self._validated.clear()

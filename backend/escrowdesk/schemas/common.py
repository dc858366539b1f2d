"""Common schemas used across the application."""

from typing import Any

from pydantic import BaseModel


class OperationResult(BaseModel):
    """Outcome of a wizard or collection operation.

    Failures never escape the wizard as exceptions; they come back as
    ``ok=False`` with either a top-level ``error`` (banner message) or
    per-field ``field_errors``, or both.

    Usage:
        result = await controller.go_next()
        if not result.ok:
            show(result.error, result.field_errors)
    """
    ok: bool
    data: Any = None
    error: str | None = None
    field_errors: dict[str, str] = {}
    warnings: list[str] = []

    @classmethod
    def success(cls, data: Any = None, warnings: list[str] | None = None) -> "OperationResult":
        return cls(ok=True, data=data, warnings=warnings or [])

    @classmethod
    def failure(
        cls,
        error: str | None = None,
        field_errors: dict[str, str] | None = None,
        data: Any = None,
    ) -> "OperationResult":
        return cls(ok=False, error=error, field_errors=field_errors or {}, data=data)

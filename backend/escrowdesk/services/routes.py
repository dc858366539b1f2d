"""Step indicator sync — keeps the navigable URL in step with the wizard.

URLs look like ``/guarantee/new/17?step=2&mode=edit``: ``step`` is 1-based,
``mode`` is ``view`` or ``edit``. A draft with no id yet has no id segment.
Back/forward and deep links resume from the parsed route.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import parse_qs, urlencode, urlsplit


@dataclass(frozen=True)
class StepRoute:
    base_path: str
    entity_id: Any | None = None
    step_index: int = 0
    view: bool = False

    def url(self) -> str:
        path = self.base_path.rstrip("/")
        if self.entity_id is not None:
            path = f"{path}/{self.entity_id}"
        query = {"step": self.step_index + 1}
        if self.entity_id is not None:
            query["mode"] = "view" if self.view else "edit"
        return f"{path}?{urlencode(query)}"

    @classmethod
    def parse(cls, base_path: str, url: str) -> "StepRoute":
        """Parse a URL produced by ``url()``; unknown or bad parts fall back to defaults."""
        parts = urlsplit(url)
        base = base_path.rstrip("/")
        path = parts.path.rstrip("/")
        entity_id = None
        if path.startswith(base) and path != base:
            tail = path[len(base):].strip("/")
            if tail and "/" not in tail:
                entity_id = int(tail) if tail.isdigit() else tail
        query = parse_qs(parts.query)
        try:
            step_index = max(int(query.get("step", ["1"])[0]) - 1, 0)
        except ValueError:
            step_index = 0
        view = query.get("mode", [""])[0] == "view"
        return cls(base_path=base_path, entity_id=entity_id, step_index=step_index, view=view)


class StepIndicator(Protocol):
    def sync(self, route: StepRoute) -> None: ...


@dataclass
class RecordingStepIndicator:
    """Keeps the current route and its history for the API to report."""
    current: StepRoute | None = None
    history: list[str] = field(default_factory=list)

    def sync(self, route: StepRoute) -> None:
        self.current = route
        url = route.url()
        if not self.history or self.history[-1] != url:
            self.history.append(url)

"""Optional decision tracing for prompt generation runs."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence
from uuid import uuid4


@dataclass(frozen=True)
class TraceSelection:
    method: str
    chosen_index: int
    candidates: tuple[str, ...]


@dataclass(frozen=True)
class TraceEvent:
    id: str
    type: str
    domain: str
    key: str
    detail: str
    branch_taken: Optional[str] = None
    selection: Optional[TraceSelection] = None
    data: dict[str, Any] = field(default_factory=dict)


class TraceSink(Protocol):
    def record_decision(
        self,
        *,
        domain: str,
        key: str,
        branch_taken: str,
        why: str,
        selection: Optional[TraceSelection] = None,
    ) -> None: ...

    def record_error(self, *, domain: str, key: str, message: str) -> None: ...

    def record_rewrite(self, *, stage: str, before_chars: int, after_chars: int) -> None: ...


class TraceCollector:
    """In-memory trace sink used by the API and CLI."""

    def __init__(self, run_id: Optional[str] = None) -> None:
        self.run_id = run_id or uuid4().hex[:12]
        self.events: list[TraceEvent] = []
        self._counter = 0

    def _next_id(self) -> str:
        self._counter += 1
        return f"{self.run_id}.{self._counter}"

    def record_decision(
        self,
        *,
        domain: str,
        key: str,
        branch_taken: str,
        why: str,
        selection: Optional[TraceSelection] = None,
    ) -> None:
        self.events.append(
            TraceEvent(
                id=self._next_id(),
                type="decision",
                domain=domain,
                key=key,
                detail=why,
                branch_taken=branch_taken,
                selection=selection,
            )
        )

    def record_error(self, *, domain: str, key: str, message: str) -> None:
        self.events.append(
            TraceEvent(id=self._next_id(), type="error", domain=domain, key=key, detail=message)
        )

    def record_rewrite(self, *, stage: str, before_chars: int, after_chars: int) -> None:
        self.events.append(
            TraceEvent(
                id=self._next_id(),
                type="rewrite",
                domain="postprocess",
                key=stage,
                detail=f"{before_chars} -> {after_chars} chars",
                data={"before_chars": before_chars, "after_chars": after_chars},
            )
        )

    def summary(self) -> dict[str, int]:
        counts = Counter(event.type for event in self.events)
        return {
            "decisions": counts.get("decision", 0),
            "errors": counts.get("error", 0),
            "rewrites": counts.get("rewrite", 0),
            "total": len(self.events),
        }


def trace_decision(
    sink: Optional[TraceSink],
    *,
    domain: str,
    key: str,
    branch_taken: str,
    why: str,
    candidates: Optional[Sequence[str]] = None,
    chosen: Optional[str] = None,
    method: str = "pick_random",
) -> None:
    if sink is None:
        return
    selection = None
    if candidates is not None and chosen is not None:
        options = tuple(candidates)
        index = options.index(chosen) if chosen in options else -1
        selection = TraceSelection(method=method, chosen_index=index, candidates=options)
    sink.record_decision(
        domain=domain,
        key=key,
        branch_taken=branch_taken,
        why=why,
        selection=selection,
    )

"""Per-filter lifecycle during exploration."""

from __future__ import annotations

from ..domain.models import FilterOutcomeState

S = FilterOutcomeState

TRANSITIONS: dict[FilterOutcomeState, frozenset[FilterOutcomeState]] = {
    S.DISCOVERED: frozenset({S.ATTEMPTING}),
    S.ATTEMPTING: frozenset({S.ACTIVE, S.FAILED}),
    S.ACTIVE: frozenset({S.REVERTING}),
    S.REVERTING: frozenset({S.REVERTED, S.STUCK_ACTIVE}),
    S.FAILED: frozenset(),
    S.REVERTED: frozenset(),
    S.STUCK_ACTIVE: frozenset(),
}


class FilterLifecycle:
    """Tracks one filter through Discovered -> Attempting -> ... and rejects illegal moves."""

    def __init__(self, label: str):
        self.label = label
        self.state = S.DISCOVERED
        self.history: list[FilterOutcomeState] = [S.DISCOVERED]

    def advance(self, target: FilterOutcomeState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise ValueError(f"illegal filter transition {self.state.value} -> {target.value} ({self.label})")
        self.state = target
        self.history.append(target)

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.state]

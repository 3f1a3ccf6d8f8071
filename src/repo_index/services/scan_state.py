"""Per-project scan state machine using the ``transitions`` library.

Every candidate directory starts in ``discovered`` and ends in exactly one
terminal state: ``skipped_not_repo``, ``skipped_unchanged``, ``scanned``
or ``failed``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from transitions import Machine, State

from src.shared.models.index import ProjectSnapshot
from src.shared.models.scan import ProjectScanState

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------
STATES: list[State] = [State(s.value) for s in ProjectScanState]

TERMINAL_STATES: frozenset[str] = frozenset({
    ProjectScanState.SKIPPED_NOT_REPO.value,
    ProjectScanState.SKIPPED_UNCHANGED.value,
    ProjectScanState.SCANNED.value,
    ProjectScanState.FAILED.value,
})

# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
TRANSITIONS: list[dict[str, Any]] = [
    {
        "trigger": "skip_not_repo",
        "source": "discovered",
        "dest": "skipped_not_repo",
    },
    {
        "trigger": "skip_unchanged",
        "source": "discovered",
        "dest": "skipped_unchanged",
        "conditions": ["has_fingerprint"],
    },
    {
        "trigger": "start_scan",
        "source": "discovered",
        "dest": "scanning",
        "conditions": ["has_fingerprint"],
    },
    {
        "trigger": "complete",
        "source": "scanning",
        "dest": "scanned",
        "conditions": ["has_snapshot"],
    },
    {
        "trigger": "fail",
        "source": ["discovered", "scanning"],
        "dest": "failed",
    },
]


class ProjectScan:
    """Tracks one project directory through a scan.

    The ``state`` attribute and the trigger methods (``skip_not_repo``,
    ``start_scan``, ...) are attached by :func:`create_project_scan_machine`.
    """

    state: str

    def __init__(self, name: str, path: Path) -> None:
        self.name = name
        self.path = path
        self.fingerprint: str | None = None
        self.snapshot: ProjectSnapshot | None = None
        self.error: str | None = None

    # Guards -------------------------------------------------------------

    def has_fingerprint(self, event: Any = None) -> bool:
        return self.fingerprint is not None

    def has_snapshot(self, event: Any = None) -> bool:
        return self.snapshot is not None

    # Helpers ------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def type_count(self) -> int:
        return len(self.snapshot.types) if self.snapshot is not None else 0

    def mark_failed(self, message: str) -> None:
        self.error = message
        self.snapshot = None
        self.fail()


def create_project_scan_machine(
    model: ProjectScan, initial_state: str = ProjectScanState.DISCOVERED.value
) -> Machine:
    """Create and return a ``Machine`` bound to *model*.

    Invalid triggers raise :class:`transitions.MachineError` so a project
    can never leave a terminal state.

    Args:
        model: The project whose state the machine manages.
        initial_state: The initial state for the machine.

    Returns:
        Configured ``Machine`` instance.
    """
    machine = Machine(
        model=model,
        states=STATES,
        transitions=TRANSITIONS,
        initial=initial_state,
        auto_transitions=False,
        send_event=True,
    )
    return machine

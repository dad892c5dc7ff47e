"""
Translatable display names for the probing enums.
"""

from enum import Enum
from ..probing.cycle import CycleState
from ..probing.types import Corner, Edge, ProbeDirection


DIRECTION_LABELS = {
    ProbeDirection.INSIDE: _("Inside"),
    ProbeDirection.OUTSIDE: _("Outside"),
}

EDGE_LABELS = {
    Edge.BOTTOM: _("Bottom"),
    Edge.TOP: _("Top"),
    Edge.LEFT: _("Left"),
    Edge.RIGHT: _("Right"),
}

CORNER_LABELS = {
    Corner.BOTTOM_LEFT: _("Bottom Left"),
    Corner.BOTTOM_RIGHT: _("Bottom Right"),
    Corner.TOP_LEFT: _("Top Left"),
    Corner.TOP_RIGHT: _("Top Right"),
}

CYCLE_STATE_LABELS = {
    CycleState.CONFIGURED: _("Configured"),
    CycleState.PLANNING: _("Planning"),
    CycleState.AWAITING_PROBE_CONTACTS: _("Awaiting probe contacts"),
    CycleState.REDUCING: _("Reducing"),
    CycleState.COMPLETED: _("Completed"),
    CycleState.FAILED: _("Failed"),
}

_ALL_LABELS = {
    ProbeDirection: DIRECTION_LABELS,
    Edge: EDGE_LABELS,
    Corner: CORNER_LABELS,
    CycleState: CYCLE_STATE_LABELS,
}


def label_for(value: Enum) -> str:
    """Returns the display name of a probing enum value."""
    labels = _ALL_LABELS.get(type(value))
    if labels is None:
        raise KeyError(f"No labels for {type(value).__name__}")
    return labels[value]

"""
The probing package plans touch probe cycles, runs them through a probe
executor and reduces the measured contacts to a centre, an edge angle or
a corner.
"""

from .cycle import (
    CentreProbe,
    CycleState,
    EdgeProbe,
    ProbeOperation,
    ProbingCycle,
)
from .errors import (
    DegenerateEdgeError,
    InsufficientPointsError,
    InvalidConfigError,
    InvalidStateError,
    MachineBusyError,
    NoContactError,
    ParallelEdgesError,
    PointCountError,
    ProbeAbortError,
    ProbeTimeoutError,
    ProbingError,
)
from .planner import plan_centre_probe, plan_edge_probe, plan_return
from .reduce import reduce_centre, reduce_edge
from .types import (
    Corner,
    Edge,
    Point,
    ProbeCentreConfig,
    ProbeDirection,
    ProbeEdgeConfig,
    ProbeResult,
    ProbingRun,
)

__all__ = [
    "CentreProbe",
    "CycleState",
    "EdgeProbe",
    "ProbeOperation",
    "ProbingCycle",
    "DegenerateEdgeError",
    "InsufficientPointsError",
    "InvalidConfigError",
    "InvalidStateError",
    "MachineBusyError",
    "NoContactError",
    "ParallelEdgesError",
    "PointCountError",
    "ProbeAbortError",
    "ProbeTimeoutError",
    "ProbingError",
    "plan_centre_probe",
    "plan_edge_probe",
    "plan_return",
    "reduce_centre",
    "reduce_edge",
    "Corner",
    "Edge",
    "Point",
    "ProbeCentreConfig",
    "ProbeDirection",
    "ProbeEdgeConfig",
    "ProbeResult",
    "ProbingRun",
]

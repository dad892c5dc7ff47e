from __future__ import annotations
import logging
import math
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import (
    Any,
    Dict,
    Optional,
    Sequence,
    Tuple,
    TYPE_CHECKING,
)
from .errors import InvalidConfigError

if TYPE_CHECKING:
    from ..machine.fixture import Fixture
    from ..machine.tool import FeedProvider, ToolLookup


logger = logging.getLogger(__name__)


Point = Tuple[float, float, float]  # x, y, z in mm

DEFAULT_DEPTH = 10.0  # mm
DEFAULT_START_DISTANCE = 50.0  # mm
DEFAULT_RETRACT_DISTANCE = 5.0  # mm
DEFAULT_FEED_RATE = 100.0  # mm/min

VALID_CENTRE_POINTS = (2, 4)
VALID_EDGE_COUNTS = (1, 2)


class ProbeDirection(Enum):
    INSIDE = auto()  # From inside the stock towards the outside
    OUTSIDE = auto()  # From outside the stock towards the inside


class Edge(Enum):
    BOTTOM = auto()
    TOP = auto()
    LEFT = auto()
    RIGHT = auto()


class Corner(Enum):
    BOTTOM_LEFT = auto()
    BOTTOM_RIGHT = auto()
    TOP_LEFT = auto()
    TOP_RIGHT = auto()


def _enum_from_name(enum_cls, name: str):
    try:
        return enum_cls[name]
    except KeyError as e:
        raise InvalidConfigError(
            f"Unknown {enum_cls.__name__} '{name}'"
        ) from e


def _check_enum(value, enum_cls, field_name: str):
    if not isinstance(value, enum_cls):
        raise InvalidConfigError(
            f"{field_name} must be a {enum_cls.__name__}, got {value!r}"
        )


def _as_point(value: Sequence[float]) -> Point:
    if len(value) != 3:
        raise InvalidConfigError(f"Expected an (x, y, z) point, got {value}")
    x, y, z = value
    return float(x), float(y), float(z)


@dataclass(frozen=True)
class ProbeCentreConfig:
    direction: ProbeDirection = ProbeDirection.OUTSIDE
    number_of_points: int = 2

    def __post_init__(self):
        _check_enum(self.direction, ProbeDirection, "direction")
        if self.number_of_points not in VALID_CENTRE_POINTS:
            raise InvalidConfigError(
                "Centre probing supports 2 or 4 points, got "
                f"{self.number_of_points}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.name,
            "number_of_points": self.number_of_points,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ProbeCentreConfig:
        return cls(
            direction=_enum_from_name(
                ProbeDirection,
                data.get("direction", ProbeDirection.OUTSIDE.name),
            ),
            number_of_points=int(data.get("number_of_points", 2)),
        )


@dataclass(frozen=True)
class ProbeEdgeConfig:
    """
    Configuration for probing one edge, or two perpendicular edges that
    meet in a corner. `edge` is only used when `number_of_edges` is 1,
    `corner` only when it is 2.
    """

    retract_distance: float = DEFAULT_RETRACT_DISTANCE
    number_of_edges: int = 2
    edge: Edge = Edge.BOTTOM
    corner: Corner = Corner.BOTTOM_LEFT

    def __post_init__(self):
        _check_enum(self.edge, Edge, "edge")
        _check_enum(self.corner, Corner, "corner")
        if self.number_of_edges not in VALID_EDGE_COUNTS:
            raise InvalidConfigError(
                "Edge probing supports 1 or 2 edges, got "
                f"{self.number_of_edges}"
            )
        if not math.isfinite(self.retract_distance) or (
            self.retract_distance < 0
        ):
            raise InvalidConfigError(
                "Retract distance must be zero or positive, got "
                f"{self.retract_distance}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "retract_distance": self.retract_distance,
            "number_of_edges": self.number_of_edges,
            "edge": self.edge.name,
            "corner": self.corner.name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ProbeEdgeConfig:
        return cls(
            retract_distance=float(
                data.get("retract_distance", DEFAULT_RETRACT_DISTANCE)
            ),
            number_of_edges=int(data.get("number_of_edges", 2)),
            edge=_enum_from_name(Edge, data.get("edge", Edge.BOTTOM.name)),
            corner=_enum_from_name(
                Corner, data.get("corner", Corner.BOTTOM_LEFT.name)
            ),
        )


@dataclass(frozen=True)
class ProbingRun:
    """
    Motion parameters shared by all probing cycles.

    Attributes:
        depth: How far to drop below the start position before probing.
        start_distance: How far to move outwards from the start position
            before dropping down and probing back in.
        feed_rate: Horizontal probing feed rate in mm/min.
    """

    depth: float = DEFAULT_DEPTH
    start_distance: float = DEFAULT_START_DISTANCE
    feed_rate: float = DEFAULT_FEED_RATE

    def __post_init__(self):
        if not math.isfinite(self.depth) or self.depth < 0:
            raise InvalidConfigError(
                f"Probe depth must be zero or positive, got {self.depth}"
            )
        if not math.isfinite(self.start_distance) or (
            self.start_distance <= 0
        ):
            raise InvalidConfigError(
                "Start distance must be positive, got "
                f"{self.start_distance}"
            )
        if not math.isfinite(self.feed_rate) or self.feed_rate <= 0:
            raise InvalidConfigError(
                f"Feed rate must be positive, got {self.feed_rate}"
            )

    @classmethod
    def for_tool(
        cls,
        tool_number: int,
        tool_lookup: "ToolLookup",
        feed_provider: "FeedProvider",
        start_distance: float = DEFAULT_START_DISTANCE,
        depth: float = DEFAULT_DEPTH,
    ) -> ProbingRun:
        """
        Builds a run for the given cutting tool. If that tool is a touch
        probe, half of its length offset is used as the plunge depth.
        """
        tool = tool_lookup(tool_number)
        if tool is not None and tool.is_touch_probe():
            depth = tool.tool_length_offset / 2.0
            logger.debug(
                f"Tool {tool_number} is a touch probe, using depth {depth}"
            )
        return cls(
            depth=depth,
            start_distance=start_distance,
            feed_rate=feed_provider(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "depth": self.depth,
            "start_distance": self.start_distance,
            "feed_rate": self.feed_rate,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ProbingRun:
        return cls(
            depth=float(data.get("depth", DEFAULT_DEPTH)),
            start_distance=float(
                data.get("start_distance", DEFAULT_START_DISTANCE)
            ),
            feed_rate=float(data.get("feed_rate", DEFAULT_FEED_RATE)),
        )


@dataclass(frozen=True)
class ProbeResult:
    """
    The outcome of a probing cycle. `derived_point` is the centre, the
    corner intersection, or the midpoint of a single probed edge.
    `edge_angles` holds one angle (degrees) per probed edge, and
    `derived_angle` is the angle of the first one.
    """

    measured_points: Tuple[Point, ...]
    derived_point: Point
    derived_angle: Optional[float] = None
    edge_angles: Tuple[float, ...] = field(default_factory=tuple)

    def in_fixture(self, fixture: "Fixture") -> ProbeResult:
        """Returns this result expressed in the fixture's coordinates."""
        # Local import to prevent circular dependency
        from .reduce import normalize_angle

        angle = self.derived_angle
        if angle is not None:
            angle = normalize_angle(angle - fixture.rotation)
        return ProbeResult(
            measured_points=tuple(
                fixture.to_fixture(p) for p in self.measured_points
            ),
            derived_point=fixture.to_fixture(self.derived_point),
            derived_angle=angle,
            edge_angles=tuple(
                normalize_angle(a - fixture.rotation)
                for a in self.edge_angles
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "measured_points": [list(p) for p in self.measured_points],
            "derived_point": list(self.derived_point),
            "derived_angle": self.derived_angle,
            "edge_angles": list(self.edge_angles),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ProbeResult:
        angle = data.get("derived_angle")
        return cls(
            measured_points=tuple(
                _as_point(p) for p in data.get("measured_points", [])
            ),
            derived_point=_as_point(data["derived_point"]),
            derived_angle=float(angle) if angle is not None else None,
            edge_angles=tuple(float(a) for a in data.get("edge_angles", [])),
        )

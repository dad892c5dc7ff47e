from __future__ import annotations
from typing import Optional, Tuple, Dict, Any
from .types import Point


# x/y/z target of a move. None leaves that axis where it is.
Target = Tuple[Optional[float], Optional[float], Optional[float]]


class Waypoint:
    """
    A single motion of a probing cycle.

    Absolute waypoints move to `end`; axes given as None keep their
    current value. Relative waypoints move by `end`, which is then an
    offset from wherever the machine currently is (for example, from the
    last contact point).
    """

    def __init__(self, end: Target, relative: bool = False) -> None:
        self.end: Target = end
        self.relative = relative

    def __repr__(self) -> str:
        return f"<{super().__repr__()} {self.__dict__}"

    def __eq__(self, other: Any) -> bool:
        if type(self) is not type(other):
            return False
        return self.__dict__ == other.__dict__

    def is_probe_move(self) -> bool:
        """Whether this move is expected to end in a probe contact."""
        return False

    def resolve(self, position: Point) -> Point:
        """Returns the absolute end position when starting at `position`."""
        if self.relative:
            return (
                position[0] + (self.end[0] or 0.0),
                position[1] + (self.end[1] or 0.0),
                position[2] + (self.end[2] or 0.0),
            )
        return (
            position[0] if self.end[0] is None else self.end[0],
            position[1] if self.end[1] is None else self.end[1],
            position[2] if self.end[2] is None else self.end[2],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.__class__.__name__,
            "end": list(self.end),
            "relative": self.relative,
        }


class RapidMove(Waypoint):
    pass


class PlungeMove(Waypoint):
    """Vertical move down to the probing depth."""

    pass


class ProbeMove(Waypoint):
    """
    A feed move towards `end` that stops as soon as the probe touches
    the stock. `end` is the furthest the probe may travel.
    """

    def __init__(
        self, end: Target, feed_rate: float, relative: bool = False
    ) -> None:
        super().__init__(end, relative)
        self.feed_rate = feed_rate

    def is_probe_move(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["feed_rate"] = self.feed_rate
        return d


class RetractMove(Waypoint):
    """Backs the probe off the stock, or back up to the start height."""

    pass


_WAYPOINT_TYPES = {
    cls.__name__: cls
    for cls in (RapidMove, PlungeMove, ProbeMove, RetractMove)
}


def waypoint_from_dict(data: Dict[str, Any]) -> Waypoint:
    cls = _WAYPOINT_TYPES.get(data.get("type", ""))
    if cls is None:
        raise ValueError(f"Unknown waypoint type '{data.get('type')}'")
    x, y, z = data["end"]
    end: Target = (x, y, z)
    relative = bool(data.get("relative", False))
    if cls is ProbeMove:
        return ProbeMove(end, float(data["feed_rate"]), relative)
    return cls(end, relative)

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple
from blinker import Signal
from .errors import NoContactError, ProbeAbortError
from .types import Point
from .waypoint import Waypoint


logger = logging.getLogger(__name__)


class ProbeExecutor(ABC):
    """
    Performs (or simulates) the motion of a probing cycle.

    Executors provide the following signals:
       position_changed: after every completed move
       contact_made: when a probe move touches the stock

    Hardware failures are reported by raising ProbeTimeoutError,
    NoContactError or ProbeAbortError from execute().
    """

    def __init__(self, position: Point = (0.0, 0.0, 0.0)):
        self.position: Point = position
        self.position_changed = Signal()
        self.contact_made = Signal()

    @abstractmethod
    async def execute(self, waypoint: Waypoint) -> Optional[Point]:
        """
        Moves along the given waypoint. For probe moves, returns the
        position at which the probe made contact. Returns None for all
        other moves.
        """
        pass

    @abstractmethod
    async def cancel(self) -> None:
        """Stops any motion in progress."""
        pass

    def _on_moved(self, position: Point):
        self.position = position
        self.position_changed.send(self, position=position)

    def _on_contact(self, position: Point):
        logger.debug(f"Probe contact at {position}")
        self._on_moved(position)
        self.contact_made.send(self, position=position)


def _segment_hit(
    p1: Tuple[float, float],
    p2: Tuple[float, float],
    p3: Tuple[float, float],
    p4: Tuple[float, float],
) -> Optional[float]:
    """
    Returns the parameter t along p1-p2 where it crosses segment p3-p4,
    or None. Parallel segments never cross.
    """
    x1, y1 = p1
    x2, y2 = p2
    x3, y3 = p3
    x4, y4 = p4
    den = (x1 - x2) * (y3 - y4) - (y1 - y2) * (x3 - x4)
    if abs(den) < 1e-12:
        return None
    t = ((x1 - x3) * (y3 - y4) - (y1 - y3) * (x3 - x4)) / den
    u = -((x1 - x2) * (y1 - y3) - (y1 - y2) * (x1 - x3)) / den
    if 0.0 <= t <= 1.0 and 0.0 <= u <= 1.0:
        return t
    return None


class Stock:
    """
    A prismatic piece of material: a polygon outline in XY, extruded
    down from `top`. A pocket is a hole of that outline cut into
    material that extends everywhere else.
    """

    def __init__(
        self,
        outline: List[Tuple[float, float]],
        top: float = 0.0,
        pocket: bool = False,
    ):
        if len(outline) < 3:
            raise ValueError("A stock outline needs at least three points.")
        self.outline = outline
        self.top = top
        self.pocket = pocket

    @classmethod
    def rectangle(
        cls,
        x: float,
        y: float,
        width: float,
        height: float,
        angle: float = 0.0,
        top: float = 0.0,
        pocket: bool = False,
    ) -> "Stock":
        """
        A rectangle with its bottom left corner at (x, y), rotated by
        `angle` degrees about that corner.
        """
        c = math.cos(math.radians(angle))
        s = math.sin(math.radians(angle))
        corners = [(0.0, 0.0), (width, 0.0), (width, height), (0.0, height)]
        outline = [
            (x + cx * c - cy * s, y + cx * s + cy * c) for cx, cy in corners
        ]
        return cls(outline, top=top, pocket=pocket)

    def _inside_outline(self, x: float, y: float) -> bool:
        # Ray casting
        inside = False
        n = len(self.outline)
        p1x, p1y = self.outline[0]
        for i in range(1, n + 1):
            p2x, p2y = self.outline[i % n]
            if min(p1y, p2y) < y <= max(p1y, p2y) and p1y != p2y:
                xinters = (y - p1y) * (p2x - p1x) / (p2y - p1y) + p1x
                if x <= xinters:
                    inside = not inside
            p1x, p1y = p2x, p2y
        return inside

    def has_material_at(self, point: Point) -> bool:
        x, y, z = point
        if z >= self.top:
            return False
        return self._inside_outline(x, y) != self.pocket

    def first_contact(self, start: Point, end: Point) -> Optional[Point]:
        """
        Returns the first point on the move from start to end at which
        the probe touches a side of the stock, ignoring a touch right at
        the start (the probe may start off on a wall it just touched).
        """
        if min(start[2], end[2]) >= self.top:
            return None
        best: Optional[float] = None
        n = len(self.outline)
        for i in range(n):
            t = _segment_hit(
                start[:2], end[:2], self.outline[i], self.outline[(i + 1) % n]
            )
            if t is None or t <= 1e-9:
                continue
            if start[2] + (end[2] - start[2]) * t >= self.top:
                continue
            if best is None or t < best:
                best = t
        if best is None:
            return None
        return (
            start[0] + (end[0] - start[0]) * best,
            start[1] + (end[1] - start[1]) * best,
            start[2] + (end[2] - start[2]) * best,
        )


class SimulatedProbeExecutor(ProbeExecutor):
    """
    An executor that moves a virtual probe around a Stock. Probe moves
    stop at the first wall they touch. Any other move that runs into
    the stock aborts, like a tripped probe would on a real machine.
    """

    def __init__(
        self,
        stock: Stock,
        position: Point = (0.0, 0.0, 0.0),
        move_delay: float = 0.0,
    ):
        super().__init__(position)
        self.stock = stock
        self.move_delay = move_delay
        self.moves: List[Tuple[Waypoint, Point]] = []

    async def execute(self, waypoint: Waypoint) -> Optional[Point]:
        if self.move_delay:
            await asyncio.sleep(self.move_delay)

        start = self.position
        end = waypoint.resolve(start)
        hit = self.stock.first_contact(start, end)
        if hit is None and self.stock.has_material_at(end):
            hit = end

        if waypoint.is_probe_move():
            if hit is None:
                raise NoContactError(
                    f"Probe reached {end} without touching the stock."
                )
            self.moves.append((waypoint, hit))
            self._on_contact(hit)
            return hit

        if hit is not None:
            raise ProbeAbortError(
                f"Unexpected probe contact at {hit} while moving to {end}."
            )
        self.moves.append((waypoint, end))
        self._on_moved(end)
        return None

    async def cancel(self) -> None:
        logger.info("Simulated probe motion cancelled")

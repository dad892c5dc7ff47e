import math
from typing import Any, Callable, Dict
import numpy as np
from blinker import Signal
from ..probing.types import Point


class Fixture:
    """
    A named work coordinate system: an origin in machine coordinates
    and a rotation about Z (degrees, counter clockwise).

    Internally the XY part is kept as a 3x3 affine matrix that maps
    fixture coordinates to machine coordinates.
    """

    def __init__(
        self,
        name: str = "G54",
        origin: Point = (0.0, 0.0, 0.0),
        rotation: float = 0.0,
    ):
        self.name = name
        self.origin: Point = origin
        self.rotation = rotation
        self.changed = Signal()

    def set_origin(self, origin: Point):
        self.origin = origin
        self.changed.send(self)

    def set_rotation(self, rotation: float):
        self.rotation = rotation
        self.changed.send(self)

    def matrix(self) -> np.ndarray:
        """Returns the fixture-to-machine transform for the XY plane."""
        angle_rad = math.radians(self.rotation)
        c = math.cos(angle_rad)
        s = math.sin(angle_rad)
        ox, oy, _ = self.origin
        return np.array(
            [
                [c, -s, ox],
                [s, c, oy],
                [0, 0, 1],
            ],
            dtype=float,
        )

    def from_fixture(self, point: Point) -> Point:
        """Converts a point in fixture coordinates to machine coordinates."""
        vec = np.dot(self.matrix(), np.array([point[0], point[1], 1.0]))
        return float(vec[0]), float(vec[1]), point[2] + self.origin[2]

    def to_fixture(self, point: Point) -> Point:
        """Converts a point in machine coordinates to fixture coordinates."""
        inverse = np.linalg.inv(self.matrix())
        vec = np.dot(inverse, np.array([point[0], point[1], 1.0]))
        return float(vec[0]), float(vec[1]), point[2] - self.origin[2]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "origin": list(self.origin),
            "rotation": self.rotation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Fixture":
        x, y, z = data.get("origin", (0.0, 0.0, 0.0))
        return cls(
            name=data.get("name", "G54"),
            origin=(float(x), float(y), float(z)),
            rotation=float(data.get("rotation", 0.0)),
        )

    def __repr__(self) -> str:
        return (
            f"Fixture(name='{self.name}', origin={self.origin}, "
            f"rotation={self.rotation})"
        )


FixtureProvider = Callable[[], Fixture]


def machine_fixture() -> Fixture:
    """A fixture that leaves machine coordinates unchanged."""
    return Fixture(name=_("Machine"))

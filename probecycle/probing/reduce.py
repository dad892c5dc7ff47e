"""
Reduction of measured probe contacts to reference geometry.

These functions are pure: calling them twice with the same contacts
gives identical results. They expect the contact order produced by
`planner.py`.
"""

import math
import logging
from typing import Sequence, Tuple
import numpy as np
from .errors import (
    DegenerateEdgeError,
    InsufficientPointsError,
    InvalidConfigError,
    ParallelEdgesError,
    PointCountError,
)
from .types import (
    Point,
    ProbeResult,
    VALID_CENTRE_POINTS,
    VALID_EDGE_COUNTS,
)


logger = logging.getLogger(__name__)


DEFAULT_PARALLEL_TOLERANCE = 0.1  # degrees
_MIN_EDGE_LENGTH = 1e-9  # mm


def _check_count(points: Sequence[Point], expected: int):
    if len(points) < expected:
        raise InsufficientPointsError(expected, len(points))
    if len(points) > expected:
        raise PointCountError(expected, len(points))


def _as_points(points: Sequence[Point]) -> Tuple[Point, ...]:
    return tuple((float(p[0]), float(p[1]), float(p[2])) for p in points)


def normalize_angle(angle: float) -> float:
    """
    Folds a line angle in degrees into (-90, 90]. A line has no
    direction, so angles 180 degrees apart describe the same line.
    """
    angle = math.fmod(angle, 180.0)
    if angle <= -90.0:
        angle += 180.0
    elif angle > 90.0:
        angle -= 180.0
    return angle


def edge_angle(p1: Point, p2: Point) -> float:
    """
    Returns the angle in degrees between the line through p1 and p2 and
    the machine X axis. Only x and y are taken into account.
    """
    dx = p2[0] - p1[0]
    dy = p2[1] - p1[1]
    if math.hypot(dx, dy) < _MIN_EDGE_LENGTH:
        raise DegenerateEdgeError(
            f"Contacts {p1} and {p2} coincide, cannot fit an edge."
        )
    return normalize_angle(math.degrees(math.atan2(dy, dx)))


def intersect_lines(
    p1: Point,
    p2: Point,
    p3: Point,
    p4: Point,
    tolerance: float = DEFAULT_PARALLEL_TOLERANCE,
) -> Tuple[float, float]:
    """
    Intersects the infinite line through p1, p2 with the one through
    p3, p4 in the XY plane.

    Raises:
        ParallelEdgesError: if the lines are less than `tolerance`
            degrees apart.
        DegenerateEdgeError: if either pair of points coincides.
    """
    a = np.array(p1[:2], dtype=float)
    b = np.array(p2[:2], dtype=float)
    c = np.array(p3[:2], dtype=float)
    d = np.array(p4[:2], dtype=float)
    d1 = b - a
    d2 = d - c
    len1 = np.hypot(*d1)
    len2 = np.hypot(*d2)
    if len1 < _MIN_EDGE_LENGTH or len2 < _MIN_EDGE_LENGTH:
        raise DegenerateEdgeError("Cannot intersect a zero length edge.")

    # Solve a + t * d1 == c + s * d2. The determinant of the system,
    # divided by both lengths, is the sine of the angle between them.
    system = np.column_stack((d1, -d2))
    det = np.linalg.det(system)
    sine = min(1.0, abs(det) / (len1 * len2))
    angle_between = math.degrees(math.asin(sine))
    if angle_between < tolerance:
        raise ParallelEdgesError(angle_between, tolerance)

    t, _s = np.linalg.solve(system, c - a)
    x, y = a + t * d1
    return float(x), float(y)


def reduce_centre(
    points: Sequence[Point], number_of_points: int
) -> ProbeResult:
    """
    Computes the centre from a centre probing cycle.

    With two contacts this is their midpoint. With four, the midpoints
    of both opposing pairs are averaged.
    """
    if number_of_points not in VALID_CENTRE_POINTS:
        raise InvalidConfigError(
            f"Centre probing supports 2 or 4 points, got {number_of_points}"
        )
    _check_count(points, number_of_points)

    measured = _as_points(points)
    pairs = np.array(measured, dtype=float).reshape(-1, 2, 3)
    midpoints = pairs.mean(axis=1)
    centre = midpoints.mean(axis=0)
    derived: Point = (float(centre[0]), float(centre[1]), float(centre[2]))
    logger.debug(f"Reduced {number_of_points} contacts to centre {derived}")
    return ProbeResult(measured_points=measured, derived_point=derived)


def reduce_edge(
    points: Sequence[Point],
    number_of_edges: int,
    tolerance: float = DEFAULT_PARALLEL_TOLERANCE,
) -> ProbeResult:
    """
    Fits a line through each probed edge and computes its angle to the
    X axis. With two edges, the lines are intersected to find the corner.
    With a single edge, the derived point is the midpoint of its contacts.
    """
    if number_of_edges not in VALID_EDGE_COUNTS:
        raise InvalidConfigError(
            f"Edge probing supports 1 or 2 edges, got {number_of_edges}"
        )
    if tolerance < 0:
        raise InvalidConfigError(
            f"Parallel tolerance must not be negative, got {tolerance}"
        )
    _check_count(points, 2 * number_of_edges)

    measured = _as_points(points)
    angles = tuple(
        edge_angle(measured[i], measured[i + 1])
        for i in range(0, len(measured), 2)
    )
    mean_z = float(np.mean([p[2] for p in measured]))

    if number_of_edges == 1:
        p1, p2 = measured
        derived: Point = (
            (p1[0] + p2[0]) / 2.0,
            (p1[1] + p2[1]) / 2.0,
            mean_z,
        )
    else:
        x, y = intersect_lines(*measured, tolerance=tolerance)
        derived = (x, y, mean_z)

    logger.debug(f"Reduced edge contacts: angles {angles}, point {derived}")
    return ProbeResult(
        measured_points=measured,
        derived_point=derived,
        derived_angle=angles[0],
        edge_angles=angles,
    )

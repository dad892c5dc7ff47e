"""
Waypoint planning for probing cycles.

All planners are pure functions of their inputs. The contact order they
produce is fixed, so the reducers in `reduce.py` can rely on it:

- Centre probing: +X, -X, then (for four points) +Y, -Y.
- Edge probing: two contacts per edge, edge after edge.
"""

import logging
from typing import Dict, List, Tuple
from .errors import InvalidConfigError
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
from .waypoint import (
    PlungeMove,
    ProbeMove,
    RapidMove,
    RetractMove,
    Target,
    Waypoint,
)


logger = logging.getLogger(__name__)


Vector = Tuple[float, float]

CENTRE_APPROACHES: Dict[int, Tuple[Vector, ...]] = {
    2: ((1.0, 0.0), (-1.0, 0.0)),
    4: ((1.0, 0.0), (-1.0, 0.0), (0.0, 1.0), (0.0, -1.0)),
}

# Direction pointing away from the stock, across each edge.
EDGE_OUTWARD: Dict[Edge, Vector] = {
    Edge.BOTTOM: (0.0, -1.0),
    Edge.TOP: (0.0, 1.0),
    Edge.LEFT: (-1.0, 0.0),
    Edge.RIGHT: (1.0, 0.0),
}

# Direction along each edge when probing a single edge.
EDGE_ALONG: Dict[Edge, Vector] = {
    Edge.BOTTOM: (1.0, 0.0),
    Edge.TOP: (1.0, 0.0),
    Edge.LEFT: (0.0, 1.0),
    Edge.RIGHT: (0.0, 1.0),
}

# The two edges forming each corner, each with the direction that leads
# away from the corner along that edge.
CORNER_EDGES: Dict[Corner, Tuple[Tuple[Edge, Vector], ...]] = {
    Corner.BOTTOM_LEFT: ((Edge.BOTTOM, (1.0, 0.0)), (Edge.LEFT, (0.0, 1.0))),
    Corner.BOTTOM_RIGHT: (
        (Edge.BOTTOM, (-1.0, 0.0)),
        (Edge.RIGHT, (0.0, 1.0)),
    ),
    Corner.TOP_LEFT: ((Edge.TOP, (1.0, 0.0)), (Edge.LEFT, (0.0, -1.0))),
    Corner.TOP_RIGHT: ((Edge.TOP, (-1.0, 0.0)), (Edge.RIGHT, (0.0, -1.0))),
}


def _offset(point: Point, vector: Vector, distance: float) -> Vector:
    return (
        point[0] + vector[0] * distance,
        point[1] + vector[1] * distance,
    )


def plan_centre_probe(
    config: ProbeCentreConfig, run: ProbingRun, current_position: Point
) -> List[Waypoint]:
    """
    Plans a centre probing cycle around `current_position`.

    Every approach is made of four waypoints: a rapid to the approach
    point at the start height, a plunge to the probing depth, a probe
    move and a retract back to the approach point at the start height.

    Probing from the outside, the approach point lies `start_distance`
    away from the centre and the probe moves back towards the centre.
    Probing from the inside, the approach point is the centre itself and
    the probe moves outwards, at most `start_distance`.
    """
    approaches = CENTRE_APPROACHES.get(config.number_of_points)
    if approaches is None:
        raise InvalidConfigError(
            f"Cannot plan {config.number_of_points} centre probe points"
        )

    cx, cy, z = current_position
    probe_z = z - run.depth
    waypoints: List[Waypoint] = []
    for vector in approaches:
        outer_x, outer_y = _offset(
            current_position, vector, run.start_distance
        )
        if config.direction == ProbeDirection.OUTSIDE:
            start_x, start_y = outer_x, outer_y
            target_x, target_y = cx, cy
        else:
            start_x, start_y = cx, cy
            target_x, target_y = outer_x, outer_y

        waypoints.append(RapidMove((start_x, start_y, z)))
        waypoints.append(PlungeMove((start_x, start_y, probe_z)))
        waypoints.append(
            ProbeMove((target_x, target_y, probe_z), run.feed_rate)
        )
        waypoints.append(RetractMove((start_x, start_y, z)))

    logger.debug(
        f"Planned {len(waypoints)} waypoints for "
        f"{config.number_of_points}-point centre probe "
        f"({config.direction.name})"
    )
    return waypoints


def _plan_single_edge(
    start: Point,
    outward: Vector,
    along: Vector,
    retract_distance: float,
    run: ProbingRun,
) -> List[Waypoint]:
    """
    Probes one edge at two points, `start_distance` apart. The retract
    and the traverse along the edge are relative to the contact, since
    the contact position is only known at run time.
    """
    z = start[2]
    probe_z = z - run.depth
    outer_x, outer_y = _offset(start, outward, run.start_distance)
    retract = (
        outward[0] * retract_distance,
        outward[1] * retract_distance,
        0.0,
    )
    traverse = (
        along[0] * run.start_distance,
        along[1] * run.start_distance,
        0.0,
    )

    # Probe targets are projected onto the start line, so probing along
    # x probes towards the start x, and vice versa.
    target: Target
    if outward[0] == 0.0:
        target = (None, start[1], probe_z)
    else:
        target = (start[0], None, probe_z)

    return [
        RapidMove((outer_x, outer_y, z)),
        PlungeMove((None, None, probe_z)),
        ProbeMove(target, run.feed_rate),
        RetractMove(retract, relative=True),
        RapidMove(traverse, relative=True),
        ProbeMove(target, run.feed_rate),
        RetractMove(retract, relative=True),
        RetractMove((None, None, z)),
    ]


def edges_to_probe(config: ProbeEdgeConfig) -> List[Tuple[Edge, Vector]]:
    """
    Returns the edges probed by `config`, each with the direction in which
    the second contact is taken.
    """
    if config.number_of_edges == 1:
        return [(config.edge, EDGE_ALONG[config.edge])]
    if config.number_of_edges == 2:
        return list(CORNER_EDGES[config.corner])
    raise InvalidConfigError(
        f"Cannot plan {config.number_of_edges} probe edges"
    )


def plan_edge_probe(
    config: ProbeEdgeConfig, run: ProbingRun, current_position: Point
) -> List[Waypoint]:
    """
    Plans an edge probing cycle. `current_position` must be above the
    stock, close to the edge (or corner) to be probed.

    For each edge the probe moves outwards across the edge, drops down,
    probes back in, retracts, moves along the edge, probes again and
    retracts. With two edges this is repeated for the second edge of the
    corner, starting again from `current_position`.
    """
    waypoints: List[Waypoint] = []
    for edge, along in edges_to_probe(config):
        waypoints.extend(
            _plan_single_edge(
                current_position,
                EDGE_OUTWARD[edge],
                along,
                config.retract_distance,
                run,
            )
        )

    logger.debug(
        f"Planned {len(waypoints)} waypoints for "
        f"{config.number_of_edges}-edge probe"
    )
    return waypoints


def plan_return(result: ProbeResult, start_position: Point) -> List[Waypoint]:
    """
    Moves back to the start height, then over the derived point: the
    centre or the corner the operator will zero the fixture on.
    """
    x, y, _z = result.derived_point
    z = start_position[2]
    return [RapidMove((None, None, z)), RapidMove((x, y, z))]

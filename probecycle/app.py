# flake8: noqa: E402
import argparse
import asyncio
import gettext
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# --------------------------------------------------------
# Gettext MUST be initialized before importing app modules
# --------------------------------------------------------
locale_dir = Path(__file__).parent / 'locale'
gettext.install("probecycle", locale_dir)

import yaml
from probecycle import config as app_config
from probecycle.probing.cycle import (
    CentreProbe,
    CycleState,
    EdgeProbe,
    ProbeOperation,
    ProbingCycle,
)
from probecycle.probing.emitter import YamlReportEmitter
from probecycle.probing.errors import ProbingError
from probecycle.probing.executor import SimulatedProbeExecutor, Stock
from probecycle.probing.types import (
    Corner,
    Edge,
    ProbeCentreConfig,
    ProbeDirection,
    ProbeEdgeConfig,
    ProbeResult,
    ProbingRun,
)
from probecycle.machine.tool import feed_from_tool
from probecycle.store import load_cycle_file
from probecycle.ui.labels import label_for


logger = logging.getLogger(__name__)


def parse_floats(text: str, counts: List[int]) -> List[float]:
    """Parses comma separated numbers, e.g. "10,20,0"."""
    try:
        values = [float(v) for v in text.split(",")]
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e
    if len(values) not in counts:
        raise argparse.ArgumentTypeError(
            _("Expected {counts} numbers, got '{text}'").format(
                counts=_(" or ").join(str(c) for c in counts), text=text
            )
        )
    return values


def _operation_from_args(
    args: argparse.Namespace, config: app_config.Config
) -> ProbeOperation:
    if args.kind == "centre":
        return CentreProbe(
            ProbeCentreConfig(
                direction=ProbeDirection[args.direction.upper()],
                number_of_points=args.points,
            )
        )
    retract = args.retract
    if retract is None:
        retract = config.retract_distance
    return EdgeProbe(
        ProbeEdgeConfig(
            retract_distance=retract,
            number_of_edges=args.edges,
            edge=Edge[args.edge.upper()],
            corner=Corner[args.corner.upper().replace("-", "_")],
        )
    )


def cmd_new(args: argparse.Namespace) -> int:
    config = app_config.config
    machine = app_config.machine
    store = app_config.cycle_store
    assert config is not None and machine is not None
    assert store is not None

    try:
        operation = _operation_from_args(args, config)
        run = ProbingRun.for_tool(
            args.tool,
            machine.tools.find,
            feed_from_tool(machine.tools.find(args.tool), config.feed_rate),
            start_distance=config.start_distance,
            depth=config.depth,
        )
    except ProbingError as e:
        logger.error(f"Cannot create probing cycle: {e}")
        return 1
    cycle = ProbingCycle(
        operation,
        run,
        tool_number=args.tool,
        parallel_tolerance=config.parallel_tolerance,
    )

    if args.output:
        with open(args.output, "w") as f:
            yaml.safe_dump(cycle.to_dict(), f)
        print(args.output)
    else:
        store.add_cycle(cycle)
        print(store.filename_from_id(cycle.id))
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    store = app_config.cycle_store
    assert store is not None
    for cycle in store.cycles.values():
        print(f"{cycle.id}  {cycle.title}  {label_for(cycle.state)}")
    return 0


def _print_result(cycle: ProbingCycle, result: ProbeResult):
    print(_("{title}: {state}").format(
        title=cycle.title, state=label_for(cycle.state)
    ))
    for i, point in enumerate(result.measured_points, start=1):
        print(_("  Contact {num}: {point}").format(
            num=i, point=", ".join(f"{v:.4f}" for v in point)
        ))
    x, y, z = result.derived_point
    print(_("  Derived point: {x:.4f}, {y:.4f}, {z:.4f}").format(
        x=x, y=y, z=z
    ))
    for i, angle in enumerate(result.edge_angles, start=1):
        print(_("  Edge {num} angle: {angle:.4f}").format(
            num=i, angle=angle
        ))


def cmd_simulate(args: argparse.Namespace) -> int:
    config = app_config.config
    machine = app_config.machine
    assert config is not None and machine is not None

    cycle = load_cycle_file(Path(args.filename))
    if cycle is None:
        logger.error(f"No probing cycle in {args.filename}")
        return 1
    if cycle.state != CycleState.CONFIGURED:
        logger.error(
            f"Cycle in {args.filename} was already run "
            f"({cycle.state.name}), create a new one to retry."
        )
        return 1

    x, y, width, height, *rest = args.stock
    stock = Stock.rectangle(
        x,
        y,
        width,
        height,
        angle=rest[0] if rest else 0.0,
        top=args.top,
        pocket=args.pocket,
    )
    px, py, pz = args.position
    position = (px, py, pz)
    executor = SimulatedProbeExecutor(stock, position=position)

    cycle.plan(position)
    try:
        result = asyncio.run(
            cycle.execute(executor, machine, timeout=config.contact_timeout)
        )
    except ProbingError as e:
        print(_("{title}: {state} ({error})").format(
            title=cycle.title, state=label_for(cycle.state), error=e
        ))
        return 1
    finally:
        if args.report:
            report = cycle.emit(YamlReportEmitter(), machine.get_fixture)
            Path(args.report).write_text(report)

    _print_result(cycle, result)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=_("Touch probe cycles for workpiece alignment.")
    )
    parser.add_argument(
        '--loglevel',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help=_('Set the logging level (default: INFO)')
    )
    sub = parser.add_subparsers(dest="command", required=True)

    new = sub.add_parser("new", help=_("Create a probing cycle."))
    new.add_argument("kind", choices=["centre", "edge"])
    new.add_argument(
        "--direction",
        default="outside",
        choices=["inside", "outside"],
        help=_("Centre probing direction (default: outside)"),
    )
    new.add_argument(
        "--points", type=int, default=2, choices=[2, 4],
        help=_("Number of centre probe points (default: 2)"),
    )
    new.add_argument(
        "--edges", type=int, default=2, choices=[1, 2],
        help=_("Number of edges to probe (default: 2)"),
    )
    new.add_argument(
        "--edge",
        default="bottom",
        choices=["bottom", "top", "left", "right"],
        help=_("Edge to probe when probing one edge"),
    )
    new.add_argument(
        "--corner",
        default="bottom-left",
        choices=["bottom-left", "bottom-right", "top-left", "top-right"],
        help=_("Corner to probe when probing two edges"),
    )
    new.add_argument(
        "--retract", type=float,
        help=_("Retract distance between edge touches, in mm"),
    )
    new.add_argument(
        "--tool", type=int, default=0,
        help=_("Number of the probe tool (default: 0)"),
    )
    new.add_argument(
        "-o", "--output", metavar="FILENAME",
        help=_("Write the cycle to a file instead of the cycle store."),
    )
    new.set_defaults(func=cmd_new)

    lst = sub.add_parser("list", help=_("List stored probing cycles."))
    lst.set_defaults(func=cmd_list)

    sim = sub.add_parser(
        "simulate", help=_("Run a probing cycle against simulated stock.")
    )
    sim.add_argument("filename", help=_("Path to the cycle file."))
    sim.add_argument(
        "--stock",
        required=True,
        metavar="X,Y,W,H[,ANGLE]",
        type=lambda s: parse_floats(s, [4, 5]),
        help=_("Rectangular stock: corner, size and optional rotation."),
    )
    sim.add_argument(
        "--top", type=float, default=0.0,
        help=_("Z of the top of the stock (default: 0)"),
    )
    sim.add_argument(
        "--pocket", action="store_true",
        help=_("The rectangle is a pocket instead of a boss."),
    )
    sim.add_argument(
        "--position",
        metavar="X,Y,Z",
        default=[0.0, 0.0, 5.0],
        type=lambda s: parse_floats(s, [3]),
        help=_("Start position of the probe (default: 0,0,5)"),
    )
    sim.add_argument(
        "--report", metavar="FILENAME",
        help=_("Write a YAML report of the cycle."),
    )
    sim.set_defaults(func=cmd_simulate)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # Set logging level based on the command-line argument
    log_level = getattr(logging, args.loglevel.upper(), logging.INFO)
    logging.getLogger().setLevel(log_level)
    logger.info(f"Starting with log level {args.loglevel.upper()}")

    app_config.initialize_managers()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations
import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum, auto
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Sequence,
    Union,
    TYPE_CHECKING,
)
from blinker import Signal
from .errors import (
    InvalidConfigError,
    InvalidStateError,
    MachineBusyError,
    NoContactError,
    ProbeAbortError,
    ProbeTimeoutError,
    ProbingError,
)
from .planner import plan_centre_probe, plan_edge_probe, plan_return
from .reduce import DEFAULT_PARALLEL_TOLERANCE, reduce_centre, reduce_edge
from .types import (
    Point,
    ProbeCentreConfig,
    ProbeEdgeConfig,
    ProbeResult,
    ProbingRun,
)
from .waypoint import Waypoint, waypoint_from_dict

if TYPE_CHECKING:
    from ..machine.context import MachineContext
    from ..machine.fixture import FixtureProvider
    from .emitter import ProgramEmitter
    from .executor import ProbeExecutor


logger = logging.getLogger(__name__)


DEFAULT_CONTACT_TIMEOUT = 30.0  # seconds


@dataclass(frozen=True)
class CentreProbe:
    config: ProbeCentreConfig

    kind = "centre"

    @property
    def required_points(self) -> int:
        return self.config.number_of_points


@dataclass(frozen=True)
class EdgeProbe:
    config: ProbeEdgeConfig

    kind = "edge"

    @property
    def required_points(self) -> int:
        return 2 * self.config.number_of_edges


ProbeOperation = Union[CentreProbe, EdgeProbe]


def operation_to_dict(operation: ProbeOperation) -> Dict[str, Any]:
    return {"kind": operation.kind, "config": operation.config.to_dict()}


def operation_from_dict(data: Dict[str, Any]) -> ProbeOperation:
    kind = data.get("kind")
    config = data.get("config", {})
    if kind == CentreProbe.kind:
        return CentreProbe(ProbeCentreConfig.from_dict(config))
    if kind == EdgeProbe.kind:
        return EdgeProbe(ProbeEdgeConfig.from_dict(config))
    raise InvalidConfigError(f"Unknown probe operation kind '{kind}'")


def plan_operation(
    operation: ProbeOperation, run: ProbingRun, current_position: Point
) -> List[Waypoint]:
    match operation:
        case CentreProbe(config=config):
            return plan_centre_probe(config, run, current_position)
        case EdgeProbe(config=config):
            return plan_edge_probe(config, run, current_position)
    raise InvalidConfigError(f"Unknown probe operation {operation!r}")


def reduce_operation(
    operation: ProbeOperation,
    points: Sequence[Point],
    parallel_tolerance: float = DEFAULT_PARALLEL_TOLERANCE,
) -> ProbeResult:
    match operation:
        case CentreProbe(config=config):
            return reduce_centre(points, config.number_of_points)
        case EdgeProbe(config=config):
            return reduce_edge(
                points, config.number_of_edges, parallel_tolerance
            )
    raise InvalidConfigError(f"Unknown probe operation {operation!r}")


class CycleState(Enum):
    CONFIGURED = auto()
    PLANNING = auto()
    AWAITING_PROBE_CONTACTS = auto()
    REDUCING = auto()
    COMPLETED = auto()
    FAILED = auto()


_TRANSITIONS = {
    CycleState.CONFIGURED: {CycleState.PLANNING},
    CycleState.PLANNING: {CycleState.AWAITING_PROBE_CONTACTS},
    CycleState.AWAITING_PROBE_CONTACTS: {
        CycleState.REDUCING,
        CycleState.FAILED,
    },
    CycleState.REDUCING: {CycleState.COMPLETED, CycleState.FAILED},
    CycleState.COMPLETED: set(),
    CycleState.FAILED: set(),
}

# States that only exist while a cycle is being driven
_IN_FLIGHT = {CycleState.AWAITING_PROBE_CONTACTS, CycleState.REDUCING}


class ProbingCycle:
    """
    One probing operation, from configuration to result.

    The cycle only ever moves forward:

        CONFIGURED -> PLANNING -> AWAITING_PROBE_CONTACTS -> REDUCING
        -> COMPLETED

    and fails from AWAITING_PROBE_CONTACTS (timeout, abort, cancel) or
    from REDUCING (bad geometry). To retry, create a new cycle.

    Signals:
        state_changed: sent with `state` on every transition.
        contact_received: sent with `position` for every probe contact.
    """

    def __init__(
        self,
        operation: ProbeOperation,
        run: ProbingRun,
        tool_number: int = 0,
        parallel_tolerance: float = DEFAULT_PARALLEL_TOLERANCE,
    ):
        self.id = str(uuid.uuid4())
        self.operation = operation
        self.run = run
        self.tool_number = tool_number
        self.parallel_tolerance = parallel_tolerance
        self.state = CycleState.CONFIGURED
        self.start_position: Optional[Point] = None
        self.waypoints: List[Waypoint] = []
        self.contacts: List[Point] = []
        self.result: Optional[ProbeResult] = None
        self.error: Optional[ProbingError] = None
        self._cancel_event = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        self.state_changed = Signal()
        self.contact_received = Signal()

    @property
    def title(self) -> str:
        match self.operation:
            case CentreProbe():
                return _("Probe Centre")
            case EdgeProbe():
                return _("Probe Edge")
        return _("Probe")

    def _set_state(self, state: CycleState):
        if state not in _TRANSITIONS[self.state]:
            raise InvalidStateError(
                f"Cannot go from {self.state.name} to {state.name}"
            )
        logger.debug(f"Cycle {self.id}: {self.state.name} -> {state.name}")
        self.state = state
        self.state_changed.send(self, state=state)

    def _fail(self, error: ProbingError):
        self.error = error
        self.result = None
        self._set_state(CycleState.FAILED)
        logger.error(f"Probing cycle {self.id} failed: {error}")

    def plan(self, current_position: Point) -> List[Waypoint]:
        """Plans the motion for a probe starting at `current_position`."""
        self._set_state(CycleState.PLANNING)
        self.start_position = current_position
        self.waypoints = plan_operation(
            self.operation, self.run, current_position
        )
        return self.waypoints

    def return_waypoints(self) -> List[Waypoint]:
        """Moves back over the derived point once the cycle completed."""
        if self.result is None or self.start_position is None:
            raise InvalidStateError("The cycle has no result yet.")
        return plan_return(self.result, self.start_position)

    def cancel(self):
        """
        Requests cancellation. A cycle waiting on probe contacts stops
        waiting and fails with ProbeAbortError. Safe to call from any
        thread.
        """
        logger.info(f"Cancel requested for probing cycle {self.id}")
        loop = self._loop
        if loop is not None and loop.is_running():
            loop.call_soon_threadsafe(self._cancel_event.set)
        else:
            self._cancel_event.set()

    async def _await_move(
        self, executor: "ProbeExecutor", waypoint: Waypoint, timeout: float
    ) -> Optional[Point]:
        move = asyncio.ensure_future(executor.execute(waypoint))
        cancelled = asyncio.ensure_future(self._cancel_event.wait())
        try:
            done, _pending = await asyncio.wait(
                {move, cancelled},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancelled.cancel()
            if not move.done():
                move.cancel()

        if move in done:
            return move.result()

        await executor.cancel()
        if cancelled in done:
            raise ProbeAbortError("Probing cancelled by the operator.")
        raise ProbeTimeoutError(
            f"No response from the probe within {timeout} seconds."
        )

    async def execute(
        self,
        executor: "ProbeExecutor",
        context: "MachineContext",
        timeout: float = DEFAULT_CONTACT_TIMEOUT,
    ) -> ProbeResult:
        """
        Runs the planned waypoints on the executor and reduces the
        contacts it reports. `timeout` applies to each move.

        Raises:
            MachineBusyError: if another cycle is probing on `context`.
            ProbeTimeoutError, ProbeAbortError: on hardware failure or
                cancellation; the cycle is FAILED.
            ProbingError: on reduction failure; the cycle is FAILED.
        """
        if self.state != CycleState.PLANNING:
            raise InvalidStateError(
                f"Cannot execute a cycle in state {self.state.name}"
            )
        if context.probe_lock.locked():
            raise MachineBusyError(
                f"Machine '{context.name}' is already probing."
            )
        self._loop = asyncio.get_running_loop()

        async with context.probe_lock:
            self._set_state(CycleState.AWAITING_PROBE_CONTACTS)
            try:
                for waypoint in self.waypoints:
                    if self._cancel_event.is_set():
                        raise ProbeAbortError(
                            "Probing cancelled by the operator."
                        )
                    contact = await self._await_move(
                        executor, waypoint, timeout
                    )
                    if waypoint.is_probe_move():
                        if contact is None:
                            raise NoContactError(
                                f"No contact reported for {waypoint!r}"
                            )
                        self._add_contact(contact)
            except ProbingError as e:
                self._fail(e)
                raise
            except asyncio.CancelledError:
                self._fail(ProbeAbortError("Probing task was cancelled."))
                raise
            except Exception as e:
                error = ProbeAbortError(f"Probe executor failed: {e}")
                self._fail(error)
                raise error from e

        return self._reduce()

    def _add_contact(self, contact: Point):
        self.contacts.append(contact)
        self.contact_received.send(self, position=contact)

    def submit_contacts(self, points: Sequence[Point]) -> ProbeResult:
        """
        Completes a planned cycle with contacts that were measured
        elsewhere, e.g. by running an exported program on the machine.
        """
        self._set_state(CycleState.AWAITING_PROBE_CONTACTS)
        for point in points:
            self._add_contact(point)
        return self._reduce()

    def abort(self, error: ProbingError):
        """Fails a cycle that is waiting on contacts."""
        if self.state != CycleState.AWAITING_PROBE_CONTACTS:
            raise InvalidStateError(
                f"Cannot abort a cycle in state {self.state.name}"
            )
        self._fail(error)

    def _reduce(self) -> ProbeResult:
        self._set_state(CycleState.REDUCING)
        try:
            result = reduce_operation(
                self.operation, self.contacts, self.parallel_tolerance
            )
        except ProbingError as e:
            self._fail(e)
            raise
        self.result = result
        self._set_state(CycleState.COMPLETED)
        logger.info(
            f"Probing cycle {self.id} completed: {result.derived_point}"
        )
        return result

    def emit(
        self,
        emitter: "ProgramEmitter",
        fixture_provider: "FixtureProvider",
    ) -> str:
        """Renders this cycle with the given emitter and fixture."""
        return emitter.emit(self, fixture_provider())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle": {
                "operation": operation_to_dict(self.operation),
                "run": self.run.to_dict(),
                "tool_number": self.tool_number,
                "parallel_tolerance": self.parallel_tolerance,
                "state": self.state.name,
                "start_position": (
                    list(self.start_position)
                    if self.start_position is not None
                    else None
                ),
                "waypoints": [w.to_dict() for w in self.waypoints],
                "contacts": [list(p) for p in self.contacts],
                "result": (
                    self.result.to_dict() if self.result is not None else None
                ),
                "error": str(self.error) if self.error is not None else None,
            }
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ProbingCycle:
        """
        Restores a cycle. Only the configuration is needed; a stored
        state, waypoints and result are restored if present. A cycle
        saved while it was probing or reducing comes back FAILED, since
        whatever drove it is gone.
        """
        cy_data = data.get("cycle", {})
        cycle = cls(
            operation_from_dict(cy_data.get("operation", {})),
            ProbingRun.from_dict(cy_data.get("run", {})),
            tool_number=int(cy_data.get("tool_number", 0)),
            parallel_tolerance=float(
                cy_data.get("parallel_tolerance", DEFAULT_PARALLEL_TOLERANCE)
            ),
        )
        state = cy_data.get("state", CycleState.CONFIGURED.name)
        try:
            cycle.state = CycleState[state]
        except KeyError as e:
            raise InvalidConfigError(f"Unknown cycle state '{state}'") from e
        start = cy_data.get("start_position")
        if start is not None:
            cycle.start_position = (
                float(start[0]),
                float(start[1]),
                float(start[2]),
            )
        cycle.waypoints = [
            waypoint_from_dict(w) for w in cy_data.get("waypoints", [])
        ]
        cycle.contacts = [
            (float(p[0]), float(p[1]), float(p[2]))
            for p in cy_data.get("contacts", [])
        ]
        result = cy_data.get("result")
        if result is not None:
            cycle.result = ProbeResult.from_dict(result)
        completed = cycle.state == CycleState.COMPLETED
        if completed and cycle.result is None:
            raise InvalidConfigError("A completed cycle must have a result.")
        if not completed and cycle.result is not None:
            raise InvalidConfigError(
                f"A {cycle.state.name} cycle cannot have a result."
            )
        error = cy_data.get("error")
        if error is not None:
            cycle.error = ProbingError(error)

        if cycle.state in _IN_FLIGHT:
            logger.warning(
                f"Cycle was interrupted while {cycle.state.name}, "
                "marking it as failed"
            )
            cycle.state = CycleState.FAILED
            cycle.error = ProbeAbortError(
                "Probing was interrupted before the cycle completed."
            )
        return cycle

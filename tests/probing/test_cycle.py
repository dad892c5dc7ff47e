import asyncio
import threading
import time
import pytest
from probecycle.machine.context import MachineContext
from probecycle.probing.cycle import (
    CentreProbe,
    CycleState,
    EdgeProbe,
    ProbingCycle,
    operation_from_dict,
    operation_to_dict,
)
from probecycle.probing.errors import (
    InvalidConfigError,
    InvalidStateError,
    MachineBusyError,
    NoContactError,
    ParallelEdgesError,
    ProbeAbortError,
    ProbeTimeoutError,
)
from probecycle.probing.executor import SimulatedProbeExecutor, Stock
from probecycle.probing.types import (
    Corner,
    ProbeCentreConfig,
    ProbeDirection,
    ProbeEdgeConfig,
    ProbingRun,
)


@pytest.fixture
def context() -> MachineContext:
    return MachineContext("Test Machine")


@pytest.fixture
def run() -> ProbingRun:
    return ProbingRun(depth=10.0, start_distance=50.0, feed_rate=100.0)


@pytest.fixture
def centre_cycle(run) -> ProbingCycle:
    operation = CentreProbe(ProbeCentreConfig(ProbeDirection.OUTSIDE, 2))
    return ProbingCycle(operation, run)


@pytest.fixture
def boss() -> Stock:
    return Stock.rectangle(-20.0, -10.0, 40.0, 20.0, top=0.0)


def record_states(cycle):
    states = []
    cycle.state_changed.connect(
        lambda sender, state: states.append(state), weak=False
    )
    return states


class TestOperations:
    def test_required_points(self):
        centre = CentreProbe(ProbeCentreConfig(number_of_points=4))
        single = EdgeProbe(ProbeEdgeConfig(number_of_edges=1))
        corner = EdgeProbe(ProbeEdgeConfig(number_of_edges=2))
        assert centre.required_points == 4
        assert single.required_points == 2
        assert corner.required_points == 4

    def test_serialization(self):
        for operation in (
            CentreProbe(ProbeCentreConfig(ProbeDirection.INSIDE, 4)),
            EdgeProbe(ProbeEdgeConfig(3.0, 2, corner=Corner.TOP_LEFT)),
        ):
            data = operation_to_dict(operation)
            assert operation_from_dict(data) == operation

    def test_unknown_kind(self):
        with pytest.raises(InvalidConfigError):
            operation_from_dict({"kind": "spiral", "config": {}})


class TestCycleStates:
    def test_initial_state(self, centre_cycle):
        assert centre_cycle.state == CycleState.CONFIGURED
        assert centre_cycle.result is None
        assert centre_cycle.title == "Probe Centre"

    def test_plan(self, centre_cycle):
        waypoints = centre_cycle.plan((0.0, 0.0, 5.0))
        assert len(waypoints) == 8
        assert centre_cycle.state == CycleState.PLANNING
        assert centre_cycle.start_position == (0.0, 0.0, 5.0)

    def test_plan_twice_fails(self, centre_cycle):
        centre_cycle.plan((0.0, 0.0, 5.0))
        with pytest.raises(InvalidStateError):
            centre_cycle.plan((0.0, 0.0, 5.0))

    def test_submit_contacts(self, centre_cycle):
        states = record_states(centre_cycle)
        centre_cycle.plan((0.0, 0.0, 5.0))
        result = centre_cycle.submit_contacts([(0, 0, 0), (10, 0, 0)])

        assert result.derived_point == pytest.approx((5.0, 0.0, 0.0))
        assert centre_cycle.result == result
        assert centre_cycle.state == CycleState.COMPLETED
        assert states == [
            CycleState.PLANNING,
            CycleState.AWAITING_PROBE_CONTACTS,
            CycleState.REDUCING,
            CycleState.COMPLETED,
        ]

    def test_submit_contacts_before_plan(self, centre_cycle):
        with pytest.raises(InvalidStateError):
            centre_cycle.submit_contacts([(0, 0, 0), (10, 0, 0)])

    def test_completed_cycle_is_final(self, centre_cycle):
        centre_cycle.plan((0.0, 0.0, 5.0))
        centre_cycle.submit_contacts([(0, 0, 0), (10, 0, 0)])
        with pytest.raises(InvalidStateError):
            centre_cycle.plan((0.0, 0.0, 5.0))

    def test_reduction_failure(self, run):
        cycle = ProbingCycle(EdgeProbe(ProbeEdgeConfig()), run)
        cycle.plan((0.0, 0.0, 5.0))
        points = [(0, 0, 0), (10, 0, 0), (0, 5, 0), (10, 5, 0)]

        with pytest.raises(ParallelEdgesError):
            cycle.submit_contacts(points)
        assert cycle.state == CycleState.FAILED
        assert cycle.result is None
        assert isinstance(cycle.error, ParallelEdgesError)

    def test_abort(self, centre_cycle):
        with pytest.raises(InvalidStateError):
            centre_cycle.abort(ProbeAbortError("stop"))

    def test_return_waypoints(self, centre_cycle):
        with pytest.raises(InvalidStateError):
            centre_cycle.return_waypoints()
        centre_cycle.plan((0.0, 0.0, 5.0))
        centre_cycle.submit_contacts([(0, 0, -5), (10, 0, -5)])
        waypoints = centre_cycle.return_waypoints()
        assert waypoints[-1].end == (5.0, 0.0, 5.0)

    def test_serialization(self, centre_cycle):
        centre_cycle.plan((0.0, 0.0, 5.0))
        centre_cycle.submit_contacts([(0, 0, 0), (10, 0, 0)])

        restored = ProbingCycle.from_dict(centre_cycle.to_dict())
        assert restored.operation == centre_cycle.operation
        assert restored.run == centre_cycle.run
        assert restored.state == CycleState.COMPLETED
        assert restored.waypoints == centre_cycle.waypoints
        assert restored.contacts == centre_cycle.contacts
        assert restored.result == centre_cycle.result

    def test_from_dict_unknown_state(self, centre_cycle):
        data = centre_cycle.to_dict()
        data["cycle"]["state"] = "DANCING"
        with pytest.raises(InvalidConfigError):
            ProbingCycle.from_dict(data)

    @pytest.mark.parametrize(
        "state",
        [CycleState.AWAITING_PROBE_CONTACTS, CycleState.REDUCING],
    )
    def test_interrupted_cycle_is_restored_as_failed(
        self, centre_cycle, state
    ):
        centre_cycle.plan((0.0, 0.0, 5.0))
        data = centre_cycle.to_dict()
        data["cycle"]["state"] = state.name
        data["cycle"]["contacts"] = [[20.0, 0.0, -5.0]]

        restored = ProbingCycle.from_dict(data)

        assert restored.state == CycleState.FAILED
        assert isinstance(restored.error, ProbeAbortError)
        assert restored.result is None
        assert restored.contacts == [(20.0, 0.0, -5.0)]
        with pytest.raises(InvalidStateError):
            restored.submit_contacts([(0, 0, 0), (10, 0, 0)])

    def test_completed_record_needs_result(self, centre_cycle):
        data = centre_cycle.to_dict()
        data["cycle"]["state"] = CycleState.COMPLETED.name
        with pytest.raises(InvalidConfigError):
            ProbingCycle.from_dict(data)

    def test_failed_record_cannot_have_result(self, centre_cycle):
        centre_cycle.plan((0.0, 0.0, 5.0))
        centre_cycle.submit_contacts([(0, 0, 0), (10, 0, 0)])
        data = centre_cycle.to_dict()
        data["cycle"]["state"] = CycleState.FAILED.name
        with pytest.raises(InvalidConfigError):
            ProbingCycle.from_dict(data)


class TestCycleExecution:
    @pytest.mark.asyncio
    async def test_centre_outside(self, centre_cycle, boss, context):
        executor = SimulatedProbeExecutor(boss, position=(0.0, 0.0, 5.0))
        contacts = []
        centre_cycle.contact_received.connect(
            lambda sender, position: contacts.append(position), weak=False
        )
        centre_cycle.plan(executor.position)

        result = await centre_cycle.execute(executor, context)

        assert centre_cycle.state == CycleState.COMPLETED
        assert contacts == [
            pytest.approx((20.0, 0.0, -5.0)),
            pytest.approx((-20.0, 0.0, -5.0)),
        ]
        assert result.derived_point == pytest.approx((0.0, 0.0, -5.0))
        assert not context.is_probing()

    @pytest.mark.asyncio
    async def test_centre_inside_pocket(self, run, context):
        pocket = Stock.rectangle(0.0, 0.0, 30.0, 20.0, pocket=True)
        operation = CentreProbe(ProbeCentreConfig(ProbeDirection.INSIDE, 4))
        cycle = ProbingCycle(operation, run)
        executor = SimulatedProbeExecutor(pocket, position=(15.0, 10.0, 5.0))
        cycle.plan(executor.position)

        result = await cycle.execute(executor, context)

        assert result.derived_point == pytest.approx((15.0, 10.0, -5.0))

    @pytest.mark.asyncio
    async def test_rotated_corner(self, context):
        stock = Stock.rectangle(0.0, 0.0, 100.0, 80.0, angle=5.0)
        run = ProbingRun(depth=10.0, start_distance=20.0, feed_rate=100.0)
        operation = EdgeProbe(
            ProbeEdgeConfig(5.0, 2, corner=Corner.BOTTOM_LEFT)
        )
        cycle = ProbingCycle(operation, run)
        executor = SimulatedProbeExecutor(stock, position=(10.0, 10.0, 5.0))
        cycle.plan(executor.position)

        result = await cycle.execute(executor, context)

        assert len(result.measured_points) == 4
        assert result.derived_angle == pytest.approx(5.0)
        assert result.edge_angles[1] == pytest.approx(-85.0)
        assert result.derived_point == pytest.approx(
            (0.0, 0.0, -5.0), abs=1e-6
        )

    @pytest.mark.asyncio
    async def test_execute_before_plan(self, centre_cycle, boss, context):
        executor = SimulatedProbeExecutor(boss)
        with pytest.raises(InvalidStateError):
            await centre_cycle.execute(executor, context)

    @pytest.mark.asyncio
    async def test_no_contact(self, centre_cycle, context):
        far_away = Stock.rectangle(500.0, 500.0, 10.0, 10.0)
        executor = SimulatedProbeExecutor(far_away, position=(0.0, 0.0, 5.0))
        centre_cycle.plan(executor.position)

        with pytest.raises(NoContactError):
            await centre_cycle.execute(executor, context)
        assert centre_cycle.state == CycleState.FAILED
        assert centre_cycle.result is None
        assert not context.is_probing()

    @pytest.mark.asyncio
    async def test_timeout(self, centre_cycle, boss, context):
        executor = SimulatedProbeExecutor(
            boss, position=(0.0, 0.0, 5.0), move_delay=1.0
        )
        centre_cycle.plan(executor.position)

        with pytest.raises(ProbeTimeoutError):
            await centre_cycle.execute(executor, context, timeout=0.01)
        assert centre_cycle.state == CycleState.FAILED
        assert centre_cycle.result is None

    @pytest.mark.asyncio
    async def test_cancel(self, centre_cycle, boss, context):
        executor = SimulatedProbeExecutor(
            boss, position=(0.0, 0.0, 5.0), move_delay=0.5
        )
        centre_cycle.plan(executor.position)

        task = asyncio.create_task(centre_cycle.execute(executor, context))
        await asyncio.sleep(0.05)
        centre_cycle.cancel()

        with pytest.raises(ProbeAbortError):
            await task
        assert centre_cycle.state == CycleState.FAILED
        assert executor.moves == []

    @pytest.mark.asyncio
    async def test_cancel_from_another_thread(
        self, centre_cycle, boss, context
    ):
        executor = SimulatedProbeExecutor(
            boss, position=(0.0, 0.0, 5.0), move_delay=2.0
        )
        centre_cycle.plan(executor.position)
        timer = threading.Timer(0.1, centre_cycle.cancel)

        started = time.monotonic()
        timer.start()
        try:
            with pytest.raises(ProbeAbortError):
                await centre_cycle.execute(executor, context)
        finally:
            timer.cancel()

        # The pending move is abandoned instead of run to completion
        assert time.monotonic() - started < 1.0
        assert centre_cycle.state == CycleState.FAILED
        assert executor.moves == []

    @pytest.mark.asyncio
    async def test_machine_busy(self, centre_cycle, boss, context):
        executor = SimulatedProbeExecutor(boss, position=(0.0, 0.0, 5.0))
        centre_cycle.plan(executor.position)

        async with context.probe_lock:
            assert context.is_probing()
            with pytest.raises(MachineBusyError):
                await centre_cycle.execute(executor, context)

        assert centre_cycle.state == CycleState.PLANNING
        result = await centre_cycle.execute(executor, context)
        assert result.derived_point == pytest.approx((0.0, 0.0, -5.0))

    @pytest.mark.asyncio
    async def test_executor_without_contact(
        self, mocker, centre_cycle, context
    ):
        executor = mocker.Mock()
        executor.execute = mocker.AsyncMock(return_value=None)
        executor.cancel = mocker.AsyncMock()
        centre_cycle.plan((0.0, 0.0, 5.0))

        with pytest.raises(NoContactError):
            await centre_cycle.execute(executor, context)
        # Rapid and plunge, then the probe move that reported nothing
        assert executor.execute.await_count == 3
        assert centre_cycle.state == CycleState.FAILED

    @pytest.mark.asyncio
    async def test_executor_crash(self, mocker, centre_cycle, context):
        executor = mocker.Mock()
        executor.execute = mocker.AsyncMock(side_effect=OSError("port gone"))
        executor.cancel = mocker.AsyncMock()
        centre_cycle.plan((0.0, 0.0, 5.0))

        with pytest.raises(ProbeAbortError) as exc_info:
            await centre_cycle.execute(executor, context)
        assert isinstance(exc_info.value.__cause__, OSError)
        assert centre_cycle.state == CycleState.FAILED

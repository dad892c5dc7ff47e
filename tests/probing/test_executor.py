import pytest
from probecycle.probing.errors import NoContactError, ProbeAbortError
from probecycle.probing.executor import SimulatedProbeExecutor, Stock
from probecycle.probing.waypoint import PlungeMove, ProbeMove, RapidMove


@pytest.fixture
def stock() -> Stock:
    return Stock.rectangle(-20.0, -10.0, 40.0, 20.0, top=0.0)


class TestStock:
    def test_needs_three_points(self):
        with pytest.raises(ValueError):
            Stock([(0.0, 0.0), (1.0, 1.0)])

    def test_has_material_at(self, stock):
        assert stock.has_material_at((0.0, 0.0, -1.0))
        assert not stock.has_material_at((0.0, 0.0, 1.0))
        assert not stock.has_material_at((30.0, 0.0, -1.0))

    def test_pocket_inverts_material(self):
        pocket = Stock.rectangle(0.0, 0.0, 10.0, 10.0, pocket=True)
        assert not pocket.has_material_at((5.0, 5.0, -1.0))
        assert pocket.has_material_at((15.0, 5.0, -1.0))

    def test_rotated_rectangle(self):
        stock = Stock.rectangle(0.0, 0.0, 10.0, 10.0, angle=90.0)
        assert stock.outline[1] == pytest.approx((0.0, 10.0))
        assert stock.has_material_at((-5.0, 5.0, -1.0))
        assert not stock.has_material_at((5.0, 5.0, -1.0))

    def test_first_contact(self, stock):
        hit = stock.first_contact((50.0, 0.0, -5.0), (0.0, 0.0, -5.0))
        assert hit == pytest.approx((20.0, 0.0, -5.0))

    def test_no_contact_above_stock(self, stock):
        assert stock.first_contact((50.0, 0.0, 5.0), (-50.0, 0.0, 5.0)) is None

    def test_ignores_contact_at_start(self, stock):
        hit = stock.first_contact((20.0, 0.0, -5.0), (50.0, 0.0, -5.0))
        assert hit is None


class TestSimulatedProbeExecutor:
    @pytest.mark.asyncio
    async def test_probe_move_stops_at_wall(self, stock):
        executor = SimulatedProbeExecutor(stock, position=(50.0, 0.0, -5.0))
        contacts = []
        executor.contact_made.connect(
            lambda sender, position: contacts.append(position), weak=False
        )

        hit = await executor.execute(ProbeMove((0.0, 0.0, -5.0), 100.0))

        assert hit == pytest.approx((20.0, 0.0, -5.0))
        assert executor.position == hit
        assert contacts == [hit]

    @pytest.mark.asyncio
    async def test_rapid_move(self, stock):
        executor = SimulatedProbeExecutor(stock, position=(0.0, 0.0, 5.0))
        positions = []
        executor.position_changed.connect(
            lambda sender, position: positions.append(position), weak=False
        )

        assert await executor.execute(RapidMove((50.0, None, None))) is None
        assert executor.position == (50.0, 0.0, 5.0)
        assert positions == [(50.0, 0.0, 5.0)]
        assert len(executor.moves) == 1

    @pytest.mark.asyncio
    async def test_probe_miss(self, stock):
        executor = SimulatedProbeExecutor(stock, position=(50.0, 0.0, -5.0))
        with pytest.raises(NoContactError):
            await executor.execute(ProbeMove((40.0, 0.0, -5.0), 100.0))

    @pytest.mark.asyncio
    async def test_plunge_into_stock_aborts(self, stock):
        executor = SimulatedProbeExecutor(stock, position=(0.0, 0.0, 5.0))
        with pytest.raises(ProbeAbortError):
            await executor.execute(PlungeMove((None, None, -5.0)))
        assert executor.position == (0.0, 0.0, 5.0)

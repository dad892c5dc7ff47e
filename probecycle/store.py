import logging
from pathlib import Path
from typing import Dict, Optional
import yaml
from blinker import Signal
from .probing.cycle import ProbingCycle
from .probing.errors import ProbingError


logger = logging.getLogger(__name__)


class CycleStore:
    """
    Keeps probing cycles as YAML records, one file per cycle, named
    after the cycle id. A record is rewritten on every state change of
    its cycle.
    """

    def __init__(self, base_dir: Path):
        base_dir.mkdir(parents=True, exist_ok=True)
        self.base_dir = base_dir
        self.cycles: Dict[str, ProbingCycle] = dict()
        self.cycle_added = Signal()
        self.cycle_updated = Signal()
        self.load()

    def __len__(self) -> int:
        return len(self.cycles)

    def filename_from_id(self, cycle_id: str) -> Path:
        return self.base_dir / f"{cycle_id}.yaml"

    def add_cycle(self, cycle: ProbingCycle):
        if cycle.id in self.cycles:
            return
        self._track(cycle)
        self.save_cycle(cycle)
        self.cycle_added.send(self, cycle_id=cycle.id)

    def _track(self, cycle: ProbingCycle):
        self.cycles[cycle.id] = cycle
        cycle.state_changed.connect(self.on_cycle_changed)

    def save_cycle(self, cycle: ProbingCycle):
        logger.debug(f"Saving cycle {cycle.id} ({cycle.state.name})")
        with open(self.filename_from_id(cycle.id), "w") as f:
            yaml.safe_dump(cycle.to_dict(), f)

    def on_cycle_changed(self, cycle, **kwargs):
        self.save_cycle(cycle)
        self.cycle_updated.send(self, cycle_id=cycle.id)

    def _load_file(self, path: Path):
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        if not data:
            logger.warning(f"skipping invalid cycle file {path.name}")
            return
        cycle = ProbingCycle.from_dict(data)
        cycle.id = path.stem
        self._track(cycle)

        # Records of interrupted runs come back failed; keep the file
        # in line so the cycle is not reported as running again.
        stored_state = data.get("cycle", {}).get("state")
        if stored_state != cycle.state.name:
            self.save_cycle(cycle)

    def load(self):
        for path in sorted(
            self.base_dir.glob("*.yaml"), key=lambda p: p.stat().st_mtime
        ):
            try:
                self._load_file(path)
            except (
                OSError,
                yaml.YAMLError,
                ProbingError,
                KeyError,
                TypeError,
                ValueError,
            ) as e:
                logger.error(f"Failed to load cycle from {path}: {e}")


def load_cycle_file(path: Path) -> Optional[ProbingCycle]:
    """Reads a single cycle record. Returns None for an empty file."""
    with open(path, "r") as f:
        data = yaml.safe_load(f)
    if not data:
        logger.warning(f"skipping invalid cycle file {path.name}")
        return None
    return ProbingCycle.from_dict(data)

import logging
from pathlib import Path
from typing import Any, Dict, Optional
import yaml
from blinker import Signal
from platformdirs import user_config_dir
from .machine.context import MachineContext
from .machine.tool import ToolLibrary
from .probing.cycle import DEFAULT_CONTACT_TIMEOUT
from .probing.reduce import DEFAULT_PARALLEL_TOLERANCE
from .probing.types import (
    DEFAULT_DEPTH,
    DEFAULT_FEED_RATE,
    DEFAULT_RETRACT_DISTANCE,
    DEFAULT_START_DISTANCE,
    ProbingRun,
)
from .store import CycleStore


logger = logging.getLogger(__name__)


CONFIG_DIR = Path(user_config_dir("probecycle"))


class Config:
    def __init__(self):
        self.depth: float = DEFAULT_DEPTH  # in mm
        self.start_distance: float = DEFAULT_START_DISTANCE  # in mm
        self.retract_distance: float = DEFAULT_RETRACT_DISTANCE  # in mm
        self.feed_rate: float = DEFAULT_FEED_RATE  # in mm/min
        self.parallel_tolerance: float = DEFAULT_PARALLEL_TOLERANCE  # deg
        self.contact_timeout: float = DEFAULT_CONTACT_TIMEOUT  # in seconds
        self.changed = Signal()

    def set_parallel_tolerance(self, tolerance: float):
        if tolerance < 0:
            raise ValueError("Parallel tolerance must not be negative.")
        self.parallel_tolerance = tolerance
        self.changed.send(self)

    def set_contact_timeout(self, timeout: float):
        if timeout <= 0:
            raise ValueError("Contact timeout must be positive.")
        self.contact_timeout = timeout
        self.changed.send(self)

    def set_retract_distance(self, distance: float):
        if distance < 0:
            raise ValueError("Retract distance must not be negative.")
        self.retract_distance = distance
        self.changed.send(self)

    def set_run_defaults(
        self, depth: float, start_distance: float, feed_rate: float
    ):
        # Validates the values before keeping them
        ProbingRun(depth, start_distance, feed_rate)
        self.depth = depth
        self.start_distance = start_distance
        self.feed_rate = feed_rate
        self.changed.send(self)

    def default_run(self) -> ProbingRun:
        return ProbingRun(
            depth=self.depth,
            start_distance=self.start_distance,
            feed_rate=self.feed_rate,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "probing": {
                "depth": self.depth,
                "start_distance": self.start_distance,
                "retract_distance": self.retract_distance,
                "feed_rate": self.feed_rate,
                "parallel_tolerance": self.parallel_tolerance,
                "contact_timeout": self.contact_timeout,
            }
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Raises ValueError if a stored setting is out of range."""
        config = cls()
        probing = data.get("probing", {})
        config.set_run_defaults(
            depth=probing.get("depth", config.depth),
            start_distance=probing.get(
                "start_distance", config.start_distance
            ),
            feed_rate=probing.get("feed_rate", config.feed_rate),
        )
        config.set_retract_distance(
            probing.get("retract_distance", config.retract_distance)
        )
        config.set_parallel_tolerance(
            probing.get("parallel_tolerance", config.parallel_tolerance)
        )
        config.set_contact_timeout(
            probing.get("contact_timeout", config.contact_timeout)
        )
        return config


class ConfigManager:
    def __init__(self, filepath: Path):
        self.filepath = filepath
        self.config: Config = Config()
        self.load_config()
        self.config.changed.connect(self.on_config_changed)

    def on_config_changed(self, sender, **kwargs):
        self.save()

    def save(self):
        logger.debug(f"Saving config to {self.filepath}")
        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(self.filepath, "w") as f:
            yaml.safe_dump(self.config.to_dict(), f)

    def load_config(self) -> Config:
        if not self.filepath.exists():
            self.config = Config()  # Use a default config
            return self.config

        with open(self.filepath, "r") as f:
            data = yaml.safe_load(f)
        if not data:
            logger.warning(f"Config file {self.filepath} is empty")
            self.config = Config()
            return self.config
        try:
            self.config = Config.from_dict(data)
        except ValueError as e:
            logger.error(f"Invalid config in {self.filepath}: {e}")
            self.config = Config()
        return self.config


def load_tool_library(filepath: Path) -> ToolLibrary:
    if not filepath.exists():
        return ToolLibrary()
    with open(filepath, "r") as f:
        data = yaml.safe_load(f)
    return ToolLibrary.from_dict(data or {})


def save_tool_library(library: ToolLibrary, filepath: Path):
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, "w") as f:
        yaml.safe_dump(library.to_dict(), f)


# These are initialized to None so that importing this module has no
# side effects. The application must call initialize_managers().
config_mgr: Optional[ConfigManager] = None
config: Optional[Config] = None  # Alias for config_mgr.config after init
cycle_store: Optional[CycleStore] = None
machine: Optional[MachineContext] = None


def initialize_managers():
    """
    Initializes the config manager, the cycle store and the machine
    context. It is safe to call multiple times (idempotent).
    """
    global config_mgr, config, cycle_store, machine

    # Idempotency check: If already initialized, do nothing.
    if config_mgr is not None:
        return

    logger.info(f"Initializing configuration from {CONFIG_DIR}")
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    tools_file = CONFIG_DIR / "tools.yaml"

    config_mgr = ConfigManager(CONFIG_DIR / "config.yaml")
    config = config_mgr.config

    cycle_store = CycleStore(CONFIG_DIR / "cycles")
    logger.info(f"Loaded {len(cycle_store)} probing cycles")

    machine = MachineContext()
    machine.tools = load_tool_library(tools_file)
    machine.tools.changed.connect(
        lambda sender, **kwargs: save_tool_library(sender, tools_file),
        weak=False,
    )
    logger.info(f"Loaded {len(machine.tools)} tools")

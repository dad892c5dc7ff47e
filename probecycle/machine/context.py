import asyncio
import logging
import uuid
from typing import Optional
from blinker import Signal
from .fixture import Fixture, machine_fixture
from .tool import Tool, ToolLibrary


logger = logging.getLogger(__name__)


class MachineContext:
    """
    Everything a probing cycle needs from the machine it runs on: the
    tool library, the active fixture and tool, and a lock that keeps a
    second cycle from waiting on probe contacts at the same time.
    """

    def __init__(self, name: Optional[str] = None):
        self.id = str(uuid.uuid4())
        self.name: str = name or _("Default Machine")
        self.tools = ToolLibrary()
        self.fixture: Fixture = machine_fixture()
        self.active_tool_number: Optional[int] = None
        self.probe_lock = asyncio.Lock()

        # Signals
        self.changed = Signal()

    def set_fixture(self, fixture: Fixture):
        self.fixture = fixture
        self.changed.send(self)

    def set_active_tool(self, number: Optional[int]):
        self.active_tool_number = number
        self.changed.send(self)

    def active_tool(self) -> Optional[Tool]:
        if self.active_tool_number is None:
            return None
        return self.tools.find(self.active_tool_number)

    def get_fixture(self) -> Fixture:
        """Fixture provider for the probing cycles run on this machine."""
        return self.fixture

    def is_probing(self) -> bool:
        return self.probe_lock.locked()

import logging
from enum import Enum, auto
from typing import Any, Callable, Dict, Optional
from blinker import Signal


logger = logging.getLogger(__name__)


class ToolType(Enum):
    END_MILL = auto()
    BALL_END_MILL = auto()
    DRILL = auto()
    TOUCH_PROBE = auto()


class Tool:
    def __init__(self, number: int, tool_type: ToolType = ToolType.END_MILL):
        self.number = number
        self.name: str = _("Tool {number}").format(number=number)
        self.tool_type = tool_type
        self.tool_length_offset: float = 0.0  # in mm
        self.horizontal_feed_rate: float = 100.0  # in mm/min
        self.vertical_feed_rate: float = 50.0  # in mm/min
        self.changed = Signal()

    def is_touch_probe(self) -> bool:
        return self.tool_type == ToolType.TOUCH_PROBE

    def set_tool_length_offset(self, offset: float):
        self.tool_length_offset = offset
        self.changed.send(self)

    def set_horizontal_feed_rate(self, rate: float):
        self.horizontal_feed_rate = rate
        self.changed.send(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "name": self.name,
            "type": self.tool_type.name,
            "tool_length_offset": self.tool_length_offset,
            "speeds": {
                "horizontal_feed_rate": self.horizontal_feed_rate,
                "vertical_feed_rate": self.vertical_feed_rate,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tool":
        tool = cls(
            int(data["number"]),
            ToolType[data.get("type", ToolType.END_MILL.name)],
        )
        tool.name = data.get("name", tool.name)
        tool.tool_length_offset = data.get(
            "tool_length_offset", tool.tool_length_offset
        )
        speeds = data.get("speeds", {})
        tool.horizontal_feed_rate = speeds.get(
            "horizontal_feed_rate", tool.horizontal_feed_rate
        )
        tool.vertical_feed_rate = speeds.get(
            "vertical_feed_rate", tool.vertical_feed_rate
        )
        return tool


ToolLookup = Callable[[int], Optional[Tool]]
FeedProvider = Callable[[], float]


class ToolLibrary:
    """
    Tools by number. `find` is meant to be handed to the probing code
    as its tool lookup.
    """

    def __init__(self):
        self.tools: Dict[int, Tool] = {}
        self.changed = Signal()

    def __len__(self) -> int:
        return len(self.tools)

    def add_tool(self, tool: Tool):
        self.tools[tool.number] = tool
        tool.changed.connect(self._on_tool_changed)
        self.changed.send(self)

    def remove_tool(self, number: int):
        tool = self.tools.pop(number, None)
        if tool is None:
            return
        tool.changed.disconnect(self._on_tool_changed)
        self.changed.send(self)

    def _on_tool_changed(self, tool, *args):
        self.changed.send(self)

    def find(self, number: int) -> Optional[Tool]:
        return self.tools.get(number)

    def to_dict(self) -> Dict[str, Any]:
        return {"tools": [tool.to_dict() for tool in self.tools.values()]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolLibrary":
        library = cls()
        for obj in data.get("tools", []):
            try:
                library.add_tool(Tool.from_dict(obj))
            except (KeyError, ValueError) as e:
                logger.error(f"Skipping invalid tool entry {obj}: {e}")
        return library


def feed_from_tool(tool: Optional[Tool], default: float) -> FeedProvider:
    """
    Returns a feed provider reading the tool's horizontal feed rate, or
    `default` if there is no tool.
    """

    def provider() -> float:
        if tool is None:
            return default
        return tool.horizontal_feed_rate

    return provider

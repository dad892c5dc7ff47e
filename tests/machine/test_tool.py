from probecycle.machine.tool import (
    Tool,
    ToolLibrary,
    ToolType,
    feed_from_tool,
)
from probecycle.probing.types import ProbingRun


def make_probe(number=5, offset=40.0) -> Tool:
    tool = Tool(number, ToolType.TOUCH_PROBE)
    tool.tool_length_offset = offset
    tool.horizontal_feed_rate = 60.0
    return tool


class TestToolLibrary:
    def test_find(self):
        library = ToolLibrary()
        probe = make_probe()
        library.add_tool(probe)
        assert library.find(5) is probe
        assert library.find(6) is None
        assert len(library) == 1

    def test_remove_tool(self):
        library = ToolLibrary()
        library.add_tool(make_probe())
        library.remove_tool(5)
        library.remove_tool(5)
        assert library.find(5) is None

    def test_changed_on_tool_edit(self, mocker):
        library = ToolLibrary()
        probe = make_probe()
        library.add_tool(probe)
        handler = mocker.Mock()
        library.changed.connect(handler, weak=False)

        probe.set_tool_length_offset(25.0)

        handler.assert_called_once_with(library)

    def test_serialization(self):
        library = ToolLibrary()
        library.add_tool(make_probe())
        library.add_tool(Tool(1))
        restored = ToolLibrary.from_dict(library.to_dict())

        probe = restored.find(5)
        assert probe is not None
        assert probe.is_touch_probe()
        assert probe.tool_length_offset == 40.0
        assert probe.horizontal_feed_rate == 60.0
        assert not restored.find(1).is_touch_probe()

    def test_from_dict_skips_invalid_tools(self):
        library = ToolLibrary.from_dict(
            {"tools": [{"name": "no number"}, {"number": 3}]}
        )
        assert len(library) == 1
        assert library.find(3) is not None


def test_feed_from_tool():
    probe = make_probe()
    provider = feed_from_tool(probe, 100.0)
    assert provider() == 60.0
    probe.set_horizontal_feed_rate(75.0)
    assert provider() == 75.0
    assert feed_from_tool(None, 100.0)() == 100.0


def test_run_for_library_tool():
    library = ToolLibrary()
    library.add_tool(make_probe(offset=12.0))
    run = ProbingRun.for_tool(
        5, library.find, feed_from_tool(library.find(5), 100.0)
    )
    assert run.depth == 6.0
    assert run.feed_rate == 60.0

from abc import ABC, abstractmethod
from typing import Any, Dict, TYPE_CHECKING
import yaml

if TYPE_CHECKING:
    from ..machine.fixture import Fixture
    from .cycle import ProbingCycle


class ProgramEmitter(ABC):
    """
    Turns a probing cycle into text for the machine or the operator.
    Examples:

    - a program that drives the probe on the controller
    - a report of the measured results
    """

    @abstractmethod
    def emit(self, cycle: "ProbingCycle", fixture: "Fixture") -> str:
        pass


class YamlReportEmitter(ProgramEmitter):
    """
    Writes a report of a cycle: its configuration, the planned moves,
    and (if it completed) the result in both machine and fixture
    coordinates. Fixtures can read the reported angle back in to set
    their rotation.
    """

    def emit(self, cycle: "ProbingCycle", fixture: "Fixture") -> str:
        report: Dict[str, Any] = {
            "title": cycle.title,
            "fixture": fixture.to_dict(),
            "state": cycle.state.name,
        }
        report.update(cycle.to_dict()["cycle"])
        if cycle.result is not None:
            report["fixture_result"] = cycle.result.in_fixture(
                fixture
            ).to_dict()
        return yaml.safe_dump(report, sort_keys=False)

class ProbingError(Exception):
    """Base class for all errors raised by a probing cycle."""

    pass


class InvalidConfigError(ProbingError, ValueError):
    """Raised when a probing configuration or run is out of range."""

    pass


class InvalidStateError(ProbingError):
    """Raised when a cycle is asked for an illegal state transition."""

    pass


class PointCountError(ProbingError):
    """The number of contact points does not match the configuration."""

    def __init__(self, expected: int, actual: int, message=None):
        self.expected = expected
        self.actual = actual
        if message is None:
            message = (
                f"Expected {expected} contact points, got {actual}."
            )
        super().__init__(message)


class InsufficientPointsError(PointCountError):
    """Fewer contact points were supplied than the configuration needs."""

    pass


class ParallelEdgesError(ProbingError):
    """
    The two probed edges are parallel (within tolerance), so they have
    no usable intersection. The operator must probe a different corner.
    """

    def __init__(self, angle_between: float, tolerance: float):
        self.angle_between = angle_between
        self.tolerance = tolerance
        super().__init__(
            f"Probed edges are parallel: {angle_between:.4f} degrees "
            f"apart, tolerance is {tolerance:.4f} degrees."
        )


class DegenerateEdgeError(ProbingError):
    """Both contacts on an edge are the same point; no line can be fit."""

    pass


class ProbeTimeoutError(ProbingError):
    """The probe executor did not report a contact in time."""

    pass


class NoContactError(ProbeTimeoutError):
    """A probe move reached its target without touching the stock."""

    pass


class ProbeAbortError(ProbingError):
    """The probe move was aborted by the executor or cancelled."""

    pass


class MachineBusyError(ProbingError):
    """Another cycle is already waiting on probe contacts."""

    pass

"""Exception taxonomy shared by every pipeline stage."""


class ApiProbeError(Exception):
    """Base class for all apiprobe errors."""


class ScanError(ApiProbeError):
    """The project tree could not be read. Fatal to the run."""


class SpecFormatError(ApiProbeError):
    """The interface-description document is malformed. Fatal to discovery."""


class GenerationError(ApiProbeError):
    """The generative backend is unavailable or returned an unusable reply."""


class NetworkProbeError(ApiProbeError):
    """A single live request failed before a response was received."""


class ProbeExecutionError(ApiProbeError):
    """Sandbox-level failure, converted into a failed probe result."""

    kind = "execution"


class ProbeReadError(ProbeExecutionError):
    kind = "read"


class ProbeSyntaxError(ProbeExecutionError):
    kind = "syntax"

    def __init__(self, message: str, line: int | None = None) -> None:
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class ProbeAssertionError(ProbeExecutionError):
    kind = "assertion"


class ProbeNetworkError(ProbeExecutionError):
    kind = "network"

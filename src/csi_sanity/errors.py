"""Error vocabulary for csi-sanity.

Maps gRPC status codes onto a closed ErrorKind enum and defines the
scenario failure taxonomy raised by the assertion layer.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Closed set of status codes a plugin call can end with."""

    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16

    @property
    def is_transport(self) -> bool:
        """Whether the code means the call never completed at the protocol level."""
        return self in TRANSPORT_KINDS

    @property
    def label(self) -> str:
        """CamelCase name as used in the protocol documentation (e.g. InvalidArgument)."""
        return "".join(part.capitalize() for part in self.name.split("_"))


# Status codes produced by connectivity loss or the client-side deadline
TRANSPORT_KINDS = frozenset({ErrorKind.UNAVAILABLE, ErrorKind.DEADLINE_EXCEEDED})

# Error kinds a negative scenario may demand
CONTRACT_KINDS = frozenset({ErrorKind.INVALID_ARGUMENT, ErrorKind.NOT_FOUND})


def map_status_code(code: Any) -> ErrorKind:
    """Map a transport status code onto ErrorKind.

    Args:
        code: A grpc.StatusCode, its integer value, or its symbolic name

    Returns:
        Matching ErrorKind; UNKNOWN for anything unrecognized
    """
    if isinstance(code, ErrorKind):
        return code
    if isinstance(code, int):
        try:
            return ErrorKind(code)
        except ValueError:
            return ErrorKind.UNKNOWN
    # grpc.StatusCode members share their names with ErrorKind
    name = getattr(code, "name", code)
    if isinstance(name, str):
        return ErrorKind.__members__.get(name.upper(), ErrorKind.UNKNOWN)
    return ErrorKind.UNKNOWN


@dataclass
class ScenarioFailure(Exception):
    """Base class for failures that abort a scenario body."""

    call: str
    message: str
    expected: str | None = None
    actual: str | None = None
    category: str = "ScenarioFailure"
    data: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.call}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        result: dict[str, Any] = {
            "category": self.category,
            "call": self.call,
            "message": self.message,
        }
        if self.expected is not None:
            result["expected"] = self.expected
        if self.actual is not None:
            result["actual"] = self.actual
        if self.data:
            result["data"] = self.data
        return result


@dataclass
class ProtocolViolation(ScenarioFailure):
    """The plugin answered with a status other than the contractual one."""

    category: str = "ProtocolViolation"


@dataclass
class UnexpectedSuccess(ScenarioFailure):
    """A call required to fail returned a success payload."""

    category: str = "UnexpectedSuccess"


@dataclass
class TransportFailure(ScenarioFailure):
    """The call did not complete (connectivity loss or timeout)."""

    category: str = "TransportFailure"


@dataclass
class ContractViolation(ScenarioFailure):
    """A successful response is missing required content."""

    category: str = "ContractViolation"


class ScenarioSkipped(Exception):
    """Raised to skip the current scenario."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class LifecycleOrderError(RuntimeError):
    """A lifecycle step was requested out of its required order."""


class ConfigError(Exception):
    """Invalid or unreadable harness configuration."""


@dataclass(frozen=True)
class TeardownError:
    """Diagnostic for a cleanup call that failed after the scenario body."""

    resource: str
    call: str
    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.call} for {self.resource} failed with {self.kind.label}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource": self.resource,
            "call": self.call,
            "kind": self.kind.label,
            "message": self.message,
        }

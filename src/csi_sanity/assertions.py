"""Error-contract assertions for plugin responses.

Only the status code is contractual. Messages are carried into failure
reports for the reader but never matched.
"""

from collections.abc import Iterable
from typing import Any

from .client import RpcOutcome
from .errors import (
    CONTRACT_KINDS,
    ContractViolation,
    ErrorKind,
    ProtocolViolation,
    TransportFailure,
    UnexpectedSuccess,
)


def _transport_failure(outcome: RpcOutcome, expected: str) -> TransportFailure:
    return TransportFailure(
        call=outcome.method,
        message=f"call did not complete ({outcome.kind.label}): {outcome.message}",
        expected=expected,
        actual=outcome.kind.label,
    )


def expect_error(outcome: RpcOutcome, expected_kind: ErrorKind) -> RpcOutcome:
    """Assert that a call failed with exactly ``expected_kind``.

    Args:
        outcome: Result of the plugin call
        expected_kind: INVALID_ARGUMENT or NOT_FOUND

    Returns:
        The outcome, for chaining

    Raises:
        ValueError: If expected_kind is not a contractual kind.
        UnexpectedSuccess: The call succeeded.
        TransportFailure: The call did not complete.
        ProtocolViolation: The call failed with a different code.
    """
    if expected_kind not in CONTRACT_KINDS:
        raise ValueError(f"{expected_kind.label} is not a contractual error kind")

    if outcome.ok:
        raise UnexpectedSuccess(
            call=outcome.method,
            message=f"expected {expected_kind.label}, call succeeded",
            expected=expected_kind.label,
            actual=ErrorKind.OK.label,
        )
    if outcome.kind.is_transport:
        raise _transport_failure(outcome, expected_kind.label)
    if outcome.kind is not expected_kind:
        raise ProtocolViolation(
            call=outcome.method,
            message=f"expected {expected_kind.label}, got {outcome.kind.label}: {outcome.message}",
            expected=expected_kind.label,
            actual=outcome.kind.label,
        )
    return outcome


def _lookup(payload: dict[str, Any] | None, path: str) -> Any:
    """Resolve a dotted path (e.g. volume.volume_id) in a response payload."""
    value: Any = payload or {}
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def expect_success(
    outcome: RpcOutcome,
    non_empty: Iterable[str] = (),
    non_negative: Iterable[str] = (),
) -> RpcOutcome:
    """Assert that a call succeeded and carries the required content.

    Args:
        outcome: Result of the plugin call
        non_empty: Dotted payload paths that must hold a non-empty value
        non_negative: Dotted payload paths that must not be negative when set

    Returns:
        The outcome, for chaining

    Raises:
        TransportFailure: The call did not complete.
        ProtocolViolation: The call failed.
        ContractViolation: A required field is empty or negative.
    """
    if outcome.kind.is_transport:
        raise _transport_failure(outcome, ErrorKind.OK.label)
    if not outcome.ok:
        raise ProtocolViolation(
            call=outcome.method,
            message=f"expected success, got {outcome.kind.label}: {outcome.message}",
            expected=ErrorKind.OK.label,
            actual=outcome.kind.label,
        )

    for path in non_empty:
        value = _lookup(outcome.payload, path)
        if value is None or value == "" or value == [] or value == {}:
            raise ContractViolation(
                call=outcome.method,
                message=f"response field '{path}' is empty",
                expected="non-empty",
                actual=repr(value),
            )

    for path in non_negative:
        value = _lookup(outcome.payload, path)
        # int64 fields arrive as strings in the JSON mapping; unset means zero
        if value is not None and int(value) < 0:
            raise ContractViolation(
                call=outcome.method,
                message=f"response field '{path}' is negative",
                expected=">= 0",
                actual=str(value),
            )
    return outcome

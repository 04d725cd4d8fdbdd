"""gRPC client for the plugin under test.

Every call returns an RpcOutcome instead of raising, so status codes reach
the assertion layer as values. Requests and responses are plain dicts keyed
by proto field names; the generated message module is loaded by import path.
"""

import importlib
import logging
from dataclasses import dataclass
from types import ModuleType
from typing import Any, Protocol

import grpc
from google.protobuf import json_format

from .errors import ConfigError, ErrorKind, TransportFailure, map_status_code

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_PROTO_MODULE = "csi_pb2"

IDENTITY_SERVICE = "csi.v1.Identity"
CONTROLLER_SERVICE = "csi.v1.Controller"
NODE_SERVICE = "csi.v1.Node"


@dataclass(frozen=True)
class RpcOutcome:
    """Result of one plugin call: a payload on success, a status otherwise."""

    method: str
    kind: ErrorKind = ErrorKind.OK
    payload: dict[str, Any] | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is ErrorKind.OK

    def get(self, key: str, default: Any = None) -> Any:
        """Read a top-level payload field."""
        if not self.payload:
            return default
        return self.payload.get(key, default)


class Transport(Protocol):
    """Anything that can carry a unary call to the plugin."""

    def invoke(self, service: str, method: str, request: dict[str, Any]) -> RpcOutcome: ...

    def close(self) -> None: ...


def normalize_endpoint(endpoint: str) -> str:
    """Turn a bare socket path into a gRPC unix target.

    Args:
        endpoint: /path/to/csi.sock, unix:///path, or host:port

    Returns:
        Target string accepted by grpc.insecure_channel
    """
    if endpoint.startswith("/"):
        return f"unix://{endpoint}"
    if endpoint.startswith("tcp://"):
        return endpoint[len("tcp://") :]
    return endpoint


def load_message_module(name: str = DEFAULT_PROTO_MODULE) -> ModuleType:
    """Import the generated protobuf message module.

    Raises:
        ConfigError: If the module cannot be imported.
    """
    try:
        return importlib.import_module(name)
    except ImportError as e:
        raise ConfigError(f"Cannot import generated CSI messages '{name}': {e}") from e


class GrpcTransport:
    """Unary gRPC transport over a single channel."""

    def __init__(
        self,
        channel: grpc.Channel,
        messages: ModuleType,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize transport.

        Args:
            channel: Open gRPC channel to the plugin
            messages: Generated module exposing <Method>Request/<Method>Response
            timeout: Per-call deadline in seconds
        """
        self.channel = channel
        self.messages = messages
        self.timeout = timeout

    @classmethod
    def dial(
        cls,
        endpoint: str,
        proto_module: str = DEFAULT_PROTO_MODULE,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> "GrpcTransport":
        """Open a channel and wait until it is ready.

        Raises:
            ConfigError: If the generated message module cannot be imported.
            TransportFailure: If the plugin is unreachable within the timeout.
        """
        messages = load_message_module(proto_module)
        target = normalize_endpoint(endpoint)
        channel = grpc.insecure_channel(target)
        try:
            grpc.channel_ready_future(channel).result(timeout=timeout)
        except grpc.FutureTimeoutError:
            channel.close()
            raise TransportFailure(
                call="connect",
                message=f"Cannot connect to plugin at {target} within {timeout}s",
            )
        logger.info(f"Connected to plugin at {target}")
        return cls(channel, messages, timeout=timeout)

    def _message_classes(self, method: str) -> tuple[Any, Any]:
        try:
            return (
                getattr(self.messages, f"{method}Request"),
                getattr(self.messages, f"{method}Response"),
            )
        except AttributeError as e:
            raise ConfigError(f"Generated CSI messages lack {method}: {e}") from e

    def invoke(self, service: str, method: str, request: dict[str, Any]) -> RpcOutcome:
        request_cls, response_cls = self._message_classes(method)
        message = json_format.ParseDict(request, request_cls())
        stub = self.channel.unary_unary(
            f"/{service}/{method}",
            request_serializer=request_cls.SerializeToString,
            response_deserializer=response_cls.FromString,
        )
        try:
            response = stub(message, timeout=self.timeout)
        except grpc.RpcError as e:
            kind = map_status_code(e.code()) if hasattr(e, "code") else ErrorKind.UNKNOWN
            details = e.details() if hasattr(e, "details") else str(e)
            logger.debug(f"{method} -> {kind.name}: {details}")
            return RpcOutcome(method=method, kind=kind, message=details or "")
        payload = json_format.MessageToDict(response, preserving_proto_field_name=True)
        logger.debug(f"{method} -> OK")
        return RpcOutcome(method=method, payload=payload)

    def close(self) -> None:
        self.channel.close()


@dataclass
class PluginClient:
    """Typed call surface over a Transport.

    Methods take and return proto-field-named dicts; omitting a key leaves the
    field unset on the wire.
    """

    transport: Transport

    def _call(self, service: str, method: str, request: dict[str, Any] | None = None) -> RpcOutcome:
        return self.transport.invoke(service, method, request or {})

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    def get_plugin_capabilities(self) -> RpcOutcome:
        return self._call(IDENTITY_SERVICE, "GetPluginCapabilities")

    # -------------------------------------------------------------------------
    # Controller
    # -------------------------------------------------------------------------

    def controller_get_capabilities(self) -> RpcOutcome:
        return self._call(CONTROLLER_SERVICE, "ControllerGetCapabilities")

    def create_volume(self, request: dict[str, Any]) -> RpcOutcome:
        return self._call(CONTROLLER_SERVICE, "CreateVolume", request)

    def delete_volume(self, request: dict[str, Any]) -> RpcOutcome:
        return self._call(CONTROLLER_SERVICE, "DeleteVolume", request)

    def controller_publish_volume(self, request: dict[str, Any]) -> RpcOutcome:
        return self._call(CONTROLLER_SERVICE, "ControllerPublishVolume", request)

    def controller_unpublish_volume(self, request: dict[str, Any]) -> RpcOutcome:
        return self._call(CONTROLLER_SERVICE, "ControllerUnpublishVolume", request)

    # -------------------------------------------------------------------------
    # Node
    # -------------------------------------------------------------------------

    def node_get_capabilities(self) -> RpcOutcome:
        return self._call(NODE_SERVICE, "NodeGetCapabilities")

    def node_get_info(self) -> RpcOutcome:
        return self._call(NODE_SERVICE, "NodeGetInfo")

    def node_stage_volume(self, request: dict[str, Any]) -> RpcOutcome:
        return self._call(NODE_SERVICE, "NodeStageVolume", request)

    def node_unstage_volume(self, request: dict[str, Any]) -> RpcOutcome:
        return self._call(NODE_SERVICE, "NodeUnstageVolume", request)

    def node_publish_volume(self, request: dict[str, Any]) -> RpcOutcome:
        return self._call(NODE_SERVICE, "NodePublishVolume", request)

    def node_unpublish_volume(self, request: dict[str, Any]) -> RpcOutcome:
        return self._call(NODE_SERVICE, "NodeUnpublishVolume", request)

    def node_get_volume_stats(self, request: dict[str, Any]) -> RpcOutcome:
        return self._call(NODE_SERVICE, "NodeGetVolumeStats", request)

    def close(self) -> None:
        self.transport.close()


def single_node_writer_capability() -> dict[str, Any]:
    """Mount-type volume capability with SINGLE_NODE_WRITER access."""
    return {"mount": {}, "access_mode": {"mode": "SINGLE_NODE_WRITER"}}

# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
Wire codec for the TrueNAS middleware websocket.

Outbound frames are DDP-style JSON text: one "connect" handshake per physical
connection, then "method" calls. Inbound text frames decode to either a
HandshakeAck ("connected"/"failed") or an RpcResult.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from websocket import ABNF

from truenas_exporter.errors import FrameDecodeError, ProtocolError

LOG = logging.getLogger(__name__)

HANDSHAKE_MESSAGE = {"msg": "connect", "version": "1", "support": ["1"]}
HANDSHAKE_REPLIES = ("connected", "failed")


@dataclass
class PendingRequest:
    """One outbound method call. Built per call, never retried."""
    id: str
    method: str
    params: Any = None

    def to_frame(self) -> str:
        return encode_call(self.id, self.method, self.params)


@dataclass
class RpcError:
    code: Optional[int] = None
    errname: Optional[str] = None
    reason: Optional[str] = None

    @staticmethod
    def from_api_response(data: Any) -> 'RpcError':
        if not isinstance(data, dict):
            return RpcError(reason=str(data))
        return RpcError(
            code=data.get('error'),
            errname=data.get('errname'),
            reason=data.get('reason'),
        )


@dataclass
class RpcResult:
    """Response to a method call. Exactly one of result/error is meaningful."""
    id: Optional[str]
    msg: Optional[str]
    result: Any = None
    error: Optional[RpcError] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


@dataclass
class HandshakeAck:
    msg: str
    session: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def encode_handshake() -> str:
    return json.dumps(HANDSHAKE_MESSAGE)


def encode_call(request_id: str, method: str, params: Any = None) -> str:
    """
    Serialize a method call envelope.

    Args:
        request_id: Correlation id for this call
        method: Middleware method name, e.g. "pool.query"
        params: Optional JSON-serializable parameters; omitted when None

    Returns:
        JSON text frame
    """
    envelope = {"id": request_id, "msg": "method", "method": method}
    if params is not None:
        envelope["params"] = params
    return json.dumps(envelope)


def decode_frame(opcode: int, data: Union[str, bytes]) -> Union[HandshakeAck, RpcResult]:
    """
    Decode an inbound websocket frame.

    Args:
        opcode: websocket opcode of the frame
        data: Frame payload as received

    Returns:
        HandshakeAck for connect replies, RpcResult for everything else

    Raises:
        ProtocolError: Non-text frame or non-object payload
        FrameDecodeError: Payload is not valid UTF-8 JSON, or a method
            response carries neither result nor error
    """
    if opcode != ABNF.OPCODE_TEXT:
        raise ProtocolError(f"Unexpected non-text frame (opcode {opcode})")

    if isinstance(data, bytes):
        try:
            data = data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise FrameDecodeError(f"Frame is not valid UTF-8: {e}") from e

    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise FrameDecodeError(f"Frame is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ProtocolError(f"Expected a JSON object, got {type(payload).__name__}")

    msg = payload.get('msg')
    if msg in HANDSHAKE_REPLIES:
        return HandshakeAck(msg=msg, session=payload.get('session'), raw=payload)

    error = payload.get('error')
    if error is not None:
        return RpcResult(id=payload.get('id'), msg=msg, error=RpcError.from_api_response(error))

    # A null result is a valid answer; only a missing key is a violation
    if 'result' in payload:
        return RpcResult(id=payload.get('id'), msg=msg, result=payload['result'])

    raise FrameDecodeError(f"Response {payload.get('id')!r} carries neither result nor error")

# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
Persistent websocket connection to the TrueNAS middleware.

One physical connection is opened, handshaked and authenticated once, then
reused for every call. All calls go through ConnectionManager.execute(), which
holds the connection lock for the whole round trip, so callers on different
threads are served strictly one at a time.
"""

import itertools
import logging
import ssl
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

import websocket
from websocket import ABNF

from truenas_exporter.api.protocol import (
    HandshakeAck,
    PendingRequest,
    RpcResult,
    decode_frame,
    encode_handshake,
)
from truenas_exporter.config import TrueNasConfig
from truenas_exporter.errors import (
    ApiError,
    AuthError,
    ConnectionClosed,
    DecodeError,
    ExporterError,
    ProtocolError,
    TransportError,
)

LOG = logging.getLogger(__name__)

WEBSOCKET_PATH = "/websocket"
AUTH_METHOD = "auth.login_with_api_key"
SESSION_EXPIRED_SENTINEL = "ENOTAUTHENTICATED"


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    ESTABLISHED = "established"        # socket open, handshake not done
    AUTHENTICATING = "authenticating"
    READY = "ready"


def build_sslopt(tls_validation: str = 'strict', tls_ca: Optional[str] = None) -> Dict[str, Any]:
    """
    Translate the TLS validation policy into websocket-client sslopt.

    Args:
        tls_validation: 'strict', 'normal', or 'none'
        tls_ca: Optional CA bundle used instead of the system trust store

    Returns:
        sslopt mapping for websocket.create_connection
    """
    if tls_validation == 'none':
        LOG.warning("TLS validation is DISABLED (self-signed certificates accepted). This is insecure and should only be used for testing.")
        return {"cert_reqs": ssl.CERT_NONE, "check_hostname": False}

    context = ssl.create_default_context(cafile=tls_ca) if tls_ca else ssl.create_default_context()
    if tls_validation == 'strict':
        context.verify_flags |= ssl.VERIFY_X509_STRICT
    else:
        context.verify_flags &= ~ssl.VERIFY_X509_STRICT
    return {"context": context}


class ConnectionManager:
    """
    Owns the single websocket and its lifecycle state.

    The physical connection lives in a one-item slot. A call checks it out,
    does its write and read, and checks it back in only after a full frame
    was read. Anything that makes the connection untrustworthy discards it
    instead, and the next call starts again from DISCONNECTED.
    """

    def __init__(self, config: TrueNasConfig,
                 connect: Optional[Callable[..., Any]] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Args:
            config: TrueNAS connection settings
            connect: Factory returning a websocket-like object with send(),
                recv_data() and close(); defaults to websocket.create_connection
            sleep: Used for the post-handshake delay
        """
        self.config = config
        self._connect = connect or websocket.create_connection
        self._sleep = sleep
        self._lock = threading.Lock()
        self._slot = None
        self._state = ConnectionState.DISCONNECTED
        self._ids = itertools.count(1)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def url(self) -> str:
        scheme = "wss" if self.config.use_tls else "ws"
        return f"{scheme}://{self.config.host}{WEBSOCKET_PATH}"

    def _next_id(self) -> str:
        return str(next(self._ids))

    def ensure_ready(self) -> None:
        """
        Make sure an authenticated connection exists. Safe to call repeatedly.

        Raises:
            TransportError: Socket could not be opened or used
            ProtocolError: Authentication reply was not a valid frame
            AuthError: API key rejected
        """
        with self._lock:
            self._ensure_ready()

    def execute(self, method: str, params: Any = None,
                parser: Optional[Callable[[Any], Any]] = None) -> Any:
        """
        Run one method call on the shared connection.

        Args:
            method: Middleware method name
            params: Optional parameters (sent as-is)
            parser: Optional callable turning the raw result into the caller's type

        Returns:
            The raw result, or parser(result)

        Raises:
            TransportError: Write or read failed (ConnectionClosed on end of stream)
            ProtocolError: Response frame was invalid
            AuthError: Connection could not be authenticated
            ApiError: Remote reported an error for this call
            DecodeError: parser rejected the result
        """
        with self._lock:
            self._ensure_ready()
            ws = self._checkout()

            request = PendingRequest(self._next_id(), method, params)
            LOG.debug(f"Sending request {request.id}: {method}")
            try:
                self._send(ws, request.to_frame())
                opcode, data = self._recv(ws)
            except TransportError:
                self._discard(ws)
                raise

            self._checkin(ws)
            response = self._decode_response(opcode, data, method)

            if response.id != request.id:
                LOG.warning(f"Response id {response.id!r} does not match request id {request.id!r} for {method}")

            if response.error is not None:
                reason = response.error.reason or "Unknown error"
                if SESSION_EXPIRED_SENTINEL in reason:
                    LOG.warning("Session expired, will re-authenticate on next request")
                    self._invalidate()
                raise ApiError(reason, code=response.error.code, errname=response.error.errname)

        LOG.debug(f"{method} response received")
        if parser is None:
            return response.result
        try:
            return parser(response.result)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DecodeError(f"Unexpected {method} result: {e}") from e

    def close(self) -> None:
        with self._lock:
            if self._slot is not None:
                self._discard(self._slot)
                LOG.info("WebSocket connection closed")

    def _ensure_ready(self) -> None:
        if self._state is ConnectionState.READY and self._slot is not None:
            return

        if self._slot is None:
            self._state = ConnectionState.DISCONNECTED
            self._open()

        LOG.info("Authenticating with TrueNAS...")
        self._authenticate()
        LOG.info("Successfully authenticated to TrueNAS")

    def _open(self) -> None:
        url = self.url
        LOG.info(f"Establishing WebSocket connection to {url}")
        kwargs = {}
        if self.config.use_tls:
            kwargs['sslopt'] = build_sslopt(self.config.tls_validation, self.config.tls_ca)

        try:
            ws = self._connect(url, **kwargs)
        except (websocket.WebSocketException, OSError) as e:
            raise TransportError(f"Failed to connect to {url}: {e}") from e

        self._slot = ws
        self._state = ConnectionState.ESTABLISHED

    def _authenticate(self) -> None:
        ws = self._slot
        self._state = ConnectionState.AUTHENTICATING
        try:
            self._send(ws, encode_handshake())
            self._log_handshake(*self._recv(ws))

            if self.config.auth_delay_seconds > 0:
                self._sleep(self.config.auth_delay_seconds)

            api_key = self.config.api_key.get_secret_value().strip()
            request = PendingRequest(self._next_id(), AUTH_METHOD, [api_key])
            LOG.debug("Sending auth request")
            self._send(ws, request.to_frame())
            response = decode_frame(*self._recv(ws))
        except ExporterError as e:
            LOG.warning(f"Authentication failed, dropping connection: {e}")
            self._discard(ws)
            raise

        error = self._check_auth_response(response)
        if error is not None:
            LOG.warning(f"Authentication failed, dropping connection: {error}")
            self._discard(ws)
            raise error

        self._state = ConnectionState.READY

    @staticmethod
    def _check_auth_response(response) -> Optional[AuthError]:
        if not isinstance(response, RpcResult):
            return AuthError("Authentication failed: unexpected handshake frame")
        if response.error is not None:
            return AuthError(f"Authentication failed: {response.error.reason or 'Unknown error'}")
        if response.result is True:
            return None
        if response.result is False:
            return AuthError("Authentication failed: API key rejected by TrueNAS")
        return AuthError(f"Authentication failed: unexpected result {response.result!r}")

    def _log_handshake(self, opcode: int, data) -> None:
        try:
            ack = decode_frame(opcode, data)
        except ProtocolError:
            LOG.debug(f"Received raw DDP response: {data!r}")
            return
        if isinstance(ack, HandshakeAck):
            LOG.debug(f"DDP connect response: {ack.msg} (session {ack.session})")
        else:
            LOG.debug(f"DDP connect response: {ack}")

    def _decode_response(self, opcode: int, data, method: str) -> RpcResult:
        try:
            response = decode_frame(opcode, data)
        except ProtocolError:
            self._invalidate()
            raise
        if not isinstance(response, RpcResult):
            self._invalidate()
            raise ProtocolError(f"Unexpected handshake frame in reply to {method}")
        return response

    def _checkout(self):
        ws, self._slot = self._slot, None
        return ws

    def _checkin(self, ws) -> None:
        self._slot = ws

    def _invalidate(self) -> None:
        if self._slot is not None:
            self._discard(self._slot)
        else:
            self._state = ConnectionState.DISCONNECTED

    def _discard(self, ws) -> None:
        if self._slot is ws:
            self._slot = None
        self._state = ConnectionState.DISCONNECTED
        try:
            ws.close()
        except (websocket.WebSocketException, OSError) as e:
            LOG.debug(f"Ignoring error while closing websocket: {e}")

    @staticmethod
    def _send(ws, frame: str) -> None:
        try:
            ws.send(frame)
        except (websocket.WebSocketException, OSError) as e:
            raise TransportError(f"Failed to send frame: {e}") from e

    @staticmethod
    def _recv(ws) -> Tuple[int, Any]:
        try:
            opcode, data = ws.recv_data()
        except websocket.WebSocketConnectionClosedException as e:
            raise ConnectionClosed("Connection closed by server") from e
        except (websocket.WebSocketException, OSError) as e:
            raise TransportError(f"Failed to read frame: {e}") from e

        if opcode == ABNF.OPCODE_CLOSE:
            raise ConnectionClosed("Connection closed by server")
        return opcode, data

# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
Exception hierarchy for the TrueNAS exporter.

Which errors invalidate the shared connection:
- TransportError / ConnectionClosed: always
- ProtocolError (incl. FrameDecodeError): always
- AuthError: always
- ApiError: only when the reason carries the session expiry sentinel
- DecodeError: never
"""

from typing import Optional


class ExporterError(Exception):
    """Base class for all exporter errors."""


class ConfigError(ExporterError):
    """Configuration could not be loaded or failed validation."""


class TransportError(ExporterError):
    """Socket open, write or read failed."""


class ConnectionClosed(TransportError):
    """The remote side closed the stream while a response was expected."""


class ProtocolError(ExporterError):
    """Frame was not a valid response (binary, malformed, or missing result and error)."""


class DecodeError(ExporterError):
    """A payload did not match the expected shape."""


class FrameDecodeError(ProtocolError, DecodeError):
    """Inbound frame is not valid JSON text, or lacks both result and error."""


class AuthError(ExporterError):
    """The API key was rejected, or authentication returned an error envelope."""


class ApiError(ExporterError):
    """Remote-reported error on a method call."""

    def __init__(self, reason: str, code: Optional[int] = None, errname: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.code = code
        self.errname = errname

    def __str__(self):
        if self.errname:
            return f"{self.errname}: {self.reason}"
        return self.reason

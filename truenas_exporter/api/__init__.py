"""
TrueNAS middleware websocket API: wire codec, connection lifecycle, typed client.

Modules:
- protocol.py: frame encoding and decoding
- connection.py: single shared connection, handshake, auth, serialized calls
- models.py: typed response records
- client.py: TrueNasClient, one method per middleware call
"""

from truenas_exporter.api.client import TrueNasClient
from truenas_exporter.api.connection import ConnectionManager, ConnectionState

__all__ = ["TrueNasClient", "ConnectionManager", "ConnectionState"]

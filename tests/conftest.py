"""
Shared fixtures: a scripted in-memory websocket and a fake API client.
"""

import json
import threading
from collections import deque

import pytest
from websocket import ABNF, WebSocketConnectionClosedException

from truenas_exporter.api.connection import AUTH_METHOD, ConnectionManager
from truenas_exporter.api.models import (
    Alert,
    AppInfo,
    CloudSyncTask,
    Dataset,
    DiskInfo,
    NetworkInterface,
    NfsShare,
    Pool,
    SeriesDescriptor,
    SeriesSample,
    ServiceInfo,
    SmartTestDisk,
    SmbShare,
    SnapshotTask,
    SystemInfo,
)
from truenas_exporter.config import ExporterConfig, MetricsConfig, TrueNasConfig
from truenas_exporter.metrics import MetricsCollector


class FakeWebSocket:
    """
    Answers frames the way the TrueNAS middleware does.

    - "connect" gets a "connected" reply
    - the auth call gets auth_result
    - other methods get results[method], or an error if listed in errors
    - script(method, reply) queues a one-off reply for the next call of that
      method: a dict payload, an (opcode, data) tuple, or an exception raised
      from recv_data()
    - block(method) makes recv_data() wait for the returned event before
      answering that method
    """

    def __init__(self, results=None, errors=None, auth_result=True):
        self.results = results or {}
        self.errors = errors or {}
        self.auth_result = auth_result
        self.sent = []
        self.closed = False
        self.send_error = None
        self._scripted = {}
        self._gates = {}
        self._replies = deque()

    def script(self, method, reply):
        self._scripted.setdefault(method, deque()).append(reply)

    def block(self, method):
        gate = threading.Event()
        self._gates[method] = gate
        return gate

    @property
    def methods(self):
        return [frame.get('method') for frame in self.sent if frame.get('msg') == 'method']

    def send(self, frame):
        if self.closed:
            raise WebSocketConnectionClosedException("socket is already closed.")
        if self.send_error is not None:
            raise self.send_error
        message = json.loads(frame)
        self.sent.append(message)
        self._replies.append((message.get('method'), self._reply_for(message)))

    def _reply_for(self, message):
        if message['msg'] == 'connect':
            return {"msg": "connected", "session": "fake-session"}

        method = message['method']
        queued = self._scripted.get(method)
        if queued:
            reply = queued.popleft()
            if isinstance(reply, dict) and 'msg' in reply and 'id' not in reply:
                reply = dict(reply, id=message['id'])
            return reply

        if method in self.errors:
            return {"id": message['id'], "msg": "result",
                    "error": {"error": 13, "errname": "EFAULT", "reason": self.errors[method]}}
        if method == AUTH_METHOD:
            return {"id": message['id'], "msg": "result", "result": self.auth_result}
        return {"id": message['id'], "msg": "result", "result": self.results.get(method)}

    def recv_data(self):
        if not self._replies:
            raise WebSocketConnectionClosedException("Connection to remote host was lost.")
        method, reply = self._replies.popleft()
        gate = self._gates.get(method)
        if gate is not None:
            gate.wait(5)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, tuple):
            return reply
        return ABNF.OPCODE_TEXT, json.dumps(reply)

    def close(self):
        self.closed = True


class FakeConnector:
    """Stands in for websocket.create_connection, one FakeWebSocket per call."""

    def __init__(self, **ws_kwargs):
        self.ws_kwargs = ws_kwargs
        self.calls = []
        self.sockets = []
        self.error = None
        self.scripted = []      # (method, reply) queued on every new socket

    def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        ws = FakeWebSocket(**self.ws_kwargs)
        for method, reply in self.scripted:
            ws.script(method, reply)
        self.sockets.append(ws)
        return ws

    @property
    def socket(self):
        return self.sockets[-1]


class FakeClient:
    """
    Stand-in for TrueNasClient. Every query_* method (and discover_series)
    returns responses[name]; an exception instance is raised instead.
    """

    def __init__(self, **responses):
        self.responses = responses
        self.calls = []
        self.batch_specs = None
        self.closed = False

    def _respond(self, name):
        self.calls.append(name)
        value = self.responses.get(name, [])
        if isinstance(value, Exception):
            raise value
        return value

    def query_batch(self, specs, start=None):
        self.batch_specs = list(specs)
        return self._respond('query_batch')

    def __getattr__(self, name):
        if name.startswith('query_') or name == 'discover_series':
            return lambda: self._respond(name)
        raise AttributeError(name)

    def close(self):
        self.closed = True


# --- sample middleware payloads ---

POOL = {
    "name": "tank",
    "status": "ONLINE",
    "healthy": True,
    "size": 1000,
    "allocated": 400,
    "free": 600,
    "scan": {"function": "SCRUB", "state": "FINISHED", "errors": 2,
             "end_time": {"$date": 1700000000000}},
    "topology": {"data": [{
        "name": "mirror-0",
        "type": "MIRROR",
        "stats": {"read_errors": 0, "write_errors": 0, "checksum_errors": 0},
        "children": [
            {"name": "sda1", "type": "DISK", "disk": "sda",
             "stats": {"read_errors": 1, "write_errors": 2, "checksum_errors": 3}, "children": []},
            {"name": "sdb1", "type": "DISK", "disk": "sdb",
             "stats": {"read_errors": 0, "write_errors": 0, "checksum_errors": 5}, "children": []},
        ],
    }]},
}

DATASET = {
    "name": "tank/media",
    "encrypted": True,
    "used": {"parsed": 1234, "rawvalue": "1234"},
    "available": {"parsed": 5678, "rawvalue": "5678"},
    "compressratio": {"parsed": "1.52", "rawvalue": "1.52"},
}

SYSTEM_INFO = {
    "version": "TrueNAS-SCALE-24.10",
    "hostname": "nas",
    "uptime_seconds": 3600.5,
    "loadavg": [0.5, 0.25, 0.125],
    "physmem": 16000000000,
}


@pytest.fixture
def truenas_config():
    return TrueNasConfig(host="nas.local", api_key="secret-key", auth_delay_seconds=0)


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def manager(truenas_config, connector, sleeps):
    return ConnectionManager(truenas_config, connect=connector, sleep=sleeps.append)


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def exporter_config(truenas_config):
    return ExporterConfig(truenas=truenas_config, metrics=MetricsConfig(scrape_interval_seconds=1))


@pytest.fixture
def fake_client():
    return FakeClient(
        query_pools=[Pool.from_api_response(POOL)],
        query_datasets=[Dataset.from_api_response(DATASET)],
        query_smb_shares=[SmbShare(name="media", path="/mnt/tank/media", enabled=True)],
        query_nfs_shares=[NfsShare(path="/mnt/tank/backup", enabled=False)],
        query_cloud_sync_tasks=[CloudSyncTask(id=1, description="offsite", enabled=True,
                                              job_state="RUNNING", progress_percent=42.0)],
        query_snapshot_tasks=[SnapshotTask(dataset="tank/media", enabled=True, state="FINISHED")],
        query_alerts=[Alert(uuid="a1", level="WARNING", formatted="Pool is 80% full")],
        query_system_info=SystemInfo.from_api_response(SYSTEM_INFO),
        discover_series=[SeriesDescriptor(name="disk", identifiers=["sda"])],
        query_batch=[SeriesSample(name="memory", legend=["time", "available"], rows=[[1, 6000000000.0]])],
        query_disks=[DiskInfo(name="sda", serial="S1", model="WD Red", size=4000)],
        query_smart_tests=[SmartTestDisk.from_api_response({"name": "sda", "tests": []})],
        query_apps=[AppInfo(name="plex", state="RUNNING", update_available=True)],
        query_network_interfaces=[NetworkInterface(name="eth0", link_state="LINK_STATE_UP")],
        query_services=[ServiceInfo(service="ssh", state="STOPPED", enable=False)],
    )

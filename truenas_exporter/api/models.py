# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
Typed records for TrueNAS middleware responses.

Each record is built with from_api_response(data). Required keys are read with
data['key'] so a missing key surfaces as KeyError, which the connection layer
reports as DecodeError; everything else falls back to a default.
"""
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List


def _millis_to_seconds(value: Any) -> Optional[float]:
    """Middleware dates come as {"$date": <epoch millis>}."""
    if isinstance(value, dict):
        value = value.get('$date')
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value / 1000
    return None


def _parsed(value: Any) -> Any:
    """Dataset properties are wrapped as {"parsed": ..., "rawvalue": ...}."""
    if isinstance(value, dict):
        return value.get('parsed')
    return None


# --- reporting ---------------------------------------------------------------

@dataclass
class SeriesDescriptor:
    """One entry of reporting.graphs. identifiers=None marks a scalar family."""
    name: str
    title: str = ""
    vertical_label: str = ""
    identifiers: Optional[List[str]] = None

    @staticmethod
    def from_api_response(data: Dict) -> 'SeriesDescriptor':
        identifiers = data.get('identifiers')
        return SeriesDescriptor(
            name=data['name'],
            title=data.get('title') or "",
            vertical_label=data.get('vertical_label') or "",
            identifiers=[str(i) for i in identifiers] if identifiers is not None else None,
        )


@dataclass
class BatchQuerySpec:
    name: str
    identifier: Optional[str] = None

    def to_param(self) -> Dict[str, Any]:
        param = {"name": self.name}
        if self.identifier is not None:
            param["identifier"] = self.identifier
        return param


@dataclass
class SeriesSample:
    """One result set of reporting.get_data, rows aligned positionally to legend."""
    name: str
    identifier: Optional[str] = None
    legend: List[str] = field(default_factory=list)
    rows: List[List[Optional[float]]] = field(default_factory=list)
    start: int = 0
    end: int = 0

    @property
    def last_row(self) -> Optional[List[Optional[float]]]:
        return self.rows[-1] if self.rows else None

    @staticmethod
    def from_api_response(data: Dict) -> 'SeriesSample':
        return SeriesSample(
            name=data['name'],
            identifier=data.get('identifier'),
            legend=list(data['legend']),
            rows=[list(row) for row in data['data']],
            start=data.get('start') or 0,
            end=data.get('end') or 0,
        )


# --- pools and datasets ------------------------------------------------------

@dataclass
class PoolScan:
    function: Optional[str] = None
    state: Optional[str] = None
    errors: int = 0
    end_time: Optional[float] = None     # epoch seconds

    @staticmethod
    def from_api_response(data: Dict) -> 'PoolScan':
        return PoolScan(
            function=data.get('function'),
            state=data.get('state'),
            errors=data.get('errors') or 0,
            end_time=_millis_to_seconds(data.get('end_time')),
        )


@dataclass
class VDevStats:
    read_errors: int = 0
    write_errors: int = 0
    checksum_errors: int = 0

    @staticmethod
    def from_api_response(data: Dict) -> 'VDevStats':
        return VDevStats(
            read_errors=data.get('read_errors') or 0,
            write_errors=data.get('write_errors') or 0,
            checksum_errors=data.get('checksum_errors') or 0,
        )


@dataclass
class VDev:
    name: str
    type: Optional[str] = None
    disk: Optional[str] = None
    device: Optional[str] = None
    stats: Optional[VDevStats] = None
    children: List['VDev'] = field(default_factory=list)

    @property
    def label(self) -> str:
        return self.disk or self.device or self.name

    @staticmethod
    def _from_node(data: Dict) -> 'VDev':
        stats = data.get('stats')
        return VDev(
            name=data['name'],
            type=data.get('type'),
            disk=data.get('disk'),
            device=data.get('device'),
            stats=VDevStats.from_api_response(stats) if stats else None,
        )

    @staticmethod
    def from_api_response(data: Dict) -> 'VDev':
        """Build the whole subtree with an explicit stack; topology depth is unbounded."""
        root = VDev._from_node(data)
        stack = [(root, data)]
        while stack:
            vdev, node = stack.pop()
            for child_data in node.get('children') or []:
                child = VDev._from_node(child_data)
                vdev.children.append(child)
                stack.append((child, child_data))
        return root


@dataclass
class Pool:
    name: str
    status: str
    healthy: bool
    size: int = 0
    allocated: int = 0
    free: int = 0
    scan: Optional[PoolScan] = None
    vdevs: List[VDev] = field(default_factory=list)

    @staticmethod
    def from_api_response(data: Dict) -> 'Pool':
        scan = data.get('scan')
        topology = data.get('topology') or {}
        return Pool(
            name=data['name'],
            status=data['status'],
            healthy=bool(data['healthy']),
            size=data.get('size') or 0,
            allocated=data.get('allocated') or 0,
            free=data.get('free') or 0,
            scan=PoolScan.from_api_response(scan) if scan else None,
            vdevs=[VDev.from_api_response(v) for v in topology.get('data') or []],
        )


@dataclass
class Dataset:
    name: str
    encrypted: bool = False
    used: Optional[int] = None
    available: Optional[int] = None
    compression_ratio: Optional[float] = None

    @property
    def pool(self) -> str:
        return self.name.split('/', 1)[0]

    @staticmethod
    def from_api_response(data: Dict) -> 'Dataset':
        ratio = _parsed(data.get('compressratio'))
        try:
            ratio = float(ratio) if ratio is not None else None
        except (TypeError, ValueError):
            ratio = None
        return Dataset(
            name=data['name'],
            encrypted=bool(data.get('encrypted', False)),
            used=_parsed(data.get('used')),
            available=_parsed(data.get('available')),
            compression_ratio=ratio,
        )


# --- shares and data protection ---------------------------------------------

@dataclass
class SmbShare:
    name: str
    path: str
    enabled: bool
    comment: str = ""

    @staticmethod
    def from_api_response(data: Dict) -> 'SmbShare':
        return SmbShare(
            name=data['name'],
            path=data['path'],
            enabled=bool(data['enabled']),
            comment=data.get('comment') or "",
        )


@dataclass
class NfsShare:
    path: str
    enabled: bool
    comment: str = ""

    @staticmethod
    def from_api_response(data: Dict) -> 'NfsShare':
        return NfsShare(
            path=data['path'],
            enabled=bool(data['enabled']),
            comment=data.get('comment') or "",
        )


@dataclass
class CloudSyncTask:
    id: int
    description: str
    enabled: bool
    job_state: Optional[str] = None
    progress_percent: Optional[float] = None

    @staticmethod
    def from_api_response(data: Dict) -> 'CloudSyncTask':
        job = data.get('job') or {}
        progress = job.get('progress') or {}
        return CloudSyncTask(
            id=data['id'],
            description=data['description'],
            enabled=bool(data['enabled']),
            job_state=job.get('state'),
            progress_percent=progress.get('percent'),
        )


@dataclass
class SnapshotTask:
    dataset: str
    enabled: bool
    state: Optional[str] = None

    @staticmethod
    def from_api_response(data: Dict) -> 'SnapshotTask':
        state = data.get('state') or {}
        return SnapshotTask(
            dataset=data['dataset'],
            enabled=bool(data['enabled']),
            state=state.get('state'),
        )


@dataclass
class Alert:
    uuid: str
    level: str
    dismissed: bool = False
    formatted: str = ""

    @property
    def active(self) -> bool:
        return not self.dismissed

    @staticmethod
    def from_api_response(data: Dict) -> 'Alert':
        return Alert(
            uuid=data['uuid'],
            level=data['level'],
            dismissed=bool(data.get('dismissed', False)),
            formatted=data.get('formatted') or "",
        )


# --- system ------------------------------------------------------------------

@dataclass
class SystemInfo:
    version: str
    hostname: str
    uptime_seconds: float = 0.0
    loadavg: Optional[List[float]] = None
    physmem: Optional[int] = None

    @staticmethod
    def from_api_response(data: Dict) -> 'SystemInfo':
        return SystemInfo(
            version=data['version'],
            hostname=data['hostname'],
            uptime_seconds=float(data.get('uptime_seconds') or 0.0),
            loadavg=data.get('loadavg'),
            physmem=data.get('physmem'),
        )


@dataclass
class DiskInfo:
    name: str
    serial: str = ""
    model: str = ""
    size: int = 0

    @staticmethod
    def from_api_response(data: Dict) -> 'DiskInfo':
        return DiskInfo(
            name=data['name'],
            serial=data.get('serial') or "",
            model=data.get('model') or "",
            size=data.get('size') or 0,
        )


@dataclass
class SmartTestEntry:
    description: str
    status: str = ""
    lifetime: int = 0
    power_on_hours_ago: Optional[int] = None

    @staticmethod
    def from_api_response(data: Dict) -> 'SmartTestEntry':
        return SmartTestEntry(
            description=data.get('description') or "",
            status=data.get('status') or "",
            lifetime=data.get('lifetime') or 0,
            power_on_hours_ago=data.get('power_on_hours_ago'),
        )


@dataclass
class SmartTestDisk:
    """smart.test.results entry: one disk with its self-test log."""
    name: str
    tests: List[SmartTestEntry] = field(default_factory=list)

    @staticmethod
    def from_api_response(data: Dict) -> 'SmartTestDisk':
        return SmartTestDisk(
            name=data.get('name') or data['disk'],
            tests=[SmartTestEntry.from_api_response(t) for t in data.get('tests') or []],
        )


@dataclass
class AppInfo:
    name: str
    state: str
    version: str = ""
    update_available: bool = False

    @property
    def running(self) -> bool:
        return self.state.upper() == "RUNNING"

    @staticmethod
    def from_api_response(data: Dict) -> 'AppInfo':
        return AppInfo(
            name=data['name'],
            state=data['state'],
            version=data.get('version') or "",
            update_available=bool(data.get('update_available', False)),
        )


@dataclass
class NetworkInterface:
    name: str
    link_state: str = ""

    @staticmethod
    def from_api_response(data: Dict) -> 'NetworkInterface':
        state = data.get('state') or {}
        return NetworkInterface(
            name=data['name'],
            link_state=state.get('link_state') or "",
        )


@dataclass
class ServiceInfo:
    service: str
    state: str
    enable: bool = False

    @property
    def running(self) -> bool:
        return self.state.upper() == "RUNNING"

    @staticmethod
    def from_api_response(data: Dict) -> 'ServiceInfo':
        return ServiceInfo(
            service=data['service'],
            state=data['state'],
            enable=bool(data.get('enable', False)),
        )

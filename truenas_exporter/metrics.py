# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
Prometheus metric definitions for the TrueNAS exporter.
"""

import logging
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Gauge, generate_latest

LOG = logging.getLogger(__name__)

NAMESPACE = "truenas"

# key -> (help text, label names); full metric name is truenas_<key>
METRIC_DEFINITIONS = {
    'up': ("Whether the last collection reached TrueNAS (1=up, 0=down)", []),

    # Pools
    'pool_health': ("Pool health status (1=healthy, 0=unhealthy)", ['pool', 'status']),
    'pool_capacity_bytes': ("Total storage capacity of the ZFS pool", ['pool']),
    'pool_allocated_bytes': ("Used storage capacity of the ZFS pool", ['pool']),
    'pool_free_bytes': ("Free storage capacity of the ZFS pool", ['pool']),
    'pool_scrub_errors': ("Number of errors found during last ZFS scrub", ['pool']),
    'pool_last_scrub_seconds': ("Timestamp of the last ZFS scrub", ['pool']),
    'pool_vdev_error_count': ("ZFS vdev error counts (read/write/checksum)", ['pool', 'vdev', 'type']),

    # Datasets
    'dataset_used_bytes': ("Used bytes of the dataset", ['dataset', 'pool']),
    'dataset_available_bytes': ("Available bytes for the dataset", ['dataset', 'pool']),
    'dataset_compression_ratio': ("Compression ratio of the dataset", ['dataset', 'pool']),
    'dataset_encrypted': ("Encryption status (1=encrypted, 0=unencrypted)", ['dataset', 'pool']),

    # Shares and data protection
    'share_smb_enabled': ("SMB share status (1=enabled, 0=disabled)", ['name', 'path']),
    'share_nfs_enabled': ("NFS share status (1=enabled, 0=disabled)", ['path']),
    'cloud_sync_status': ("Cloud sync task status (1=active)", ['description', 'state']),
    'cloud_sync_progress_percent': ("Cloud sync progress percentage", ['description']),
    'snapshot_task_status': ("Snapshot task status (1=active)", ['dataset', 'state']),

    # Alerts
    'alert_count': ("Number of system alerts by severity and status", ['level', 'active']),
    'alert_info': ("Detailed alert information (value is always 1)", ['level', 'message', 'uuid', 'active']),

    # Disks
    'disk_info': ("Disk information (value is always 1)", ['disk', 'serial', 'model', 'size']),
    'smart_test_status': ("SMART test status (0=success, 1=failed)", ['disk', 'test_type']),
    'smart_test_lifetime_hours': ("Disk lifetime hours when the last SMART test was run", ['disk', 'test_type']),
    'smart_test_timestamp_seconds': ("Unix timestamp when the last SMART test was run", ['disk', 'test_type']),
    'disk_power_on_hours': ("Total power-on hours for the disk", ['disk']),

    # Apps, interfaces, services
    'app_status': ("Application status (0=stopped, 1=running)", ['app']),
    'app_update_available': ("Application update available (0=no, 1=yes)", ['app']),
    'network_interface_info': ("Network interface information (value is always 1)", ['interface', 'link_state']),
    'service_status': ("Service status (0=stopped, 1=running)", ['service']),

    # System
    'system_info': ("TrueNAS system information (value is always 1)", ['hostname', 'version']),
    'system_uptime_seconds': ("System uptime in seconds", []),
    'system_memory_total_bytes': ("Total system memory in bytes", []),
    'system_load_average': ("System load average", ['period']),

    # Reporting
    'system_cpu_usage_percent': ("System CPU usage percentage by mode", ['mode']),
    'system_cpu_temperature_celsius': ("System CPU temperature in Celsius", ['cpu']),
    'system_memory_bytes': ("System memory usage in bytes by state", ['state']),
    'system_memory_used_bytes': ("System memory used in bytes (total - available)", []),
    'disk_temperature_celsius': ("Current temperature of the disk in Celsius", ['device']),
    'disk_read_bytes_per_second': ("Disk read rate in bytes per second", ['device']),
    'disk_write_bytes_per_second': ("Disk write rate in bytes per second", ['device']),
    'network_receive_bytes_per_second': ("Network receive rate in bytes per second", ['interface']),
    'network_transmit_bytes_per_second': ("Network transmit rate in bytes per second", ['interface']),
}


class MetricsCollector:
    """
    Holds every exporter gauge in a dedicated registry.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Args:
            registry: Registry to register gauges in; a fresh one by default
                so that several collectors (e.g. in tests) never clash
        """
        self.registry = registry or CollectorRegistry()
        self.gauges = self._initialize_metrics()
        LOG.debug(f"Registered {len(self.gauges)} metrics")

    def _initialize_metrics(self) -> Dict[str, Gauge]:
        gauges = {}
        for key, (description, labels) in METRIC_DEFINITIONS.items():
            gauges[key] = Gauge(f"{NAMESPACE}_{key}", description, labels, registry=self.registry)
        return gauges

    def set_gauge(self, key: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        gauge = self.gauges[key]
        if labels:
            gauge.labels(**{k: str(v) for k, v in labels.items()}).set(value)
        else:
            gauge.set(value)

    def set_bool(self, key: str, flag: bool, labels: Optional[Dict[str, str]] = None) -> None:
        self.set_gauge(key, 1 if flag else 0, labels)

    def reset(self, key: str) -> None:
        """Drop every label set of a gauge so stale series disappear."""
        self.gauges[key].clear()

    def get_value(self, key: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        return self.registry.get_sample_value(f"{NAMESPACE}_{key}", labels or {})

    def set_up(self, up: bool) -> None:
        self.set_bool('up', up)

    def is_up(self) -> bool:
        return (self.get_value('up') or 0) > 0

    def render(self) -> bytes:
        return generate_latest(self.registry)

# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
TrueNAS middleware API client.

Thin typed layer over ConnectionManager.execute(): one method per middleware
call used by the collectors, plus the reporting pair discover_series() and
query_batch().
"""

import logging
import time
from typing import Any, Callable, List, Optional, Sequence

from truenas_exporter.api.connection import ConnectionManager
from truenas_exporter.api.models import (
    Alert,
    AppInfo,
    BatchQuerySpec,
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
from truenas_exporter.config import TrueNasConfig

LOG = logging.getLogger(__name__)

# How far back reporting.get_data looks when no start is given
DEFAULT_REPORTING_WINDOW_SECONDS = 300

DATASET_FIELDS = ["name", "used", "available", "compressratio", "encrypted"]


def _list_of(model) -> Callable[[Any], List[Any]]:
    def parse(result):
        if not isinstance(result, list):
            raise TypeError(f"expected a list, got {type(result).__name__}")
        return [model.from_api_response(item) for item in result]
    return parse


def _series_samples(result) -> List[SeriesSample]:
    """
    Parse reporting.get_data result sets one by one. A malformed result set is
    logged and dropped; the others are kept.
    """
    if not isinstance(result, list):
        raise TypeError(f"expected a list, got {type(result).__name__}")

    samples = []
    for position, item in enumerate(result):
        try:
            samples.append(SeriesSample.from_api_response(item))
        except (KeyError, TypeError, ValueError) as e:
            LOG.warning(f"Skipping malformed reporting result set #{position}: {e!r}")
    return samples


class TrueNasClient:
    """
    Client for the TrueNAS websocket API.

    Safe to share between threads; calls are serialized on the single
    underlying connection.
    """

    def __init__(self, config: TrueNasConfig, connection: Optional[ConnectionManager] = None):
        self.config = config
        self.connection = connection or ConnectionManager(config)

    def execute(self, method: str, params: Any = None, parser: Optional[Callable[[Any], Any]] = None) -> Any:
        return self.connection.execute(method, params, parser)

    def close(self) -> None:
        self.connection.close()

    # --- reporting ---

    def discover_series(self) -> List[SeriesDescriptor]:
        return self.execute("reporting.graphs", [], _list_of(SeriesDescriptor))

    def query_batch(self, specs: Sequence[BatchQuerySpec], start: Optional[int] = None) -> List[SeriesSample]:
        """
        Request many series in one reporting.get_data call.

        Args:
            specs: Series to query, in order
            start: Window start as unix seconds; defaults to now minus 300 seconds

        Returns:
            One SeriesSample per returned result set (order follows the remote)
        """
        if start is None:
            start = int(time.time()) - DEFAULT_REPORTING_WINDOW_SECONDS
        params = [[spec.to_param() for spec in specs], {"start": start}]
        LOG.debug(f"Querying {len(specs)} reporting series from {start}")
        return self.execute("reporting.get_data", params, _series_samples)

    # --- flat queries ---

    def query_pools(self) -> List[Pool]:
        return self.execute("pool.query", None, _list_of(Pool))

    def query_datasets(self) -> List[Dataset]:
        params = [[], {"select": DATASET_FIELDS}]
        return self.execute("pool.dataset.query", params, _list_of(Dataset))

    def query_smb_shares(self) -> List[SmbShare]:
        return self.execute("sharing.smb.query", [], _list_of(SmbShare))

    def query_nfs_shares(self) -> List[NfsShare]:
        return self.execute("sharing.nfs.query", [], _list_of(NfsShare))

    def query_cloud_sync_tasks(self) -> List[CloudSyncTask]:
        return self.execute("cloudsync.query", [], _list_of(CloudSyncTask))

    def query_snapshot_tasks(self) -> List[SnapshotTask]:
        return self.execute("pool.snapshottask.query", [], _list_of(SnapshotTask))

    def query_alerts(self) -> List[Alert]:
        return self.execute("alert.list", [], _list_of(Alert))

    def query_system_info(self) -> SystemInfo:
        return self.execute("system.info", None, SystemInfo.from_api_response)

    def query_disks(self) -> List[DiskInfo]:
        return self.execute("disk.query", [], _list_of(DiskInfo))

    def query_smart_tests(self) -> List[SmartTestDisk]:
        return self.execute("smart.test.results", [], _list_of(SmartTestDisk))

    def query_apps(self) -> List[AppInfo]:
        return self.execute("app.query", [], _list_of(AppInfo))

    def query_network_interfaces(self) -> List[NetworkInterface]:
        return self.execute("interface.query", [], _list_of(NetworkInterface))

    def query_services(self) -> List[ServiceInfo]:
        return self.execute("service.query", [], _list_of(ServiceInfo))

# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
Collection cycle and scheduler loop.
"""

import concurrent.futures
import logging
import threading
import time
from typing import Callable, List, Optional, Tuple

from truenas_exporter.collectors import CollectionContext, CollectionStatus
from truenas_exporter.collectors.alert import collect_alert_metrics
from truenas_exporter.collectors.app import collect_app_metrics
from truenas_exporter.collectors.data_protection import collect_cloud_sync_metrics, collect_snapshot_metrics
from truenas_exporter.collectors.dataset import collect_dataset_metrics
from truenas_exporter.collectors.disk import collect_disk_metrics, collect_smart_metrics
from truenas_exporter.collectors.network import collect_network_interface_metrics
from truenas_exporter.collectors.pool import collect_pool_metrics
from truenas_exporter.collectors.service import collect_service_metrics
from truenas_exporter.collectors.share import collect_share_metrics
from truenas_exporter.collectors.system_info import collect_system_info_metrics
from truenas_exporter.collectors.system_reporting import collect_system_reporting_metrics
from truenas_exporter.config import ExporterConfig
from truenas_exporter.metrics import MetricsCollector

LOG = logging.getLogger(__name__)

Collector = Callable[[CollectionContext], CollectionStatus]


class Exporter:
    """
    Runs the collectors against one TrueNAS client and tracks overall health.
    """

    def __init__(self, config: ExporterConfig, client, metrics: Optional[MetricsCollector] = None):
        """
        Args:
            config: Exporter configuration
            client: TrueNasClient (or a stand-in with the same query methods)
            metrics: Metric registry wrapper; a new one by default
        """
        self.config = config
        self.client = client
        self.metrics = metrics or MetricsCollector()
        self.context = CollectionContext(client=client, metrics=self.metrics, config=config.metrics)

    def collector_groups(self) -> List[Tuple[str, List[Collector]]]:
        """
        Collectors for one cycle, in order.

        Collectors within a group always run sequentially. System info and
        reporting share a group because the used memory value computed by the
        reporting collector needs the total memory set by system info.
        """
        metrics_config = self.config.metrics
        groups = []
        if metrics_config.collect_pool_metrics:
            groups.append(("pools", [collect_pool_metrics, collect_dataset_metrics]))
        groups.append(("shares", [collect_share_metrics]))
        groups.append(("data protection", [collect_cloud_sync_metrics, collect_snapshot_metrics]))
        groups.append(("alerts", [collect_alert_metrics]))
        if metrics_config.collect_system_metrics:
            groups.append(("system", [collect_system_info_metrics, collect_system_reporting_metrics]))
        groups.append(("disks", [collect_disk_metrics, collect_smart_metrics]))
        groups.append(("applications", [collect_app_metrics]))
        groups.append(("network", [collect_network_interface_metrics]))
        groups.append(("services", [collect_service_metrics]))
        return groups

    def _run_group(self, collectors: List[Collector]) -> List[CollectionStatus]:
        statuses = []
        for collector in collectors:
            try:
                statuses.append(collector(self.context))
            except Exception as e:
                LOG.error(f"Collector {collector.__name__} failed: {e}", exc_info=True)
                statuses.append(CollectionStatus.FAILED)
        return statuses

    def collect_once(self, executor: Optional[concurrent.futures.Executor] = None) -> bool:
        """
        Run one collection cycle and update truenas_up.

        Args:
            executor: Optional thread pool; groups are submitted to it and still
                serialized on the single connection

        Returns:
            True if at least one collector succeeded
        """
        LOG.info("Collecting metrics from TrueNAS")
        groups = self.collector_groups()

        statuses = []
        if executor is None:
            for _, collectors in groups:
                statuses.extend(self._run_group(collectors))
        else:
            futures = {name: executor.submit(self._run_group, collectors) for name, collectors in groups}
            for name, future in futures.items():
                group_statuses = future.result()
                LOG.debug(f"Collector group {name}: {[s.value for s in group_statuses]}")
                statuses.extend(group_statuses)

        up = CollectionStatus.SUCCESS in statuses
        self.metrics.set_up(up)
        if not up:
            LOG.error("Failed to collect any metrics from TrueNAS - check authentication")
        return up

    def run(self, max_iterations: int = 0, stop_event: Optional[threading.Event] = None) -> int:
        """
        Collect every scrape_interval_seconds until stopped.

        Args:
            max_iterations: Number of cycles to run; 0 runs until stop_event is set
            stop_event: Set it to end the loop between cycles

        Returns:
            Number of completed cycles
        """
        stop_event = stop_event or threading.Event()
        interval = self.config.metrics.scrape_interval_seconds
        threads = self.config.metrics.threads
        executor = concurrent.futures.ThreadPoolExecutor(threads) if threads > 1 else None

        loop_iteration = 0
        try:
            while not stop_event.is_set():
                loop_iteration += 1
                LOG.info(f"Starting collection iteration {loop_iteration} of {max_iterations if max_iterations > 0 else 'unlimited'}")
                time_start = time.time()

                try:
                    self.collect_once(executor)
                except Exception as e:
                    LOG.error(f"Failed to collect metrics: {e}", exc_info=True)
                    self.metrics.set_up(False)

                elapsed = time.time() - time_start
                if elapsed >= interval:
                    LOG.warning(f"Collection took {elapsed:.2f}s but interval is {interval}s - consider increasing scrape_interval_seconds")
                else:
                    LOG.info(f"Collection completed in {elapsed:.2f}s")

                if max_iterations > 0 and loop_iteration >= max_iterations:
                    LOG.info(f"Completed final iteration ({max_iterations}). Exiting gracefully.")
                    break

                if elapsed < interval:
                    LOG.debug(f"Sleeping for {interval - elapsed:.2f} seconds until next collection")
                    stop_event.wait(interval - elapsed)
        finally:
            if executor is not None:
                executor.shutdown()
        return loop_iteration

    def close(self) -> None:
        self.client.close()

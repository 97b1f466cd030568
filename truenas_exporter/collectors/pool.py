# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
ZFS pool health, capacity, scrub information and vdev error counts.
"""

import logging
from typing import Iterator, List, Tuple

from truenas_exporter.api.models import Pool, VDev
from truenas_exporter.collectors import CollectionContext, CollectionStatus, collect_with_handler
from truenas_exporter.metrics import MetricsCollector

LOG = logging.getLogger(__name__)

VDEV_ERROR_TYPES = ('read', 'write', 'checksum')


def walk_vdevs(vdevs: List[VDev]) -> Iterator[VDev]:
    """
    Yield every vdev of a topology, parents before children, in document order.
    """
    stack = list(reversed(vdevs))
    while stack:
        vdev = stack.pop()
        yield vdev
        stack.extend(reversed(vdev.children))


def _vdev_errors(vdev: VDev) -> List[Tuple[str, int]]:
    stats = vdev.stats
    return list(zip(VDEV_ERROR_TYPES, (stats.read_errors, stats.write_errors, stats.checksum_errors)))


def _update_pool(metrics: MetricsCollector, pool: Pool) -> None:
    labels = {'pool': pool.name}
    metrics.set_bool('pool_health', pool.healthy, {'pool': pool.name, 'status': pool.status})
    metrics.set_gauge('pool_capacity_bytes', pool.size, labels)
    metrics.set_gauge('pool_allocated_bytes', pool.allocated, labels)
    metrics.set_gauge('pool_free_bytes', pool.free, labels)

    if pool.scan is not None:
        metrics.set_gauge('pool_scrub_errors', pool.scan.errors, labels)
        if pool.scan.end_time is not None:
            metrics.set_gauge('pool_last_scrub_seconds', int(pool.scan.end_time), labels)

    for vdev in walk_vdevs(pool.vdevs):
        if vdev.stats is None:
            continue
        for error_type, count in _vdev_errors(vdev):
            metrics.set_gauge('pool_vdev_error_count', count,
                              {'pool': pool.name, 'vdev': vdev.label, 'type': error_type})

    LOG.info(f"Updated metrics for pool: {pool.name} (status: {pool.status}, healthy: {pool.healthy})")


def collect_pool_metrics(ctx: CollectionContext) -> CollectionStatus:
    """
    Collect pool health, capacity, last scrub and vdev error counters.

    Args:
        ctx: Collection context

    Returns:
        CollectionStatus.SUCCESS or CollectionStatus.FAILED
    """
    def process(pools):
        for pool in pools:
            _update_pool(ctx.metrics, pool)

    return collect_with_handler("pools", ctx.client.query_pools, process)

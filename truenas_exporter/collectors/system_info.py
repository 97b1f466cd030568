# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

import logging

from truenas_exporter.collectors import CollectionContext, CollectionStatus
from truenas_exporter.errors import ExporterError

LOG = logging.getLogger(__name__)

LOAD_PERIODS = ('1m', '5m', '15m')


def collect_system_info_metrics(ctx: CollectionContext) -> CollectionStatus:
    """
    System identity, uptime, physical memory and load averages.

    Must run before the reporting collector in the same cycle: the used memory
    value derived there reads truenas_system_memory_total_bytes set here.

    Args:
        ctx: Collection context

    Returns:
        CollectionStatus.SUCCESS or CollectionStatus.FAILED
    """
    try:
        info = ctx.client.query_system_info()
    except ExporterError as e:
        LOG.warning(f"Failed to query system info: {e}")
        return CollectionStatus.FAILED

    ctx.metrics.reset('system_info')
    ctx.metrics.set_gauge('system_info', 1, {'hostname': info.hostname, 'version': info.version})
    ctx.metrics.set_gauge('system_uptime_seconds', info.uptime_seconds)

    if info.physmem is not None:
        ctx.metrics.set_gauge('system_memory_total_bytes', info.physmem)

    if info.loadavg and len(info.loadavg) >= len(LOAD_PERIODS):
        for period, value in zip(LOAD_PERIODS, info.loadavg):
            ctx.metrics.set_gauge('system_load_average', value, {'period': period})

    LOG.info(f"Updated system info: {info.hostname} ({info.version}) - uptime: {info.uptime_seconds:.0f}s")
    return CollectionStatus.SUCCESS

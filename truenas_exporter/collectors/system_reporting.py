# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
Reporting metrics: CPU usage and temperature, memory, disk temperature and
I/O rates, network traffic rates.

Two calls per cycle: reporting.graphs to discover which disks and interfaces
have series, then a single reporting.get_data batch for everything.
"""

import logging

from truenas_exporter.collectors import CollectionContext, CollectionStatus
from truenas_exporter.errors import ExporterError
from truenas_exporter.reporting import build_batch_queries, decode_samples

LOG = logging.getLogger(__name__)


def collect_system_reporting_metrics(ctx: CollectionContext) -> CollectionStatus:
    """
    Discover reporting series, query them in one batch and publish the most
    recent sample of each.

    Args:
        ctx: Collection context

    Returns:
        SUCCESS after a batch was decoded, SKIPPED when discovery found
        nothing to query, FAILED when either call failed
    """
    try:
        descriptors = ctx.client.discover_series()
    except ExporterError as e:
        LOG.warning(f"Failed to query reporting graphs: {e}")
        return CollectionStatus.FAILED

    specs = build_batch_queries(descriptors)
    if not specs:
        LOG.info("No reporting series available, skipping reporting data query")
        return CollectionStatus.SKIPPED

    try:
        samples = ctx.client.query_batch(specs)
    except ExporterError as e:
        LOG.warning(f"Failed to query reporting data: {e}")
        return CollectionStatus.FAILED

    total_memory = ctx.metrics.get_value('system_memory_total_bytes')
    for value in decode_samples(samples, total_memory):
        ctx.metrics.set_gauge(value.metric, value.value, value.labels)

    LOG.info(f"Updated reporting metrics from {len(samples)} series")
    return CollectionStatus.SUCCESS

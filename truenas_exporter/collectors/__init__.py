# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
Collectors package for the TrueNAS exporter.

Every collector takes a CollectionContext, queries one API family and updates
the matching gauges. Failures are logged and reported as
CollectionStatus.FAILED; they never abort the collection cycle.

Available collectors:
- pool.py: pool health, capacity, scrub and vdev errors
- dataset.py: dataset usage, compression, encryption
- share.py: SMB and NFS share state
- data_protection.py: cloud sync and snapshot tasks
- alert.py: alert counts and details
- system_info.py: hostname, version, uptime, memory, load
- system_reporting.py: reporting batch (CPU, memory, disk and network rates)
- disk.py: disk inventory and SMART results
- app.py: application state
- network.py: network interface link state
- service.py: service state
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from truenas_exporter.config import MetricsConfig
from truenas_exporter.errors import ExporterError
from truenas_exporter.metrics import MetricsCollector

LOG = logging.getLogger(__name__)


class CollectionStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"     # nothing to collect, neither success nor failure


@dataclass
class CollectionContext:
    client: Any             # TrueNasClient or anything with the same query methods
    metrics: MetricsCollector
    config: MetricsConfig


def collect_with_handler(name: str, query: Callable[[], Any], process: Callable[[Any], None]) -> CollectionStatus:
    """
    Run one query and feed its result to process().

    Args:
        name: Human-readable name of what is collected, for logging
        query: Zero-argument callable performing the API call
        process: Callable updating metrics from the query result

    Returns:
        SUCCESS when the query and processing worked, FAILED otherwise
    """
    try:
        data = query()
    except ExporterError as e:
        LOG.warning(f"Failed to query {name}: {e}")
        return CollectionStatus.FAILED

    try:
        process(data)
    except Exception as e:
        LOG.error(f"Failed to process {name}: {e}", exc_info=True)
        return CollectionStatus.FAILED

    LOG.info(f"Updated {name} metrics")
    return CollectionStatus.SUCCESS

# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
Disk inventory and SMART self-test results.
"""

import logging
import time
from typing import Dict, List

from truenas_exporter.api.models import SmartTestEntry
from truenas_exporter.collectors import CollectionContext, CollectionStatus, collect_with_handler

LOG = logging.getLogger(__name__)

# Upper-cased statuses reported as passing (0)
SMART_OK_STATUSES = ('SUCCESS', 'COMPLETED WITHOUT ERROR', 'RUNNING')


def collect_disk_metrics(ctx: CollectionContext) -> CollectionStatus:
    def process(disks):
        for disk in disks:
            ctx.metrics.set_gauge('disk_info', 1, {
                'disk': disk.name,
                'serial': disk.serial,
                'model': disk.model,
                'size': str(disk.size),
            })

    return collect_with_handler("disks", ctx.client.query_disks, process)


def latest_tests(tests: List[SmartTestEntry]) -> Dict[str, SmartTestEntry]:
    """
    Keep one test per description (the test type), the one with the highest lifetime.

    Args:
        tests: Self-test log of one disk

    Returns:
        Mapping of test type to its most recent test
    """
    latest = {}
    for test in tests:
        current = latest.get(test.description)
        if current is None or test.lifetime > current.lifetime:
            latest[test.description] = test
    return latest


def smart_status_value(status: str) -> int:
    return 0 if status.upper() in SMART_OK_STATUSES else 1


def collect_smart_metrics(ctx: CollectionContext) -> CollectionStatus:
    """
    SMART test status, lifetime hours and test timestamp per disk and test type,
    plus current power-on hours derived from the most recent test.
    """
    def process(disks):
        now = time.time()
        for disk in disks:
            for test_type, test in latest_tests(disk.tests).items():
                labels = {'disk': disk.name, 'test_type': test_type}
                status_value = smart_status_value(test.status)
                if status_value:
                    LOG.warning(f"SMART test failure/unknown status for disk {disk.name} ({test_type}): {test.status.upper()}")

                ctx.metrics.set_gauge('smart_test_status', status_value, labels)
                ctx.metrics.set_gauge('smart_test_lifetime_hours', test.lifetime, labels)

                if test.power_on_hours_ago is not None:
                    ctx.metrics.set_gauge('smart_test_timestamp_seconds', now - test.power_on_hours_ago * 3600, labels)
                    ctx.metrics.set_gauge('disk_power_on_hours', test.lifetime + test.power_on_hours_ago,
                                          {'disk': disk.name})

    return collect_with_handler("SMART tests", ctx.client.query_smart_tests, process)

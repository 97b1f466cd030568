# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

from collections import Counter

from truenas_exporter.collectors import CollectionContext, CollectionStatus, collect_with_handler

ALERT_LEVELS = ('CRITICAL', 'ERROR', 'WARNING', 'INFO')


def _flag(value: bool) -> str:
    return 'true' if value else 'false'


def collect_alert_metrics(ctx: CollectionContext) -> CollectionStatus:
    """
    Alert counts by level and active/dismissed state, plus one info series per alert.

    Counts for every known level are written each cycle, so a cleared alert
    brings its count back to 0.
    """
    def process(alerts):
        counts = Counter({(level, active): 0 for level in ALERT_LEVELS for active in (True, False)})
        ctx.metrics.reset('alert_info')

        for alert in alerts:
            counts[(alert.level, alert.active)] += 1
            ctx.metrics.set_gauge('alert_info', 1, {
                'level': alert.level,
                'message': alert.formatted,
                'uuid': alert.uuid,
                'active': _flag(alert.active),
            })

        for (level, active), count in counts.items():
            ctx.metrics.set_gauge('alert_count', count, {'level': level, 'active': _flag(active)})

    return collect_with_handler("alerts", ctx.client.query_alerts, process)

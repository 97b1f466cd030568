# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

from truenas_exporter.collectors import CollectionContext, CollectionStatus, collect_with_handler


def collect_app_metrics(ctx: CollectionContext) -> CollectionStatus:
    """Application running state and update availability."""
    def process(apps):
        for app in apps:
            ctx.metrics.set_bool('app_status', app.running, {'app': app.name})
            ctx.metrics.set_bool('app_update_available', app.update_available, {'app': app.name})

    return collect_with_handler("applications", ctx.client.query_apps, process)

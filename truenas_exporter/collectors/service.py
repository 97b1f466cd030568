# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

from truenas_exporter.collectors import CollectionContext, CollectionStatus, collect_with_handler


def collect_service_metrics(ctx: CollectionContext) -> CollectionStatus:
    """Service running state (SSH, NFS, SMB, ...)."""
    def process(services):
        for service in services:
            ctx.metrics.set_bool('service_status', service.running, {'service': service.service})

    return collect_with_handler("services", ctx.client.query_services, process)

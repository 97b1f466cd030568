# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

import logging

from truenas_exporter.collectors import CollectionContext, CollectionStatus
from truenas_exporter.errors import ExporterError

LOG = logging.getLogger(__name__)


def collect_share_metrics(ctx: CollectionContext) -> CollectionStatus:
    """
    SMB and NFS share enabled flags.

    Both share types are queried independently; the collector succeeds if
    either query does.
    """
    any_success = False

    try:
        for share in ctx.client.query_smb_shares():
            ctx.metrics.set_bool('share_smb_enabled', share.enabled, {'name': share.name, 'path': share.path})
        any_success = True
    except ExporterError as e:
        LOG.warning(f"Failed to query SMB shares: {e}")

    try:
        for share in ctx.client.query_nfs_shares():
            ctx.metrics.set_bool('share_nfs_enabled', share.enabled, {'path': share.path})
        any_success = True
    except ExporterError as e:
        LOG.warning(f"Failed to query NFS shares: {e}")

    if not any_success:
        return CollectionStatus.FAILED

    LOG.info("Updated share metrics")
    return CollectionStatus.SUCCESS

# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
Cloud sync and periodic snapshot task state.

Both gauges carry the task state as a label, so they are cleared before every
update; otherwise a task that moved from RUNNING to SUCCESS would keep both
series.
"""

from truenas_exporter.collectors import CollectionContext, CollectionStatus, collect_with_handler


def collect_cloud_sync_metrics(ctx: CollectionContext) -> CollectionStatus:
    def process(tasks):
        ctx.metrics.reset('cloud_sync_status')
        ctx.metrics.reset('cloud_sync_progress_percent')
        for task in tasks:
            if task.job_state is None:
                continue
            ctx.metrics.set_gauge('cloud_sync_status', 1,
                                  {'description': task.description, 'state': task.job_state})
            if task.progress_percent is not None:
                ctx.metrics.set_gauge('cloud_sync_progress_percent', task.progress_percent,
                                      {'description': task.description})

    return collect_with_handler("cloud sync tasks", ctx.client.query_cloud_sync_tasks, process)


def collect_snapshot_metrics(ctx: CollectionContext) -> CollectionStatus:
    def process(tasks):
        ctx.metrics.reset('snapshot_task_status')
        for task in tasks:
            if task.state is not None:
                ctx.metrics.set_gauge('snapshot_task_status', 1, {'dataset': task.dataset, 'state': task.state})

    return collect_with_handler("snapshot tasks", ctx.client.query_snapshot_tasks, process)

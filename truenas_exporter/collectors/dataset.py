# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

from truenas_exporter.collectors import CollectionContext, CollectionStatus, collect_with_handler


def collect_dataset_metrics(ctx: CollectionContext) -> CollectionStatus:
    """Dataset used/available bytes, compression ratio and encryption flag."""
    def process(datasets):
        for dataset in datasets:
            labels = {'dataset': dataset.name, 'pool': dataset.pool}
            if dataset.used is not None:
                ctx.metrics.set_gauge('dataset_used_bytes', dataset.used, labels)
            if dataset.available is not None:
                ctx.metrics.set_gauge('dataset_available_bytes', dataset.available, labels)
            if dataset.compression_ratio is not None:
                ctx.metrics.set_gauge('dataset_compression_ratio', dataset.compression_ratio, labels)
            ctx.metrics.set_bool('dataset_encrypted', dataset.encrypted, labels)

    return collect_with_handler("datasets", ctx.client.query_datasets, process)

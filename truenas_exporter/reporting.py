# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
Reporting batch builder and legend decoder.

build_batch_queries() turns reporting.graphs output into the query list for a
single reporting.get_data call. decode_samples() maps each returned result set
to metric values using its legend; it does not touch the registry, the caller
applies the returned ReportingValue records.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from truenas_exporter.api.models import BatchQuerySpec, SeriesDescriptor, SeriesSample

LOG = logging.getLogger(__name__)

# Always requested, one query each
SCALAR_SERIES = ("cpu", "cputemp", "memory")
# One query per identifier reported by discovery
PER_DEVICE_SERIES = ("disktemp", "disk", "interface")

UNKNOWN_DEVICE = "unknown"

# Metric keys, see MetricsCollector
CPU_USAGE = "system_cpu_usage_percent"
CPU_TEMPERATURE = "system_cpu_temperature_celsius"
MEMORY = "system_memory_bytes"
MEMORY_USED = "system_memory_used_bytes"
DISK_TEMPERATURE = "disk_temperature_celsius"
DISK_READ = "disk_read_bytes_per_second"
DISK_WRITE = "disk_write_bytes_per_second"
NETWORK_RECEIVE = "network_receive_bytes_per_second"
NETWORK_TRANSMIT = "network_transmit_bytes_per_second"

# Per-column families: series name -> (metric, label name); memory also derives used bytes
_COLUMN_FAMILIES = {
    "cpu": (CPU_USAGE, "mode"),
    "cputemp": (CPU_TEMPERATURE, "cpu"),
    "memory": (MEMORY, "state"),
}


@dataclass
class ReportingValue:
    metric: str
    value: float
    labels: Dict[str, str] = field(default_factory=dict)


def build_batch_queries(descriptors: Sequence[SeriesDescriptor]) -> List[BatchQuerySpec]:
    """
    Build the reporting.get_data query list.

    The fixed scalar series come first, followed by one query per identifier of
    every recognized per-device family, in discovery order. Unknown families are
    ignored. An empty discovery result yields an empty list.

    Args:
        descriptors: reporting.graphs entries

    Returns:
        Ordered BatchQuerySpec list
    """
    if not descriptors:
        return []

    specs = [BatchQuerySpec(name) for name in SCALAR_SERIES]
    for descriptor in descriptors:
        if descriptor.name not in PER_DEVICE_SERIES:
            continue
        for identifier in descriptor.identifiers or []:
            specs.append(BatchQuerySpec(descriptor.name, identifier))
    return specs


def _value_at(legend: List[str], row: List[Optional[float]], column: str) -> Optional[float]:
    try:
        idx = legend.index(column)
    except ValueError:
        return None
    if idx >= len(row) or row[idx] is None:
        return None
    return float(row[idx])


def _decode_columns(sample: SeriesSample, row, metric: str, label: str) -> List[ReportingValue]:
    values = []
    for idx, column in enumerate(sample.legend):
        if idx >= len(row) or row[idx] is None:
            continue
        values.append(ReportingValue(metric, float(row[idx]), {label: column}))
    return values


def _decode_memory(sample: SeriesSample, row, total_memory: Optional[float]) -> List[ReportingValue]:
    values = _decode_columns(sample, row, MEMORY, "state")
    available = _value_at(sample.legend, row, "available")
    if available is not None and total_memory and total_memory > 0:
        values.append(ReportingValue(MEMORY_USED, total_memory - available))
    elif available is not None:
        LOG.debug("Total memory unknown, skipping used memory calculation")
    return values


def _decode_disk_temperature(sample: SeriesSample, row) -> List[ReportingValue]:
    device = sample.identifier or UNKNOWN_DEVICE
    for column in ("temperature_value", "value"):
        if column in sample.legend:
            value = _value_at(sample.legend, row, column)
            break
    else:
        # No known column name, the reading is the last column
        if len(sample.legend) <= 1 or not row or row[-1] is None:
            return []
        value = float(row[-1])

    if value is None:
        return []
    return [ReportingValue(DISK_TEMPERATURE, value, {"device": device})]


def _decode_pair(sample: SeriesSample, row, label: str, columns: Dict[str, str]) -> List[ReportingValue]:
    name = sample.identifier or UNKNOWN_DEVICE
    values = []
    for column, metric in columns.items():
        value = _value_at(sample.legend, row, column)
        if value is not None:
            values.append(ReportingValue(metric, value, {label: name}))
    return values


def decode_sample(sample: SeriesSample, total_memory: Optional[float] = None) -> List[ReportingValue]:
    """
    Decode the most recent row of one result set.

    Args:
        sample: One reporting.get_data result set
        total_memory: Physical memory in bytes, used to derive used memory

    Returns:
        Values to publish; empty for unknown families or samples without rows
    """
    row = sample.last_row
    if row is None:
        return []

    if sample.name == "memory":
        return _decode_memory(sample, row, total_memory)
    if sample.name in _COLUMN_FAMILIES:
        metric, label = _COLUMN_FAMILIES[sample.name]
        return _decode_columns(sample, row, metric, label)
    if sample.name == "disktemp":
        return _decode_disk_temperature(sample, row)
    if sample.name == "disk":
        return _decode_pair(sample, row, "device", {"reads": DISK_READ, "writes": DISK_WRITE})
    if sample.name == "interface":
        return _decode_pair(sample, row, "interface", {"received": NETWORK_RECEIVE, "sent": NETWORK_TRANSMIT})
    return []


def decode_samples(samples: Sequence[SeriesSample], total_memory: Optional[float] = None) -> List[ReportingValue]:
    """
    Decode every result set, best effort: a sample that fails to decode is
    logged and skipped, the rest are still decoded.
    """
    values = []
    for sample in samples:
        try:
            values.extend(decode_sample(sample, total_memory))
        except (TypeError, ValueError) as e:
            LOG.warning(f"Skipping reporting sample {sample.name}/{sample.identifier}: {e}")
    return values

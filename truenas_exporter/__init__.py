"""
TrueNAS Prometheus exporter.

Polls the TrueNAS middleware over its websocket API and republishes pool,
dataset, share, alert, disk, app, service and reporting state as Prometheus
gauges.
"""

__version__ = "0.1.0"

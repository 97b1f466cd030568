# -----------------------------------------------------------------------------
# Copyright (c) 2025 TrueNAS Exporter contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

from truenas_exporter.collectors import CollectionContext, CollectionStatus, collect_with_handler


def collect_network_interface_metrics(ctx: CollectionContext) -> CollectionStatus:
    def process(interfaces):
        # link_state is a label, drop series for states an interface left
        ctx.metrics.reset('network_interface_info')
        for iface in interfaces:
            ctx.metrics.set_gauge('network_interface_info', 1,
                                  {'interface': iface.name, 'link_state': iface.link_state})

    return collect_with_handler("network interfaces", ctx.client.query_network_interfaces, process)

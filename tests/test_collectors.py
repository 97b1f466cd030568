import pytest

from truenas_exporter.api.models import (
    Alert,
    CloudSyncTask,
    NfsShare,
    SeriesDescriptor,
    SeriesSample,
    SmartTestDisk,
    SnapshotTask,
    VDev,
)
from truenas_exporter.collectors import CollectionContext, CollectionStatus, collect_with_handler
from truenas_exporter.collectors.alert import collect_alert_metrics
from truenas_exporter.collectors.app import collect_app_metrics
from truenas_exporter.collectors.data_protection import collect_cloud_sync_metrics, collect_snapshot_metrics
from truenas_exporter.collectors.dataset import collect_dataset_metrics
from truenas_exporter.collectors.disk import (
    collect_disk_metrics,
    collect_smart_metrics,
    latest_tests,
    smart_status_value,
)
from truenas_exporter.collectors.network import collect_network_interface_metrics
from truenas_exporter.collectors.pool import collect_pool_metrics, walk_vdevs
from truenas_exporter.collectors.service import collect_service_metrics
from truenas_exporter.collectors.share import collect_share_metrics
from truenas_exporter.collectors.system_info import collect_system_info_metrics
from truenas_exporter.collectors.system_reporting import collect_system_reporting_metrics
from truenas_exporter.config import MetricsConfig
from truenas_exporter.errors import ApiError, TransportError

from conftest import FakeClient


@pytest.fixture
def ctx(fake_client, metrics):
    return CollectionContext(client=fake_client, metrics=metrics, config=MetricsConfig())


def test_collect_with_handler_reports_failure():
    def query():
        raise TransportError("down")

    assert collect_with_handler("things", query, lambda data: None) is CollectionStatus.FAILED


def test_collect_with_handler_reports_processing_failure():
    def process(data):
        raise AttributeError("'NoneType' object has no attribute 'name'")

    assert collect_with_handler("things", lambda: [None], process) is CollectionStatus.FAILED


def test_pool_processing_failure_is_failed(ctx, fake_client):
    fake_client.responses['query_pools'] = [None]
    assert collect_pool_metrics(ctx) is CollectionStatus.FAILED


def test_pool_metrics(ctx, metrics):
    assert collect_pool_metrics(ctx) is CollectionStatus.SUCCESS

    assert metrics.get_value('pool_health', {'pool': 'tank', 'status': 'ONLINE'}) == 1
    assert metrics.get_value('pool_capacity_bytes', {'pool': 'tank'}) == 1000
    assert metrics.get_value('pool_allocated_bytes', {'pool': 'tank'}) == 400
    assert metrics.get_value('pool_free_bytes', {'pool': 'tank'}) == 600
    assert metrics.get_value('pool_scrub_errors', {'pool': 'tank'}) == 2
    assert metrics.get_value('pool_last_scrub_seconds', {'pool': 'tank'}) == 1700000000
    assert metrics.get_value('pool_vdev_error_count', {'pool': 'tank', 'vdev': 'sda', 'type': 'write'}) == 2
    assert metrics.get_value('pool_vdev_error_count', {'pool': 'tank', 'vdev': 'sdb', 'type': 'checksum'}) == 5
    assert metrics.get_value('pool_vdev_error_count', {'pool': 'tank', 'vdev': 'mirror-0', 'type': 'read'}) == 0


def test_pool_query_failure(ctx, fake_client):
    fake_client.responses['query_pools'] = TransportError("down")
    assert collect_pool_metrics(ctx) is CollectionStatus.FAILED


def test_walk_vdevs_visits_parents_before_children_in_order():
    tree = [
        VDev(name="raidz-0", children=[VDev(name="a"), VDev(name="b", children=[VDev(name="b1")])]),
        VDev(name="log-0", children=[VDev(name="c")]),
    ]
    assert [v.name for v in walk_vdevs(tree)] == ["raidz-0", "a", "b", "b1", "log-0", "c"]


def test_walk_vdevs_handles_deep_trees():
    root = VDev(name="0")
    node = root
    for i in range(1, 5000):
        child = VDev(name=str(i))
        node.children.append(child)
        node = child
    assert sum(1 for _ in walk_vdevs([root])) == 5000


def test_vdev_parsing_handles_deep_trees():
    root = {"name": "0", "children": []}
    node = root
    for i in range(1, 5000):
        child = {"name": str(i), "stats": {"read_errors": i}, "children": []}
        node["children"].append(child)
        node = child

    vdev = VDev.from_api_response(root)
    names = [v.name for v in walk_vdevs([vdev])]
    assert len(names) == 5000
    assert names[-1] == "4999"


def test_vdev_parsing_keeps_child_order():
    vdev = VDev.from_api_response({"name": "raidz-0", "children": [
        {"name": "a", "disk": "sda"},
        {"name": "b", "children": [{"name": "b1"}, {"name": "b2"}]},
        {"name": "c", "device": "nvme0n1"},
    ]})
    assert [v.label for v in walk_vdevs([vdev])] == ["raidz-0", "sda", "b", "b1", "b2", "nvme0n1"]


def test_dataset_metrics(ctx, metrics):
    assert collect_dataset_metrics(ctx) is CollectionStatus.SUCCESS
    labels = {'dataset': 'tank/media', 'pool': 'tank'}
    assert metrics.get_value('dataset_used_bytes', labels) == 1234
    assert metrics.get_value('dataset_available_bytes', labels) == 5678
    assert metrics.get_value('dataset_compression_ratio', labels) == pytest.approx(1.52)
    assert metrics.get_value('dataset_encrypted', labels) == 1


def test_share_metrics(ctx, metrics):
    assert collect_share_metrics(ctx) is CollectionStatus.SUCCESS
    assert metrics.get_value('share_smb_enabled', {'name': 'media', 'path': '/mnt/tank/media'}) == 1
    assert metrics.get_value('share_nfs_enabled', {'path': '/mnt/tank/backup'}) == 0


def test_share_metrics_succeed_if_one_type_works(ctx, fake_client, metrics):
    fake_client.responses['query_smb_shares'] = ApiError("SMB service not configured")
    fake_client.responses['query_nfs_shares'] = [NfsShare(path="/mnt/x", enabled=True)]
    assert collect_share_metrics(ctx) is CollectionStatus.SUCCESS
    assert metrics.get_value('share_nfs_enabled', {'path': '/mnt/x'}) == 1


def test_share_metrics_fail_if_both_fail(ctx, fake_client):
    fake_client.responses['query_smb_shares'] = TransportError("down")
    fake_client.responses['query_nfs_shares'] = TransportError("down")
    assert collect_share_metrics(ctx) is CollectionStatus.FAILED


def test_cloud_sync_state_label_is_replaced(ctx, fake_client, metrics):
    assert collect_cloud_sync_metrics(ctx) is CollectionStatus.SUCCESS
    assert metrics.get_value('cloud_sync_status', {'description': 'offsite', 'state': 'RUNNING'}) == 1
    assert metrics.get_value('cloud_sync_progress_percent', {'description': 'offsite'}) == 42.0

    fake_client.responses['query_cloud_sync_tasks'] = [
        CloudSyncTask(id=1, description="offsite", enabled=True, job_state="SUCCESS")]
    collect_cloud_sync_metrics(ctx)
    assert metrics.get_value('cloud_sync_status', {'description': 'offsite', 'state': 'SUCCESS'}) == 1
    assert metrics.get_value('cloud_sync_status', {'description': 'offsite', 'state': 'RUNNING'}) is None
    assert metrics.get_value('cloud_sync_progress_percent', {'description': 'offsite'}) is None


def test_snapshot_task_state_label_is_replaced(ctx, fake_client, metrics):
    collect_snapshot_metrics(ctx)
    assert metrics.get_value('snapshot_task_status', {'dataset': 'tank/media', 'state': 'FINISHED'}) == 1

    fake_client.responses['query_snapshot_tasks'] = [SnapshotTask(dataset="tank/media", enabled=True, state="ERROR")]
    collect_snapshot_metrics(ctx)
    assert metrics.get_value('snapshot_task_status', {'dataset': 'tank/media', 'state': 'FINISHED'}) is None
    assert metrics.get_value('snapshot_task_status', {'dataset': 'tank/media', 'state': 'ERROR'}) == 1


def test_alert_counts_and_info(ctx, fake_client, metrics):
    fake_client.responses['query_alerts'] = [
        Alert(uuid="a1", level="WARNING", formatted="Pool is 80% full"),
        Alert(uuid="a2", level="WARNING", formatted="Update available", dismissed=True),
        Alert(uuid="a3", level="CRITICAL", formatted="Disk failed"),
    ]
    assert collect_alert_metrics(ctx) is CollectionStatus.SUCCESS

    assert metrics.get_value('alert_count', {'level': 'WARNING', 'active': 'true'}) == 1
    assert metrics.get_value('alert_count', {'level': 'WARNING', 'active': 'false'}) == 1
    assert metrics.get_value('alert_count', {'level': 'CRITICAL', 'active': 'true'}) == 1
    assert metrics.get_value('alert_count', {'level': 'INFO', 'active': 'true'}) == 0
    assert metrics.get_value('alert_info', {
        'level': 'CRITICAL', 'message': 'Disk failed', 'uuid': 'a3', 'active': 'true'}) == 1


def test_cleared_alerts_reset_to_zero(ctx, fake_client, metrics):
    collect_alert_metrics(ctx)
    fake_client.responses['query_alerts'] = []
    collect_alert_metrics(ctx)

    assert metrics.get_value('alert_count', {'level': 'WARNING', 'active': 'true'}) == 0
    assert metrics.get_value('alert_info', {
        'level': 'WARNING', 'message': 'Pool is 80% full', 'uuid': 'a1', 'active': 'true'}) is None


def test_system_info_metrics(ctx, metrics):
    assert collect_system_info_metrics(ctx) is CollectionStatus.SUCCESS
    assert metrics.get_value('system_info', {'hostname': 'nas', 'version': 'TrueNAS-SCALE-24.10'}) == 1
    assert metrics.get_value('system_uptime_seconds') == 3600.5
    assert metrics.get_value('system_memory_total_bytes') == 16000000000
    assert metrics.get_value('system_load_average', {'period': '15m'}) == 0.125


def test_system_info_failure(ctx, fake_client):
    fake_client.responses['query_system_info'] = TransportError("down")
    assert collect_system_info_metrics(ctx) is CollectionStatus.FAILED


def test_reporting_uses_total_memory_from_system_info(ctx, fake_client, metrics):
    collect_system_info_metrics(ctx)
    assert collect_system_reporting_metrics(ctx) is CollectionStatus.SUCCESS

    assert metrics.get_value('system_memory_used_bytes') == 10000000000
    assert metrics.get_value('system_memory_bytes', {'state': 'available'}) == 6000000000
    assert [(s.name, s.identifier) for s in fake_client.batch_specs] == [
        ("cpu", None), ("cputemp", None), ("memory", None), ("disk", "sda")]


def test_reporting_skips_batch_when_nothing_discovered(ctx, fake_client):
    fake_client.responses['discover_series'] = []
    assert collect_system_reporting_metrics(ctx) is CollectionStatus.SKIPPED
    assert 'query_batch' not in fake_client.calls


def test_reporting_discovery_failure(ctx, fake_client):
    fake_client.responses['discover_series'] = ApiError("reporting disabled")
    assert collect_system_reporting_metrics(ctx) is CollectionStatus.FAILED
    assert 'query_batch' not in fake_client.calls


def test_reporting_batch_failure(ctx, fake_client):
    fake_client.responses['query_batch'] = TransportError("down")
    assert collect_system_reporting_metrics(ctx) is CollectionStatus.FAILED


def test_reporting_rates(metrics):
    client = FakeClient(
        discover_series=[SeriesDescriptor(name="interface", identifiers=["eth0"])],
        query_batch=[
            SeriesSample(name="interface", identifier="eth0", legend=["time", "received", "sent"],
                         rows=[[1, 100.0, 50.0]]),
            SeriesSample(name="disk", identifier="sda", legend=["time", "reads", "writes"],
                         rows=[]),
        ],
    )
    ctx = CollectionContext(client=client, metrics=metrics, config=MetricsConfig())
    assert collect_system_reporting_metrics(ctx) is CollectionStatus.SUCCESS
    assert metrics.get_value('network_receive_bytes_per_second', {'interface': 'eth0'}) == 100.0
    assert metrics.get_value('network_transmit_bytes_per_second', {'interface': 'eth0'}) == 50.0
    assert metrics.get_value('disk_read_bytes_per_second', {'device': 'sda'}) is None


def test_disk_info(ctx, metrics):
    assert collect_disk_metrics(ctx) is CollectionStatus.SUCCESS
    assert metrics.get_value('disk_info', {'disk': 'sda', 'serial': 'S1', 'model': 'WD Red', 'size': '4000'}) == 1


def test_latest_tests_keeps_highest_lifetime_per_type():
    disk = SmartTestDisk.from_api_response({"name": "sda", "tests": [
        {"description": "Short offline", "status": "SUCCESS", "lifetime": 100},
        {"description": "Short offline", "status": "FAILED", "lifetime": 300},
        {"description": "Extended offline", "status": "SUCCESS", "lifetime": 200},
    ]})
    latest = latest_tests(disk.tests)
    assert latest["Short offline"].lifetime == 300
    assert latest["Extended offline"].lifetime == 200


def test_smart_status_values():
    assert smart_status_value("success") == 0
    assert smart_status_value("Completed without error") == 0
    assert smart_status_value("RUNNING") == 0
    assert smart_status_value("FAILED") == 1
    assert smart_status_value("") == 1


def test_smart_metrics(ctx, fake_client, metrics, monkeypatch):
    monkeypatch.setattr('truenas_exporter.collectors.disk.time.time', lambda: 1000000.0)
    fake_client.responses['query_smart_tests'] = [SmartTestDisk.from_api_response({"name": "sda", "tests": [
        {"description": "Short offline", "status": "SUCCESS", "lifetime": 100, "power_on_hours_ago": 10},
        {"description": "Extended offline", "status": "FAILED", "lifetime": 50},
    ]})]
    assert collect_smart_metrics(ctx) is CollectionStatus.SUCCESS

    short = {'disk': 'sda', 'test_type': 'Short offline'}
    extended = {'disk': 'sda', 'test_type': 'Extended offline'}
    assert metrics.get_value('smart_test_status', short) == 0
    assert metrics.get_value('smart_test_status', extended) == 1
    assert metrics.get_value('smart_test_lifetime_hours', short) == 100
    assert metrics.get_value('smart_test_timestamp_seconds', short) == 1000000.0 - 36000
    assert metrics.get_value('smart_test_timestamp_seconds', extended) is None
    assert metrics.get_value('disk_power_on_hours', {'disk': 'sda'}) == 110


def test_app_metrics(ctx, metrics):
    assert collect_app_metrics(ctx) is CollectionStatus.SUCCESS
    assert metrics.get_value('app_status', {'app': 'plex'}) == 1
    assert metrics.get_value('app_update_available', {'app': 'plex'}) == 1


def test_network_interface_metrics(ctx, metrics):
    assert collect_network_interface_metrics(ctx) is CollectionStatus.SUCCESS
    assert metrics.get_value('network_interface_info', {'interface': 'eth0', 'link_state': 'LINK_STATE_UP'}) == 1


def test_service_metrics(ctx, metrics):
    assert collect_service_metrics(ctx) is CollectionStatus.SUCCESS
    assert metrics.get_value('service_status', {'service': 'ssh'}) == 0

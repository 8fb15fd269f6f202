# tests/test_app.py
from unittest.mock import MagicMock, patch

from vmcontroller.app import build_compute_service, main, make_lifecycle_scope
from vmcontroller.config import Settings
from vmcontroller.services.cluster_client import ClusterClient
from vmcontroller.services.compute_service import ComputeService
from vmcontroller.services.exceptions import ClusterConnectionError
from vmcontroller.services.lifecycle_service import VmLifecycleService
from vmcontroller.services.task_dispatcher import BackgroundTaskDispatcher


def test_lifecycle_scope_opens_and_closes_session():
    settings = Settings(vm_poll_interval_seconds=1, vm_poll_timeout_seconds=10, vm_provision_timeout_seconds=900)
    session = MagicMock()
    scope = make_lifecycle_scope(MagicMock(spec=ClusterClient), settings, session_factory=lambda: session)

    with scope() as lifecycle:
        assert isinstance(lifecycle, VmLifecycleService)
        assert lifecycle.poll_interval == 1
        assert lifecycle.poll_timeout == 10
        assert lifecycle.provision_timeout == 900
        session.close.assert_not_called()

    session.close.assert_called_once()


def test_build_compute_service_uses_settings(db_session):
    settings = Settings(vm_manifest_dir="manifests/client-vm")

    compute = build_compute_service(db_session, MagicMock(spec=ClusterClient),
                                    MagicMock(spec=BackgroundTaskDispatcher), settings)

    assert isinstance(compute, ComputeService)
    assert compute.manifest_dir == "manifests/client-vm"


@patch("vmcontroller.app.initialize_db")
@patch("vmcontroller.app.ClusterClient.from_settings",
       side_effect=ClusterConnectionError("failed to get k8s config"))
def test_main_exits_when_cluster_unreachable(mock_from_settings, mock_initialize_db):
    with patch("vmcontroller.app.get_settings", return_value=Settings()):
        assert main() == 1
    mock_initialize_db.assert_called_once()

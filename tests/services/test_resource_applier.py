# tests/services/test_resource_applier.py
import pytest

from vmcontroller.services.dto import CreatedResource
from vmcontroller.services.exceptions import ManifestDecodeError, ResourceApplyError, ResourceDiscoveryError
from vmcontroller.services.resource_applier import ResourceApplier

VM_REPLACEMENTS = {
    "{{NAMESPACE}}": "user-ns",
    "{{NODEPORT}}": "30003",
    "{{VM_NAME}}": "vm1",
    "{{DNS_HOST}}": "vm1.example.com",
    "{{PASSWORD}}": "Passw0rd!",
}


@pytest.fixture
def applier(fake_cluster) -> ResourceApplier:
    return ResourceApplier(fake_cluster)


class TestApplyManifests:
    def test_creates_resources_and_injects_default_namespace(self, applier, fake_cluster, manifest_tree):
        """모든 문서를 생성하고, namespace가 없는 리소스에는 기본 네임스페이스를 주입하는지 테스트합니다."""
        # === Act ===
        created = applier.apply_manifests("yaml-data/client-vm", VM_REPLACEMENTS, "user-ns", ignore_exists=False)

        # === Assert ===
        assert [(r.kind, r.name) for r in created] == [
            ("Secret", "vm1-cloud-init-userdata"),
            ("DataVolume", "vm1-disk"),
            ("VirtualMachine", "vm1"),
            ("Service", "vps-access-vm1"),
            ("Ingress", "vm-ingress-vm1"),
        ]
        assert all(r.namespace == "user-ns" for r in created)
        assert all(r.uid for r in created)
        datavolume = created[1]
        assert (datavolume.group, datavolume.version) == ("cdi.kubevirt.io", "v1beta1")

        service = fake_cluster.get("v1", "Service", "vps-access-vm1", "user-ns")
        assert service["spec"]["ports"][0]["nodePort"] == 30003

    @pytest.mark.parametrize("ignore_exists", [True, False])
    def test_existing_resources_are_skipped_in_both_modes(self, applier, fake_cluster, manifest_tree, ignore_exists):
        """이미 존재하는 리소스는 두 모드 모두에서 오류 없이 건너뛰고 목록에도 넣지 않습니다."""
        # === Arrange ===
        fake_cluster.add({
            "apiVersion": "kubevirt.io/v1", "kind": "VirtualMachine",
            "metadata": {"name": "vm1", "namespace": "user-ns"},
        })

        # === Act ===
        created = applier.apply_manifests("yaml-data/client-vm", VM_REPLACEMENTS, "user-ns", ignore_exists)

        # === Assert ===
        assert "VirtualMachine" not in [r.kind for r in created]
        assert len(created) == 4

    def test_bootstrap_rerun_is_idempotent(self, applier, fake_cluster, manifest_tree):
        """이미 bootstrap 된 네임스페이스에 다시 적용하면 새 항목 0개, 오류 없음."""
        replacements = {"{{NAMESPACE}}": "user-ns"}
        first = applier.apply_manifests("yaml-data/client-init", replacements, "user-ns", ignore_exists=True)
        assert len(first) == 2

        second = applier.apply_manifests("yaml-data/client-init", replacements, "user-ns", ignore_exists=True)
        assert second == []

    def test_create_failure_returns_partial_ledger(self, applier, fake_cluster, manifest_tree):
        """already exists 이외의 생성 실패는 ResourceApplyError로 중단되고, 그때까지의 목록을 담습니다."""
        fake_cluster.fail_create.add(("VirtualMachine", "vm1"))

        with pytest.raises(ResourceApplyError) as exc_info:
            applier.apply_manifests("yaml-data/client-vm", VM_REPLACEMENTS, "user-ns", ignore_exists=False)

        assert [r.kind for r in exc_info.value.created] == ["Secret", "DataVolume"]

    def test_unknown_kind_raises_discovery_error(self, applier, manifest_tree):
        (manifest_tree / "yaml-data" / "client-vm" / "00-unknown.yaml").write_text(
            "apiVersion: example.com/v1\nkind: Widget\nmetadata:\n  name: w\n", encoding="utf-8"
        )

        with pytest.raises(ResourceDiscoveryError) as exc_info:
            applier.apply_manifests("yaml-data/client-vm", VM_REPLACEMENTS, "user-ns", ignore_exists=False)
        assert exc_info.value.created == []

    def test_decode_error_carries_partial_ledger(self, applier, manifest_tree):
        (manifest_tree / "yaml-data" / "client-vm" / "02-datavolume.yaml").write_text(
            "kind: [broken\n", encoding="utf-8"
        )

        with pytest.raises(ManifestDecodeError, match="02-datavolume.yaml") as exc_info:
            applier.apply_manifests("yaml-data/client-vm", VM_REPLACEMENTS, "user-ns", ignore_exists=False)
        assert [r.kind for r in exc_info.value.created] == ["Secret"]

    def test_unexpected_error_is_wrapped_with_partial_ledger(self, applier, fake_cluster, manifest_tree, monkeypatch):
        """예상하지 못한 오류도 ResourceApplyError로 감싸 롤백할 목록을 잃지 않습니다."""
        original_create = fake_cluster.create

        def create(manifest):
            if manifest["kind"] == "DataVolume":
                raise RuntimeError("connection pool is closed")
            return original_create(manifest)

        monkeypatch.setattr(fake_cluster, "create", create)

        with pytest.raises(ResourceApplyError, match="connection pool is closed") as exc_info:
            applier.apply_manifests("yaml-data/client-vm", VM_REPLACEMENTS, "user-ns", ignore_exists=False)
        assert [r.kind for r in exc_info.value.created] == ["Secret"]
        assert isinstance(exc_info.value.__cause__, RuntimeError)


def test_delete_resource_uses_api_version(applier, fake_cluster):
    fake_cluster.add({"apiVersion": "cdi.kubevirt.io/v1beta1", "kind": "DataVolume",
                      "metadata": {"name": "vm1-disk", "namespace": "user-ns"}})

    applier.delete_resource(CreatedResource("cdi.kubevirt.io", "v1beta1", "DataVolume", "vm1-disk", "user-ns"))

    assert fake_cluster.objects == {}

# tests/conftest.py
import copy
import itertools
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vmcontroller.database.database import Base
from vmcontroller.database import models
from vmcontroller.services.exceptions import (
    ClusterOperationError,
    ResourceAlreadyExistsError,
    ResourceDiscoveryError,
)

# ===================================================================
#  가짜 클러스터 클라이언트
# ===================================================================

CLUSTER_SCOPED_KINDS = {"Namespace"}
KNOWN_KINDS = {
    ("v1", "Namespace"),
    ("v1", "ResourceQuota"),
    ("v1", "LimitRange"),
    ("v1", "Secret"),
    ("v1", "Service"),
    ("networking.k8s.io/v1", "Ingress"),
    ("kubevirt.io/v1", "VirtualMachine"),
    ("cdi.kubevirt.io/v1beta1", "DataVolume"),
}


class FakeClusterClient:
    """ClusterClient를 흉내 내는 메모리 기반 가짜 클래스."""

    def __init__(self):
        self.objects = {}
        self.deleted = []
        self.fail_create = set()   # {(kind, name)}
        self.fail_delete = set()   # {(kind, name)}
        self._uids = itertools.count(1)

    @staticmethod
    def _key(api_version, kind, name, namespace):
        namespace = "" if kind in CLUSTER_SCOPED_KINDS else (namespace or "")
        return api_version, kind, namespace, name

    def resolve(self, api_version, kind):
        if (api_version, kind) not in KNOWN_KINDS:
            raise ResourceDiscoveryError(f"failed to find mapping for {api_version}, Kind={kind}")
        return api_version, kind

    def add(self, manifest):
        obj = copy.deepcopy(manifest)
        meta = obj["metadata"]
        if obj["kind"] in CLUSTER_SCOPED_KINDS:
            meta.pop("namespace", None)
        meta["uid"] = f"uid-{next(self._uids)}"
        self.objects[self._key(obj["apiVersion"], obj["kind"], meta["name"], meta.get("namespace"))] = obj
        return obj

    def create(self, manifest):
        self.resolve(manifest["apiVersion"], manifest["kind"])
        meta = manifest["metadata"]
        key = self._key(manifest["apiVersion"], manifest["kind"], meta["name"], meta.get("namespace"))
        if key in self.objects:
            raise ResourceAlreadyExistsError(f"{manifest['kind']} {meta['name']} already exists")
        if (manifest["kind"], meta["name"]) in self.fail_create:
            raise ClusterOperationError(f"failed to create resource {manifest['kind']}: admission denied")
        return copy.deepcopy(self.add(manifest))

    def get(self, api_version, kind, name, namespace=None):
        key = self._key(api_version, kind, name, namespace)
        if key not in self.objects:
            raise ClusterOperationError(f"failed to get {kind} {namespace}/{name}: not found")
        return copy.deepcopy(self.objects[key])

    def patch_merge(self, api_version, kind, name, namespace, body):
        obj = self.objects[self._key(api_version, kind, name, namespace)]
        obj.setdefault("spec", {}).update(body.get("spec", {}))
        return copy.deepcopy(obj)

    def delete(self, api_version, kind, name, namespace=None):
        self.resolve(api_version, kind)
        if (kind, name) in self.fail_delete:
            raise ClusterOperationError(f"failed to delete {kind} {namespace}/{name}: forbidden")
        key = self._key(api_version, kind, name, namespace)
        if key not in self.objects:
            raise ClusterOperationError(f"failed to delete {kind} {namespace}/{name}: not found")
        del self.objects[key]
        self.deleted.append((kind, name))

    def check_connectivity(self):
        return "healthy"


@pytest.fixture
def fake_cluster() -> FakeClusterClient:
    return FakeClusterClient()

# ===================================================================
#  매니페스트 디렉터리 Fixture
# ===================================================================

INIT_MANIFEST = """\
apiVersion: v1
kind: Namespace
metadata:
  name: {{NAMESPACE}}
---
apiVersion: v1
kind: ResourceQuota
metadata:
  name: vm-quota
spec:
  hard:
    requests.cpu: "4"
"""

SECRET_MANIFEST = """\
apiVersion: v1
kind: Secret
metadata:
  name: {{VM_NAME}}-cloud-init-userdata
  namespace: {{NAMESPACE}}
stringData:
  userdata: |
    password: "{{PASSWORD}}"
"""

DATAVOLUME_MANIFEST = """\
apiVersion: cdi.kubevirt.io/v1beta1
kind: DataVolume
metadata:
  name: {{VM_NAME}}-disk
spec:
  storage:
    resources:
      requests:
        storage: 10Gi
"""

VM_MANIFEST = """\
apiVersion: kubevirt.io/v1
kind: VirtualMachine
metadata:
  name: {{VM_NAME}}
  namespace: {{NAMESPACE}}
spec:
  running: true
"""

SERVICE_MANIFEST = """\
apiVersion: v1
kind: Service
metadata:
  name: vps-access-{{VM_NAME}}
spec:
  type: NodePort
  ports:
    - port: 22
      nodePort: {{NODEPORT}}
---
apiVersion: networking.k8s.io/v1
kind: Ingress
metadata:
  name: vm-ingress-{{VM_NAME}}
spec:
  rules:
    - host: {{DNS_HOST}}
"""


@pytest.fixture
def manifest_tree(tmp_path: Path, monkeypatch) -> Path:
    """
    tmp_path 아래에 yaml-data/client-init, yaml-data/client-vm 매니페스트를 만들고
    작업 디렉터리를 tmp_path로 옮깁니다. (manifest_dir은 상대 경로여야 하므로)
    """
    init_dir = tmp_path / "yaml-data" / "client-init"
    vm_dir = tmp_path / "yaml-data" / "client-vm"
    init_dir.mkdir(parents=True)
    vm_dir.mkdir(parents=True)

    (init_dir / "00-namespace.yaml").write_text(INIT_MANIFEST, encoding="utf-8")
    (vm_dir / "01-secret.yaml").write_text(SECRET_MANIFEST, encoding="utf-8")
    (vm_dir / "02-datavolume.yaml").write_text(DATAVOLUME_MANIFEST, encoding="utf-8")
    (vm_dir / "03-virtualmachine.yaml").write_text(VM_MANIFEST, encoding="utf-8")
    (vm_dir / "04-services.yaml").write_text(SERVICE_MANIFEST, encoding="utf-8")
    (vm_dir / "README.txt").write_text("not a manifest", encoding="utf-8")

    monkeypatch.chdir(tmp_path)
    return tmp_path

# ===================================================================
#  In-memory DB Fixture
# ===================================================================

@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def owner(db_session) -> models.User:
    user = models.User(username="alice", namespace="alice-ns")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user

# vmcontroller/services/dto.py
from dataclasses import dataclass, field, asdict
from typing import List, Optional

from vmcontroller.database import models


@dataclass(frozen=True)
class CreatedResource:
    """프로비저닝 중 생성된 클러스터 리소스. 롤백과 결과 요약에만 쓰이며 저장되지 않습니다."""
    group: str
    version: str
    kind: str
    name: str
    namespace: str = ""
    uid: str = ""

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    @classmethod
    def from_object(cls, obj: dict) -> "CreatedResource":
        """apiVersion/kind/metadata를 가진 리소스 딕셔너리로부터 생성합니다."""
        group, _, version = obj["apiVersion"].rpartition("/")
        metadata = obj.get("metadata") or {}
        return cls(
            group=group,
            version=version,
            kind=obj["kind"],
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace") or "",
            uid=metadata.get("uid") or "",
        )


@dataclass
class ProvisioningResult:
    namespace: str
    name: str
    port: int
    password: str
    dns_host: str
    # VM 단계에서 생성된 리소스만 담습니다. (bootstrap 단계 리소스는 내부용)
    created_resources: List[CreatedResource] = field(default_factory=list)

    def to_dict(self, include_password: bool = False) -> dict:
        data = asdict(self)
        if not include_password:
            data["password"] = ""
        return data


@dataclass(frozen=True)
class VmSnapshot:
    """
    VM 레코드의 읽기 전용 복사본.
    백그라운드 작업에는 세션에 묶인 ORM 객체 대신 이 스냅샷을 넘깁니다.
    """
    id: int
    name: str
    namespace: str
    node_port: int
    status: models.VmStatus
    owner_id: int
    image: Optional[str] = None
    password: str = ""

    @classmethod
    def from_model(cls, vm: models.VirtualMachine, include_password: bool = False) -> "VmSnapshot":
        return cls(
            id=vm.id,
            name=vm.name,
            namespace=vm.namespace,
            node_port=vm.node_port,
            status=models.VmStatus(vm.status),
            owner_id=vm.owner_id,
            image=vm.image,
            password=vm.password if include_password else "",
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Index, Integer, String, func, text
from sqlalchemy.orm import relationship
from ..database import Base


class VmStatus(str, enum.Enum):
    PROVISIONING = "Provisioning"
    RUNNING = "Running"
    STOPPING = "Stopping"
    STOPPED = "Stopped"
    FAILED = "Failed"
    DELETED = "Deleted"


class VirtualMachine(Base):
    """
    사용자를 위해 프로비저닝된 KubeVirt 가상 머신 한 대를 추적합니다.
    클러스터 상의 VirtualMachine 리소스와 1:1로 대응하며, 삭제 시 레코드를 지우지 않고
    is_deleted 플래그만 세웁니다. (이름/포트 이력 보존)
    이름과 NodePort는 삭제되지 않은 레코드 사이에서만 유일합니다.
    """
    __tablename__ = "virtual_machines"
    __table_args__ = (
        Index(
            "uq_virtual_machines_active_name", "name", unique=True,
            sqlite_where=text("is_deleted = 0"), postgresql_where=text("is_deleted = false"),
        ),
        Index(
            "uq_virtual_machines_active_node_port", "node_port", unique=True,
            sqlite_where=text("is_deleted = 0"), postgresql_where=text("is_deleted = false"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    namespace = Column(String, nullable=False)
    node_port = Column(Integer, nullable=False)
    # 요구사항에 따라 평문 저장. 조회 시 기본적으로 마스킹합니다.
    password = Column(String, nullable=False)
    image = Column(String)
    disk_num = Column(String)
    status = Column(
        Enum(VmStatus, values_callable=lambda e: [s.value for s in e], native_enum=False),
        nullable=False,
        default=VmStatus.PROVISIONING,
    )
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    owner = relationship("User", back_populates="vms")

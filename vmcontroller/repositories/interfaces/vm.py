from abc import ABC, abstractmethod
from typing import List, Optional
from vmcontroller.database import models

class IVMRepository(ABC):
    """
    VM 레코드 저장소. 이름/포트 유일성의 유일한 권한자입니다.
    find/list 계열 메서드는 모두 soft-delete 된 레코드를 제외합니다.
    """

    @abstractmethod
    def create(self, vm_model: models.VirtualMachine) -> models.VirtualMachine:
        """새로운 VM 레코드를 생성합니다. 이름/포트가 중복되면 VmAlreadyExistsError를 발생시킵니다."""
        pass

    @abstractmethod
    def find_by_name(self, name: str) -> Optional[models.VirtualMachine]:
        """삭제되지 않은 VM 중에서 이름으로 조회합니다."""
        pass

    @abstractmethod
    def find_by_port(self, node_port: int) -> Optional[models.VirtualMachine]:
        """삭제되지 않은 VM 중에서 NodePort로 조회합니다."""
        pass

    @abstractmethod
    def list_by_owner_id(self, owner_id: int) -> List[models.VirtualMachine]:
        """특정 사용자가 소유한 삭제되지 않은 VM 목록을 조회합니다."""
        pass

    @abstractmethod
    def update_status_by_name(self, name: str, status: models.VmStatus) -> bool:
        """삭제되지 않은 VM의 상태를 갱신합니다. 대상이 없으면 False를 반환합니다."""
        pass

    @abstractmethod
    def mark_deleted_by_name(self, name: str) -> bool:
        """VM 레코드를 soft-delete 합니다. 대상이 없으면 False를 반환합니다."""
        pass

    @abstractmethod
    def list_used_ports(self) -> List[int]:
        """삭제되지 않은 VM들이 사용 중인 NodePort 목록을 조회합니다."""
        pass

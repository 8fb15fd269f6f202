# vmcontroller/services/vm_service.py
import logging
from typing import List, Optional

from vmcontroller.database import models
from vmcontroller.repositories.interfaces import IVMRepository
from vmcontroller.services.dto import VmSnapshot
from vmcontroller.services.exceptions import VmNotFoundError

logger = logging.getLogger(__name__)


class VmService:
    """VM 레코드(메타데이터)의 생성, 조회, 상태 갱신, soft-delete를 담당합니다."""

    def __init__(self, vm_repo: IVMRepository):
        self.vm_repo = vm_repo

    def create_vm_record(self, owner_id: int, namespace: str, vm_name: str, password: str,
                         node_port: int, image: Optional[str] = None) -> models.VirtualMachine:
        """
        Provisioning 상태의 VM 레코드를 생성합니다.

        Raises:
            VmAlreadyExistsError: 같은 이름이나 포트를 쓰는 활성 레코드가 있을 때. (저장소 제약)
        """
        vm = models.VirtualMachine(
            owner_id=owner_id,
            name=vm_name,
            namespace=namespace,
            password=password,
            node_port=node_port,
            image=image,
            status=models.VmStatus.PROVISIONING,
            is_deleted=False,
        )
        return self.vm_repo.create(vm)

    def fetch_user_vms(self, owner_id: int, include_password: bool = False) -> List[VmSnapshot]:
        vms = self.vm_repo.list_by_owner_id(owner_id)
        return [VmSnapshot.from_model(vm, include_password) for vm in vms]

    def fetch_vm_by_name(self, vm_name: str, include_password: bool = False) -> Optional[VmSnapshot]:
        vm = self.vm_repo.find_by_name(vm_name)
        if not vm:
            return None
        return VmSnapshot.from_model(vm, include_password)

    def update_vm_status(self, vm_name: str, status: models.VmStatus):
        """
        Raises:
            VmNotFoundError: 삭제되지 않은 해당 이름의 VM이 없을 때.
        """
        if not self.vm_repo.update_status_by_name(vm_name, status):
            raise VmNotFoundError(f"VM '{vm_name}' not found.")
        logger.info("VM '%s' status -> %s", vm_name, status.value)

    def delete_vm(self, vm_name: str):
        """
        VM 레코드를 soft-delete 합니다. 이름/포트 이력은 남습니다.

        Raises:
            VmNotFoundError: 삭제되지 않은 해당 이름의 VM이 없을 때.
        """
        if not self.vm_repo.mark_deleted_by_name(vm_name):
            raise VmNotFoundError(f"VM '{vm_name}' not found.")
        logger.info("VM '%s' marked as deleted", vm_name)

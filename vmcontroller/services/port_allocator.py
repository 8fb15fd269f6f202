# vmcontroller/services/port_allocator.py
import logging

from vmcontroller.repositories.interfaces import IVMRepository
from vmcontroller.services.exceptions import PortExhaustedError

logger = logging.getLogger(__name__)

# 할당기가 제공하는 NodePort 범위 (양 끝 포함)
ALLOCATABLE_PORT_MIN = 30003
ALLOCATABLE_PORT_MAX = 30300


class PortAllocator:
    """
    삭제되지 않은 VM들이 사용 중인 NodePort를 기준으로 가장 낮은 빈 포트를 찾습니다.

    조회와 레코드 생성 사이를 직렬화하지 않으므로, 동시에 호출한 두 요청이 같은 포트를
    받을 수 있습니다. 최종적인 중복 방지는 저장소의 유일성 제약이 담당합니다.
    """

    def __init__(self, vm_repo: IVMRepository):
        self.vm_repo = vm_repo

    def get_available_port(self) -> int:
        """
        Raises:
            PortExhaustedError: 30003~30300 범위가 모두 사용 중일 때.
        """
        used_ports = set(self.vm_repo.list_used_ports())
        for port in range(ALLOCATABLE_PORT_MIN, ALLOCATABLE_PORT_MAX + 1):
            if port not in used_ports:
                return port
        logger.warning("NodePort range %d-%d exhausted", ALLOCATABLE_PORT_MIN, ALLOCATABLE_PORT_MAX)
        raise PortExhaustedError(
            f"no available ports in range {ALLOCATABLE_PORT_MIN}-{ALLOCATABLE_PORT_MAX}"
        )

    def is_port_available(self, port: int) -> bool:
        return self.vm_repo.find_by_port(port) is None

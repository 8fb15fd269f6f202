# vmcontroller/services/compute_service.py
import logging
from typing import Any, Callable, ContextManager, Dict, List, Optional

from vmcontroller.database.models import VmStatus
from vmcontroller.services.cluster_client import ClusterClient
from vmcontroller.services.dto import ProvisioningResult, VmSnapshot
from vmcontroller.services.exceptions import (
    PortUnavailableError,
    VmAlreadyExistsError,
    VmNotFoundError,
)
from vmcontroller.services.lifecycle_service import VmLifecycleService
from vmcontroller.services.port_allocator import PortAllocator
from vmcontroller.services.provisioning_service import ProvisioningService
from vmcontroller.services.task_dispatcher import BackgroundTaskDispatcher
from vmcontroller.services.vm_service import VmService
from vmcontroller.utils.injection_guard import check_injection

logger = logging.getLogger(__name__)

LifecycleScope = Callable[[], ContextManager[VmLifecycleService]]


class ComputeService:
    def __init__(self, vm_service: VmService, port_allocator: PortAllocator,
                 provisioning: ProvisioningService, dispatcher: BackgroundTaskDispatcher,
                 lifecycle_scope: LifecycleScope, cluster: ClusterClient,
                 manifest_dir: str = "yaml-data/client-vm"):
        """
        Args:
            vm_service: VM 레코드 서비스 (요청 세션에 묶임).
            port_allocator: NodePort 할당기.
            provisioning: 클러스터 리소스 프로비저닝 서비스.
            dispatcher: 수명주기 작업을 실행할 백그라운드 워커 풀.
            lifecycle_scope: 백그라운드 작업마다 새 DB 세션에 묶인 VmLifecycleService를 열어주는 컨텍스트 매니저 팩토리.
            cluster: 프로세스 전체에서 공유하는 클러스터 클라이언트.
            manifest_dir: VM 매니페스트 템플릿 디렉터리 기본값.
        """
        self.vm_service = vm_service
        self.port_allocator = port_allocator
        self.provisioning = provisioning
        self.dispatcher = dispatcher
        self.lifecycle_scope = lifecycle_scope
        self.cluster = cluster
        self.manifest_dir = manifest_dir

    def create_vm(self, owner_id: int, namespace: str, vm_name: str, password: str, dns_host: str,
                  image: Optional[str] = None, port: Optional[int] = None,
                  manifest_dir: Optional[str] = None) -> ProvisioningResult:
        """
        새로운 VM을 프로비저닝합니다.

        포트를 지정하지 않으면 가장 낮은 빈 NodePort를 할당하고, Provisioning 상태의 레코드를 만든 뒤
        클러스터 리소스를 생성합니다. 프로비저닝이 실패하면 레코드를 Failed로 표시하고 예외를 다시 올립니다.
        Failed 레코드는 활성 상태로 남아 이름과 포트를 계속 점유하므로, 같은 이름으로 다시 만들려면
        먼저 delete_vm으로 정리해야 합니다.
        성공 시 VM이 Running을 보고할 때 상태를 갱신하는 작업을 백그라운드로 넘깁니다.

        Raises:
            VmAlreadyExistsError: 같은 이름의 VM이 이미 있을 때.
            PortExhaustedError: 할당할 수 있는 포트가 없을 때.
            PortUnavailableError: 지정한 포트를 이미 사용 중일 때.
            ValidationError: 파라미터 검증 실패 시. 레코드는 만들어지지 않습니다.
            ManifestApplyError: 클러스터 리소스 생성 실패 시 (롤백 후).
        """
        manifest_dir = manifest_dir or self.manifest_dir

        if self.vm_service.fetch_vm_by_name(vm_name):
            raise VmAlreadyExistsError(f"VM name '{vm_name}' already exists.")

        if port is None:
            port = self.port_allocator.get_available_port()
        elif not self.port_allocator.is_port_available(port):
            raise PortUnavailableError(f"Node port {port} is already in use.")

        # 레코드를 만들기 전에 검증하여 ValidationError에는 부수 효과가 없도록 합니다.
        check_injection(namespace, vm_name, password, dns_host, manifest_dir, port)

        vm = self.vm_service.create_vm_record(owner_id, namespace, vm_name, password, port, image)
        snapshot = VmSnapshot.from_model(vm)

        try:
            result = self.provisioning.create_user_vm(namespace, vm_name, password, dns_host, manifest_dir, port)
        except Exception as e:
            logger.error("VM '%s' provisioning failed: %s", vm_name, e)
            self.vm_service.update_vm_status(vm_name, VmStatus.FAILED)
            raise

        self._dispatch("await_running", snapshot)
        return result

    def list_vms(self, owner_id: int) -> List[Dict[str, Any]]:
        return [vm.to_dict() for vm in self.vm_service.fetch_user_vms(owner_id)]

    def get_vm(self, vm_name: str, include_password: bool = False) -> VmSnapshot:
        vm = self.vm_service.fetch_vm_by_name(vm_name, include_password)
        if not vm:
            raise VmNotFoundError(f"VM '{vm_name}' not found.")
        return vm

    def stop_vm(self, vm_name: str) -> VmSnapshot:
        """VM 중지를 백그라운드로 넘기고, 작업 전 레코드 스냅샷을 즉시 반환합니다."""
        return self._dispatch("stop_vm", self.get_vm(vm_name))

    def start_vm(self, vm_name: str) -> VmSnapshot:
        """VM 시작을 백그라운드로 넘기고, 작업 전 레코드 스냅샷을 즉시 반환합니다."""
        return self._dispatch("start_vm", self.get_vm(vm_name))

    def delete_vm(self, vm_name: str) -> VmSnapshot:
        """VM 삭제를 백그라운드로 넘기고, 작업 전 레코드 스냅샷을 즉시 반환합니다."""
        return self._dispatch("delete_vm", self.get_vm(vm_name))

    def get_available_port(self) -> int:
        return self.port_allocator.get_available_port()

    def check_cluster_health(self) -> str:
        return self.cluster.check_connectivity()

    def _dispatch(self, operation: str, vm: VmSnapshot) -> VmSnapshot:
        self.dispatcher.submit(f"{operation} {vm.namespace}/{vm.name}", self._run_lifecycle, operation, vm)
        return vm

    def _run_lifecycle(self, operation: str, vm: VmSnapshot):
        with self.lifecycle_scope() as lifecycle:
            getattr(lifecycle, operation)(vm)

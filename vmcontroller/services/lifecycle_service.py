# vmcontroller/services/lifecycle_service.py
import logging
import time
from typing import Optional

from vmcontroller.database.models import VmStatus
from vmcontroller.services.cluster_client import ClusterClient
from vmcontroller.services.dto import VmSnapshot
from vmcontroller.services.exceptions import VmStatusTimeoutError
from vmcontroller.services.vm_service import VmService

logger = logging.getLogger(__name__)

VM_API_VERSION = "kubevirt.io/v1"
VM_KIND = "VirtualMachine"

# VM 삭제 시 정리하는 리소스 (이 순서대로 삭제)
ASSOCIATED_RESOURCES = [
    ("v1", "Service", "vps-access-{name}"),
    ("networking.k8s.io/v1", "Ingress", "vm-ingress-{name}"),
    (VM_API_VERSION, VM_KIND, "{name}"),
    ("v1", "Secret", "{name}-cloud-init-userdata"),
    ("cdi.kubevirt.io/v1beta1", "DataVolume", "{name}-disk"),
    ("v1", "Service", "vps-web-{name}"),
]


class VmLifecycleService:
    def __init__(self, cluster: ClusterClient, vm_service: VmService,
                 poll_interval: float = 5.0, poll_timeout: float = 60.0,
                 provision_timeout: float = 600.0,
                 sleep=time.sleep, clock=time.monotonic):
        """
        Args:
            cluster: 클러스터 API 클라이언트.
            vm_service: VM 레코드 상태를 갱신할 서비스.
            poll_interval: 상태 폴링 간격(초).
            poll_timeout: 상태 폴링 제한 시간(초).
            provision_timeout: 프로비저닝 직후 Running 대기 제한 시간(초). 디스크 이미지 가져오기 시간을 포함합니다.
            sleep, clock: 테스트에서 시간 흐름을 대체하기 위한 주입 지점.
        """
        self.cluster = cluster
        self.vm_service = vm_service
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self.provision_timeout = provision_timeout
        self._sleep = sleep
        self._clock = clock

    def wait_for_vm_status(self, namespace: str, name: str, desired_status: str, timeout: Optional[float] = None):
        """
        VM의 status.printableStatus가 desired_status가 될 때까지 폴링합니다. (대소문자 무시)

        status 필드가 아직 없으면 오류가 아니라 '아직 아님'으로 취급합니다.
        timeout을 주지 않으면 poll_timeout을 사용합니다.

        Raises:
            VmStatusTimeoutError: 제한 시간 내에 원하는 상태가 되지 않았을 때.
            ClusterOperationError: VM 리소스 조회에 실패했을 때.
        """
        deadline = self._clock() + (self.poll_timeout if timeout is None else timeout)
        while True:
            self._sleep(self.poll_interval)
            if self._clock() >= deadline:
                raise VmStatusTimeoutError(f"timeout waiting for VM status to become {desired_status}")

            vm_obj = self.cluster.get(VM_API_VERSION, VM_KIND, name, namespace)
            status = (vm_obj.get("status") or {}).get("printableStatus")
            if not status:
                continue
            logger.debug("VM %s/%s printableStatus=%s (waiting for %s)", namespace, name, status, desired_status)
            if status.lower() == desired_status.lower():
                return

    def _patch_running(self, vm: VmSnapshot, running: bool):
        self.cluster.patch_merge(VM_API_VERSION, VM_KIND, vm.name, vm.namespace, {"spec": {"running": running}})

    def stop_vm(self, vm: VmSnapshot):
        """
        VM을 중지합니다.

        1. 레코드 상태를 Stopping으로 갱신합니다.
        2. spec.running=false 로 패치합니다.
        3. Stopped 상태가 될 때까지 대기한 뒤 레코드 상태를 Stopped로 갱신합니다.
        대기 시간 초과 시 상태는 Stopping으로 남습니다.
        """
        self.vm_service.update_vm_status(vm.name, VmStatus.STOPPING)
        self._patch_running(vm, False)
        self.wait_for_vm_status(vm.namespace, vm.name, VmStatus.STOPPED.value)
        self.vm_service.update_vm_status(vm.name, VmStatus.STOPPED)

    def start_vm(self, vm: VmSnapshot):
        """
        VM을 시작합니다. 대기 중에는 중간 상태를 기록하지 않고, Running이 관측되면 바로 Running으로 갱신합니다.
        대기 시간 초과 시 상태는 변경되지 않습니다.
        """
        self._patch_running(vm, True)
        self.wait_for_vm_status(vm.namespace, vm.name, VmStatus.RUNNING.value)
        self.vm_service.update_vm_status(vm.name, VmStatus.RUNNING)

    def await_running(self, vm: VmSnapshot):
        """
        프로비저닝 직후 VM이 Running을 보고하면 레코드를 Provisioning에서 Running으로 갱신합니다.

        DataVolume 가져오기를 기다려야 하므로 provision_timeout을 사용합니다.
        시간 초과 시 레코드는 Provisioning으로 남습니다.
        """
        self.wait_for_vm_status(vm.namespace, vm.name, VmStatus.RUNNING.value, timeout=self.provision_timeout)
        self.vm_service.update_vm_status(vm.name, VmStatus.RUNNING)

    def delete_vm(self, vm: VmSnapshot):
        """
        VM 레코드를 먼저 soft-delete 한 뒤, 관련 클러스터 리소스를 정해진 순서로 삭제합니다.

        첫 번째 삭제 실패에서 나머지 삭제를 중단하고 예외를 발생시킵니다.
        이 경우에도 레코드의 soft-delete는 이미 반영된 상태입니다.
        """
        self.vm_service.delete_vm(vm.name)
        for api_version, kind, name_format in ASSOCIATED_RESOURCES:
            name = name_format.format(name=vm.name)
            logger.info("Deleting %s %s/%s", kind, vm.namespace, name)
            self.cluster.delete(api_version, kind, name, vm.namespace)

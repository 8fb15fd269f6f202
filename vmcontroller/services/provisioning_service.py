# vmcontroller/services/provisioning_service.py
import logging
import os
from typing import List, Optional

from vmcontroller.services.dto import CreatedResource, ProvisioningResult
from vmcontroller.services.exceptions import ManifestApplyError
from vmcontroller.services.resource_applier import ResourceApplier
from vmcontroller.utils.injection_guard import check_injection
from vmcontroller.utils.manifest_renderer import (
    DNS_HOST_TOKEN,
    NAMESPACE_TOKEN,
    NODEPORT_TOKEN,
    PASSWORD_TOKEN,
    VM_NAME_TOKEN,
)

logger = logging.getLogger(__name__)

INIT_DIR_NAME = "client-init"
DEFAULT_INIT_MANIFEST_DIR = "yaml-data/client-init"


class ProvisioningService:
    def __init__(self, applier: ResourceApplier, init_manifest_dir: str = DEFAULT_INIT_MANIFEST_DIR):
        """
        Args:
            applier: 매니페스트를 클러스터에 적용하는 ResourceApplier.
            init_manifest_dir: manifest_dir 옆에 client-init 디렉터리가 없을 때 사용할 bootstrap 매니페스트 경로.
        """
        self.applier = applier
        self.init_manifest_dir = init_manifest_dir

    def create_user_vm(self, namespace: str, vm_name: str, password: str, dns_host: str,
                       manifest_dir: str, port: int) -> ProvisioningResult:
        """
        사용자 VM에 필요한 클러스터 리소스를 두 단계로 생성합니다.

        1단계(bootstrap)는 네임스페이스 공용 리소스를 이미 존재하면 건너뛰며 적용하고,
        2단계(VM)는 manifest_dir의 VM 전용 리소스를 적용합니다. 어느 단계든 실패하면
        두 단계에서 생성한 모든 리소스를 생성 역순으로 삭제한 뒤 원래 예외를 다시 발생시킵니다.
        롤백 중의 삭제 실패는 로그만 남기고 계속 진행합니다.

        Returns:
            입력 파라미터와 VM 단계에서 생성된 리소스 목록을 담은 ProvisioningResult.

        Raises:
            ValidationError: 파라미터 검증 실패. 클러스터에는 아무 변경도 일어나지 않습니다.
            ManifestApplyError: 매니페스트 적용 실패. 롤백이 끝난 뒤 발생합니다.
                그 밖의 예외도 롤백을 마친 뒤 그대로 다시 발생시킵니다.
        """
        check_injection(namespace, vm_name, password, dns_host, manifest_dir, port)

        # 이 호출에서 생성한 모든 리소스 (bootstrap + vm). 롤백 전용.
        all_created: List[CreatedResource] = []
        try:
            init_dir = self._resolve_init_dir(manifest_dir)
            init_created = self._apply_phase(
                "client-init", init_dir, {NAMESPACE_TOKEN: namespace}, namespace, True, all_created
            )

            vm_replacements = {
                NAMESPACE_TOKEN: namespace,
                NODEPORT_TOKEN: str(port),
                VM_NAME_TOKEN: vm_name,
                DNS_HOST_TOKEN: dns_host,
                PASSWORD_TOKEN: password,
            }
            vm_created = self._apply_phase(
                "client-vm", manifest_dir, vm_replacements, namespace, False, all_created
            )
        except Exception:
            logger.error("CreateUserVM for '%s' failed. Rolling back %d created resources...", vm_name, len(all_created))
            self.rollback(all_created)
            raise

        logger.info("VM '%s' provisioned in namespace '%s' (%d bootstrap, %d vm resources created)",
                    vm_name, namespace, len(init_created), len(vm_created))
        return ProvisioningResult(
            namespace=namespace,
            name=vm_name,
            port=port,
            password=password,
            dns_host=dns_host,
            created_resources=vm_created,
        )

    def _apply_phase(self, phase, directory, replacements, namespace, ignore_exists, ledger):
        try:
            created = self.applier.apply_manifests(directory, replacements, namespace, ignore_exists)
        except ManifestApplyError as e:
            ledger.extend(e.created)
            logger.error("Failed to apply %s manifests: %s", phase, e)
            raise
        ledger.extend(created)
        return created

    def _resolve_init_dir(self, manifest_dir: str) -> str:
        init_dir = os.path.join(os.path.dirname(os.path.normpath(manifest_dir)), INIT_DIR_NAME)
        if not os.path.isdir(init_dir):
            logger.debug("Init manifest dir %s not found, falling back to %s", init_dir, self.init_manifest_dir)
            init_dir = self.init_manifest_dir
        return init_dir

    def rollback(self, resources: List[CreatedResource]) -> List[CreatedResource]:
        """
        리소스들을 생성 역순으로 삭제합니다. (best-effort)

        Returns:
            삭제에 실패한 리소스 목록. 호출자에게 예외로 올리지 않습니다.
        """
        failed = []
        for res in reversed(resources):
            logger.info("Rolling back resource: %s %s/%s", res.kind, res.namespace, res.name)
            try:
                self.applier.delete_resource(res)
            except Exception as e:
                logger.error("Failed to delete resource %s %s/%s during rollback: %s",
                             res.kind, res.namespace, res.name, e)
                failed.append(res)
        return failed

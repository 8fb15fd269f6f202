# vmcontroller/app.py
import logging
import sys
from contextlib import contextmanager
from typing import Optional

from sqlalchemy.orm import Session

from vmcontroller.config import Settings, get_settings
from vmcontroller.database.database import SessionLocal
from vmcontroller.database.db_init import initialize_db
from vmcontroller.repositories.sqlalchemy import SqlalchemyVMRepository
from vmcontroller.services.cluster_client import ClusterClient
from vmcontroller.services.compute_service import ComputeService
from vmcontroller.services.exceptions import ClusterConnectionError, PortExhaustedError
from vmcontroller.services.lifecycle_service import VmLifecycleService
from vmcontroller.services.port_allocator import PortAllocator
from vmcontroller.services.provisioning_service import ProvisioningService
from vmcontroller.services.resource_applier import ResourceApplier
from vmcontroller.services.task_dispatcher import BackgroundTaskDispatcher
from vmcontroller.services.vm_service import VmService

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------
## 로깅 설정
# --------------------------------------------------------------------------

def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

# --------------------------------------------------------------------------
## 의존성 조립 (Repositories -> Services)
# --------------------------------------------------------------------------

def make_lifecycle_scope(cluster: ClusterClient, settings: Settings, session_factory=SessionLocal):
    """백그라운드 작업마다 새 DB 세션에 묶인 VmLifecycleService를 여는 컨텍스트 매니저 팩토리를 만듭니다."""
    @contextmanager
    def lifecycle_scope():
        db_session = session_factory()
        try:
            yield VmLifecycleService(
                cluster,
                VmService(SqlalchemyVMRepository(db_session)),
                poll_interval=settings.vm_poll_interval_seconds,
                poll_timeout=settings.vm_poll_timeout_seconds,
                provision_timeout=settings.vm_provision_timeout_seconds,
            )
        finally:
            db_session.close()
    return lifecycle_scope


def build_compute_service(db_session: Session, cluster: ClusterClient, dispatcher: BackgroundTaskDispatcher,
                          settings: Optional[Settings] = None, session_factory=SessionLocal) -> ComputeService:
    """요청 하나의 DB 세션에 묶인 ComputeService를 조립합니다. cluster와 dispatcher는 프로세스 전체에서 공유합니다."""
    settings = settings or get_settings()
    vm_repo = SqlalchemyVMRepository(db_session)
    provisioning = ProvisioningService(ResourceApplier(cluster), init_manifest_dir=settings.init_manifest_dir)
    return ComputeService(
        vm_service=VmService(vm_repo),
        port_allocator=PortAllocator(vm_repo),
        provisioning=provisioning,
        dispatcher=dispatcher,
        lifecycle_scope=make_lifecycle_scope(cluster, settings, session_factory),
        cluster=cluster,
        manifest_dir=settings.vm_manifest_dir,
    )

# --------------------------------------------------------------------------
## 실행
# --------------------------------------------------------------------------

def main() -> int:
    settings = get_settings()
    configure_logging(settings.log_level)

    initialize_db()

    # 클러스터 클라이언트는 여기서 한 번만 만들고, 실패하면 바로 종료합니다.
    try:
        cluster = ClusterClient.from_settings(settings)
    except ClusterConnectionError as e:
        logger.error("Cannot start VM controller: %s", e)
        return 1

    dispatcher = BackgroundTaskDispatcher(max_workers=settings.lifecycle_workers)
    db_session = SessionLocal()
    try:
        compute = build_compute_service(db_session, cluster, dispatcher, settings)
        logger.info("Cluster connectivity: %s", compute.check_cluster_health())
        try:
            logger.info("Next available node port: %d", compute.get_available_port())
        except PortExhaustedError as e:
            logger.warning("%s", e)
    finally:
        db_session.close()
        dispatcher.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """환경 변수(.env 포함)에서 읽어오는 애플리케이션 설정."""

    model_config = SettingsConfigDict(
        env_file=str(Path.cwd() / ".env"),
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite:///vm_controller.db"

    # Manifests (실행 위치 기준 상대 경로)
    vm_manifest_dir: str = "yaml-data/client-vm"
    init_manifest_dir: str = "yaml-data/client-init"

    # Kubernetes 접속 정보
    kube_token_path: str = "/mnt/secrets/token"
    kube_ca_path: str = "/mnt/secrets/ca.crt"
    kubernetes_service_host: str = "10.43.0.1"
    kubernetes_service_port: str = "443"
    kubeconfig: Optional[str] = None

    # VM lifecycle polling
    vm_poll_interval_seconds: float = 5.0
    vm_poll_timeout_seconds: float = 60.0
    # 프로비저닝 직후 Running 대기 (디스크 이미지 가져오기 포함)
    vm_provision_timeout_seconds: float = 600.0
    lifecycle_workers: int = 4

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()

# vmcontroller/services/cluster_client.py
import logging
import os
import threading
from typing import Any, Dict, Optional

import urllib3
from kubernetes import client, config, dynamic
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from kubernetes.dynamic.exceptions import ConflictError, DynamicApiError, ResourceNotFoundError, ResourceNotUniqueError

from vmcontroller.config import Settings
from vmcontroller.services.exceptions import (
    ClusterConnectionError,
    ClusterOperationError,
    ResourceAlreadyExistsError,
    ResourceDiscoveryError,
)

logger = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"
BACKGROUND_DELETE = {"apiVersion": "v1", "kind": "DeleteOptions", "propagationPolicy": "Background"}

# 네트워크 계층에서 올라올 수 있는 오류들
_TRANSPORT_ERRORS = (ApiException, urllib3.exceptions.HTTPError, OSError)


def load_client_configuration(settings: Settings) -> client.Configuration:
    """
    클러스터 접속 설정을 다음 순서로 찾습니다.

    1. 마운트된 서비스 어카운트 토큰(kube_token_path)과 CA 인증서
       (호스트는 KUBERNETES_SERVICE_HOST/PORT, 기본값 10.43.0.1:443)
    2. In-cluster 설정
    3. kubeconfig (KUBECONFIG 환경 변수 또는 ~/.kube/config)
    """
    configuration = client.Configuration()

    if os.path.exists(settings.kube_token_path):
        try:
            with open(settings.kube_token_path, "r") as f:
                token = f.read().strip()
        except OSError as e:
            logger.warning("Failed to read token from %s: %s", settings.kube_token_path, e)
        else:
            configuration.host = f"https://{settings.kubernetes_service_host}:{settings.kubernetes_service_port}"
            configuration.ssl_ca_cert = settings.kube_ca_path
            configuration.api_key = {"authorization": token}
            configuration.api_key_prefix = {"authorization": "Bearer"}
            logger.info("Using mounted token from %s with host %s", settings.kube_token_path, configuration.host)
            return configuration

    try:
        config.load_incluster_config(client_configuration=configuration)
        logger.info("Using in-cluster configuration")
    except ConfigException:
        try:
            config.load_kube_config(config_file=settings.kubeconfig, client_configuration=configuration)
        except (ConfigException, OSError) as e:
            raise ClusterConnectionError(f"failed to get k8s config: {e}") from e
        logger.info("Using kubeconfig configuration")
    return configuration


class ClusterClient:
    """
    Kubernetes dynamic client의 얇은 래퍼.

    프로세스 시작 시 한 번만 생성하여 모든 서비스에 같은 인스턴스를 넘깁니다.
    Kind -> API 엔드포인트(discovery) 매핑은 인스턴스 안에 캐시됩니다.
    """

    def __init__(self, dynamic_client):
        self._dynamic = dynamic_client
        self._resource_cache: Dict[tuple, Any] = {}
        self._cache_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClusterClient":
        """
        설정으로부터 클라이언트를 구성합니다. 실패는 재시도하지 않고 그대로 올립니다.

        Raises:
            ClusterConnectionError: 접속 설정을 찾지 못했거나 API 서버 discovery에 실패했을 때.
        """
        configuration = load_client_configuration(settings)
        try:
            dynamic_client = dynamic.DynamicClient(client.ApiClient(configuration=configuration))
        except (DynamicApiError, *_TRANSPORT_ERRORS) as e:
            raise ClusterConnectionError(f"failed to create dynamic client: {e}") from e
        return cls(dynamic_client)

    def resolve(self, api_version: str, kind: str):
        """
        apiVersion/kind에 해당하는 API 리소스를 찾습니다.

        Raises:
            ResourceDiscoveryError: 클러스터에 해당 kind의 매핑이 없을 때.
            ClusterOperationError: discovery 요청 자체가 실패했을 때. (API 서버 오류, 연결 끊김 등)
        """
        key = (api_version, kind)
        with self._cache_lock:
            if key in self._resource_cache:
                return self._resource_cache[key]
        try:
            resource = self._dynamic.resources.get(api_version=api_version, kind=kind)
        except (ResourceNotFoundError, ResourceNotUniqueError) as e:
            raise ResourceDiscoveryError(f"failed to find mapping for {api_version}, Kind={kind}: {e}") from e
        except (DynamicApiError, *_TRANSPORT_ERRORS) as e:
            raise ClusterOperationError(f"failed to discover {api_version}, Kind={kind}: {e}") from e
        with self._cache_lock:
            self._resource_cache[key] = resource
        return resource

    def _scoped_namespace(self, resource, namespace: Optional[str]) -> Optional[str]:
        return namespace if resource.namespaced else None

    def create(self, manifest: Dict[str, Any]) -> Dict[str, Any]:
        """
        리소스를 생성하고 생성된 객체를 딕셔너리로 반환합니다.

        Raises:
            ResourceDiscoveryError: kind 매핑이 없을 때.
            ResourceAlreadyExistsError: 같은 이름의 리소스가 이미 있을 때.
            ClusterOperationError: 그 밖의 생성 실패.
        """
        resource = self.resolve(manifest["apiVersion"], manifest["kind"])
        namespace = self._scoped_namespace(resource, (manifest.get("metadata") or {}).get("namespace"))
        try:
            created = self._dynamic.create(resource, body=manifest, namespace=namespace)
        except ConflictError as e:
            raise ResourceAlreadyExistsError(
                f"{manifest['kind']} {namespace or ''}/{manifest['metadata'].get('name')} already exists"
            ) from e
        except (DynamicApiError, *_TRANSPORT_ERRORS) as e:
            raise ClusterOperationError(f"failed to create resource {manifest['kind']}: {e}") from e
        return created.to_dict()

    def get(self, api_version: str, kind: str, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        resource = self.resolve(api_version, kind)
        try:
            obj = self._dynamic.get(resource, name=name, namespace=self._scoped_namespace(resource, namespace))
        except (DynamicApiError, *_TRANSPORT_ERRORS) as e:
            raise ClusterOperationError(f"failed to get {kind} {namespace}/{name}: {e}") from e
        return obj.to_dict()

    def patch_merge(self, api_version: str, kind: str, name: str, namespace: Optional[str], body: Dict[str, Any]) -> Dict[str, Any]:
        resource = self.resolve(api_version, kind)
        try:
            obj = self._dynamic.patch(
                resource,
                body=body,
                name=name,
                namespace=self._scoped_namespace(resource, namespace),
                content_type=MERGE_PATCH,
            )
        except (DynamicApiError, *_TRANSPORT_ERRORS) as e:
            raise ClusterOperationError(f"failed to patch {kind} {namespace}/{name}: {e}") from e
        return obj.to_dict()

    def delete(self, api_version: str, kind: str, name: str, namespace: Optional[str] = None):
        """백그라운드 전파 정책으로 삭제합니다. (종속 리소스는 클러스터 GC가 정리)"""
        resource = self.resolve(api_version, kind)
        try:
            self._dynamic.delete(
                resource,
                name=name,
                namespace=self._scoped_namespace(resource, namespace),
                body=BACKGROUND_DELETE,
            )
        except (DynamicApiError, *_TRANSPORT_ERRORS) as e:
            raise ClusterOperationError(f"failed to delete {kind} {namespace}/{name}: {e}") from e

    def check_connectivity(self) -> str:
        """네임스페이스 목록을 1건 조회해 보고 'healthy' 또는 'unhealthy'를 반환합니다."""
        try:
            resource = self.resolve("v1", "Namespace")
            self._dynamic.get(resource, limit=1)
        except (ResourceDiscoveryError, ClusterOperationError, DynamicApiError, *_TRANSPORT_ERRORS) as e:
            logger.warning("Cluster connectivity check failed: %s", e)
            return "unhealthy"
        return "healthy"

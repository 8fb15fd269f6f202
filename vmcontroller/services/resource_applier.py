# vmcontroller/services/resource_applier.py
import logging
from typing import List, Mapping

from vmcontroller.services.cluster_client import ClusterClient
from vmcontroller.services.dto import CreatedResource
from vmcontroller.services.exceptions import (
    ClusterOperationError,
    ManifestApplyError,
    ResourceAlreadyExistsError,
    ResourceApplyError,
)
from vmcontroller.utils.manifest_renderer import iter_rendered_manifests

logger = logging.getLogger(__name__)


class ResourceApplier:
    def __init__(self, cluster: ClusterClient):
        self.cluster = cluster

    def apply_manifests(
        self,
        directory: str,
        replacements: Mapping[str, str],
        default_namespace: str,
        ignore_exists: bool,
    ) -> List[CreatedResource]:
        """
        디렉터리의 매니페스트를 렌더링하여 순서대로 클러스터에 생성합니다.

        이미 존재하는 리소스는 ignore_exists 값과 관계없이 건너뛰며, 반환 목록에도 넣지 않습니다.
        (롤백 대상 아님)

        Args:
            directory: 매니페스트 템플릿 디렉터리.
            replacements: 토큰 -> 치환값 매핑.
            default_namespace: namespace가 비어 있는 리소스에 주입할 네임스페이스.
            ignore_exists: 이미 존재하는 리소스를 허용하는 단계인지 여부. 현재는 로그 문구만 달라집니다.

        Returns:
            이번 호출에서 새로 생성된 리소스 목록 (생성 순서).

        Raises:
            ManifestApplyError: 렌더링/디코딩/discovery/생성 중 하나가 실패했을 때.
                created 속성에 실패 직전까지 생성된 리소스 목록이 담깁니다.
                예상하지 못한 오류도 ResourceApplyError로 감싸 같은 목록을 전달합니다.
        """
        logger.info("Applying manifests from directory: %s", directory)
        created: List[CreatedResource] = []
        try:
            for filename, manifest in iter_rendered_manifests(directory, replacements):
                metadata = manifest.get("metadata") or {}
                manifest["metadata"] = metadata
                if not metadata.get("namespace"):
                    metadata["namespace"] = default_namespace

                kind = manifest["kind"]
                try:
                    created_obj = self.cluster.create(manifest)
                except ResourceAlreadyExistsError:
                    if ignore_exists:
                        logger.info("Resource %s %s/%s already exists, skipping.",
                                    kind, metadata["namespace"], metadata.get("name"))
                    else:
                        logger.warning("Resource %s %s/%s already exists, skipping (not tracking for rollback).",
                                       kind, metadata["namespace"], metadata.get("name"))
                    continue
                except ClusterOperationError as e:
                    raise ResourceApplyError(f"failed to create resource {kind} from {filename}: {e}") from e

                resource = CreatedResource.from_object(created_obj)
                logger.info("Successfully created %s: %s", kind, resource.name)
                created.append(resource)
        except ManifestApplyError as e:
            e.created = list(created)
            raise
        except Exception as e:
            raise ResourceApplyError(f"unexpected error while applying manifests from {directory}: {e}", created) from e
        return created

    def delete_resource(self, resource: CreatedResource):
        """리소스를 백그라운드 전파 정책으로 삭제합니다."""
        self.cluster.delete(resource.api_version, resource.kind, resource.name, resource.namespace or None)

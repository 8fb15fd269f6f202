# vmcontroller/services/exceptions.py

# --- General Exceptions ---
class VmNotFoundError(Exception):
    """VM을 찾을 수 없을 때"""
    pass

class VmAlreadyExistsError(Exception):
    """VM 이름이 이미 존재할 때"""
    pass

# --- Validation Exceptions ---
class ValidationError(ValueError):
    """템플릿 파라미터가 검증 규칙을 통과하지 못했을 때 (부수 효과 없음)"""
    pass

# --- Port Allocation Exceptions ---
class PortExhaustedError(Exception):
    """할당 가능한 NodePort가 더 이상 없을 때"""
    pass

class PortUnavailableError(Exception):
    """요청한 NodePort를 이미 다른 VM이 사용 중일 때"""
    pass

# --- Manifest / Apply Exceptions ---
class ManifestApplyError(Exception):
    """
    매니페스트 적용 중 발생한 오류의 기반 클래스.
    created 속성에는 오류 직전까지 생성에 성공한 리소스 목록이 담깁니다. (롤백용)
    """
    def __init__(self, message, created=None):
        super().__init__(message)
        self.created = list(created or [])

class ManifestNotFoundError(ManifestApplyError):
    """매니페스트 디렉터리나 파일을 읽을 수 없을 때"""
    pass

class ManifestDecodeError(ManifestApplyError):
    """매니페스트 문서를 YAML 객체로 해석할 수 없을 때"""
    pass

class ResourceDiscoveryError(ManifestApplyError):
    """Kind에 대응하는 클러스터 API 엔드포인트가 없을 때"""
    pass

class ResourceApplyError(ManifestApplyError):
    """already exists 이외의 이유로 리소스 생성에 실패했을 때"""
    pass

class ResourceAlreadyExistsError(Exception):
    """생성하려는 리소스가 이미 존재할 때 (적용 단계에서 건너뛰기 신호로만 사용)"""
    pass

# --- Cluster Exceptions ---
class ClusterConnectionError(ConnectionError):
    """클러스터 API 클라이언트를 구성할 수 없을 때"""
    pass

class ClusterOperationError(Exception):
    """조회/패치/삭제 등 클러스터 API 호출이 실패했을 때"""
    pass

class VmStatusTimeoutError(TimeoutError):
    """VM 상태가 제한 시간 내에 원하는 값으로 바뀌지 않았을 때"""
    pass

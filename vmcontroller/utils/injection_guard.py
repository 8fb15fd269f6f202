# vmcontroller/utils/injection_guard.py
import os
import re

from vmcontroller.services.exceptions import ValidationError

# NodePort로 허용하는 범위 [30003, 32767). 할당기의 범위(30003~30300)와는 별개의 정책입니다.
NODE_PORT_MIN = 30003
NODE_PORT_MAX = 32767

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 16

DNS1123_LABEL_RE = re.compile(r"[a-z0-9]([-a-z0-9]*[a-z0-9])?")
# YAML 스칼라로 안전하게 들어갈 수 있는 문자만 허용 (공백, 따옴표, 역슬래시, 개행 불가)
PASSWORD_RE = re.compile(r"[a-zA-Z0-9!@#$%^&*()_+\-=\[\]{}|;:,.<>/?]+")
DNS_HOST_RE = re.compile(r"[a-zA-Z0-9.-]+")


def check_injection(namespace: str, vm_name: str, password: str, dns_host: str, manifest_dir: str, port: int):
    """
    매니페스트 템플릿에 치환될 파라미터를 검증합니다.

    템플릿 치환은 단순 문자열 치환이므로 YAML 인젝션 방어는 전적으로 이 검사에 달려 있습니다.
    검사는 순서대로 수행되며 첫 번째 실패에서 중단합니다. I/O는 없습니다.

    Raises:
        ValidationError: 검사 중 하나라도 실패했을 때. 메시지로 어떤 검사인지 구분할 수 있습니다.
    """
    # 1. 필수 파라미터 누락
    if not namespace or not vm_name or not password or not dns_host or not manifest_dir or not port:
        raise ValidationError("invalid parameters: empty values not allowed")

    # 2. NodePort 범위
    if not (NODE_PORT_MIN <= port < NODE_PORT_MAX):
        raise ValidationError(
            f"invalid port: {port} (NodePort must be between {NODE_PORT_MIN} and {NODE_PORT_MAX - 1})"
        )

    # 3. DNS-1123 라벨 규칙
    if not DNS1123_LABEL_RE.fullmatch(namespace):
        raise ValidationError(f"invalid namespace format: {namespace!r} (must be DNS-1123 compliant)")
    if not DNS1123_LABEL_RE.fullmatch(vm_name):
        raise ValidationError(f"invalid vm name format: {vm_name!r} (must be DNS-1123 compliant)")

    # 4. 비밀번호 길이와 문자셋
    if not (PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH):
        raise ValidationError(
            f"invalid password: length must be between {PASSWORD_MIN_LENGTH} and {PASSWORD_MAX_LENGTH} characters"
        )
    if not PASSWORD_RE.fullmatch(password):
        raise ValidationError(
            "invalid password format: contains invalid characters "
            "(allowed: alphanumeric and !@#$%^&*()_+-=[]{}|;:,.<>/?)"
        )

    # 5. 접속 호스트 (도메인 형식)
    if not DNS_HOST_RE.fullmatch(dns_host):
        raise ValidationError(f"invalid dns host format: {dns_host!r} (contains invalid characters)")

    # 6. Path traversal
    clean_dir = os.path.normpath(manifest_dir)
    if ".." in clean_dir.replace("\\", "/").split("/") or clean_dir.startswith(("/", "\\")) or os.path.isabs(clean_dir):
        raise ValidationError(f"invalid manifest directory: {manifest_dir!r} (must be a relative path without '..')")

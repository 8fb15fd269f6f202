# vmcontroller/utils/manifest_renderer.py
import logging
import os
from typing import Any, Dict, Iterator, Mapping, Tuple

import yaml

from vmcontroller.services.exceptions import ManifestDecodeError, ManifestNotFoundError

logger = logging.getLogger(__name__)

DOCUMENT_SEPARATOR = "\n---\n"
MANIFEST_SUFFIX = ".yaml"

# 템플릿 토큰
NAMESPACE_TOKEN = "{{NAMESPACE}}"
NODEPORT_TOKEN = "{{NODEPORT}}"
VM_NAME_TOKEN = "{{VM_NAME}}"
DNS_HOST_TOKEN = "{{DNS_HOST}}"
PASSWORD_TOKEN = "{{PASSWORD}}"


def render_template(text: str, replacements: Mapping[str, str]) -> str:
    """토큰을 단순 문자열 치환합니다. 이스케이프는 하지 않으므로 값은 미리 검증되어 있어야 합니다."""
    for token, value in replacements.items():
        text = text.replace(token, value)
    return text


def split_documents(text: str):
    return [doc for doc in text.split(DOCUMENT_SEPARATOR) if doc.strip()]


def decode_document(doc: str, filename: str) -> Dict[str, Any]:
    try:
        obj = yaml.safe_load(doc)
    except yaml.YAMLError as e:
        raise ManifestDecodeError(f"failed to decode yaml in {filename}: {e}") from e

    if not isinstance(obj, dict) or not obj.get("apiVersion") or not obj.get("kind"):
        raise ManifestDecodeError(
            f"failed to decode yaml in {filename}: document is not a resource with apiVersion and kind"
        )
    return obj


def iter_rendered_manifests(directory: str, replacements: Mapping[str, str]) -> Iterator[Tuple[str, Dict[str, Any]]]:
    """
    디렉터리의 *.yaml 파일들을 이름 순으로 읽어 토큰을 치환하고, 문서 단위로 디코딩하여 반환합니다.

    제너레이터이므로 k번째 문서의 디코딩 오류는 1..k-1번째 문서가 소비된 뒤에야 발생합니다.
    호출자는 그 사이에 만든 리소스를 추적해 두었다가 롤백할 수 있습니다.

    Args:
        directory: 매니페스트 템플릿 디렉터리.
        replacements: 토큰 -> 치환값 매핑.

    Yields:
        (파일 이름, 디코딩된 매니페스트 딕셔너리) 튜플.

    Raises:
        ManifestNotFoundError: 디렉터리나 파일을 읽을 수 없을 때.
        ManifestDecodeError: 문서를 리소스 객체로 해석할 수 없을 때. 메시지에 파일 이름이 포함됩니다.
    """
    try:
        filenames = sorted(os.listdir(directory))
    except OSError as e:
        raise ManifestNotFoundError(f"failed to read directory {directory}: {e}") from e

    for filename in filenames:
        path = os.path.join(directory, filename)
        if not filename.endswith(MANIFEST_SUFFIX) or os.path.isdir(path):
            continue

        try:
            with open(path, "r", encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            raise ManifestNotFoundError(f"failed to read file {filename}: {e}") from e

        logger.debug("Rendering manifest %s", path)
        for doc in split_documents(render_template(text, replacements)):
            yield filename, decode_document(doc, filename)

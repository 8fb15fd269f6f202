# vmcontroller/services/task_dispatcher.py
import logging
from concurrent.futures import Future, ThreadPoolExecutor

logger = logging.getLogger(__name__)


class BackgroundTaskDispatcher:
    """
    VM 수명주기 작업을 제한된 크기의 워커 풀에서 실행합니다.

    호출자는 결과를 기다리지 않습니다. 작업의 성공/실패는 로그와 DB의 VM 상태로만 확인할 수 있으며,
    실패한 작업은 재시도하지 않습니다.
    """

    def __init__(self, max_workers: int = 4):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="vm-lifecycle")

    def submit(self, task_name: str, fn, *args, **kwargs) -> Future:
        future = self._executor.submit(fn, *args, **kwargs)
        future.add_done_callback(lambda f: self._log_result(task_name, f))
        return future

    @staticmethod
    def _log_result(task_name: str, future: Future):
        if future.cancelled():
            logger.warning("Background task '%s' was cancelled", task_name)
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Background task '%s' failed: %s", task_name, exc, exc_info=exc)
        else:
            logger.info("Background task '%s' completed", task_name)

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

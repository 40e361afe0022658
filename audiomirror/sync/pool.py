"""
Bounded worker pool for transcoding jobs

Jobs run on a ThreadPoolExecutor with a fixed number of workers. Errors
raised by jobs are not returned to the submitter; they are queued and a
single drain thread hands them, one at a time, to the error callback (the
policy's warn hook). If the callback raises, the first such exception is
kept as the pool's quit signal, which the planner checks before dispatching
more work.
"""

import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_futures
from typing import Callable, List, Optional

from tqdm import tqdm

from ..exceptions import PoolError
from ..utils.logger import get_logger

logger = get_logger(__name__)

_STOP = object()


class WorkerPool:
    """
    Fixed-size job pool with serialized error reporting

    Args:
        size: Maximum number of jobs running at once (at least 1)
        on_error: Called from the drain thread for every job error
        progress: Show a tqdm bar of finished jobs

    Usage:
        with WorkerPool(4, operator.warn) as pool:
            pool.submit(operator.transcode, src, dst, entry)
            pool.check()
        # all jobs finished and all errors reported here
    """

    def __init__(self, size: int, on_error: Callable[[BaseException], None], progress: bool = False):
        if size < 1:
            raise PoolError(f"worker pool size must be at least 1, got {size}", details={'size': size})

        self.size = size
        self._on_error = on_error
        self._executor = ThreadPoolExecutor(max_workers=size, thread_name_prefix="audiomirror-worker")
        self._futures: List[Future] = []
        self._errors: "queue.Queue" = queue.Queue()
        self._lock = threading.Lock()
        self._quit: Optional[BaseException] = None
        self._closed = False

        self._bar = tqdm(total=0, desc="Encoding", unit="file", leave=False) if progress else None
        self._bar_lock = threading.Lock()

        self._drain = threading.Thread(target=self._drain_errors, name="audiomirror-errors", daemon=True)
        self._drain.start()

    @property
    def quit(self) -> Optional[BaseException]:
        """First exception raised by the error callback, if any"""
        with self._lock:
            return self._quit

    def check(self) -> None:
        """Raise the quit exception if one was recorded"""
        error = self.quit
        if error is not None:
            raise error

    def submit(self, fn: Callable, *args) -> Future:
        """
        Schedule fn(*args) on a worker

        Returns:
            Future of the job; it never raises, errors go to on_error

        Raises:
            PoolError: If the pool was closed
        """
        if self._closed:
            raise PoolError("worker pool is closed")
        if self._bar is not None:
            with self._bar_lock:
                self._bar.total += 1
                self._bar.refresh()
        future = self._executor.submit(self._run, fn, args)
        self._futures.append(future)
        return future

    def _run(self, fn: Callable, args: tuple) -> None:
        try:
            fn(*args)
        except Exception as e:
            self._errors.put(e)
        finally:
            if self._bar is not None:
                with self._bar_lock:
                    self._bar.update(1)

    def _drain_errors(self) -> None:
        while True:
            error = self._errors.get()
            try:
                if error is _STOP:
                    return
                try:
                    self._on_error(error)
                except Exception as e:
                    with self._lock:
                        if self._quit is None:
                            self._quit = e
                        else:
                            logger.debug(f"Error after quit: {e}")
            finally:
                self._errors.task_done()

    def wait(self) -> None:
        """Block until every submitted job has finished and its error was reported"""
        wait_futures(list(self._futures))
        self._errors.join()

    def close(self) -> None:
        """Wait for all jobs, then stop the drain thread and the workers"""
        if self._closed:
            return
        self._closed = True
        try:
            self.wait()
        finally:
            self._errors.put(_STOP)
            self._drain.join()
            self._executor.shutdown(wait=True)
            if self._bar is not None:
                self._bar.close()

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

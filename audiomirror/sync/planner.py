"""
Sync planner: compare a source and a destination snapshot and act on the difference

The planner walks both trees together, directory by directory:

1. With delete_before, destination children that have no source
   counterpart are removed first. Otherwise a missing destination
   directory is created.
2. Each source child is matched against the destination entry at its
   destination key. If one is a directory and the other is not, or one is
   music and the other is not, the destination entry is removed first.
3. Directories recurse; files are planned individually. Cheap actions run
   inline, transcoding and updating are handed to the worker pool.

Every error concerning a single entry goes to the operator's warn hook,
which decides whether the run continues.
"""

import os
import threading
from typing import Dict, Iterable, Optional, Set

from .operator import AudioOperation, Operator
from .pool import WorkerPool
from ..exceptions import (
    AudioMirrorError,
    DestinationCollisionError,
    FatalSyncError,
    LibraryError,
    PolicyViolationError,
    SyncAborted,
)
from ..library.database import Database, Entry
from ..utils.helpers import key_to_path, replace_extension


# Errors that concern one entry; everything else ends the run
RECOVERABLE_ERRORS = (OSError, AudioMirrorError)


def as_fatal(error: BaseException) -> FatalSyncError:
    """Wrap an exception raised by a warn hook so that it ends the run"""
    if isinstance(error, FatalSyncError):
        return error
    fatal = SyncAborted(f"aborting: {error}", details={'original_error': error})
    fatal.__cause__ = error
    return fatal


class Planner:
    """
    Plans and executes one sync run

    Args:
        source: Snapshot of the source library
        destination: Snapshot of the destination directory
        operator: Policy deciding and performing actions
        ignore_data: Do not copy non-music files
        delete_before: Remove unexpected destination entries first
        concurrency: Number of transcoding workers, defaults to the CPU count
        data_exceptions: Filenames copied even with ignore_data
        ignore_files: Filenames never copied
        cover_source: Filename of cover images in the source library
        cover_target: Filename to give cover images in the destination
        downscale_cover: Write covers through operator.downscale_cover
        progress: Show a progress bar of transcoding jobs
    """

    def __init__(
        self,
        source: Database,
        destination: Database,
        operator: Operator,
        ignore_data: bool = False,
        delete_before: bool = False,
        concurrency: Optional[int] = None,
        data_exceptions: Iterable[str] = (),
        ignore_files: Iterable[str] = (),
        cover_source: Optional[str] = None,
        cover_target: Optional[str] = None,
        downscale_cover: bool = False,
        progress: bool = False
    ):
        self.source = source
        self.destination = destination
        self.operator = operator
        self.ignore_data = ignore_data
        self.delete_before = delete_before
        self.concurrency = concurrency if concurrency is not None else (os.cpu_count() or 1)
        self.data_exceptions: Set[str] = set(data_exceptions)
        self.ignore_files: Set[str] = set(ignore_files)
        self.cover_source = cover_source
        self.cover_target = cover_target
        self.downscale_cover = downscale_cover
        self.progress = progress
        self._pool: Optional[WorkerPool] = None
        # Held around every call to operator.warn, from either thread
        self._warn_lock = threading.Lock()

    def plan(self) -> None:
        """
        Synchronize the destination with the source

        Returns after all transcoding jobs have finished and their errors
        have been reported.

        Raises:
            LibraryError: If a snapshot has no root directory
            PoolError: If the worker pool cannot be created
            FatalSyncError: If a warning was escalated or the policy misbehaved
        """
        for db in (self.source, self.destination):
            if db.entry is None or not db.entry.is_dir:
                raise LibraryError(f"not a library snapshot: {db.root}", details={'path': db.root})

        with WorkerPool(self.concurrency, self._report_job_error, progress=self.progress) as pool:
            self._pool = pool
            try:
                self._plan_dir(self.source.entry, self.destination.entry)
            finally:
                pool.wait()
                self._pool = None

        # Jobs that failed after the walk finished
        if pool.quit is not None:
            raise as_fatal(pool.quit)

    def dkey(self, entry: Entry) -> str:
        """
        Destination key of a source entry

        Music files get the operator's target extension; a cover image gets
        the cover target name when one is configured. Everything else keeps
        its key.
        """
        if entry.is_music:
            return replace_extension(entry.key, self.operator.which_ext(entry))
        if self.cover_target and self.cover_source and entry.filename == self.cover_source and not entry.is_dir:
            head, sep, _ = entry.key.rpartition("/")
            return f"{head}{sep}{self.cover_target}"
        return entry.key

    def dpath(self, key: str) -> str:
        """Absolute destination path of a destination key"""
        return key_to_path(self.destination.root, key)

    def _plan_dir(self, src: Entry, dst: Optional[Entry]) -> None:
        if dst is not None and self.delete_before:
            expected = self._expected_keys(src)
            for child in dst.children:
                if child.key not in expected:
                    self._remove(child)
        elif dst is None:
            self.operator.create_dir(self.dpath(self.dkey(src)))

        planned: Dict[str, Entry] = {}
        for child in src.children:
            # Stop dispatching once a job error was escalated
            if self._pool.quit is not None:
                raise as_fatal(self._pool.quit)
            try:
                key = self.dkey(child)
                if key in planned:
                    raise DestinationCollisionError(
                        f"{planned[key].key} and {child.key} both map to {key}",
                        details={'key': key, 'sources': [planned[key].key, child.key]}
                    )
                planned[key] = child

                target = self.destination.get(key)
                mismatch = target is not None and (child.is_dir != target.is_dir or child.is_music != target.is_music)
                if mismatch and not child.is_error:
                    self._remove(target)
                    target = None

                if child.is_dir:
                    self._plan_dir(child, target)
                else:
                    self._plan_file(child, target)
            except FatalSyncError:
                raise
            except RECOVERABLE_ERRORS as e:
                self._warn(e)

    def _expected_keys(self, src: Entry) -> Set[str]:
        expected = set()
        for child in src.children:
            expected.add(self.dkey(child))
            # An unreadable source may be music; keep its mirror too
            if child.is_error:
                expected.add(replace_extension(child.key, self.operator.which_ext(child)))
        return expected

    def _plan_file(self, src: Entry, dst: Optional[Entry]) -> None:
        path = self.dpath(self.dkey(src))

        if src.is_error:
            raise src.error

        if src.is_music:
            operation = self.operator.which(src, dst)
            if operation is AudioOperation.SKIP:
                self.operator.ok(path)
            elif operation is AudioOperation.IGNORE:
                self.operator.ignore(path)
            elif operation is AudioOperation.COPY:
                self.operator.copy_file(src.abs_path, path)
            elif operation is AudioOperation.TRANSCODE:
                self._pool.submit(self.operator.transcode, src.abs_path, path, src)
            elif operation is AudioOperation.UPDATE:
                self._pool.submit(self.operator.update, src.abs_path, path, src)
            else:
                raise PolicyViolationError(
                    f"unknown audio operation {operation!r} for {src.key}",
                    details={'key': src.key, 'operation': operation}
                )
            return

        if self._ignored(src):
            self.operator.ignore(path)
        elif dst is not None and dst.mod_time >= src.mod_time:
            self.operator.ok(path)
        elif self.downscale_cover and src.filename == self.cover_source:
            self.operator.downscale_cover(src.abs_path, path)
        else:
            self.operator.copy_file(src.abs_path, path)

    def _ignored(self, entry: Entry) -> bool:
        name = entry.filename
        if name in self.ignore_files:
            return True
        return self.ignore_data and name not in self.data_exceptions

    def _remove(self, entry: Entry) -> None:
        try:
            if entry.is_dir:
                self.operator.remove_dir(entry.abs_path)
            else:
                self.operator.remove_file(entry.abs_path)
        except OSError as e:
            self._warn(e)

    def _report_job_error(self, error: BaseException) -> None:
        with self._warn_lock:
            self.operator.warn(error)

    def _warn(self, error: BaseException) -> None:
        try:
            with self._warn_lock:
                self.operator.warn(error)
        except Exception as e:
            raise as_fatal(e)

"""
Sync policies

An Operator decides what happens to each music file and carries out the
planner's actions. Two policies exist:

- DryRunner reports every action it would take and touches nothing.
- Runner performs the actions: creates and removes directories, copies
  files and runs the encoder.

Both share the same decision logic (Operator.which), so a dry run shows
exactly what a live run with the same settings would do. Feedback is
written through an injected Console.
"""

import os
import shutil
from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterable, Optional

from ..audio.cover import downscale_cover
from ..audio.encoder import Encoder, LossyEncoder, MP3Encoder
from ..exceptions import ConfigError, EncoderError, ExecError, SyncAborted
from ..utils.console import Colors, Console
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AudioOperation(Enum):
    """What to do with one music file"""
    SKIP = "skip"
    IGNORE = "ignore"
    COPY = "copy"
    TRANSCODE = "transcode"
    UPDATE = "update"


class PolicyKind(Enum):
    """The available sync policies"""
    DRY_RUN = "dry-run"
    LIVE_MP3 = "mp3"
    LIVE_LOSSY = "lossy"


class Operator(ABC):
    """
    Decision and execution policy used by the planner

    Args:
        encoder: Encoder that determines target extension, supported codecs
            and the copy threshold
        console: Printer for action lines
        force_transcode: Transcode every supported music file
        copy_extensions: Filename suffixes copied unchanged, checked before
            any codec logic
        fail_on_error: Escalate every warning into SyncAborted
        verbose: Also print "ok:" and "ignoring:" lines
    """

    def __init__(
        self,
        encoder: Encoder,
        console: Console,
        force_transcode: bool = False,
        copy_extensions: Iterable[str] = (),
        fail_on_error: bool = False,
        verbose: bool = False
    ):
        self.encoder = encoder
        self.console = console
        self.force_transcode = force_transcode
        self.copy_extensions = tuple(ext.lower() for ext in copy_extensions)
        self.fail_on_error = fail_on_error
        self.verbose = verbose

    # Decisions

    def _copy_only(self, src) -> bool:
        return bool(self.copy_extensions) and src.filename.lower().endswith(self.copy_extensions)

    def which_ext(self, src) -> str:
        """Destination extension for a music entry"""
        if self._copy_only(src):
            return os.path.splitext(src.filename)[1]
        return self.encoder.extension

    def which(self, src, dst=None) -> AudioOperation:
        """
        Decide what to do with a music entry

        Args:
            src: Music entry in the source library
            dst: Entry at the destination key, or None

        Returns:
            The AudioOperation to perform

        Raises:
            MetadataError: If the source bitrate is needed but unreadable
        """
        stale = dst is None or dst.size == 0 or src.mod_time > dst.mod_time

        if self._copy_only(src):
            return AudioOperation.COPY if stale else AudioOperation.SKIP

        if not self.encoder.can_encode(src.encoding):
            return AudioOperation.IGNORE
        if self.force_transcode:
            return AudioOperation.TRANSCODE

        if dst is None or dst.size == 0:
            if self.encoder.can_copy(src):
                return AudioOperation.COPY
            return AudioOperation.TRANSCODE

        if src.mod_time > dst.mod_time:
            return AudioOperation.UPDATE
        return AudioOperation.SKIP

    # Feedback

    def ok(self, path: str) -> None:
        if self.verbose:
            self.console.action("ok:", path, Colors.OK)

    def ignore(self, path: str) -> None:
        if self.verbose:
            self.console.action("ignoring:", path, Colors.IGNORE)

    def _report(self, label: str, color: str, error: BaseException) -> None:
        self.console.message(label, str(error), color)
        if isinstance(error, ExecError) and error.output.strip():
            self.console.output(error.output)

    def warn(self, error: BaseException) -> None:
        """
        Report a recoverable error

        Raises:
            SyncAborted: If fail_on_error is set
        """
        logger.debug(f"warning: {error!r}")
        self._report("warning:", Colors.WARN, error)
        if self.fail_on_error:
            raise SyncAborted(f"aborting: {error}", details={'original_error': error}) from error

    def error(self, error: BaseException) -> None:
        """Report a fatal error and re-raise it"""
        logger.error(f"error: {error}")
        self._report("error:", Colors.ERROR, error)
        raise error

    # Actions

    @abstractmethod
    def create_dir(self, path: str) -> None:
        """Create a destination directory"""

    @abstractmethod
    def remove_dir(self, path: str) -> None:
        """Remove a destination directory and everything under it"""

    @abstractmethod
    def remove_file(self, path: str) -> None:
        """Remove a destination file"""

    @abstractmethod
    def copy_file(self, src: str, dst: str) -> None:
        """Copy a file, keeping its modification time"""

    @abstractmethod
    def transcode(self, src: str, dst: str, entry) -> None:
        """Encode a music entry into dst"""

    @abstractmethod
    def update(self, src: str, dst: str, entry) -> None:
        """Replace an outdated destination file"""

    @abstractmethod
    def downscale_cover(self, src: str, dst: str) -> None:
        """Write a resized copy of a cover image"""


class DryRunner(Operator):
    """Policy that only reports the actions a live run would take"""

    def create_dir(self, path: str) -> None:
        self.console.action("mkdir:", path, Colors.CREATE)

    def remove_dir(self, path: str) -> None:
        self.console.action("rm -r:", path, Colors.REMOVE)

    def remove_file(self, path: str) -> None:
        self.console.action("rm:", path, Colors.REMOVE)

    def copy_file(self, src: str, dst: str) -> None:
        self.console.action("cp:", dst, Colors.COPY)

    def transcode(self, src: str, dst: str, entry) -> None:
        self.console.action("encode:", dst, Colors.ENCODE)

    def update(self, src: str, dst: str, entry) -> None:
        self.console.action("update:", dst, Colors.ENCODE)

    def downscale_cover(self, src: str, dst: str) -> None:
        self.console.action("cover:", dst, Colors.COPY)


class Runner(DryRunner):
    """
    Policy that performs every action

    Each action line is printed before the action runs; a failed action
    raises, and the planner hands the error to warn().
    """

    def __init__(self, encoder: Encoder, console: Console, cover_size: int = 500, **kwargs):
        super().__init__(encoder, console, **kwargs)
        self.cover_size = cover_size

    def create_dir(self, path: str) -> None:
        super().create_dir(path)
        os.makedirs(path, exist_ok=True)

    def remove_dir(self, path: str) -> None:
        super().remove_dir(path)
        shutil.rmtree(path)

    def remove_file(self, path: str) -> None:
        super().remove_file(path)
        os.remove(path)

    def copy_file(self, src: str, dst: str) -> None:
        super().copy_file(src, dst)
        shutil.copy2(src, dst)

    def transcode(self, src: str, dst: str, entry) -> None:
        super().transcode(src, dst, entry)
        self._encode(src, dst, entry)

    def update(self, src: str, dst: str, entry) -> None:
        super().update(src, dst, entry)
        if os.path.lexists(dst):
            os.remove(dst)
        if self.encoder.can_copy(entry):
            shutil.copy2(src, dst)
        else:
            self._encode(src, dst, entry)

    def downscale_cover(self, src: str, dst: str) -> None:
        super().downscale_cover(src, dst)
        downscale_cover(src, dst, max_size=self.cover_size)

    def _encode(self, src: str, dst: str, entry) -> None:
        try:
            output = self.encoder.encode(src, dst, entry.metadata())
        except (EncoderError, OSError):
            # A partial file would look up to date on the next run
            if os.path.exists(dst):
                os.remove(dst)
            raise
        if output.strip():
            logger.debug(f"encoder output for {dst}:\n{output}")


def create_encoder(settings, lossy: Optional[bool] = None) -> Encoder:
    """
    Build the encoder selected by the settings

    Args:
        settings: Settings instance
        lossy: Override settings.lossy.enabled

    Returns:
        MP3Encoder or LossyEncoder

    Raises:
        ConfigError: If the encoder settings are invalid
    """
    use_lossy = settings.lossy.enabled if lossy is None else lossy
    timeout = settings.sync.timeout or None
    try:
        if use_lossy:
            return LossyEncoder(
                codec=settings.lossy.codec,
                bitrate=settings.lossy.bitrate,
                use_ogg_extension=settings.lossy.use_ogg_extension,
                ffmpeg_cmd=settings.tools.ffmpeg,
                timeout=timeout,
            )
        return MP3Encoder(
            quality=settings.mp3.quality,
            bitrate_threshold=settings.mp3.bitrate_threshold,
            lame=settings.tools.lame,
            flac=settings.tools.flac,
            ffmpeg_cmd=settings.tools.ffmpeg,
            timeout=timeout,
        )
    except EncoderError as e:
        raise ConfigError(str(e), details={'original_error': e})


def create_operator(kind: PolicyKind, settings, console: Console) -> Operator:
    """
    Build the policy for a sync run

    Args:
        kind: Which policy to build
        settings: Settings instance with sync, encoder and cover sections
        console: Printer handed to the policy

    Returns:
        Operator for kind
    """
    options = dict(
        force_transcode=settings.sync.force_transcode,
        copy_extensions=settings.sync.copy_extensions,
        fail_on_error=settings.sync.fail_on_error,
        verbose=settings.sync.verbose,
    )

    if kind is PolicyKind.DRY_RUN:
        return DryRunner(create_encoder(settings), console, **options)
    if kind is PolicyKind.LIVE_MP3:
        return Runner(create_encoder(settings, lossy=False), console, cover_size=settings.cover.max_size, **options)
    if kind is PolicyKind.LIVE_LOSSY:
        return Runner(create_encoder(settings, lossy=True), console, cover_size=settings.cover.max_size, **options)
    raise ConfigError(f"unknown policy kind: {kind!r}")


def policy_kind(settings) -> PolicyKind:
    """PolicyKind selected by the settings"""
    if settings.sync.dry_run:
        return PolicyKind.DRY_RUN
    return PolicyKind.LIVE_LOSSY if settings.lossy.enabled else PolicyKind.LIVE_MP3

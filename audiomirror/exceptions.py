"""
Exception classes for audiomirror.

Exception Hierarchy:
    AudioMirrorError (base)
        ConfigError - Configuration file or value issues
        LibraryError - Library root or walk issues
        PoolError - Worker pool construction issues
        MetadataError - Audio tag parsing issues
            UnsupportedAudioError - File is not a readable audio file
        EncoderError - Encoder configuration or invocation issues
            ExecError - External process failed, output retained
        CoverError - Cover art processing issues
        DestinationCollisionError - Two sources map to one destination
        FatalSyncError - Errors that end a sync run
            SyncAborted - A warning was escalated
            PolicyViolationError - A policy returned an unknown operation

Per-entry errors are reported through the active policy's warning hook and
the run continues. FatalSyncError and its subclasses are never reported as
warnings; they unwind the planner once in-flight jobs have finished.
"""

from typing import Any, Dict, Optional


class AudioMirrorError(Exception):
    """
    Base exception for all audiomirror errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (paths, keys, commands).
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'path': absolute path of the file involved
                     - 'key': library key of the entry involved
                     - 'original_error': the underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(AudioMirrorError):
    """
    Raised when there's an issue with the configuration.

    Common causes:
        - config.yaml has invalid YAML syntax
        - Out-of-range values (quality outside 0-9, threshold outside 32-500)
        - Unknown lossy codec name
    """
    pass


class LibraryError(AudioMirrorError):
    """
    Raised when a library tree cannot be read.

    Fatal when it concerns the root directory. A symlink cycle found during
    the walk is stored on an Error entry instead of being raised.
    """
    pass


class PoolError(AudioMirrorError):
    """Raised when the worker pool cannot be constructed."""
    pass


class MetadataError(AudioMirrorError):
    """
    Raised when audio metadata cannot be read from a file.

    Stored on the entry that failed, so that every later access
    raises the same error without touching the file again.
    """
    pass


class UnsupportedAudioError(MetadataError):
    """Raised when mutagen does not recognize a file as audio."""
    pass


class EncoderError(AudioMirrorError):
    """Raised for encoder configuration problems and failed encodes."""
    pass


class ExecError(EncoderError):
    """
    Raised when an external program exits unsuccessfully.

    Attributes:
        command: The argument list that was executed.
        returncode: Exit status, or None if the program never ran.
        output: Combined stdout and stderr of the program.
    """

    def __init__(
        self,
        message: str,
        command=None,
        returncode: Optional[int] = None,
        output: str = "",
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message, details)
        self.command = list(command or [])
        self.returncode = returncode
        self.output = output


class CoverError(AudioMirrorError):
    """Raised when cover art cannot be downscaled."""
    pass


class DestinationCollisionError(AudioMirrorError):
    """Raised when two source entries would be written to the same destination."""
    pass


class FatalSyncError(AudioMirrorError):
    """Base for errors that stop planning instead of being reported as warnings."""
    pass


class SyncAborted(FatalSyncError):
    """Raised by a policy's warning hook to escalate a warning into a fatal error."""
    pass


class PolicyViolationError(FatalSyncError):
    """Raised when a policy returns an operation the planner does not know."""
    pass

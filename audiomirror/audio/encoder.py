"""
Encoders used by the live sync policy

An encoder knows its target codec and file extension, which source codecs
it can read, whether a source file may be copied instead of re-encoded, and
how to turn a source file into a destination file by running external
programs (lame, flac, ffmpeg).

Every external program is run with stdout and stderr combined; when it fails
the combined text is kept on the raised ExecError so it can be shown next to
the failed action.
"""

import subprocess
import tempfile
from abc import ABC, abstractmethod
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

import ffmpeg

from .codecs import AudioMetadata, Codec
from ..exceptions import EncoderError, ExecError
from ..utils.helpers import parse_bitrate
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _decode(data: Optional[bytes]) -> str:
    return (data or b"").decode('utf-8', errors='replace')


def run_command(args: Sequence[str], timeout: Optional[float] = None) -> str:
    """
    Run a program and return its combined output

    Args:
        args: Program and arguments
        timeout: Seconds before the program is killed, None for no limit

    Returns:
        Combined stdout and stderr

    Raises:
        ExecError: If the program cannot be started, times out or exits non-zero
    """
    args = list(args)
    logger.debug(f"exec: {' '.join(args)}")
    try:
        result = subprocess.run(
            args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise ExecError(f"{args[0]}: program not found", command=args, output=str(e))
    except subprocess.TimeoutExpired as e:
        raise ExecError(f"{args[0]}: timed out after {timeout}s", command=args, output=_decode(e.output))

    output = _decode(result.stdout)
    if result.returncode != 0:
        raise ExecError(
            f"{args[0]} exited with status {result.returncode}",
            command=args,
            returncode=result.returncode,
            output=output,
        )
    return output


def run_pipeline(
    producer: Sequence[str],
    consumer: Sequence[str],
    timeout: Optional[float] = None
) -> str:
    """
    Run `producer | consumer` and return the output of both

    Args:
        producer: Program writing to stdout (e.g. a decoder)
        consumer: Program reading stdin (e.g. an encoder)
        timeout: Seconds before both programs are killed

    Returns:
        Producer stderr followed by consumer stdout/stderr

    Raises:
        ExecError: If either program fails
    """
    producer, consumer = list(producer), list(consumer)
    command = producer + ['|'] + consumer
    logger.debug(f"exec: {' '.join(command)}")

    with tempfile.TemporaryFile() as errors:
        try:
            upstream = subprocess.Popen(producer, stdin=subprocess.DEVNULL, stdout=subprocess.PIPE, stderr=errors)
        except FileNotFoundError as e:
            raise ExecError(f"{producer[0]}: program not found", command=command, output=str(e))

        try:
            downstream = subprocess.Popen(consumer, stdin=upstream.stdout, stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
        except FileNotFoundError as e:
            upstream.kill()
            upstream.wait()
            raise ExecError(f"{consumer[0]}: program not found", command=command, output=str(e))
        finally:
            # Only the consumer reads from the pipe now
            upstream.stdout.close()

        try:
            out, _ = downstream.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            downstream.kill()
            upstream.kill()
            out, _ = downstream.communicate()
            upstream.wait()
            raise ExecError(f"{consumer[0]}: timed out after {timeout}s", command=command, output=_decode(out))
        upstream.wait()

        errors.seek(0)
        output = _decode(errors.read()) + _decode(out)

    for args, process in ((producer, upstream), (consumer, downstream)):
        if process.returncode != 0:
            raise ExecError(
                f"{args[0]} exited with status {process.returncode}",
                command=command,
                returncode=process.returncode,
                output=output,
            )
    return output


class Encoder(ABC):
    """
    Base class for destination encoders

    Attributes:
        codec: Codec written by this encoder
        extension: File extension of encoded files, with leading dot
        bitrate_threshold: Sources in the target codec at or below this
            bitrate (Kbps) are copied instead of re-encoded
        timeout: Seconds allowed per encode, None for no limit
    """

    codec: Codec
    extension: str
    supported: FrozenSet[Codec] = frozenset(Codec)

    def __init__(self, bitrate_threshold: int, timeout: Optional[float] = None):
        self.bitrate_threshold = bitrate_threshold
        self.timeout = timeout or None

    def can_encode(self, codec: Optional[Codec]) -> bool:
        """Whether files of this codec can be read by the encoder"""
        return codec in self.supported

    def can_copy(self, entry) -> bool:
        """
        Whether a source file can be copied unchanged

        Args:
            entry: Music entry of the source library

        Returns:
            True if the source is already in the target codec and its
            bitrate is at or below the threshold

        Raises:
            MetadataError: If the source bitrate cannot be read
        """
        if entry.encoding is not self.codec:
            return False
        return entry.encoding_bitrate <= self.bitrate_threshold

    @abstractmethod
    def encode(self, src: str, dst: str, metadata: AudioMetadata) -> str:
        """
        Encode src into dst

        Args:
            src: Source file path
            dst: Destination file path (overwritten)
            metadata: Metadata of the source file

        Returns:
            Combined output of the programs that ran

        Raises:
            ExecError: If encoding fails
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.codec}, {self.extension}, threshold={self.bitrate_threshold}k)"


class MP3Encoder(Encoder):
    """
    LAME VBR encoder

    MP3 sources are re-encoded by lame directly, FLAC sources are decoded by
    flac and piped into lame with their tags, and everything else goes
    through ffmpeg's libmp3lame.
    """

    codec = Codec.MP3
    extension = ".mp3"

    def __init__(
        self,
        quality: int = 4,
        bitrate_threshold: int = 256,
        lame: str = "lame",
        flac: str = "flac",
        ffmpeg_cmd: str = "ffmpeg",
        timeout: Optional[float] = None
    ):
        if not 0 <= quality <= 9:
            raise EncoderError(f"MP3 quality must be between 0 and 9, got {quality}")
        if not 32 <= bitrate_threshold <= 500:
            raise EncoderError(f"bitrate threshold must be between 32 and 500 Kbps, got {bitrate_threshold}")
        super().__init__(bitrate_threshold, timeout)
        self.quality = quality
        self.lame = lame
        self.flac = flac
        self.ffmpeg = ffmpeg_cmd

    def commands(self, src: str, dst: str, metadata: AudioMetadata) -> Tuple[Optional[List[str]], List[str]]:
        """
        Build the command line(s) for one encode

        Returns:
            (producer, consumer): producer is None when a single program runs
        """
        quality = f"-V{self.quality}"
        if metadata.codec is Codec.MP3:
            return None, [self.lame, '--quiet', '--mp3input', '-h', quality, src, dst]

        if metadata.codec is Codec.FLAC:
            decoder = [self.flac, '-c', '-d', '-s', src]
            encoder = [self.lame, '--quiet', '-h', quality, '--add-id3v2', '--pad-id3v2']
            encoder += metadata.tag_arguments()
            encoder += ['-', dst]
            return decoder, encoder

        stream = (
            ffmpeg
            .input(src)
            .output(dst, acodec='libmp3lame', vn=None, map_metadata=0, **{'q:a': self.quality})
            .global_args('-hide_banner', '-nostdin')
            .overwrite_output()
        )
        return None, stream.compile(cmd=self.ffmpeg)

    def encode(self, src: str, dst: str, metadata: AudioMetadata) -> str:
        producer, consumer = self.commands(src, dst, metadata)
        if producer is None:
            return run_command(consumer, timeout=self.timeout)
        return run_pipeline(producer, consumer, timeout=self.timeout)


class LossyEncoder(Encoder):
    """
    ffmpeg-based encoder for Opus, Vorbis or AAC at a target bitrate

    Args:
        codec: One of "opus", "vorbis" or "aac"
        bitrate: Target bitrate such as "96k"
        use_ogg_extension: Write Opus files as .ogg instead of .opus
        bitrate_threshold: Copy threshold in Kbps, defaults to the target bitrate
    """

    CODECS: Dict[str, Tuple[Codec, str, str]] = {
        'opus': (Codec.OPUS, 'libopus', '.opus'),
        'vorbis': (Codec.OGG_VORBIS, 'libvorbis', '.ogg'),
        'aac': (Codec.MP4_AAC, 'aac', '.m4a'),
    }

    def __init__(
        self,
        codec: str = "opus",
        bitrate: str = "96k",
        use_ogg_extension: bool = False,
        bitrate_threshold: Optional[int] = None,
        ffmpeg_cmd: str = "ffmpeg",
        timeout: Optional[float] = None
    ):
        if codec not in self.CODECS:
            raise EncoderError(f"unknown lossy codec {codec!r}, expected one of {', '.join(self.CODECS)}")
        target_kbps = parse_bitrate(bitrate)
        if not target_kbps or target_kbps <= 0:
            raise EncoderError(f"invalid target bitrate {bitrate!r}")

        super().__init__(bitrate_threshold or target_kbps, timeout)
        self.codec, self.ffmpeg_codec, self.extension = self.CODECS[codec]
        if codec == 'opus' and use_ogg_extension:
            self.extension = ".ogg"
        self.bitrate = f"{target_kbps}k"
        self.ffmpeg = ffmpeg_cmd

    def command(self, src: str, dst: str) -> List[str]:
        stream = (
            ffmpeg
            .input(src)
            .output(dst, acodec=self.ffmpeg_codec, audio_bitrate=self.bitrate, vn=None, map_metadata=0)
            .global_args('-hide_banner', '-nostdin')
            .overwrite_output()
        )
        return stream.compile(cmd=self.ffmpeg)

    def encode(self, src: str, dst: str, metadata: AudioMetadata) -> str:
        return run_command(self.command(src, dst), timeout=self.timeout)

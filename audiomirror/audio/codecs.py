"""
Audio codec identification and metadata reading

Identification only sniffs the file header so that building a library
snapshot stays fast; full tag parsing happens later, once per file, when a
sync decision actually needs the bitrate or tags.
"""

import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import mutagen
from mutagen.aac import AAC
from mutagen.aiff import AIFF
from mutagen.flac import FLAC
from mutagen.mp3 import MP3
from mutagen.mp4 import MP4
from mutagen.oggopus import OggOpus
from mutagen.oggvorbis import OggVorbis
from mutagen.wave import WAVE

from ..exceptions import MetadataError, UnsupportedAudioError
from ..utils.helpers import RunningStat
from ..utils.logger import get_logger

logger = get_logger(__name__)


class Codec(Enum):
    """Audio codecs the library understands"""
    MP3 = ("MP3", ".mp3", False)
    FLAC = ("FLAC", ".flac", True)
    OGG_VORBIS = ("Ogg Vorbis", ".ogg", False)
    OPUS = ("Opus", ".opus", False)
    MP4_AAC = ("MPEG-4 Audio", ".m4a", False)
    AAC = ("AAC", ".aac", False)
    WAV = ("WAVE", ".wav", True)
    AIFF = ("AIFF", ".aiff", True)

    def __init__(self, display_name: str, extension: str, lossless: bool):
        self.display_name = display_name
        self.extension = extension
        self.lossless = lossless

    def __str__(self) -> str:
        return self.display_name


# Candidate mutagen types, scored the same way mutagen.File picks one
_KINDS: List[Tuple[type, Codec]] = [
    (MP3, Codec.MP3),
    (FLAC, Codec.FLAC),
    (OggVorbis, Codec.OGG_VORBIS),
    (OggOpus, Codec.OPUS),
    (MP4, Codec.MP4_AAC),
    (AAC, Codec.AAC),
    (WAVE, Codec.WAV),
    (AIFF, Codec.AIFF),
]

HEADER_SIZE = 128


@dataclass
class AudioMetadata:
    """
    Tags and stream properties of one audio file

    bitrate is in Kbps, duration in seconds and mod_time is the file's
    modification time as returned by os.stat.
    """
    codec: Codec
    bitrate: int = 0
    duration: float = 0.0
    mod_time: float = 0.0
    title: str = ""
    artist: str = ""
    album: str = ""
    album_artist: str = ""
    genre: str = ""
    composer: str = ""
    year: str = ""
    track: int = 0
    track_total: int = 0
    disc: int = 0
    disc_total: int = 0

    def tag_arguments(self) -> List[str]:
        """
        Render the tags as LAME command-line arguments

        Returns:
            Argument list such as ['--tt', 'Title', '--ta', 'Artist', ...]
        """
        args: List[str] = []
        pairs = [
            ('--tt', self.title),
            ('--ta', self.artist),
            ('--tl', self.album),
            ('--ty', self.year),
            ('--tg', self.genre),
        ]
        for flag, value in pairs:
            if value:
                args += [flag, value]
        if self.track:
            number = f"{self.track}/{self.track_total}" if self.track_total else str(self.track)
            args += ['--tn', number]
        if self.album_artist:
            args += ['--tv', f"TPE2={self.album_artist}"]
        if self.composer:
            args += ['--tv', f"TCOM={self.composer}"]
        if self.disc:
            disc = f"{self.disc}/{self.disc_total}" if self.disc_total else str(self.disc)
            args += ['--tv', f"TPOS={disc}"]
        return args


def parse_number_pair(value: str) -> Tuple[int, int]:
    """
    Parse a track or disc number string like '3' or '3/12'

    Returns:
        (number, total); unparseable parts are 0
    """
    number, _, total = value.partition("/")
    try:
        n = int(number.strip())
    except ValueError:
        n = 0
    try:
        t = int(total.strip()) if total else 0
    except ValueError:
        t = 0
    return n, t


class AudioGateway(ABC):
    """Identifies audio files and reads their metadata"""

    @abstractmethod
    def identify(self, path: str) -> Optional[Codec]:
        """
        Identify the codec of a file

        Args:
            path: Absolute path of the file

        Returns:
            Codec, or None when the file is not audio

        Raises:
            OSError: If the file cannot be read
        """

    @abstractmethod
    def read_metadata(self, path: str) -> AudioMetadata:
        """
        Read tags and stream properties

        Raises:
            MetadataError: If the file cannot be parsed
        """


@dataclass
class GatewayStats:
    """Timing of gateway calls, reported by `audiomirror stats --runtime`"""
    identify: RunningStat = field(default_factory=RunningStat)
    read_metadata: RunningStat = field(default_factory=RunningStat)

    def items(self) -> List[Tuple[str, RunningStat]]:
        return [("identify", self.identify), ("read_metadata", self.read_metadata)]


class MutagenGateway(AudioGateway):
    """AudioGateway backed by mutagen"""

    def __init__(self):
        self.stats = GatewayStats()

    def identify(self, path: str) -> Optional[Codec]:
        start = time.perf_counter()
        try:
            with open(path, 'rb') as fileobj:
                header = fileobj.read(HEADER_SIZE)
                best_score, best_codec = 0, None
                for kind, codec in _KINDS:
                    fileobj.seek(0)
                    score = kind.score(path, fileobj, header)
                    if score > best_score:
                        best_score, best_codec = score, codec
            return best_codec
        finally:
            self.stats.identify.add(time.perf_counter() - start)

    def read_metadata(self, path: str) -> AudioMetadata:
        start = time.perf_counter()
        try:
            return self._read(path)
        finally:
            self.stats.read_metadata.add(time.perf_counter() - start)

    def _read(self, path: str) -> AudioMetadata:
        try:
            stat = os.stat(path)
            audio = mutagen.File(path, easy=True)
        except (OSError, mutagen.MutagenError) as e:
            raise MetadataError(
                f"cannot read audio metadata from {path}: {e}",
                details={'path': path, 'original_error': e}
            )

        if audio is None:
            raise UnsupportedAudioError(f"not a supported audio file: {path}", details={'path': path})

        codec = self._codec_of(audio)
        info = audio.info
        duration = float(getattr(info, 'length', 0.0) or 0.0)
        bitrate = int(getattr(info, 'bitrate', 0) or 0) // 1000
        if not bitrate and duration > 0:
            # Opus and some containers do not report a bitrate
            bitrate = int(stat.st_size * 8 / duration / 1000)

        tags = audio.tags or {}
        track, track_total = parse_number_pair(self._first(tags, 'tracknumber'))
        disc, disc_total = parse_number_pair(self._first(tags, 'discnumber'))

        metadata = AudioMetadata(
            codec=codec,
            bitrate=bitrate,
            duration=duration,
            mod_time=stat.st_mtime,
            title=self._first(tags, 'title'),
            artist=self._first(tags, 'artist'),
            album=self._first(tags, 'album'),
            album_artist=self._first(tags, 'albumartist'),
            genre=self._first(tags, 'genre'),
            composer=self._first(tags, 'composer'),
            year=self._first(tags, 'date')[:4],
            track=track,
            track_total=track_total,
            disc=disc,
            disc_total=disc_total,
        )
        logger.debug(f"Read metadata for {path}: {codec} {bitrate}k {duration:.1f}s")
        return metadata

    @staticmethod
    def _codec_of(audio) -> Codec:
        # EasyMP3 and EasyMP4 subclass MP3 and MP4
        for kind, codec in _KINDS:
            if isinstance(audio, kind):
                return codec
        raise UnsupportedAudioError(f"unsupported audio type: {type(audio).__name__}")

    @staticmethod
    def _first(tags, key: str) -> str:
        try:
            values = tags[key]
        except (KeyError, ValueError):
            return ""
        if isinstance(values, (list, tuple)):
            return str(values[0]) if values else ""
        return str(values)

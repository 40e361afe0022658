"""Test configuration and fixtures"""

import io
import os
import threading
import time
from collections import Counter
from pathlib import Path

import pytest

from audiomirror.audio.codecs import AudioGateway, AudioMetadata, Codec
from audiomirror.audio.encoder import Encoder
from audiomirror.exceptions import MetadataError
from audiomirror.library.database import read_library
from audiomirror.sync.operator import Runner
from audiomirror.utils.console import Console


# A fixed point in the past so that files written by tests are always newer
BASE_TIME = time.time() - 3600


class FakeGateway(AudioGateway):
    """Identifies audio by extension and serves metadata from a table"""

    CODECS = {
        '.flac': Codec.FLAC,
        '.mp3': Codec.MP3,
        '.ogg': Codec.OGG_VORBIS,
        '.opus': Codec.OPUS,
        '.m4a': Codec.MP4_AAC,
    }
    DEFAULT_BITRATES = {
        Codec.FLAC: 900,
        Codec.MP3: 320,
        Codec.OGG_VORBIS: 160,
        Codec.OPUS: 128,
        Codec.MP4_AAC: 256,
    }

    def __init__(self, bitrates=None, broken=(), unreadable=()):
        self.bitrates = dict(bitrates or {})
        self.broken = set(broken)
        self.unreadable = set(unreadable)
        self.reads = Counter()
        self._lock = threading.Lock()

    def identify(self, path):
        if os.path.basename(path) in self.unreadable:
            raise PermissionError(13, "Permission denied", path)
        return self.CODECS.get(os.path.splitext(path)[1].lower())

    def read_metadata(self, path):
        with self._lock:
            self.reads[path] += 1
        name = os.path.basename(path)
        if name in self.broken:
            raise MetadataError(f"cannot read audio metadata from {path}", details={'path': path})
        codec = self.identify(path)
        return AudioMetadata(
            codec=codec,
            bitrate=self.bitrates.get(name, self.DEFAULT_BITRATES[codec]),
            duration=180.0,
            mod_time=os.stat(path).st_mtime,
            title=os.path.splitext(name)[0],
            artist="Artist A/Artist B",
            album="Album",
            genre="Rock",
        )


class FakeEncoder(Encoder):
    """MP3 'encoder' that writes a marker file instead of running lame"""

    codec = Codec.MP3
    extension = ".mp3"
    supported = frozenset({Codec.FLAC, Codec.MP3, Codec.OGG_VORBIS})

    def __init__(self, bitrate_threshold=256):
        super().__init__(bitrate_threshold)
        self.encoded = []

    def encode(self, src, dst, metadata):
        self.encoded.append((src, dst))
        with open(dst, 'wb') as f:
            f.write(b"encoded:" + os.path.basename(src).encode())
        return ""


class RecordingOperator(Runner):
    """
    Runner that records every call in order

    With live=False nothing touches the filesystem.
    """

    WRITES = ('create_dir', 'remove_dir', 'remove_file', 'copy_file', 'transcode', 'update', 'downscale_cover')

    def __init__(self, encoder=None, live=False, **kwargs):
        super().__init__(encoder or FakeEncoder(), Console(color=False, stream=io.StringIO()), **kwargs)
        self.live = live
        self.calls = []
        self.warnings = []
        self._calls_lock = threading.Lock()

    def _record(self, *call):
        with self._calls_lock:
            self.calls.append(call)

    def recorded(self, *kinds):
        return [call for call in self.calls if not kinds or call[0] in kinds]

    def writes(self):
        return [call for call in self.calls if call[0] in self.WRITES]

    def ok(self, path):
        self._record('ok', path)

    def ignore(self, path):
        self._record('ignore', path)

    def warn(self, error):
        with self._calls_lock:
            self.warnings.append(error)
        self._record('warn', str(error))
        super().warn(error)

    def create_dir(self, path):
        self._record('create_dir', path)
        if self.live:
            super().create_dir(path)

    def remove_dir(self, path):
        self._record('remove_dir', path)
        if self.live:
            super().remove_dir(path)

    def remove_file(self, path):
        self._record('remove_file', path)
        if self.live:
            super().remove_file(path)

    def copy_file(self, src, dst):
        self._record('copy_file', dst)
        if self.live:
            super().copy_file(src, dst)

    def transcode(self, src, dst, entry):
        self._record('transcode', dst)
        if self.live:
            super().transcode(src, dst, entry)

    def update(self, src, dst, entry):
        self._record('update', dst)
        if self.live:
            super().update(src, dst, entry)

    def downscale_cover(self, src, dst):
        self._record('downscale_cover', dst)
        if self.live:
            super().downscale_cover(src, dst)


def make_tree(root, files, mtime=BASE_TIME):
    """
    Create files under root

    Args:
        root: Directory to fill
        files: Mapping of relative path to bytes content, or None for a directory
        mtime: Modification time given to every created file
    """
    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)
    for relative, content in files.items():
        path = root / relative
        if content is None:
            path.mkdir(parents=True, exist_ok=True)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        os.utime(path, (mtime, mtime))
    return root


@pytest.fixture
def gateway():
    """Fake audio gateway"""
    return FakeGateway()


@pytest.fixture
def library(tmp_path):
    """Factory building a source/destination pair of directories"""
    def build(src_files, dst_files=None):
        src = make_tree(tmp_path / "src", src_files)
        dst = make_tree(tmp_path / "dst", dst_files or {})
        return src, dst
    return build


@pytest.fixture
def snapshot(gateway):
    """Read a directory with the fake gateway"""
    def read(root, **kwargs):
        return read_library(str(root), gateway, **kwargs)
    return read


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    """Point HOME and the working directory at an empty temporary directory"""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    for name in ("AUDIOMIRROR_LIBRARY", "AUDIOMIRROR_CONCURRENCY", "AUDIOMIRROR_LOG_LEVEL",
                 "AUDIOMIRROR_LAME", "AUDIOMIRROR_FLAC", "AUDIOMIRROR_FFMPEG"):
        monkeypatch.delenv(name, raising=False)
    return home

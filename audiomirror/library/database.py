"""
Library snapshot: an in-memory tree of one directory

A Database is built by walking a directory once. Every node becomes an Entry
classified as a directory, a plain file, a music file or an error, and is
indexed by its key (the "/"-separated path relative to the root, "" for the
root itself). After construction the tree is never modified; the only lazy
part is the audio metadata of music entries, which is read on first use and
cached, together with any error the read produced.
"""

import os
import stat
import threading
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Tuple

from ..audio.codecs import AudioGateway, AudioMetadata, Codec
from ..exceptions import LibraryError
from ..utils.helpers import join_key, key_to_path
from ..utils.logger import get_logger, log_performance

logger = get_logger(__name__)


class EntryType(Enum):
    """Classification of a library entry"""
    DIRECTORY = "directory"
    FILE = "file"
    MUSIC = "music"
    ERROR = "error"


class Entry:
    """
    One node of a library snapshot

    Attributes:
        database: Snapshot the entry belongs to
        key: Path relative to the library root, "/"-separated
        type: EntryType of the node
        size: File size, or the summed size of all children for directories
        mod_time: Modification time (seconds since the epoch)
        parent: Parent directory entry, None for the root
        children: Child entries, directories only
        codec: Identified codec, music entries only
        error: The error that made this an Error entry
    """

    __slots__ = (
        'database', 'key', 'type', 'size', 'mod_time', 'parent', 'children',
        'codec', 'error', '_metadata', '_metadata_error', '_metadata_lock',
    )

    def __init__(
        self,
        database: "Database",
        key: str,
        entry_type: EntryType,
        parent: Optional["Entry"] = None,
        size: int = 0,
        mod_time: float = 0.0,
        codec: Optional[Codec] = None,
        error: Optional[BaseException] = None
    ):
        self.database = database
        self.key = key
        self.type = entry_type
        self.size = size
        self.mod_time = mod_time
        self.parent = parent
        self.children: List["Entry"] = []
        self.codec = codec
        self.error = error
        self._metadata: Optional[AudioMetadata] = None
        self._metadata_error: Optional[BaseException] = None
        self._metadata_lock = threading.Lock()

    @property
    def filename(self) -> str:
        return self.key.rpartition("/")[2]

    @property
    def abs_path(self) -> str:
        return key_to_path(self.database.root, self.key)

    @property
    def is_dir(self) -> bool:
        return self.type is EntryType.DIRECTORY

    @property
    def is_music(self) -> bool:
        return self.type is EntryType.MUSIC

    @property
    def is_error(self) -> bool:
        return self.type is EntryType.ERROR

    @property
    def encoding(self) -> Optional[Codec]:
        return self.codec

    @property
    def encoding_bitrate(self) -> int:
        """Bitrate in Kbps; reads metadata on first use"""
        return self.metadata().bitrate

    def metadata(self) -> AudioMetadata:
        """
        Audio metadata of a music entry, read once and cached

        Concurrent first calls read the file only once. A failed read is
        cached as well: every later call raises the same error.

        Returns:
            AudioMetadata of the file

        Raises:
            LibraryError: If the entry is not a music entry
            MetadataError: If the metadata cannot be read
        """
        if not self.is_music:
            raise LibraryError(f"{self.key} is not a music file", details={'key': self.key})

        with self._metadata_lock:
            if self._metadata is None and self._metadata_error is None:
                try:
                    self._metadata = self.database.gateway.read_metadata(self.abs_path)
                except Exception as e:
                    self._metadata_error = e
            if self._metadata_error is not None:
                raise self._metadata_error
            return self._metadata

    def __repr__(self) -> str:
        return f"Entry({self.key!r}, {self.type.value}, size={self.size})"


class Database:
    """
    Snapshot of a directory tree with O(1) lookup by key

    Use read_library() to build one.

    Attributes:
        root: Absolute path of the library root
        gateway: Audio gateway used to identify files and read metadata
        ignore_hidden: Whether dot-files were skipped
        follow_symlinks: Whether symlinked directories were walked
        entry: The root entry (always a directory)
    """

    def __init__(
        self,
        root: str,
        gateway: AudioGateway,
        ignore_hidden: bool = True,
        follow_symlinks: bool = True
    ):
        self.root = os.path.abspath(root)
        self.gateway = gateway
        self.ignore_hidden = ignore_hidden
        self.follow_symlinks = follow_symlinks
        self.entry: Optional[Entry] = None
        self._index: Dict[str, Entry] = {}

    def get(self, key: str) -> Optional[Entry]:
        """Entry for key, or None"""
        return self._index.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._index

    def __len__(self) -> int:
        return len(self._index)

    @property
    def size(self) -> int:
        return self.entry.size if self.entry else 0

    def walk(self, fn: Callable[[Entry], None]) -> None:
        """Call fn for every entry, parents before children"""
        stack = [self.entry] if self.entry else []
        while stack:
            entry = stack.pop()
            fn(entry)
            stack.extend(reversed(entry.children))

    def entries(self) -> List[Entry]:
        found: List[Entry] = []
        self.walk(found.append)
        return found

    def _register(self, entry: Entry) -> Entry:
        self._index[entry.key] = entry
        return entry

    def __repr__(self) -> str:
        return f"Database({self.root!r}, entries={len(self)})"


class _Reader:
    """Single recursive walk that fills a Database"""

    def __init__(self, db: Database, sort_entries: bool):
        self.db = db
        self.sort_entries = sort_entries
        # (st_dev, st_ino) of the directories on the current path
        self.ancestors: Set[Tuple[int, int]] = set()

    def read_dir(self, entry: Entry, st: os.stat_result) -> None:
        identity = (st.st_dev, st.st_ino)
        self.ancestors.add(identity)
        try:
            with os.scandir(entry.abs_path) as it:
                items = list(it)
            if self.sort_entries:
                items.sort(key=lambda item: item.name)

            for item in items:
                child = self.read_node(entry, item)
                if child is not None:
                    entry.children.append(child)
                    entry.size += child.size
        finally:
            self.ancestors.discard(identity)

    def read_node(self, parent: Entry, item: os.DirEntry) -> Optional[Entry]:
        if self.db.ignore_hidden and item.name.startswith("."):
            return None

        key = join_key(parent.key, item.name)
        try:
            is_link = item.is_symlink()
            if is_link and not self.db.follow_symlinks and item.is_dir(follow_symlinks=True):
                logger.debug(f"Not following symlinked directory {item.path}")
                return None
            st = os.stat(item.path)
        except OSError as e:
            return self._error(parent, key, e)

        if stat.S_ISDIR(st.st_mode):
            if (st.st_dev, st.st_ino) in self.ancestors:
                return self._error(parent, key, LibraryError(
                    f"symlink cycle: {item.path} points back to one of its parents",
                    details={'path': item.path}
                ))
            entry = self.db._register(Entry(self.db, key, EntryType.DIRECTORY, parent, mod_time=st.st_mtime))
            try:
                self.read_dir(entry, st)
            except OSError as e:
                # Listing failed before any child was registered
                logger.debug(f"Cannot read directory {item.path}: {e}")
                entry.type, entry.error = EntryType.ERROR, e
            return entry

        try:
            codec = self.db.gateway.identify(item.path)
        except OSError as e:
            return self._error(parent, key, e, size=st.st_size, mod_time=st.st_mtime)

        entry_type = EntryType.MUSIC if codec is not None else EntryType.FILE
        return self.db._register(Entry(
            self.db, key, entry_type, parent,
            size=st.st_size, mod_time=st.st_mtime, codec=codec,
        ))

    def _error(self, parent: Entry, key: str, error: BaseException, size: int = 0, mod_time: float = 0.0) -> Entry:
        logger.debug(f"Error entry {key}: {error}")
        return self.db._register(Entry(
            self.db, key, EntryType.ERROR, parent,
            size=size, mod_time=mod_time, error=error,
        ))


@log_performance
def read_library(
    root: str,
    gateway: AudioGateway,
    ignore_hidden: bool = True,
    follow_symlinks: bool = True,
    sort_entries: bool = True
) -> Database:
    """
    Build a snapshot of the directory tree under root

    Args:
        root: Library root directory
        gateway: Audio gateway used to classify files
        ignore_hidden: Skip names starting with "." together with their subtrees
        follow_symlinks: Walk symlinked directories as if they were real ones
        sort_entries: Sort children by name for a deterministic order

    Returns:
        Database of the tree

    Raises:
        LibraryError: If root does not exist, is not a directory or cannot be read
    """
    db = Database(root, gateway, ignore_hidden=ignore_hidden, follow_symlinks=follow_symlinks)
    try:
        st = os.stat(db.root)
    except OSError as e:
        raise LibraryError(f"cannot read library {db.root}: {e.strerror or e}", details={'path': db.root, 'original_error': e})
    if not stat.S_ISDIR(st.st_mode):
        raise LibraryError(f"library root is not a directory: {db.root}", details={'path': db.root})

    db.entry = db._register(Entry(db, "", EntryType.DIRECTORY, mod_time=st.st_mtime))
    try:
        _Reader(db, sort_entries).read_dir(db.entry, st)
    except OSError as e:
        raise LibraryError(f"cannot read library {db.root}: {e.strerror or e}", details={'path': db.root, 'original_error': e})

    logger.debug(f"Read library {db.root}: {len(db)} entries, {db.size} bytes")
    return db

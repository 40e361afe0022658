"""
Library statistics and tree listing for the `stats` command
"""

from dataclasses import dataclass, field
from typing import Callable, List, Set

import click

from .database import Database, Entry, EntryType
from ..audio.codecs import GatewayStats
from ..exceptions import MetadataError
from ..utils.helpers import format_duration, format_file_size
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _split(values: Set[str], text: str) -> None:
    for part in text.split("/"):
        part = part.strip()
        if part:
            values.add(part)


@dataclass
class LibraryStats:
    """Totals over a library snapshot"""
    total_bytes: int = 0
    music_bytes: int = 0
    play_time: float = 0.0
    songs: int = 0
    unreadable: int = 0
    errors: int = 0
    artists: Set[str] = field(default_factory=set)
    albums: Set[str] = field(default_factory=set)
    album_artists: Set[str] = field(default_factory=set)
    genres: Set[str] = field(default_factory=set)
    composers: Set[str] = field(default_factory=set)

    @classmethod
    def collect(cls, db: Database, on_warning: Callable[[str], None] = logger.warning) -> "LibraryStats":
        """
        Gather statistics, reading metadata of every music file

        Args:
            db: Library snapshot
            on_warning: Called with a message for each unreadable music file

        Returns:
            Filled LibraryStats
        """
        stats = cls(total_bytes=db.size)

        def visit(entry: Entry) -> None:
            if entry.is_error:
                stats.errors += 1
                return
            if not entry.is_music:
                return

            stats.music_bytes += entry.size
            try:
                md = entry.metadata()
            except MetadataError as e:
                stats.unreadable += 1
                on_warning(f"cannot read audio metadata from {entry.abs_path}: {e}")
                return

            stats.songs += 1
            stats.play_time += md.duration
            _split(stats.artists, md.artist)
            _split(stats.albums, md.album)
            _split(stats.album_artists, md.album_artist)
            _split(stats.genres, md.genre)
            _split(stats.composers, md.composer)

        db.walk(visit)
        return stats

    def lines(self, color: bool = True) -> List[str]:
        def label(text: str) -> str:
            return click.style(text, bold=True) if color else text

        rows = [
            ("Total size", format_file_size(self.total_bytes)),
            ("Music size", format_file_size(self.music_bytes)),
            ("Play time", format_duration(self.play_time)),
            ("Songs", self.songs),
            ("Artists", len(self.artists)),
            ("Albums", len(self.albums)),
            ("Album artists", len(self.album_artists)),
            ("Genres", len(self.genres)),
            ("Composers", len(self.composers)),
        ]
        if self.unreadable:
            rows.append(("Unreadable", self.unreadable))
        if self.errors:
            rows.append(("Errors", self.errors))

        width = max(len(name) for name, _ in rows)
        return ["Standard stats:"] + [f"  {label(name.ljust(width))} {value}" for name, value in rows]


def tree_lines(db: Database, color: bool = True) -> List[str]:
    """
    Render the library as an indented tree

    Directories end in "/", music files are blue and error entries red.
    """
    styles = {
        EntryType.DIRECTORY: {'bold': True},
        EntryType.MUSIC: {'fg': 'blue'},
        EntryType.ERROR: {'fg': 'red'},
    }
    lines = ["Tree:"]

    def render(entry: Entry, level: int) -> None:
        name = entry.filename or db.root
        if entry.is_dir:
            name += "/"
        style = styles.get(entry.type)
        if color and style:
            name = click.style(name, **style)
        lines.append(f"{'  ' * level}{name}")
        for child in entry.children:
            render(child, level + 1)

    if db.entry is not None:
        render(db.entry, 0)
    return lines


def runtime_lines(stats: GatewayStats) -> List[str]:
    """Render gateway call timings"""
    width = max(len(name) for name, _ in stats.items())
    return ["Runtime stats:"] + [
        f"  audio.{name.ljust(width)} {counter.summary()}" for name, counter in stats.items()
    ]

"""Test library snapshots"""

import os
import threading

import pytest

from audiomirror.exceptions import LibraryError, MetadataError
from audiomirror.library.database import EntryType, read_library

from conftest import FakeGateway, make_tree


class TestReadLibrary:
    """Test building a snapshot from a directory"""

    def test_classifies_entries(self, tmp_path, snapshot):
        """Directories, music, plain files and the root are classified"""
        root = make_tree(tmp_path / "lib", {
            "a.flac": b"x" * 10,
            "notes.txt": b"hello",
            "album/b.mp3": b"y" * 20,
        })
        db = snapshot(root)

        assert db.get("").type is EntryType.DIRECTORY
        assert db.get("a.flac").type is EntryType.MUSIC
        assert db.get("notes.txt").type is EntryType.FILE
        assert db.get("album").type is EntryType.DIRECTORY
        assert db.get("album/b.mp3").is_music
        assert db.get("missing") is None
        assert len(db) == 5

    def test_directory_sizes_are_cumulative(self, tmp_path, snapshot):
        """A directory's size is the sum of its children"""
        root = make_tree(tmp_path / "lib", {
            "a.txt": b"1234",
            "d/b.txt": b"12",
            "d/e/c.txt": b"123456",
        })
        db = snapshot(root)

        assert db.get("d/e").size == 6
        assert db.get("d").size == 8
        assert db.size == 12

    def test_children_sorted_and_linked(self, tmp_path, snapshot):
        """Children are sorted by name and point back to their parent"""
        root = make_tree(tmp_path / "lib", {"c.txt": b"", "a.txt": b"", "b": None})
        db = snapshot(root)

        names = [child.filename for child in db.entry.children]
        assert names == ["a.txt", "b", "c.txt"]
        assert all(child.parent is db.entry for child in db.entry.children)
        assert db.get("b").abs_path == os.path.join(str(root), "b")

    def test_hidden_entries_skipped(self, tmp_path, snapshot):
        """Dot-files and their subtrees are left out entirely"""
        root = make_tree(tmp_path / "lib", {
            ".hidden/a.mp3": b"x",
            ".DS_Store": b"x",
            "visible.txt": b"x",
        })
        db = snapshot(root)

        assert ".hidden" not in db
        assert ".hidden/a.mp3" not in db
        assert ".DS_Store" not in db
        assert "visible.txt" in db

    def test_hidden_entries_kept_when_requested(self, tmp_path, snapshot):
        """ignore_hidden=False records dot-files"""
        root = make_tree(tmp_path / "lib", {".hidden/a.mp3": b"x"})
        db = snapshot(root, ignore_hidden=False)

        assert db.get(".hidden/a.mp3").is_music

    def test_identify_error_becomes_error_entry(self, tmp_path):
        """An unreadable file is recorded as an Error entry carrying the error"""
        root = make_tree(tmp_path / "lib", {"locked.flac": b"x", "ok.flac": b"x"})
        db = read_library(str(root), FakeGateway(unreadable={"locked.flac"}))

        entry = db.get("locked.flac")
        assert entry.type is EntryType.ERROR
        assert isinstance(entry.error, PermissionError)
        assert db.get("ok.flac").is_music

    def test_symlinked_directory_followed(self, tmp_path, snapshot):
        """Symlinked directories are walked like real ones"""
        make_tree(tmp_path / "elsewhere", {"song.mp3": b"x"})
        root = make_tree(tmp_path / "lib", {})
        os.symlink(tmp_path / "elsewhere", root / "linked")

        db = snapshot(root)

        assert db.get("linked").is_dir
        assert db.get("linked/song.mp3").is_music

    def test_symlinked_directory_not_followed(self, tmp_path, snapshot):
        """follow_symlinks=False skips symlinked directories"""
        make_tree(tmp_path / "elsewhere", {"song.mp3": b"x"})
        root = make_tree(tmp_path / "lib", {})
        os.symlink(tmp_path / "elsewhere", root / "linked")

        db = snapshot(root, follow_symlinks=False)

        assert "linked" not in db

    def test_symlink_cycle_is_error_entry(self, tmp_path, snapshot):
        """A link back to a parent directory does not loop forever"""
        root = make_tree(tmp_path / "lib", {"a/song.mp3": b"x"})
        os.symlink(root, root / "a" / "loop")

        db = snapshot(root)

        loop = db.get("a/loop")
        assert loop.is_error
        assert isinstance(loop.error, LibraryError)
        assert "a/loop/a" not in db

    def test_dangling_symlink_is_error_entry(self, tmp_path, snapshot):
        """A symlink to nothing cannot be stat'ed"""
        root = make_tree(tmp_path / "lib", {})
        os.symlink(tmp_path / "nowhere", root / "dangling.mp3")

        db = snapshot(root)

        assert db.get("dangling.mp3").is_error

    def test_missing_root(self, tmp_path, snapshot):
        """A missing root is fatal"""
        with pytest.raises(LibraryError):
            snapshot(tmp_path / "does-not-exist")

    def test_root_is_file(self, tmp_path, snapshot):
        """A root that is not a directory is fatal"""
        path = tmp_path / "file.txt"
        path.write_text("x")
        with pytest.raises(LibraryError, match="not a directory"):
            snapshot(path)

    def test_walk_visits_parents_first(self, tmp_path, snapshot):
        """walk() is a pre-order traversal"""
        root = make_tree(tmp_path / "lib", {"a/b/c.txt": b"", "d.txt": b""})
        db = snapshot(root)

        keys = [entry.key for entry in db.entries()]
        assert keys == ["", "a", "a/b", "a/b/c.txt", "d.txt"]


class TestEntryMetadata:
    """Test lazy, memoized metadata"""

    def test_metadata_read_once(self, tmp_path, gateway, snapshot):
        """Metadata is read on first access and cached"""
        root = make_tree(tmp_path / "lib", {"a.flac": b"x"})
        db = snapshot(root)
        entry = db.get("a.flac")

        assert gateway.reads[entry.abs_path] == 0
        first = entry.metadata()
        second = entry.metadata()

        assert first is second
        assert entry.encoding_bitrate == 900
        assert gateway.reads[entry.abs_path] == 1

    def test_metadata_error_cached(self, tmp_path):
        """A failed read raises the same error on every access without re-reading"""
        gateway = FakeGateway(broken={"bad.mp3"})
        root = make_tree(tmp_path / "lib", {"bad.mp3": b"x"})
        entry = read_library(str(root), gateway).get("bad.mp3")

        with pytest.raises(MetadataError) as first:
            entry.metadata()
        with pytest.raises(MetadataError) as second:
            entry.metadata()

        assert first.value is second.value
        assert gateway.reads[entry.abs_path] == 1

    def test_concurrent_first_access(self, tmp_path, gateway, snapshot):
        """Threads racing on the first access trigger a single read"""
        root = make_tree(tmp_path / "lib", {"a.flac": b"x"})
        entry = snapshot(root).get("a.flac")
        results = []

        threads = [threading.Thread(target=lambda: results.append(entry.metadata())) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 8
        assert all(result is results[0] for result in results)
        assert gateway.reads[entry.abs_path] == 1

    def test_metadata_of_plain_file(self, tmp_path, snapshot):
        """Only music entries have metadata"""
        root = make_tree(tmp_path / "lib", {"a.txt": b"x"})
        with pytest.raises(LibraryError):
            snapshot(root).get("a.txt").metadata()

"""Test library statistics"""

from audiomirror.audio.codecs import GatewayStats
from audiomirror.library.stats import LibraryStats, runtime_lines, tree_lines

from audiomirror.library.database import read_library

from conftest import FakeGateway, make_tree


class TestLibraryStats:
    """Test totals over a snapshot"""

    def test_collect(self, tmp_path, snapshot):
        root = make_tree(tmp_path / "lib", {
            "a.flac": b"x" * 100,
            "b/c.mp3": b"x" * 50,
            "notes.txt": b"x" * 10,
        })

        stats = LibraryStats.collect(snapshot(root))

        assert stats.total_bytes == 160
        assert stats.music_bytes == 150
        assert stats.songs == 2
        assert stats.play_time == 360.0
        # "Artist A/Artist B" counts as two artists
        assert stats.artists == {"Artist A", "Artist B"}
        assert stats.genres == {"Rock"}

    def test_unreadable_files_warned(self, tmp_path):
        root = make_tree(tmp_path / "lib", {"bad.mp3": b"x", "locked.flac": b"x"})
        db = read_library(str(root), FakeGateway(broken={"bad.mp3"}, unreadable={"locked.flac"}))
        warnings = []

        stats = LibraryStats.collect(db, on_warning=warnings.append)

        assert stats.unreadable == 1
        assert stats.errors == 1
        assert stats.songs == 0
        assert len(warnings) == 1
        assert "bad.mp3" in warnings[0]

    def test_lines(self):
        stats = LibraryStats(total_bytes=2048, songs=3, play_time=125)

        lines = stats.lines(color=False)

        assert lines[0] == "Standard stats:"
        assert any(line.split() == ["Songs", "3"] for line in lines)
        assert any("2.0 KB" in line for line in lines)
        assert any("2:05" in line for line in lines)
        assert not any("Errors" in line for line in lines)


class TestListings:
    def test_tree_lines(self, tmp_path, snapshot):
        root = make_tree(tmp_path / "lib", {"a/b.mp3": b"x", "c.txt": b"x"})

        lines = tree_lines(snapshot(root), color=False)

        assert lines == ["Tree:", f"{root}/", "  a/", "    b.mp3", "  c.txt"]

    def test_runtime_lines(self):
        stats = GatewayStats()
        stats.identify.add(0.002)

        lines = runtime_lines(stats)

        assert lines[0] == "Runtime stats:"
        assert "audio.identify" in lines[1]
        assert "n=1" in lines[1]
        assert "n=0" in lines[2]

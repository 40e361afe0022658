"""Test utility helpers"""

import pytest

from audiomirror.utils.helpers import (
    RunningStat,
    format_duration,
    format_elapsed,
    format_file_size,
    join_key,
    key_to_path,
    parse_bitrate,
    replace_extension,
    strip_prefix,
)


class TestFormatting:
    """Test human-readable formatting"""

    def test_format_duration(self):
        assert format_duration(0) == "0:00"
        assert format_duration(65) == "1:05"
        assert format_duration(3725) == "1:02:05"
        assert format_duration(-5) == "0:00"

    def test_format_file_size(self):
        assert format_file_size(512) == "512 B"
        assert format_file_size(1536) == "1.5 KB"
        assert format_file_size(5 * 1024 ** 3) == "5.0 GB"

    def test_format_elapsed(self):
        assert format_elapsed(0.25) == "250ms"
        assert format_elapsed(1.5) == "1.50s"
        assert format_elapsed(123) == "2m03s"


class TestKeys:
    """Test library key helpers"""

    def test_join_key(self):
        assert join_key("", "a") == "a"
        assert join_key("a/b", "c") == "a/b/c"

    def test_key_to_path(self):
        assert key_to_path("/music", "") == "/music"
        assert key_to_path("/music", "a/b.mp3") == "/music/a/b.mp3"

    @pytest.mark.parametrize("key, expected", [
        ("a.flac", "a.mp3"),
        ("dir/a.b.flac", "dir/a.b.mp3"),
        ("dir.v2/a", "dir.v2/a.mp3"),
        (".hidden", ".hidden.mp3"),
        ("a/.hidden", "a/.hidden.mp3"),
    ])
    def test_replace_extension(self, key, expected):
        assert replace_extension(key, ".mp3") == expected

    def test_strip_prefix(self):
        assert strip_prefix("/music/a/b.mp3", ["/other", "/music"]) == "a/b.mp3"
        assert strip_prefix("/music", ["/music"]) == "."
        assert strip_prefix("/elsewhere/x", ["/music"]) == "/elsewhere/x"


class TestParseBitrate:
    @pytest.mark.parametrize("value, expected", [
        ("96k", 96),
        ("128K", 128),
        ("192000", 192),
        (160, 160),
        ("fast", None),
    ])
    def test_parse(self, value, expected):
        assert parse_bitrate(value) == expected


class TestRunningStat:
    """Test running mean and deviation"""

    def test_mean_and_std(self):
        stat = RunningStat()
        for value in (2, 4, 4, 4, 5, 5, 7, 9):
            stat.add(value)

        assert stat.n == 8
        assert stat.mean == pytest.approx(5.0)
        assert stat.std == pytest.approx(2.138, rel=1e-3)

    def test_empty(self):
        stat = RunningStat()
        assert stat.std == 0.0
        assert stat.summary() == "μ=0ms, σ=0ms, n=0"

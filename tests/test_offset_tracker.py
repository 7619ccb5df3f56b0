"""Tests for the offset tracker and line reader."""

import os

import pytest

from logmonitor.errors import SourceUnavailable
from logmonitor.offset_tracker import ReadResult, expand_targets, read_new_lines


class TestReadNewLines:
    def test_reads_all_lines_from_zero(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"one\ntwo\nthree\n")
        result = read_new_lines(str(f), 0)
        assert result.lines == ["one", "two", "three"]
        assert result.new_offset == 14
        assert result.rotated is False

    def test_reads_only_appended_lines(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"old\n")
        first = read_new_lines(str(f), 0)
        with open(f, "ab") as fh:
            fh.write(b"new 1\nnew 2\n")
        second = read_new_lines(str(f), first.new_offset)
        assert second.lines == ["new 1", "new 2"]
        assert second.new_offset == os.path.getsize(f)

    def test_no_new_data(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"line\n")
        result = read_new_lines(str(f), 5)
        assert result == ReadResult(lines=[], new_offset=5, rotated=False)

    def test_empty_file(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"")
        result = read_new_lines(str(f), 0)
        assert result.lines == []
        assert result.new_offset == 0

    def test_partial_line_not_returned(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"complete\nparti")
        result = read_new_lines(str(f), 0)
        assert result.lines == ["complete"]
        assert result.new_offset == len(b"complete\n")

    def test_partial_line_read_once_terminated(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"complete\nparti")
        first = read_new_lines(str(f), 0)
        with open(f, "ab") as fh:
            fh.write(b"al\n")
        second = read_new_lines(str(f), first.new_offset)
        assert second.lines == ["partial"]
        assert second.new_offset == os.path.getsize(f)

    def test_only_partial_line(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"no newline yet")
        result = read_new_lines(str(f), 0)
        assert result.lines == []
        assert result.new_offset == 0

    def test_blank_lines_are_kept(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"a\n\nb\n")
        result = read_new_lines(str(f), 0)
        assert result.lines == ["a", "", "b"]
        assert result.new_offset == 5

    def test_crlf_terminators(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"one\r\ntwo\r\n")
        result = read_new_lines(str(f), 0)
        assert result.lines == ["one", "two"]
        assert result.new_offset == 10

    def test_invalid_utf8_replaced(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"bad \xff byte\n")
        result = read_new_lines(str(f), 0)
        assert result.lines == ["bad � byte"]
        assert result.new_offset == 11

    def test_offset_counts_bytes_not_characters(self, tmp_path):
        f = tmp_path / "access.log"
        data = "café\n".encode("utf-8")
        f.write_bytes(data)
        result = read_new_lines(str(f), 0)
        assert result.lines == ["café"]
        assert result.new_offset == len(data)


class TestOffsetMonotonicity:
    def test_offset_never_decreases_and_tracks_consumed_bytes(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"")
        offset = 0
        consumed = 0
        chunks = [b"a\n", b"bb\nc", b"c\n", b"", b"ddd\neee\n", b"ff"]
        for chunk in chunks:
            with open(f, "ab") as fh:
                fh.write(chunk)
            result = read_new_lines(str(f), offset)
            assert result.new_offset >= offset
            consumed += sum(len(line.encode("utf-8")) + 1 for line in result.lines)
            offset = result.new_offset
            assert offset == consumed
        assert offset == os.path.getsize(f) - len(b"ff")


class TestRotation:
    def test_shrunk_file_resets_to_zero(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"fresh 1\nfresh 2\n")
        result = read_new_lines(str(f), 10000)
        assert result.rotated is True
        assert result.lines == ["fresh 1", "fresh 2"]
        assert result.new_offset == 16

    def test_size_drop_10000_to_200(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes((b"x" * 19 + b"\n") * 10)
        assert os.path.getsize(f) == 200
        result = read_new_lines(str(f), 10000)
        assert result.rotated is True
        assert len(result.lines) == 10
        assert result.new_offset <= 200

    def test_rotation_is_deterministic(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"line\npart")
        first = read_new_lines(str(f), 500)
        second = read_new_lines(str(f), 500)
        assert first == second
        assert first.rotated is True
        assert first.new_offset == 5

    def test_equal_size_is_not_rotation(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"line\n")
        result = read_new_lines(str(f), 5)
        assert result.rotated is False


class TestReadLimit:
    def test_backlog_drained_over_several_reads(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"aaaa\nbbbb\ncccc\ndddd\n")
        first = read_new_lines(str(f), 0, max_bytes=12)
        assert first.lines == ["aaaa", "bbbb"]
        assert first.new_offset == 10
        assert first.capped is True

        second = read_new_lines(str(f), first.new_offset, max_bytes=12)
        assert second.lines == ["cccc", "dddd"]
        assert second.new_offset == 20

        third = read_new_lines(str(f), second.new_offset, max_bytes=12)
        assert third.lines == []
        assert third.capped is False

    def test_line_longer_than_limit_returned_whole(self, tmp_path):
        f = tmp_path / "access.log"
        long_line = b"x" * 100
        f.write_bytes(long_line + b"\nnext\n")
        result = read_new_lines(str(f), 0, max_bytes=10)
        assert result.lines[0] == "x" * 100
        assert result.new_offset >= 101

    def test_unterminated_line_longer_than_limit_waits(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"y" * 50)
        result = read_new_lines(str(f), 0, max_bytes=10)
        assert result.lines == []
        assert result.new_offset == 0

    def test_zero_means_unlimited(self, tmp_path):
        f = tmp_path / "access.log"
        f.write_bytes(b"one\ntwo\n")
        result = read_new_lines(str(f), 0, max_bytes=0)
        assert result.lines == ["one", "two"]
        assert result.capped is False


class TestSourceUnavailable:
    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceUnavailable) as exc_info:
            read_new_lines(str(tmp_path / "missing.log"), 0)
        assert exc_info.value.path.endswith("missing.log")

    def test_directory_is_unreadable(self, tmp_path):
        with pytest.raises(SourceUnavailable):
            read_new_lines(str(tmp_path), 0)


class TestExpandTargets:
    def test_plain_path_returned_even_if_missing(self, tmp_path):
        path = str(tmp_path / "missing.log")
        assert expand_targets(path) == [path]

    def test_glob_sorted(self, tmp_path):
        for name in ("b.log", "a.log", "c.txt"):
            (tmp_path / name).write_text("")
        targets = expand_targets(str(tmp_path / "*.log"))
        assert targets == [str(tmp_path / "a.log"), str(tmp_path / "b.log")]

    def test_glob_skips_directories(self, tmp_path):
        (tmp_path / "dir.log").mkdir()
        (tmp_path / "file.log").write_text("")
        assert expand_targets(str(tmp_path / "*.log")) == [str(tmp_path / "file.log")]

    def test_glob_without_matches(self, tmp_path):
        assert expand_targets(str(tmp_path / "*.log")) == []

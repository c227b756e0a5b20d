"""Tests for the depth-first directory walker."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from dirscope.executors import walker as walker_module
from dirscope.executors.walker import DirectoryWalker, WalkError, list_directory
from dirscope.protocol.framing import ResponseWriter


@pytest.fixture
def scratch(tmp_path: Path) -> Path:
    return tmp_path / "alice_1.files"


class TestListDirectory:
    def test_sorted_and_classified(self, sample_tree: Path) -> None:
        entries = list_directory(str(sample_tree))
        assert [e.name for e in entries] == ["a.txt", "b.txt", "sub"]
        assert [e.is_dir for e in entries] == [False, False, True]
        assert entries[0].path == os.path.join(str(sample_tree), "a.txt")

    def test_symlinks_skipped(self, sample_tree: Path) -> None:
        (sample_tree / "link").symlink_to(sample_tree / "a.txt")
        (sample_tree / "dirlink").symlink_to(sample_tree / "sub")
        assert [e.name for e in list_directory(str(sample_tree))] == ["a.txt", "b.txt", "sub"]

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            list_directory(str(tmp_path / "missing"))


class TestDirectoryWalker:
    @pytest.mark.asyncio
    async def test_preorder_output(
        self, sample_tree: Path, scratch: Path, response_writer: ResponseWriter, recording_writer
    ) -> None:
        walker = DirectoryWalker(response_writer, scratch)
        count = await walker.walk(str(sample_tree))

        root = str(sample_tree)
        assert count == 3
        assert walker.directory_count == 2
        assert recording_writer.text == (
            f"Directory: {root}\n"
            f"File: {root}/a.txt\n"
            f"File: {root}/b.txt\n"
            f"Directory: {root}/sub\n"
            f"File: {root}/sub/c.txt\n"
        )

    @pytest.mark.asyncio
    async def test_scratch_list_holds_absolute_paths(
        self,
        sample_tree: Path,
        scratch: Path,
        response_writer: ResponseWriter,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.chdir(sample_tree.parent)
        await DirectoryWalker(response_writer, scratch).walk("t")
        assert scratch.read_text().splitlines() == [
            str(sample_tree / "a.txt"),
            str(sample_tree / "b.txt"),
            str(sample_tree / "sub" / "c.txt"),
        ]

    @pytest.mark.asyncio
    async def test_relative_paths_echoed_as_given(
        self,
        sample_tree: Path,
        scratch: Path,
        response_writer: ResponseWriter,
        recording_writer,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.chdir(sample_tree.parent)
        await DirectoryWalker(response_writer, scratch).walk("t")
        assert recording_writer.text.startswith("Directory: t\nFile: t/a.txt\n")

    @pytest.mark.asyncio
    async def test_scratch_list_is_appended(
        self, sample_tree: Path, scratch: Path, response_writer: ResponseWriter
    ) -> None:
        scratch.write_text("/earlier/file\n")
        await DirectoryWalker(response_writer, scratch).walk(str(sample_tree / "sub"))
        assert scratch.read_text().splitlines() == [
            "/earlier/file",
            str(sample_tree / "sub" / "c.txt"),
        ]

    @pytest.mark.asyncio
    async def test_symlinked_file_not_counted(
        self, sample_tree: Path, scratch: Path, response_writer: ResponseWriter, recording_writer
    ) -> None:
        (sample_tree / "zlink").symlink_to(sample_tree / "a.txt")
        assert await DirectoryWalker(response_writer, scratch).walk(str(sample_tree)) == 3
        assert "zlink" not in recording_writer.text

    @pytest.mark.asyncio
    async def test_missing_root(
        self, tmp_path: Path, scratch: Path, response_writer: ResponseWriter, recording_writer
    ) -> None:
        missing = str(tmp_path / "nope")
        walker = DirectoryWalker(response_writer, scratch)
        assert await walker.walk(missing) == 0
        assert recording_writer.text == f"ERROR: Cannot open directory: {missing}\n"
        assert walker.directory_count == 0

    @pytest.mark.asyncio
    async def test_empty_directory(
        self, tmp_path: Path, scratch: Path, response_writer: ResponseWriter, recording_writer
    ) -> None:
        empty = tmp_path / "empty"
        empty.mkdir()
        assert await DirectoryWalker(response_writer, scratch).walk(str(empty)) == 0
        assert recording_writer.text == f"Directory: {empty}\n"
        assert scratch.read_text() == ""

    @pytest.mark.asyncio
    async def test_unreadable_subtree_does_not_stop_walk(
        self,
        sample_tree: Path,
        scratch: Path,
        response_writer: ResponseWriter,
        recording_writer,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        (sample_tree / "zeta.txt").write_text("after")
        blocked = os.path.join(str(sample_tree), "sub")
        real_list = walker_module.list_directory

        def fake_list(path: str):
            if path == blocked:
                raise PermissionError(13, "Permission denied", path)
            return real_list(path)

        monkeypatch.setattr(walker_module, "list_directory", fake_list)
        count = await DirectoryWalker(response_writer, scratch).walk(str(sample_tree))

        root = str(sample_tree)
        assert count == 3
        assert recording_writer.text == (
            f"Directory: {root}\n"
            f"File: {root}/a.txt\n"
            f"File: {root}/b.txt\n"
            f"ERROR: Cannot open directory: {blocked}\n"
            f"File: {root}/zeta.txt\n"
        )

    @pytest.mark.asyncio
    async def test_deep_tree(
        self, tmp_path: Path, scratch: Path, response_writer: ResponseWriter
    ) -> None:
        path = tmp_path / "deep"
        path.mkdir()
        current = path
        for depth in range(200):
            current = current / f"d{depth}"
            current.mkdir()
        (current / "leaf.txt").write_text("x")

        walker = DirectoryWalker(response_writer, scratch)
        assert await walker.walk(str(path)) == 1
        assert walker.directory_count == 201

    @pytest.mark.asyncio
    async def test_unwritable_scratch_list(
        self, sample_tree: Path, tmp_path: Path, response_writer: ResponseWriter
    ) -> None:
        with pytest.raises(WalkError, match="Failed to open output file"):
            await DirectoryWalker(response_writer, tmp_path).walk(str(sample_tree))

    @pytest.mark.asyncio
    async def test_closed_connection_aborts_walk(
        self, sample_tree: Path, scratch: Path, response_writer: ResponseWriter, recording_writer
    ) -> None:
        recording_writer.close()
        with pytest.raises(ConnectionError):
            await DirectoryWalker(response_writer, scratch).walk(str(sample_tree))

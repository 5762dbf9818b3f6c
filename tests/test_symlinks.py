"""Tests for ordered symlink sets."""

import os
from pathlib import Path

import pytest

from hidgadget.changeset.changeset import ChangeSet
from hidgadget.changeset.model import Action, FileChange, FileState, RequestedFileChange, Symlink
from hidgadget.changeset.symlinks import check_symlinks_in_order, read_symlinks, recreate_symlinks
from hidgadget.errors import ProbeError


@pytest.fixture
def functions(tmp_path: Path):
    root = tmp_path / "functions"
    for name in ("A", "B", "C"):
        (root / name).mkdir(parents=True)
    return root


def _change(config: Path, functions: Path, names) -> FileChange:
    return FileChange(
        path=str(config),
        expected_state=FileState.SYMLINK_IN_ORDER_CONFIGFS,
        param_symlinks=[Symlink(path=str(config / n), target=str(functions / n)) for n in names],
    )


class TestCheckSymlinksInOrder:
    """check_symlinks_in_order() states."""

    def test_missing_directory(self, tmp_path: Path, functions):
        fc = _change(tmp_path / "c.1", functions, ["A"])
        assert check_symlinks_in_order(fc) is FileState.ABSENT

    def test_no_declared_symlinks(self, tmp_path: Path):
        fc = FileChange(path=str(tmp_path), expected_state=FileState.SYMLINK_IN_ORDER_CONFIGFS)
        with pytest.raises(ProbeError):
            check_symlinks_in_order(fc)

    def test_not_a_directory(self, tmp_path: Path, functions):
        f = tmp_path / "c.1"
        f.write_text("")
        with pytest.raises(ProbeError):
            check_symlinks_in_order(_change(f, functions, ["A"]))

    def test_in_order(self, tmp_path: Path, functions, creation_order):
        config = tmp_path / "c.1"
        config.mkdir()
        for n in ("A", "B", "C"):
            os.symlink(str(functions / n), str(config / n))
        assert check_symlinks_in_order(_change(config, functions, ["A", "B", "C"])) is FileState.SYMLINK_IN_ORDER_CONFIGFS

    def test_wrong_order(self, tmp_path: Path, functions, creation_order):
        config = tmp_path / "c.1"
        config.mkdir()
        for n in ("B", "A"):
            os.symlink(str(functions / n), str(config / n))
        assert check_symlinks_in_order(_change(config, functions, ["A", "B"])) is FileState.SYMLINK_NOT_IN_ORDER_CONFIGFS

    def test_regular_files_are_ignored(self, tmp_path: Path, functions, creation_order):
        config = tmp_path / "c.1"
        config.mkdir()
        (config / "MaxPower").write_text("250\n")
        os.symlink(str(functions / "A"), str(config / "A"))
        assert check_symlinks_in_order(_change(config, functions, ["A"])) is FileState.SYMLINK_IN_ORDER_CONFIGFS


class TestRecreateSymlinks:
    """recreate_symlinks() rebuilds the whole set."""

    def test_inserts_missing_link_in_place(self, tmp_path: Path, functions, creation_order):
        config = tmp_path / "c.1"
        config.mkdir()
        for n in ("A", "C"):
            os.symlink(str(functions / n), str(config / n))

        fc = _change(config, functions, ["A", "B", "C"])
        assert check_symlinks_in_order(fc) is FileState.SYMLINK_NOT_IN_ORDER_CONFIGFS

        recreate_symlinks(fc)

        assert [l.path for l in read_symlinks(str(config))] == [str(config / n) for n in ("A", "B", "C")]
        assert check_symlinks_in_order(fc) is FileState.SYMLINK_IN_ORDER_CONFIGFS

    def test_drops_undeclared_links(self, tmp_path: Path, functions, creation_order):
        config = tmp_path / "c.1"
        config.mkdir()
        for n in ("A", "B"):
            os.symlink(str(functions / n), str(config / n))

        recreate_symlinks(_change(config, functions, ["A"]))

        assert not os.path.lexists(config / "B")
        assert os.readlink(config / "A") == str(functions / "A")

    def test_reorder_through_change_set(self, tmp_path: Path, functions, creation_order):
        config = tmp_path / "c.1"
        config.mkdir()
        os.symlink(str(functions / "C"), str(config / "C"))
        os.symlink(str(functions / "A"), str(config / "A"))

        cs = ChangeSet()
        fc = _change(config, functions, ["A", "C"])
        cs.add_file_change_struct(RequestedFileChange(
            key="reorder",
            path=fc.path,
            expected_state=fc.expected_state,
            param_symlinks=fc.param_symlinks,
        ))
        assert [a for _, a in cs.plan()] == [Action.REORDER_SYMLINKS]

        cs.apply()
        assert [a for _, a in cs.plan()] == [Action.DO_NOTHING]

import os

import pytest

from hudmetrics import file_utils
from hudmetrics.file_utils import (
    LsFlags,
    dir_exists,
    file_exists,
    get_basename,
    get_config_dir,
    get_data_dir,
    get_home_dir,
    ls,
    read_line,
    read_symlink,
)


def test_read_line_returns_first_line(tmp_path):
    path = tmp_path / "f"
    path.write_text("first\nsecond\n")
    assert read_line(str(path)) == "first"


def test_read_line_missing_file(tmp_path):
    assert read_line(str(tmp_path / "missing")) == ""


@pytest.fixture
def tree(tmp_path):
    (tmp_path / "dir_a").mkdir()
    (tmp_path / "file_a").write_text("x")
    (tmp_path / "other").write_text("x")
    os.symlink(tmp_path / "dir_a", tmp_path / "link_dir")
    os.symlink(tmp_path / "file_a", tmp_path / "link_file")
    os.symlink(tmp_path / "nowhere", tmp_path / "dangling")
    return tmp_path


def test_ls_dirs_default(tree):
    assert sorted(ls(str(tree))) == ["dir_a", "link_dir"]


def test_ls_files(tree):
    assert sorted(ls(str(tree), None, LsFlags.FILES)) == ["file_a", "link_file", "other"]


def test_ls_prefix_and_both(tree):
    result = sorted(ls(str(tree), "link", LsFlags.FILES | LsFlags.DIRS))
    assert result == ["link_dir", "link_file"]


def test_ls_missing_dir(tmp_path):
    assert ls(str(tmp_path / "missing")) == []


def test_exists_checks(tree):
    assert file_exists(str(tree / "file_a"))
    assert not file_exists(str(tree / "dir_a"))
    assert dir_exists(str(tree / "dir_a"))
    assert not dir_exists(str(tree / "file_a"))
    assert not file_exists(str(tree / "dangling"))


def test_read_symlink(tree):
    assert read_symlink(str(tree / "link_file")) == str(tree / "file_a")
    assert read_symlink(str(tree / "file_a")) == ""


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/usr/bin/foo", "foo"),
        ("C:\\games\\x.exe", "x.exe"),
        ("noslash", "noslash"),
        ("/trailing/", "/trailing/"),
    ],
)
def test_get_basename(path, expected):
    assert get_basename(path) == expected


def test_is_wine_preloader():
    assert file_utils._is_wine_preloader("/usr/bin/wine64-preloader")
    assert not file_utils._is_wine_preloader("/usr/bin/python3")


def test_wine_name_from_comm():
    assert file_utils._wine_name_from_process("Game.EXE", [], False) == "Game"
    assert file_utils._wine_name_from_process("Game.EXE", [], True) == "Game.EXE"


def test_wine_name_from_cmdline():
    args = ["", "C:\\foo\\bar.exe", "other"]
    assert file_utils._wine_name_from_process("wine", args, False) == "bar"
    assert file_utils._wine_name_from_process("wine", args, True) == "bar.exe"


def test_wine_name_dot_in_directory():
    assert file_utils._wine_name_from_process("x", ["C:\\a.b\\game"], False) == "game"


def test_wine_name_plain_exe_arg_and_none():
    assert file_utils._wine_name_from_process("x", ["run.exe"], False) == "run"
    assert file_utils._wine_name_from_process("x", ["plain"], False) == ""


def test_read_cmdline(tmp_path):
    path = tmp_path / "cmdline"
    path.write_bytes(b"wine\0C:\\a\\b.exe\0")
    assert file_utils._read_cmdline(str(path)) == ["wine", "C:\\a\\b.exe"]


def test_dirs_from_environment(monkeypatch):
    monkeypatch.setenv("HOME", "/home/someone")
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.delenv("XDG_DATA_HOME", raising=False)
    assert get_home_dir() == "/home/someone"
    assert get_config_dir() == "/home/someone/.config"
    assert get_data_dir() == "/home/someone/.local/share"
    monkeypatch.setenv("XDG_CONFIG_HOME", "/xdg/conf")
    assert get_config_dir() == "/xdg/conf"


def test_dirs_without_home(monkeypatch):
    monkeypatch.delenv("HOME", raising=False)
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.delenv("XDG_DATA_HOME", raising=False)
    assert get_config_dir() == ""
    assert get_data_dir() == ""


def test_lib_loaded_in(tmp_path):
    os.symlink("/usr/lib/libvulkan.so.1", tmp_path / "7f00-7f10")
    assert file_utils._lib_loaded_in(str(tmp_path), "libvulkan")
    assert not file_utils._lib_loaded_in(str(tmp_path), "libGL")
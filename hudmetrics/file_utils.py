"""Small file-system and process helpers used throughout the package."""

from __future__ import annotations

import logging
import os
import stat
from enum import IntFlag

logger = logging.getLogger(__name__)

_WINE_PRELOADERS = ("wine-preloader", "wine64-preloader")


class LsFlags(IntFlag):
    """Which kinds of directory entries ``ls`` should return."""

    DIRS = 0x01
    FILES = 0x02


def read_line(filename: str) -> str:
    """Return the first line of a file without its newline, or "" if unreadable."""
    try:
        with open(filename, encoding="utf-8", errors="replace") as handle:
            return handle.readline().rstrip("\n")
    except OSError:
        return ""


def ls(root: str, prefix: str | None = None, flags: LsFlags = LsFlags.DIRS) -> list[str]:
    """List the names in ``root`` that match ``prefix`` and the kinds in ``flags``.

    Symbolic links are followed to decide whether they name a directory or a
    regular file; dangling links are skipped.
    """
    names: list[str] = []
    try:
        entries = list(os.scandir(root))
    except OSError as exc:
        logger.error("Error opening directory '%s': %s", root, exc.strerror)
        return names

    for entry in entries:
        if prefix and not entry.name.startswith(prefix):
            continue
        if entry.is_symlink():
            try:
                mode = os.stat(entry.path).st_mode
            except OSError:
                continue
            if (flags & LsFlags.DIRS and stat.S_ISDIR(mode)) or (
                flags & LsFlags.FILES and stat.S_ISREG(mode)
            ):
                names.append(entry.name)
        elif entry.is_dir(follow_symlinks=False):
            if flags & LsFlags.DIRS:
                names.append(entry.name)
        elif entry.is_file(follow_symlinks=False):
            if flags & LsFlags.FILES:
                names.append(entry.name)
    return names


def _stat_mode(path: str) -> int | None:
    try:
        return os.stat(path).st_mode
    except OSError:
        return None


def file_exists(path: str) -> bool:
    """True if ``path`` exists and is not a directory."""
    mode = _stat_mode(path)
    return mode is not None and not stat.S_ISDIR(mode)


def dir_exists(path: str) -> bool:
    """True if ``path`` exists and is a directory."""
    mode = _stat_mode(path)
    return mode is not None and stat.S_ISDIR(mode)


def read_symlink(link: str) -> str:
    """Return the target of a symbolic link, or "" if it cannot be read."""
    try:
        return os.readlink(link)
    except OSError:
        return ""


def get_basename(path: str) -> str:
    """Return the part of ``path`` after its last slash or backslash."""
    index = max(path.rfind("/"), path.rfind("\\"))
    if index == -1:
        return path
    if index < len(path) - 1:
        return path[index + 1 :]
    return path


def get_exe_path() -> str:
    """Path of the running executable, or "" where it cannot be found."""
    return read_symlink("/proc/self/exe")


def _is_wine_preloader(exe_path: str) -> bool:
    return exe_path.endswith(_WINE_PRELOADERS)


def _strip_ext(name: str, keep_ext: bool) -> str:
    if keep_ext:
        return name
    dot = name.rfind(".")
    return name if dot == -1 else name[:dot]


def _wine_name_from_process(comm: str, args: list[str], keep_ext: bool) -> str:
    """Work out a Windows program name from a process name and its arguments."""
    if comm.lower().endswith(".exe"):
        return _strip_ext(comm, keep_ext)

    for arg in args:
        slash = max(arg.rfind("/"), arg.rfind("\\"))
        if arg and slash != -1 and slash < len(arg) - 1:
            end = len(arg)
            if not keep_ext:
                dot = arg.rfind(".")
                if dot != -1 and dot > slash:
                    end = dot
            return arg[slash + 1 : end]
        if arg.lower().endswith(".exe"):
            return _strip_ext(arg, keep_ext)
    return ""


def _read_cmdline(path: str = "/proc/self/cmdline") -> list[str]:
    try:
        with open(path, "rb") as handle:
            data = handle.read()
    except OSError:
        return []
    args = data.split(b"\0")
    if args and args[-1] == b"":
        args.pop()
    return [arg.decode("utf-8", errors="replace") for arg in args]


def get_wine_exe_name(keep_ext: bool = False) -> str:
    """Name of the Windows program run by wine, or "" if not running under wine."""
    if not _is_wine_preloader(get_exe_path()):
        return ""
    return _wine_name_from_process(read_line("/proc/self/comm"), _read_cmdline(), keep_ext)


def get_home_dir() -> str:
    """The HOME directory, or "" if unset."""
    return os.environ.get("HOME", "")


def get_data_dir() -> str:
    """XDG data directory, falling back to ~/.local/share."""
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg is not None:
        return xdg
    home = get_home_dir()
    return home + "/.local/share" if home else home


def get_config_dir() -> str:
    """XDG config directory, falling back to ~/.config."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg is not None:
        return xdg
    home = get_home_dir()
    return home + "/.config" if home else home


def _lib_loaded_in(directory: str, lib: str) -> bool:
    with os.scandir(directory) as entries:
        return any(lib in read_symlink(entry.path) for entry in entries)


def lib_loaded(lib: str) -> bool:
    """True if a mapped file of this process has ``lib`` in its path."""
    return _lib_loaded_in("/proc/self/map_files/", lib)
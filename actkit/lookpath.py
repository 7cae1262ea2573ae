"""Locate executables on a search path, following each platform's shell rules."""

from __future__ import annotations

import errno
import ntpath
import os
import posixpath
import stat
import sys
from typing import Callable, Optional

Getenv = Callable[[str], str]

_NOT_FOUND_UNIX = "executable file not found in $PATH"
_NOT_FOUND_PLAN9 = "executable file not found in $path"
_NOT_FOUND_WINDOWS = "executable file not found in %PATH%"

_DEFAULT_WINDOWS_EXTS = (".com", ".exe", ".bat", ".cmd")
_PLAN9_DIRECT_PREFIXES = ("/", "#", "./", "../")


class LookPathError(Exception):
    """Raised when an executable cannot be located; ``err`` holds the cause."""

    def __init__(self, name: str, err: BaseException) -> None:
        super().__init__(name, err)
        self.name = name
        self.err = err

    def __str__(self) -> str:
        return str(self.err)


def _default_getenv(name: str) -> str:
    return os.environ.get(name, "")


def _not_found(file: str, message: str) -> LookPathError:
    return LookPathError(file, LookupError(message))


def look_path(file: str, getenv: Optional[Getenv] = None) -> str:
    """Find ``file`` using the rules of the platform this interpreter runs on."""
    getenv = getenv or _default_getenv
    if sys.platform in ("emscripten", "wasi"):
        # Processes cannot be started here, so nothing counts as executable.
        raise _not_found(file, _NOT_FOUND_UNIX)
    if os.name == "nt":
        return look_path_windows(file, getenv)
    if sys.platform.startswith("plan9"):
        return look_path_plan9(file, getenv)
    return look_path_unix(file, getenv)


def _check_executable(file: str) -> None:
    """Raise OSError unless ``file`` is a non-directory with an execute bit."""
    mode = os.stat(file).st_mode
    if not stat.S_ISDIR(mode) and mode & 0o111:
        return
    raise PermissionError(errno.EACCES, "permission denied", file)


def _is_executable(file: str) -> bool:
    try:
        _check_executable(file)
    except OSError:
        return False
    return True


def _split_list(path: str, separator: str) -> list[str]:
    return path.split(separator) if path else []


def look_path_unix(file: str, getenv: Optional[Getenv] = None) -> str:
    """Search ``PATH``; a name containing a slash is tried directly."""
    getenv = getenv or _default_getenv
    if "/" in file:
        try:
            _check_executable(file)
        except OSError as exc:
            raise LookPathError(file, exc) from exc
        return file
    for directory in _split_list(getenv("PATH"), ":"):
        # An empty element means the current directory.
        candidate = posixpath.normpath(posixpath.join(directory or ".", file))
        if _is_executable(candidate):
            return candidate
    raise _not_found(file, _NOT_FOUND_UNIX)


def look_path_plan9(file: str, getenv: Optional[Getenv] = None) -> str:
    """Search ``path``; names starting with /, #, ./ or ../ are tried directly."""
    getenv = getenv or _default_getenv
    if file.startswith(_PLAN9_DIRECT_PREFIXES):
        try:
            _check_executable(file)
        except OSError as exc:
            raise LookPathError(file, exc) from exc
        return file
    for directory in _split_list(getenv("path"), "\0"):
        candidate = posixpath.normpath(posixpath.join(directory, file))
        if _is_executable(candidate):
            return candidate
    raise _not_found(file, _NOT_FOUND_PLAN9)


def _windows_split_list(path: str) -> list[str]:
    """Split a Windows path list on ';', honouring double-quoted segments."""
    if not path:
        return []
    parts: list[str] = []
    start = 0
    quoted = False
    for index, char in enumerate(path):
        if char == '"':
            quoted = not quoted
        elif char == ";" and not quoted:
            parts.append(path[start:index])
            start = index + 1
    parts.append(path[start:])
    return [part.replace('"', "") for part in parts]


def _windows_check(file: str) -> None:
    if stat.S_ISDIR(os.stat(file).st_mode):
        raise PermissionError(errno.EACCES, "permission denied", file)


def _windows_exists(file: str) -> bool:
    try:
        _windows_check(file)
    except OSError:
        return False
    return True


def _has_ext(file: str) -> bool:
    dot = file.rfind(".")
    if dot < 0:
        return False
    last_separator = max(file.rfind(char) for char in ":\\/")
    return last_separator < dot


def _windows_find(file: str, exts: list[str]) -> str:
    if not exts:
        _windows_check(file)
        return file
    if _has_ext(file) and _windows_exists(file):
        return file
    for ext in exts:
        candidate = file + ext
        if _windows_exists(candidate):
            return candidate
    raise FileNotFoundError(errno.ENOENT, "file does not exist", file)


def _windows_exts(raw: str) -> list[str]:
    if not raw:
        return list(_DEFAULT_WINDOWS_EXTS)
    return [
        ext if ext.startswith(".") else "." + ext
        for ext in raw.lower().split(";")
        if ext
    ]


def _windows_join(directory: str, file: str) -> str:
    return ntpath.normpath(ntpath.join(directory, file)) if directory else file


def look_path_windows(file: str, getenv: Optional[Getenv] = None) -> str:
    """Search the current directory and ``path``, trying ``PATHEXT`` extensions."""
    getenv = getenv or _default_getenv
    exts = _windows_exts(getenv("PATHEXT"))

    if any(char in file for char in ":\\/"):
        try:
            return _windows_find(file, exts)
        except OSError as exc:
            raise LookPathError(file, exc) from exc

    try:
        return _windows_find(_windows_join(".", file), exts)
    except OSError:
        pass

    for directory in _windows_split_list(getenv("path")):
        try:
            return _windows_find(_windows_join(directory, file), exts)
        except OSError:
            continue
    raise _not_found(file, _NOT_FOUND_WINDOWS)
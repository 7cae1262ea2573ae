"""Built-in functions available in workflow expressions."""

from __future__ import annotations

import dataclasses
import enum
import functools
import hashlib
import json
import math
import os
import re
from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Optional

from .parser import CompareOp
from .values import _kind_name, coerce_to_string, compare_values
from .workflow import Job, Workflow

_INDEX = re.compile(r"[+-]?[0-9]+")
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1

_JSON_ESCAPES = (
    ("&", "\\u0026"),
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


def contains(search: Any, item: Any) -> bool:
    """Case-insensitive substring test, or membership when ``search`` is a list."""
    if search is None or isinstance(search, (str, int, float, bool)):
        return coerce_to_string(item).lower() in coerce_to_string(search).lower()
    if isinstance(search, (list, tuple)):
        return any(compare_values(element, item, CompareOp.EQ) for element in search)
    return False


def starts_with(search_string: Any, search_value: Any) -> bool:
    """Case-insensitive prefix test on the string forms of both values."""
    return (
        coerce_to_string(search_string)
        .lower()
        .startswith(coerce_to_string(search_value).lower())
    )


def ends_with(search_string: Any, search_value: Any) -> bool:
    """Case-insensitive suffix test on the string forms of both values."""
    return (
        coerce_to_string(search_string)
        .lower()
        .endswith(coerce_to_string(search_value).lower())
    )


class _State(enum.Enum):
    PASS_THROUGH = enum.auto()
    BRACKET_OPEN = enum.auto()
    BRACKET_CLOSE = enum.auto()


def _parse_index(text: str) -> Optional[int]:
    if not _INDEX.fullmatch(text):
        return None
    index = int(text)
    if not _INT32_MIN <= index <= _INT32_MAX or index < 0:
        return None
    return index


def format_string(template: Any, *args: Any) -> str:
    """Replace ``{N}`` with the N-th argument; ``{{`` and ``}}`` are literal braces."""
    text = coerce_to_string(template)
    output: list[str] = []
    index_text: list[str] = []
    state = _State.PASS_THROUGH

    for char in text:
        if state is _State.PASS_THROUGH:
            if char == "{":
                state = _State.BRACKET_OPEN
            elif char == "}":
                state = _State.BRACKET_CLOSE
            else:
                output.append(char)
        elif state is _State.BRACKET_OPEN:
            if char == "{":
                output.append("{")
                index_text.clear()
                state = _State.PASS_THROUGH
            elif char == "}":
                index = _parse_index("".join(index_text))
                if index is None:
                    raise ValueError(f"The following format string is invalid: '{text}'")
                index_text.clear()
                if index >= len(args):
                    raise ValueError(
                        "The following format string references more arguments "
                        f"than were supplied: '{text}'"
                    )
                output.append(coerce_to_string(args[index]))
                state = _State.PASS_THROUGH
            else:
                index_text.append(char)
        elif char == "}":
            output.append("}")
            state = _State.PASS_THROUGH
        else:
            break

    if state is _State.BRACKET_OPEN:
        raise ValueError(
            f"Unclosed brackets. The following format string is invalid: '{text}'"
        )
    if state is _State.BRACKET_CLOSE:
        raise ValueError(
            "Closing bracket without opening one. "
            f"The following format string is invalid: '{text}'"
        )
    return "".join(output)


def join(array: Any, separator: Any = ",") -> str:
    """Join the string forms of a list's items; a non-list is just rendered."""
    sep = coerce_to_string(separator)
    if isinstance(array, (list, tuple)):
        return sep.join(coerce_to_string(item) for item in array)
    return coerce_to_string(array)


def _json_ready(value: Any) -> Any:
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, enum.Enum):
        return value.value if isinstance(value.value, str) else value.name.lower()
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValueError(f"unsupported value: {coerce_to_string(value)}")
        if value.is_integer() and abs(value) < 1e21:
            return int(value)
        return value
    if isinstance(value, Mapping):
        items = sorted(((str(k), v) for k, v in value.items()), key=lambda kv: kv[0])
        return {key: _json_ready(item) for key, item in items}
    if isinstance(value, (list, tuple)):
        return [_json_ready(item) for item in value]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name.rstrip("_"): _json_ready(getattr(value, f.name))
            for f in dataclasses.fields(value)
        }
    raise ValueError(f"unsupported type: {type(value).__name__}")


def to_json(value: Any) -> str:
    """Pretty-printed JSON with sorted map keys and HTML-safe escaping."""
    if value is None:
        return "null"
    try:
        text = json.dumps(_json_ready(value), indent=2, ensure_ascii=False, allow_nan=False)
    except ValueError as exc:
        raise ValueError(f"Cannot convert value to JSON. Cause: {exc}") from exc
    for raw, escaped in _JSON_ESCAPES:
        text = text.replace(raw, escaped)
    return text


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid character '{name[0]}' looking for beginning of value")


def from_json(value: Any) -> Any:
    """Parse a JSON string; every number comes back as a float."""
    if not isinstance(value, str):
        raise ValueError(f"Cannot parse non-string type {_kind_name(value)} as JSON")
    try:
        return json.loads(value, parse_int=float, parse_constant=_reject_constant)
    except ValueError as exc:
        raise ValueError(f"Invalid JSON: {exc}") from exc


class _BadPattern(ValueError):
    pass


def _class_char(pattern: str, pos: int, escapes: bool) -> tuple[str, int]:
    if pos >= len(pattern) or pattern[pos] in "-]":
        raise _BadPattern(pattern)
    if pattern[pos] == "\\" and escapes:
        pos += 1
        if pos >= len(pattern):
            raise _BadPattern(pattern)
    return pattern[pos], pos + 1


def _glob_class(pattern: str, pos: int, escapes: bool) -> tuple[str, int]:
    negated = pos < len(pattern) and pattern[pos] == "^"
    if negated:
        pos += 1
    items: list[str] = []
    count = 0
    while True:
        if pos >= len(pattern):
            raise _BadPattern(pattern)
        if pattern[pos] == "]" and count > 0:
            pos += 1
            break
        low, pos = _class_char(pattern, pos, escapes)
        high = low
        if pos < len(pattern) and pattern[pos] == "-":
            high, pos = _class_char(pattern, pos + 1, escapes)
        count += 1
        if low == high:
            items.append(re.escape(low))
        elif low < high:
            items.append(f"{re.escape(low)}-{re.escape(high)}")
    body = "".join(items)
    if negated:
        return (f"[^{body}]" if body else "."), pos
    return (f"[{body}]" if body else "(?!)"), pos


@functools.lru_cache(maxsize=256)
def _glob_regex(pattern: str) -> "re.Pattern[str]":
    separator = re.escape(os.sep)
    escapes = os.sep != "\\"
    parts: list[str] = []
    pos = 0
    while pos < len(pattern):
        char = pattern[pos]
        if char == "*":
            parts.append(f"[^{separator}]*")
            pos += 1
        elif char == "?":
            parts.append(f"[^{separator}]")
            pos += 1
        elif char == "[":
            regex, pos = _glob_class(pattern, pos + 1, escapes)
            parts.append(regex)
        elif char == "\\" and escapes:
            if pos + 1 >= len(pattern):
                raise _BadPattern(pattern)
            parts.append(re.escape(pattern[pos + 1]))
            pos += 2
        else:
            parts.append(re.escape(char))
            pos += 1
    return re.compile("".join(parts), re.DOTALL)


def _name_match(pattern: str, name: str) -> Optional[bool]:
    """Shell-style match of one path component; None for a malformed pattern."""
    try:
        return _glob_regex(pattern).fullmatch(name) is not None
    except _BadPattern:
        return None


@dataclass(frozen=True)
class _Pattern:
    negated: bool
    dir_only: bool
    is_glob: bool
    parts: tuple

    @classmethod
    def parse(cls, text: str) -> "_Pattern":
        negated = text.startswith("!")
        if negated:
            text = text[1:]
        if not text.endswith("\\ "):
            text = text.rstrip(" ")
        dir_only = text.endswith("/")
        if dir_only:
            text = text[:-1]
        return cls(negated, dir_only, "/" in text, tuple(text.split("/")))

    def match(self, path: list[str], is_dir: bool) -> Optional[bool]:
        """None if the pattern does not apply, else whether the path is selected."""
        if not path:
            return None
        if self.is_glob:
            matched = self._glob_match(path, is_dir)
        else:
            matched = self._simple_name_match(path, is_dir)
        return (not self.negated) if matched else None

    def _simple_name_match(self, path: list[str], is_dir: bool) -> bool:
        for position, name in enumerate(path):
            result = _name_match(self.parts[0], name)
            if result is None:
                return False
            if not result:
                continue
            return not (self.dir_only and not is_dir and position == len(path) - 1)
        return False

    def _glob_match(self, path: list[str], is_dir: bool) -> bool:
        matched = False
        can_traverse = False
        remaining = list(path)
        last = len(self.parts) - 1
        for position, part in enumerate(self.parts):
            if part == "":
                can_traverse = False
                continue
            if part == "**":
                if position == last:
                    break
                can_traverse = True
                continue
            if "**" in part or not remaining:
                return False
            if can_traverse:
                can_traverse = False
                while remaining:
                    result = _name_match(part, remaining.pop(0))
                    if result is None:
                        return False
                    if result:
                        matched = True
                        break
                    if not remaining:
                        matched = False
            else:
                if not _name_match(part, remaining[0]):
                    return False
                matched = True
                remaining.pop(0)
        if matched and self.dir_only and not is_dir and not remaining:
            matched = False
        return matched


def _selected(patterns: list[_Pattern], parts: list[str]) -> bool:
    for pattern in reversed(patterns):
        result = pattern.match(parts, False)
        if result is not None:
            return result
    return False


def _walk_files(directory: str) -> Iterator[str]:
    with os.scandir(directory) as entries:
        ordered = sorted(entries, key=lambda entry: entry.name)
    for entry in ordered:
        if entry.is_dir(follow_symlinks=False):
            yield from _walk_files(entry.path)
        else:
            yield entry.path


def hash_files(working_dir: str, *args: Any) -> str:
    """SHA-256 over the contents of every file under ``working_dir`` matching the patterns."""
    cwd_prefix = "." + os.sep
    patterns = []
    for raw in args:
        if not isinstance(raw, str):
            raise ValueError("Non-string path passed to hashFiles")
        if raw.startswith(cwd_prefix):
            raw = raw[len(cwd_prefix):]
        elif raw.startswith("!" + cwd_prefix):
            raw = "!" + raw[len(cwd_prefix) + 1:]
        patterns.append(_Pattern.parse(raw))

    prefix = working_dir + os.sep
    try:
        if os.path.isdir(working_dir) and not os.path.islink(working_dir):
            candidates = list(_walk_files(working_dir))
        else:
            os.lstat(working_dir)
            candidates = [working_dir]
    except OSError as exc:
        raise ValueError(f"Unable to walk '{working_dir}': {exc}") from exc

    files = []
    for path in candidates:
        relative = path[len(prefix):] if path.startswith(prefix) else path
        if _selected(patterns, relative.split(os.sep)):
            files.append(path)

    if not files:
        return ""

    hasher = hashlib.sha256()
    for path in files:
        try:
            with open(path, "rb") as handle:
                for chunk in iter(functools.partial(handle.read, 65536), b""):
                    hasher.update(chunk)
        except OSError as exc:
            raise ValueError(f"Unable to read '{path}': {exc}") from exc
    return hasher.hexdigest()


def get_needs_transitive(workflow: Workflow, job: Optional[Job]) -> list[str]:
    """The IDs a job needs, followed by everything those jobs need in turn."""
    if job is None:
        return []
    needs = job.needs()
    result = list(needs)
    for need in needs:
        result.extend(get_needs_transitive(workflow, workflow.get_job(need)))
    return result
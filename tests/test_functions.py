import hashlib
import json
import math
from dataclasses import dataclass

import pytest

from actkit.functions import (
    contains,
    ends_with,
    format_string,
    from_json,
    get_needs_transitive,
    hash_files,
    join,
    starts_with,
    to_json,
)
from actkit.workflow import Job, Workflow


@pytest.mark.parametrize(
    "search, item, expected",
    [
        ("search", "item", False),
        ("Hello", "ll", True),
        ("HELLO", "ll", True),
        ("3.141592", 3.14, True),
        (3.141592, "3.14", True),
        (3.141592, 3.14, True),
        (True, "u", True),
        (None, "", True),
        (["first", "second"], "first", True),
        ([None, "second"], "", True),
        (["", "second"], None, True),
        ([True, "second"], "true", False),
        (["true", "second"], True, False),
        ([3.14, "second"], "3.14", True),
        ([3.14, "second"], 3.14, True),
        (["", "second"], [], False),
        (["", "second"], {}, False),
    ],
)
def test_contains(search, item, expected):
    assert contains(search, item) is expected


@pytest.mark.parametrize(
    "search, value, expected",
    [
        ("search", "se", True),
        ("search", "sa", False),
        ("123search", "123s", True),
        (123, "s", False),
        (123, "12", True),
        ("123", 12, True),
        (None, "42", False),
        ("null", None, True),
        ("null", "", True),
    ],
)
def test_starts_with(search, value, expected):
    assert starts_with(search, value) is expected


@pytest.mark.parametrize(
    "search, value, expected",
    [
        ("search", "ch", True),
        ("search", "sa", False),
        ("search123s", "123s", True),
        (123, "s", False),
        (123, "23", True),
        ("123", 23, True),
        (None, "42", False),
        ("null", None, True),
        ("null", "", True),
    ],
)
def test_ends_with(search, value, expected):
    assert ends_with(search, value) is expected


@pytest.mark.parametrize(
    "array, separator, expected",
    [
        (["a", "b"], ",", "a,b"),
        ("string", ",", "string"),
        (1, ",", "1"),
        (None, ",", ""),
        (["a", "b", None], None, "ab"),
        (["a", "b", None], 1, "a1b1"),
    ],
)
def test_join(array, separator, expected):
    assert join(array, separator) == expected


def test_join_default_separator():
    assert join(["a", "b"]) == "a,b"


def test_to_json_map():
    assert to_json({"key": "value"}) == '{\n  "key": "value"\n}'


def test_to_json_null():
    assert to_json(None) == "null"


def test_to_json_sorts_keys():
    text = to_json({"b": 1, "a": 2})
    assert text.index('"a"') < text.index('"b"')


def test_to_json_round_trip():
    value = {"list": [1.5, "text", True, None], "nested": {"x": "y"}}
    assert from_json(to_json(value)) == value


def test_to_json_rejects_nan():
    with pytest.raises(ValueError) as info:
        to_json([math.nan])
    assert str(info.value).startswith("Cannot convert value to JSON. Cause:")


def test_to_json_escapes_html():
    text = to_json("<b>")
    assert "<" not in text
    assert json.loads(text) == "<b>"


def test_to_json_dataclass_uses_field_order():
    @dataclass
    class Sample:
        zeta: str = "z"
        alpha: str = "a"

    text = to_json(Sample())
    assert text.index('"zeta"') < text.index('"alpha"')
    assert json.loads(text) == {"zeta": "z", "alpha": "a"}


def test_from_json_object():
    assert from_json('{"foo":"bar"}') == {"foo": "bar"}


def test_from_json_numbers_are_floats():
    result = from_json("[0,1]")
    assert result == [0.0, 1.0]
    assert all(isinstance(item, float) for item in result)


def test_from_json_rejects_non_string():
    with pytest.raises(ValueError) as info:
        from_json(5)
    assert str(info.value) == "Cannot parse non-string type int as JSON"


@pytest.mark.parametrize("text", ["{", "NaN", "[1,]"])
def test_from_json_rejects_invalid(text):
    with pytest.raises(ValueError) as info:
        from_json(text)
    assert str(info.value).startswith("Invalid JSON:")


@pytest.mark.parametrize(
    "template, args, expected",
    [
        ("text", (), "text"),
        ("Hello {0} {1} {2}!", ("Mona", "the", "Octocat"), "Hello Mona the Octocat!"),
        ("{{Hello {0} {1} {2}!}}", ("Mona", "the", "Octocat"), "{Hello Mona the Octocat!}"),
        ("{{0}}", ("test",), "{0}"),
        ("{{{0}}}", ("test",), "{test}"),
        ("}}", (), "}"),
        (
            'Hello "{0}" {1} {2} {3} {4}',
            (None, True, -3.14, math.nan, math.inf),
            'Hello "" true -3.14 NaN Infinity',
        ),
        (
            'Hello "{0}" {1} {2}',
            ([0.0, True, "abc"], [{"a": 1.0}], {"a": {"b": 1.0}}),
            'Hello "Array" Array Object',
        ),
        (True, (), "true"),
        ("echo Hello {0} ${{Test}}", ("",), "echo Hello  ${Test}"),
        (
            "{0} {1} {2} {3}",
            (1.0, 1.1, 1234567890.0, 12345678901234567890.0),
            "1 1.1 1234567890 1.23456789012346E+19",
        ),
    ],
)
def test_format_string(template, args, expected):
    assert format_string(template, *args) == expected


@pytest.mark.parametrize(
    "template, args, message",
    [
        ("{0}}", ("{1}", "World"),
         "Closing bracket without opening one. The following format string is invalid: '{0}}'"),
        ("{0", ("{1}", "World"),
         "Unclosed brackets. The following format string is invalid: '{0'"),
        ("{2}", ("{1}", "World"),
         "The following format string references more arguments than were supplied: '{2}'"),
        ("{2147483648}", (),
         "The following format string is invalid: '{2147483648}'"),
    ],
)
def test_format_string_errors(template, args, message):
    with pytest.raises(ValueError) as info:
        format_string(template, *args)
    assert str(info.value) == message


@pytest.fixture
def tree(tmp_path):
    (tmp_path / "a.txt").write_bytes(b"hello")
    (tmp_path / "b.txt").write_bytes(b"world")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "c.txt").write_bytes(b"nested")
    return str(tmp_path)


def _sha(data):
    return hashlib.sha256(data).hexdigest()


def test_hash_files_no_match(tree):
    assert hash_files(tree, "**/non-extant-files") == ""
    assert hash_files(tree, "**/non-extant-files", "**/more-non-extant-files") == ""


def test_hash_files_single_file(tree):
    assert hash_files(tree, "./a.txt") == _sha(b"hello")


def test_hash_files_concatenates_in_walk_order(tree):
    assert hash_files(tree, "*.txt") == _sha(b"hello" + b"world" + b"nested")


def test_hash_files_negative_pattern(tree):
    assert hash_files(tree, "./*.txt", "!./b.txt") == _sha(b"hello" + b"nested")


def test_hash_files_nested_directories(tree):
    assert hash_files(tree, "./sub/**") == _sha(b"nested")
    assert hash_files(tree, "./sub/**/c.txt") == _sha(b"nested")


def test_hash_files_character_class(tree):
    assert hash_files(tree, "[^a].txt") == hash_files(tree, "b.txt", "c.txt")
    assert hash_files(tree, "[ab].txt") == hash_files(tree, "a.txt", "b.txt")


def test_hash_files_bad_pattern_matches_nothing(tree):
    assert hash_files(tree, "[a") == ""


def test_hash_files_rejects_non_string(tree):
    with pytest.raises(ValueError) as info:
        hash_files(tree, 3)
    assert str(info.value) == "Non-string path passed to hashFiles"


def test_hash_files_missing_directory(tmp_path):
    with pytest.raises(ValueError):
        hash_files(str(tmp_path / "missing"), "*")


def test_get_needs_transitive():
    workflow = Workflow(
        jobs={
            "a": Job(),
            "b": Job(raw_needs="a"),
            "c": Job(raw_needs=["b"]),
        }
    )
    assert get_needs_transitive(workflow, workflow.get_job("c")) == ["b", "a"]
    assert get_needs_transitive(workflow, workflow.get_job("a")) == []


def test_get_needs_transitive_keeps_duplicates():
    workflow = Workflow(
        jobs={
            "base": Job(),
            "left": Job(raw_needs="base"),
            "right": Job(raw_needs="base"),
            "top": Job(raw_needs=["left", "right"]),
        }
    )
    result = get_needs_transitive(workflow, workflow.get_job("top"))
    assert result[:2] == ["left", "right"]
    assert result.count("base") == 2
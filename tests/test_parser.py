import pytest

from actkit.parser import (
    ArrayDerefNode,
    BoolNode,
    CompareOp,
    CompareOpNode,
    ExpressionError,
    FloatNode,
    FuncCallNode,
    IndexAccessNode,
    IntNode,
    LogicalOp,
    LogicalOpNode,
    NotOpNode,
    NullNode,
    ObjectDerefNode,
    StringNode,
    VariableNode,
    parse,
    walk,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("true", BoolNode(True)),
        ("false", BoolNode(False)),
        ("null", NullNode()),
        ("123", IntNode(123)),
        ("-9.7", FloatNode(-9.7)),
        ("0xff", IntNode(255)),
        ("-2.99e-2", FloatNode(-2.99e-2)),
        ("'foo'", StringNode("foo")),
        ("'it''s foo'", StringNode("it's foo")),
        ("12345678901234567890.0", FloatNode(12345678901234567890.0)),
        ("1.0", FloatNode(1.0)),
    ],
)
def test_literals(text, expected):
    assert parse(text) == expected


def test_property_dereference():
    assert parse("github.action") == ObjectDerefNode(VariableNode("github"), "action")
    assert parse("github['action']") == IndexAccessNode(
        VariableNode("github"), StringNode("action")
    )
    assert parse("steps.step-id.outcome") == ObjectDerefNode(
        ObjectDerefNode(VariableNode("steps"), "step-id"), "outcome"
    )


def test_array_dereference_with_index():
    expected = IndexAccessNode(
        ObjectDerefNode(
            ObjectDerefNode(
                ArrayDerefNode(
                    ObjectDerefNode(
                        ObjectDerefNode(VariableNode("github"), "event"), "commits"
                    )
                ),
                "author",
            ),
            "username",
        ),
        IntNode(0),
    )
    assert parse("(github.event.commits.*.author.username)[0]") == expected


def test_function_call_with_negative_index():
    assert parse("fromJSON('[0,1]')[-1]") == IndexAccessNode(
        FuncCallNode("fromJSON", (StringNode("[0,1]"),)), IntNode(-1)
    )


def test_function_call_keeps_callee_case_and_args():
    assert parse("cOnTaInS('Hello', 'll')") == FuncCallNode(
        "cOnTaInS", (StringNode("Hello"), StringNode("ll"))
    )
    assert parse("always()") == FuncCallNode("always", ())


@pytest.mark.parametrize(
    "text, kind",
    [
        ("1 < 2", CompareOp.LESS),
        ("1 <= 2", CompareOp.LESS_EQ),
        ("1 > 2", CompareOp.GREATER),
        ("1 >= 2", CompareOp.GREATER_EQ),
        ("1 == 2", CompareOp.EQ),
        ("1 != 2", CompareOp.NOT_EQ),
    ],
)
def test_compare_operators(text, kind):
    assert parse(text) == CompareOpNode(kind, IntNode(1), IntNode(2))


def test_not_and_logical_operators():
    assert parse("!true") == NotOpNode(BoolNode(True))
    assert parse("true && false") == LogicalOpNode(
        LogicalOp.AND, BoolNode(True), BoolNode(False)
    )
    assert parse("true || false") == LogicalOpNode(
        LogicalOp.OR, BoolNode(True), BoolNode(False)
    )


def test_precedence():
    a, b, c = VariableNode("a"), VariableNode("b"), VariableNode("c")
    assert parse("a || b && c") == LogicalOpNode(
        LogicalOp.OR, a, LogicalOpNode(LogicalOp.AND, b, c)
    )
    assert parse("a || b || c") == LogicalOpNode(
        LogicalOp.OR, LogicalOpNode(LogicalOp.OR, a, b), c
    )
    assert parse("a == b < c") == CompareOpNode(
        CompareOp.EQ, a, CompareOpNode(CompareOp.LESS, b, c)
    )
    assert parse("!a == b") == CompareOpNode(CompareOp.EQ, NotOpNode(a), b)


def test_grouping():
    assert parse("(false || (false || true))") == LogicalOpNode(
        LogicalOp.OR,
        BoolNode(False),
        LogicalOpNode(LogicalOp.OR, BoolNode(False), BoolNode(True)),
    )


def test_parsing_stops_at_closing_braces():
    assert parse("contains('search', 'item') }}") == parse("contains('search', 'item')")
    assert parse("a }} junk junk") == VariableNode("a")
    assert parse("format('echo Hello {0} ${{Test}}', x)") == FuncCallNode(
        "format", (StringNode("echo Hello {0} ${{Test}}"), VariableNode("x"))
    )


def test_infinity_and_nan_are_variables():
    assert parse("Infinity") == VariableNode("Infinity")
    assert parse("NaN") == VariableNode("NaN")


@pytest.mark.parametrize(
    "text",
    [
        "",
        "}}",
        "1 + 2",
        "'unterminated",
        "-Infinity",
        "a ==",
        "(a",
        "a b",
        "a.",
        "a & b",
        "f(a,",
        "x[1",
        "99999999999999999999",
    ],
)
def test_invalid_expressions(text):
    with pytest.raises(ExpressionError):
        parse(text)


def test_error_offset():
    with pytest.raises(ExpressionError) as info:
        parse("a b")
    assert info.value.offset == 2
    assert info.value.message == str(info.value)


def test_walk_visits_parents_first():
    node = parse("contains(a, 'b') && !c")
    visited = list(walk(node))
    assert visited[0] is node
    assert [type(n) for n in visited] == [
        LogicalOpNode,
        FuncCallNode,
        VariableNode,
        StringNode,
        NotOpNode,
        VariableNode,
    ]


def test_walk_single_leaf():
    node = parse("null")
    assert list(walk(node)) == [node]
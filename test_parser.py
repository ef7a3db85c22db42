"""Tests for building expression trees from tokens."""

from decimal import Decimal

import pytest

from linecalc.errors import ParseError
from linecalc.parser import (
    MAX_NESTING_DEPTH,
    Assignment,
    BinaryOp,
    BinaryOperator,
    CurrencyConversion,
    NumberLiteral,
    Variable,
    parse,
    source_currency,
)
from linecalc.tokenizer import tokenize


def num(value) -> NumberLiteral:
    return NumberLiteral(Decimal(value))


def parse_line(line: str):
    return parse(tokenize(line))


@pytest.mark.parametrize(
    "line, expected_ast",
    [
        pytest.param("42", num(42)),
        pytest.param("x", Variable("x")),
        pytest.param("2 + 3 * 4", BinaryOp(BinaryOperator.ADD, num(2), BinaryOp(BinaryOperator.MUL, num(3), num(4)))),
        pytest.param("(2 + 3) * 4", BinaryOp(BinaryOperator.MUL, BinaryOp(BinaryOperator.ADD, num(2), num(3)), num(4))),
        pytest.param("10 / 5 / 2", BinaryOp(BinaryOperator.DIV, BinaryOp(BinaryOperator.DIV, num(10), num(5)), num(2))),
        pytest.param("10 - 4 - 3", BinaryOp(BinaryOperator.SUB, BinaryOp(BinaryOperator.SUB, num(10), num(4)), num(3))),
        pytest.param("(((1)))", num(1)),
        pytest.param("1 b / 4", BinaryOp(BinaryOperator.DIV, num(1000000000), num(4))),
        pytest.param("x = 100", Assignment("x", num(100))),
        pytest.param("total = a + b", Assignment("total", BinaryOp(BinaryOperator.ADD, Variable("a"), Variable("b")))),
    ],
)
def test_parse_arithmetic(line: str, expected_ast):
    assert parse_line(line) == expected_ast


@pytest.mark.parametrize(
    "line, expected_ast",
    [
        pytest.param("100 USD", CurrencyConversion(num(100), "USD")),
        pytest.param("$100", CurrencyConversion(num(100), "USD")),
        pytest.param("100 USD to INR", CurrencyConversion(num(100), "USD", "INR")),
        pytest.param("100 dollars in rupees", CurrencyConversion(num(100), "USD", "INR")),
        pytest.param("₹ 5 lakh to USD", CurrencyConversion(num(500000), "INR", "USD")),
        pytest.param("100 XYZ to USD", CurrencyConversion(num(100), "XYZ", "USD")),
        pytest.param("100 USD to xyz", CurrencyConversion(num(100), "USD", "XYZ")),
        pytest.param(
            "(50 USD + 50 USD) to EUR",
            CurrencyConversion(
                BinaryOp(BinaryOperator.ADD, CurrencyConversion(num(50), "USD"), CurrencyConversion(num(50), "USD")),
                "USD",
                "EUR",
            ),
        ),
        pytest.param(
            "price * 2 EUR to USD",
            CurrencyConversion(BinaryOp(BinaryOperator.MUL, Variable("price"), CurrencyConversion(num(2), "EUR")), "EUR", "USD"),
        ),
        pytest.param("c = 100 USD to INR", Assignment("c", CurrencyConversion(num(100), "USD", "INR"))),
    ],
)
def test_parse_currencies(line: str, expected_ast):
    assert parse_line(line) == expected_ast


def test_conversion_binds_looser_than_arithmetic():
    ast = parse_line("10 USD + 5 to EUR")
    assert isinstance(ast, CurrencyConversion)
    assert ast.target == "EUR"
    assert ast.source == "USD"
    assert isinstance(ast.amount, BinaryOp)


def test_chained_conversion_uses_previous_target_as_source():
    ast = parse_line("(100 USD to EUR) to USD")
    assert ast == CurrencyConversion(CurrencyConversion(num(100), "USD", "EUR"), "EUR", "USD")


def test_source_currency_prefers_leftmost_tag():
    ast = parse_line("5 + 10 EUR + 3 USD")
    assert source_currency(ast) == "EUR"
    assert source_currency(num(5)) is None


@pytest.mark.parametrize("line", ["", "   ", "\t"])
def test_blank_lines_parse_to_nothing(line: str):
    assert parse_line(line) is None


@pytest.mark.parametrize(
    "line, position, message",
    [
        pytest.param("(2 + 3", 6, "Expected closing parenthesis"),
        pytest.param("5 +", 3, "Expected a number"),
        pytest.param("2 3", 2, "Unexpected token '3'"),
        pytest.param("a = b = 1", 6, "Unexpected token '='"),
        pytest.param("USD = 5", 0, "Cannot assign to 'USD'"),
        pytest.param("5 = 5", 0, "Cannot assign to '5'"),
        pytest.param("k = 5", 0, "Cannot assign to 'k'"),
        pytest.param("m = 1", 0, "Cannot assign to 'm'"),
        pytest.param("Lakh = 2", 0, "Cannot assign to 'Lakh'"),
        pytest.param("crores = 3", 0, "Cannot assign to 'crores'"),
        pytest.param("x =", 3, "Assignment requires an expression"),
        pytest.param("-5", 0, "Expected a number"),
        pytest.param("5 to USD", 2, "Expected source currency"),
        pytest.param("100 USD to", 10, "Expected currency after 'to'"),
        pytest.param("100 XYZ", 4, "Unexpected token 'XYZ'"),
        pytest.param(")", 0, "Expected a number"),
    ],
)
def test_parse_errors(line: str, position: int, message: str):
    with pytest.raises(ParseError) as exc_info:
        parse_line(line)
    assert exc_info.value.position == position
    assert message in exc_info.value.message


def test_parse_error_message_names_position():
    with pytest.raises(ParseError) as exc_info:
        parse_line("2 3")
    assert str(exc_info.value) == "Unexpected token '3' (at position 2)"


def test_nesting_limit():
    depth = MAX_NESTING_DEPTH
    assert parse_line("(" * depth + "1" + ")" * depth) == num(1)

    with pytest.raises(ParseError) as exc_info:
        parse_line("(" * 100 + "1" + ")" * 100)
    assert "nested too deeply" in exc_info.value.message
    assert exc_info.value.position == MAX_NESTING_DEPTH


def test_long_operator_chain_parses():
    ast = parse_line(" + ".join(["1"] * 5000))
    assert isinstance(ast, BinaryOp)
    assert ast.op is BinaryOperator.ADD
    assert ast.right == num(1)


def test_long_chain_conversion_finds_source():
    ast = parse_line(" + ".join(["1"] * 5000) + " USD to EUR")
    assert isinstance(ast, CurrencyConversion)
    assert (ast.source, ast.target) == ("USD", "EUR")
    assert source_currency(ast.amount) == "USD"


def test_long_chain_conversion_without_source():
    with pytest.raises(ParseError) as exc_info:
        parse_line(" * ".join(["2"] * 5000) + " to EUR")
    assert "Expected source currency" in exc_info.value.message

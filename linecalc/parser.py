import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Union

from linecalc.errors import ParseError
from linecalc.tokenizer import MULTIPLIERS, Token, TokenType

# Parentheses deeper than this are rejected instead of exhausting the interpreter stack.
MAX_NESTING_DEPTH = 64


class BinaryOperator(enum.Enum):
    ADD = enum.auto()
    SUB = enum.auto()
    MUL = enum.auto()
    DIV = enum.auto()

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class NumberLiteral:
    value: Decimal


@dataclass(frozen=True)
class Variable:
    name: str


@dataclass(frozen=True)
class BinaryOp:
    op: BinaryOperator
    left: "Expression"
    right: "Expression"


@dataclass(frozen=True)
class Assignment:
    name: str
    value: "Expression"


@dataclass(frozen=True)
class CurrencyConversion:
    """`amount` in `source`, converted to `target`; a target of None only tags the amount."""

    amount: "Expression"
    source: str
    target: Optional[str] = None


Expression = Union[NumberLiteral, Variable, BinaryOp, Assignment, CurrencyConversion]

ADDITIVE_OPERATORS = {
    TokenType.PLUS: BinaryOperator.ADD,
    TokenType.MINUS: BinaryOperator.SUB,
}

MULTIPLICATIVE_OPERATORS = {
    TokenType.STAR: BinaryOperator.MUL,
    TokenType.SLASH: BinaryOperator.DIV,
}


def _describe(token: Token) -> str:
    if token.type is TokenType.END:
        return "end of input"
    return repr(token.lexeme)


def source_currency(expr: Expression) -> Optional[str]:
    """Finds the currency an expression is denominated in without evaluating it.

    The left-most tagged operand wins. Walks with an explicit stack so long
    operator chains stay off the call stack.
    """
    stack: List[Expression] = [expr]
    while stack:
        node = stack.pop()
        if isinstance(node, CurrencyConversion):
            return node.target or node.source
        if isinstance(node, BinaryOp):
            stack.append(node.right)
            stack.append(node.left)
    return None


class Parser:
    """Recursive descent over one line of tokens, one method per precedence level.

    assignment < conversion ("to") < add/sub < mul/div < primary (with currency tags)
    """

    def __init__(self, tokens: List[Token]):
        if not tokens or tokens[-1].type is not TokenType.END:
            tokens = list(tokens) + [Token(type=TokenType.END, lexeme="", position=0)]
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def peek(self, offset: int = 0) -> Token:
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def advance(self) -> Token:
        token = self.peek()
        if token.type is not TokenType.END:
            self.pos += 1
        return token

    def error(self, message: str, token: Optional[Token] = None) -> ParseError:
        token = token or self.peek()
        return ParseError(position=token.position, message=message)

    def parse(self) -> Optional[Expression]:
        if self.peek().type is TokenType.END:
            return None
        expr = self.assignment()
        trailing = self.peek()
        if trailing.type is not TokenType.END:
            raise self.error(f"Unexpected token {_describe(trailing)}", trailing)
        return expr

    def assignment(self) -> Expression:
        first, second = self.peek(), self.peek(1)
        if second.type is TokenType.ASSIGN:
            # Magnitude words are reserved so "2 k" and "k" cannot mean different things
            if first.type is not TokenType.IDENTIFIER or first.lexeme.lower() in MULTIPLIERS:
                raise self.error(f"Cannot assign to {_describe(first)}", first)
            self.advance()
            self.advance()
            if self.peek().type is TokenType.END:
                raise self.error("Assignment requires an expression (e.g., x = 1 + 1)")
            return Assignment(name=first.lexeme, value=self.conversion())
        return self.conversion()

    def conversion(self) -> Expression:
        amount = self.add_sub()
        if self.peek().type is not TokenType.TO:
            return amount
        to_token = self.advance()
        target = self.currency_code()
        if target is None:
            raise self.error(f"Expected currency after {to_token.lexeme!r}")
        if isinstance(amount, CurrencyConversion) and amount.target is None:
            return CurrencyConversion(amount=amount.amount, source=amount.source, target=target)
        source = source_currency(amount)
        if source is None:
            raise self.error(f"Expected source currency before {to_token.lexeme!r}", to_token)
        return CurrencyConversion(amount=amount, source=source, target=target)

    def add_sub(self) -> Expression:
        left = self.mul_div()
        while self.peek().type in ADDITIVE_OPERATORS:
            op = ADDITIVE_OPERATORS[self.advance().type]
            left = BinaryOp(op=op, left=left, right=self.mul_div())
        return left

    def mul_div(self) -> Expression:
        left = self.primary()
        while self.peek().type in MULTIPLICATIVE_OPERATORS:
            op = MULTIPLICATIVE_OPERATORS[self.advance().type]
            left = BinaryOp(op=op, left=left, right=self.primary())
        return left

    def primary(self) -> Expression:
        prefix = None
        if self.peek().type is TokenType.CURRENCY:
            prefix = self.advance().value

        token = self.peek()
        if token.type is TokenType.NUMBER:
            self.advance()
            expr: Expression = NumberLiteral(token.value)
        elif token.type is TokenType.IDENTIFIER:
            self.advance()
            expr = Variable(token.lexeme)
        elif token.type is TokenType.LPAREN:
            expr = self.parenthesized()
        else:
            raise self.error(f"Expected a number, variable or '(' but found {_describe(token)}", token)

        if prefix is not None:
            return CurrencyConversion(amount=expr, source=prefix)
        suffix = self.suffix_currency()
        if suffix is not None:
            return CurrencyConversion(amount=expr, source=suffix)
        return expr

    def parenthesized(self) -> Expression:
        opening = self.advance()
        if self.depth >= MAX_NESTING_DEPTH:
            raise self.error("Expression nested too deeply", opening)
        self.depth += 1
        expr = self.conversion()
        self.depth -= 1
        if self.peek().type is not TokenType.RPAREN:
            raise self.error(f"Expected closing parenthesis but found {_describe(self.peek())}")
        self.advance()
        return expr

    def suffix_currency(self) -> Optional[str]:
        token = self.peek()
        if token.type is TokenType.CURRENCY:
            self.advance()
            return token.value
        # An unknown code is only recognizable by the conversion keyword after it.
        if token.type is TokenType.IDENTIFIER and self.peek(1).type is TokenType.TO:
            self.advance()
            return token.lexeme.upper()
        return None

    def currency_code(self) -> Optional[str]:
        token = self.peek()
        if token.type is TokenType.CURRENCY:
            self.advance()
            return token.value
        if token.type is TokenType.IDENTIFIER:
            self.advance()
            return token.lexeme.upper()
        return None


def parse(tokens: List[Token]) -> Optional[Expression]:
    """Parses one line; returns None when the line holds no expression."""
    return Parser(tokens).parse()

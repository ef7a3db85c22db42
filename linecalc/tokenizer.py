import enum
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from linecalc.errors import LexError


class TokenType(enum.Enum):
    NUMBER = enum.auto()
    IDENTIFIER = enum.auto()
    PLUS = enum.auto()
    MINUS = enum.auto()
    STAR = enum.auto()
    SLASH = enum.auto()
    LPAREN = enum.auto()
    RPAREN = enum.auto()
    ASSIGN = enum.auto()
    CURRENCY = enum.auto()
    TO = enum.auto()
    END = enum.auto()

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Token:
    type: TokenType
    lexeme: str
    position: int
    value: Optional[Any] = None

    def __str__(self) -> str:
        return f"<{self.type}>{self.lexeme}"


SINGLE_CHAR_TOKENS = {
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.STAR,
    "/": TokenType.SLASH,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "=": TokenType.ASSIGN,
}

# Common currency symbols and their codes
CURRENCY_SYMBOLS = {
    "$": "USD",
    "€": "EUR",
    "₹": "INR",
    "£": "GBP",
    "¥": "JPY",
}

CURRENCY_CODES = {"USD", "EUR", "INR", "GBP", "JPY", "CAD", "AUD", "CHF", "CNY"}

# Currency names to codes mapping
CURRENCY_NAMES = {
    "dollar": "USD",
    "dollars": "USD",
    "euro": "EUR",
    "euros": "EUR",
    "rupee": "INR",
    "rupees": "INR",
    "pound": "GBP",
    "pounds": "GBP",
    "yen": "JPY",
    "yuan": "CNY",
    "franc": "CHF",
    "francs": "CHF",
}

KEYWORDS: Dict[str, TokenType] = {
    "to": TokenType.TO,
    "in": TokenType.TO,
    "plus": TokenType.PLUS,
    "minus": TokenType.MINUS,
    "times": TokenType.STAR,
}

# "X divided by Y", "X multiplied by Y"
OPERATOR_PHRASES = {
    ("divided", "by"): TokenType.SLASH,
    ("multiplied", "by"): TokenType.STAR,
}

MULTIPLIERS: Dict[str, Decimal] = {
    # Indian numbering
    "crore": Decimal(10) ** 7,
    "crores": Decimal(10) ** 7,
    "cr": Decimal(10) ** 7,
    "lakh": Decimal(10) ** 5,
    "lakhs": Decimal(10) ** 5,
    "lac": Decimal(10) ** 5,
    "lacs": Decimal(10) ** 5,
    # Western numbering
    "billion": Decimal(10) ** 9,
    "billions": Decimal(10) ** 9,
    "b": Decimal(10) ** 9,
    "million": Decimal(10) ** 6,
    "millions": Decimal(10) ** 6,
    "m": Decimal(10) ** 6,
    "thousand": Decimal(10) ** 3,
    "thousands": Decimal(10) ** 3,
    "k": Decimal(10) ** 3,
}


def _is_valid_in_number(s: str) -> bool:
    return s.isdigit() or s == "."


def _is_valid_in_identifier(s: str) -> bool:
    return s.isalnum() or s == "_"


def _word_token(word: str, position: int) -> Token:
    lowered = word.lower()
    if lowered in KEYWORDS:
        return Token(type=KEYWORDS[lowered], lexeme=word, position=position)
    if word.upper() in CURRENCY_CODES:
        return Token(type=TokenType.CURRENCY, lexeme=word, position=position, value=word.upper())
    if lowered in CURRENCY_NAMES:
        return Token(type=TokenType.CURRENCY, lexeme=word, position=position, value=CURRENCY_NAMES[lowered])
    return Token(type=TokenType.IDENTIFIER, lexeme=word, position=position)


def tokenize(line: str) -> List[Token]:
    i = 0
    tokens: List[Token] = []
    while i < len(line):
        char = line[i]
        if _is_valid_in_number(char):
            number_end_idx = i + 1
            while number_end_idx < len(line) and _is_valid_in_number(line[number_end_idx]):
                number_end_idx += 1
            lexeme = line[i:number_end_idx]
            try:
                value = Decimal(lexeme)
            except InvalidOperation:
                raise LexError(char=lexeme, position=i) from None
            tokens.append(Token(type=TokenType.NUMBER, lexeme=lexeme, position=i, value=value))
            i = number_end_idx
        elif char.isalpha() or char == "_":
            word_end_idx = i + 1
            while word_end_idx < len(line) and _is_valid_in_identifier(line[word_end_idx]):
                word_end_idx += 1
            tokens.append(_word_token(line[i:word_end_idx], i))
            i = word_end_idx
        elif char in SINGLE_CHAR_TOKENS:
            tokens.append(Token(type=SINGLE_CHAR_TOKENS[char], lexeme=char, position=i))
            i += 1
        elif char in CURRENCY_SYMBOLS:
            tokens.append(Token(type=TokenType.CURRENCY, lexeme=char, position=i, value=CURRENCY_SYMBOLS[char]))
            i += 1
        elif char.isspace():
            i += 1
        else:
            raise LexError(char=char, position=i)

    tokens.append(Token(type=TokenType.END, lexeme="", position=len(line)))
    return _fold_words(tokens)


def _fold_words(tokens: List[Token]) -> List[Token]:
    """Absorbs magnitude words into the preceding number and joins two-word operators."""
    result: List[Token] = []
    i = 0
    while i < len(tokens):
        token = tokens[i]
        following = tokens[i + 1] if i + 1 < len(tokens) else None
        if (
            token.type is TokenType.NUMBER
            and following is not None
            and following.type is TokenType.IDENTIFIER
            and following.lexeme.lower() in MULTIPLIERS
        ):
            result.append(
                Token(
                    type=TokenType.NUMBER,
                    lexeme=f"{token.lexeme} {following.lexeme}",
                    position=token.position,
                    value=token.value * MULTIPLIERS[following.lexeme.lower()],
                )
            )
            i += 2
            continue
        if (
            token.type is TokenType.IDENTIFIER
            and following is not None
            and following.type is TokenType.IDENTIFIER
            and (token.lexeme.lower(), following.lexeme.lower()) in OPERATOR_PHRASES
        ):
            phrase_type = OPERATOR_PHRASES[(token.lexeme.lower(), following.lexeme.lower())]
            result.append(
                Token(type=phrase_type, lexeme=f"{token.lexeme} {following.lexeme}", position=token.position)
            )
            i += 2
            continue
        result.append(token)
        i += 1
    return result


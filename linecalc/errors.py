from dataclasses import dataclass


class CalcError(Exception):
    """Base class for every error a single line can produce."""


@dataclass
class LexError(CalcError):
    char: str
    position: int

    def __str__(self) -> str:
        return f"Unexpected character {self.char!r} at position {self.position}"


@dataclass
class ParseError(CalcError):
    position: int
    message: str

    def __str__(self) -> str:
        return f"{self.message} (at position {self.position})"


class EvalError(CalcError):
    pass


@dataclass
class UndefinedVariable(EvalError):
    name: str

    def __str__(self) -> str:
        return f"Undefined variable: {self.name}"


@dataclass
class DivisionByZero(EvalError):
    def __str__(self) -> str:
        return "Division by zero"


@dataclass
class CurrencyNotFound(EvalError):
    code: str

    def __str__(self) -> str:
        return f"Unknown currency: {self.code}"


@dataclass
class NumericOverflow(EvalError):
    def __str__(self) -> str:
        return "Calculation resulted in overflow"


@dataclass
class RateFetchError(Exception):
    """Raised by the exchange-rate fetcher; never reaches a calculation."""

    reason: str

    def __str__(self) -> str:
        return f"Failed to fetch exchange rates: {self.reason}"

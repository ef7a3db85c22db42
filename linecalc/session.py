import logging
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Union

from linecalc.currency import DEFAULT_CURRENCY_TABLE, CurrencyTable
from linecalc.errors import CalcError
from linecalc.evaluator import EvaluatedValue, evaluate
from linecalc.formatter import format_value
from linecalc.parser import parse
from linecalc.tokenizer import tokenize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineResult:
    line: str
    value: Optional[EvaluatedValue] = None
    error: Optional[CalcError] = None
    display: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_empty(self) -> bool:
        return self.value is None and self.error is None


class CalculationSession:
    """Holds the variable environment and currency table for one document."""

    def __init__(self, currencies: CurrencyTable = DEFAULT_CURRENCY_TABLE):
        self.currencies = currencies
        self._variables: Dict[str, Decimal] = {}

    @property
    def variables(self) -> Mapping[str, Decimal]:
        return MappingProxyType(self._variables)

    def reset(self) -> None:
        self._variables.clear()

    def replace_currency_table(self, currencies: CurrencyTable) -> None:
        """Swaps in new rates; takes effect from the next line evaluated."""
        self.currencies = currencies

    def evaluate_line(self, line: str) -> LineResult:
        """Runs one line through tokenize -> parse -> evaluate -> format.

        Calculation errors come back inside the result, the first failing stage wins.
        """
        try:
            expr = parse(tokenize(line))
            if expr is None:
                return LineResult(line=line)
            # Evaluate against a copy so a failure cannot leave the environment half-updated
            env = dict(self._variables)
            value = evaluate(expr, env, self.currencies)
        except CalcError as e:
            logger.debug(f"Line {line!r} failed: {e!r}")
            return LineResult(line=line, error=e, display=f"Error: {e}")

        self._variables = env
        return LineResult(line=line, value=value, display=format_value(value, self.currencies))

    def evaluate_document(self, document: Union[str, Iterable[str]]) -> List[LineResult]:
        """Re-evaluates a whole document top to bottom from an empty environment."""
        lines = document.splitlines() if isinstance(document, str) else list(document)
        self.reset()
        return [self.evaluate_line(line) for line in lines]

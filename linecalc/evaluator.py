import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, Overflow
from typing import Callable, Dict, Optional

from linecalc.currency import CurrencyTable
from linecalc.errors import DivisionByZero, NumericOverflow, UndefinedVariable
from linecalc.parser import Assignment, BinaryOp, BinaryOperator, CurrencyConversion, Expression, NumberLiteral, Variable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluatedValue:
    amount: Decimal
    currency: Optional[str] = None

    @property
    def is_tagged(self) -> bool:
        return self.currency is not None


BINARY_OPERATIONS: Dict[BinaryOperator, Callable[[Decimal, Decimal], Decimal]] = {
    BinaryOperator.ADD: lambda a, b: a + b,
    BinaryOperator.SUB: lambda a, b: a - b,
    BinaryOperator.MUL: lambda a, b: a * b,
    BinaryOperator.DIV: lambda a, b: a / b,
}


def evaluate(expr: Expression, env: Dict[str, Decimal], currencies: CurrencyTable) -> EvaluatedValue:
    """Evaluates one parsed line.

    Only a successful Assignment writes to `env`, and only after its value is known,
    so a failing line never leaves a partial binding behind.
    """
    if isinstance(expr, NumberLiteral):
        return EvaluatedValue(expr.value)
    elif isinstance(expr, Variable):
        if expr.name not in env:
            raise UndefinedVariable(expr.name)
        return EvaluatedValue(env[expr.name])
    elif isinstance(expr, BinaryOp):
        return _evaluate_chain(expr, env, currencies)
    elif isinstance(expr, Assignment):
        # Currency tags are not persisted, the environment holds bare numbers
        value = evaluate(expr.value, env, currencies).amount
        env[expr.name] = value
        logger.debug(f"Assigned {expr.name} = {value}")
        return EvaluatedValue(value)
    elif isinstance(expr, CurrencyConversion):
        return _evaluate_conversion(expr, env, currencies)
    else:
        raise TypeError(f"Unexpected expression type: {expr!r}")


def _evaluate_chain(expr: BinaryOp, env: Dict[str, Decimal], currencies: CurrencyTable) -> EvaluatedValue:
    # Operator chains are left-deep; walk the left spine iteratively so long lines stay off the call stack.
    spine = []
    node: Expression = expr
    while isinstance(node, BinaryOp):
        spine.append(node)
        node = node.left

    result = evaluate(node, env, currencies)
    for op_node in reversed(spine):
        right = evaluate(op_node.right, env, currencies)
        result = apply_binary_operation(op_node.op, result, right)
    return result


def apply_binary_operation(op: BinaryOperator, left: EvaluatedValue, right: EvaluatedValue) -> EvaluatedValue:
    """Arithmetic with currency tags.

    A tag on exactly one side carries over to the result; tags on both sides are
    dropped rather than converted.
    """
    if op is BinaryOperator.DIV and right.amount == 0:
        raise DivisionByZero()

    try:
        amount = BINARY_OPERATIONS[op](left.amount, right.amount)
    except (Overflow, InvalidOperation) as e:
        raise NumericOverflow() from e
    if not amount.is_finite():
        raise NumericOverflow()

    if left.is_tagged and right.is_tagged:
        currency = None
    else:
        currency = left.currency or right.currency
    return EvaluatedValue(amount, currency)


def _evaluate_conversion(expr: CurrencyConversion, env: Dict[str, Decimal], currencies: CurrencyTable) -> EvaluatedValue:
    amount = evaluate(expr.amount, env, currencies).amount
    source_rate = currencies.rate_to_base(expr.source)
    if expr.target is None:
        return EvaluatedValue(amount, expr.source)

    target_rate = currencies.rate_to_base(expr.target)
    try:
        converted = amount * source_rate / target_rate
    except (Overflow, InvalidOperation) as e:
        raise NumericOverflow() from e
    logger.debug(f"Converted {amount} {expr.source} -> {converted} {expr.target}")
    return EvaluatedValue(converted, expr.target)

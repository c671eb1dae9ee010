"""Declarative condition evaluation for chapter effects and branches.

A condition compares one player variable against a literal:
- eq / neq: equality
- gt / gte / lt / lte: ordering

Variables that were never written read as None. Ordering comparisons that
the values do not support (None against a number, text against a number)
evaluate False instead of raising.
"""

import logging
import operator
from typing import Any, Callable, Dict, Iterable, Mapping

from .model import Condition

logger = logging.getLogger(__name__)

OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "neq": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
}

def check(condition: Condition, variables: Mapping[str, Any]) -> bool:
    """Check if a single condition holds.

    Args:
        condition: The condition to evaluate
        variables: Current player variables

    Returns:
        True if the condition is satisfied, False otherwise
    """
    compare = OPERATORS.get(condition.op)
    if compare is None:
        logger.warning("Unknown condition operator: %s", condition.op)
        return False

    current = variables.get(condition.var)
    try:
        return bool(compare(current, condition.value))
    except TypeError:
        logger.debug(
            "Condition %s %s %r not comparable with current value %r",
            condition.var, condition.op, condition.value, current,
        )
        return False

def check_all(conditions: Iterable[Condition], variables: Mapping[str, Any]) -> bool:
    """Check if all conditions hold (an empty list always holds)."""
    return all(check(condition, variables) for condition in conditions)

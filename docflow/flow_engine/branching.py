"""
Conditional Check - evaluates one condition and records the result

Steps always run in order; a conditional check never jumps. Its boolean
result is written into the context (``condition_<step_order>_result`` unless
``storeResultAs`` is set) where later steps consult it through ``skipIf`` /
``runIf``.

Supports:
- Presence checks (exists, not_exists, is_null, is_not_null)
- String comparisons (equals, not_equals, contains, not_contains)
- Numeric comparisons (greater_than[_or_equal], less_than[_or_equal])
"""

import json
import logging
import math
import re
from enum import Enum
from typing import Any, Dict

from docflow.flow_engine.context import ExecutionContext
from docflow.models.workflow import ConditionalCheckConfig, Step

logger = logging.getLogger(__name__)


class ConditionOperator(str, Enum):
    """Condition operators for conditional checks"""
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    GREATER_THAN = "greater_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN = "less_than"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"


OPERATOR_ALIASES = {
    'notExists': ConditionOperator.NOT_EXISTS,
    'isNull': ConditionOperator.IS_NULL,
    'isNotNull': ConditionOperator.IS_NOT_NULL,
    'eq': ConditionOperator.EQUALS,
    'ne': ConditionOperator.NOT_EQUALS,
    'notEquals': ConditionOperator.NOT_EQUALS,
    'notContains': ConditionOperator.NOT_CONTAINS,
    'gt': ConditionOperator.GREATER_THAN,
    'greaterThan': ConditionOperator.GREATER_THAN,
    'gte': ConditionOperator.GREATER_THAN_OR_EQUAL,
    'greaterThanOrEqual': ConditionOperator.GREATER_THAN_OR_EQUAL,
    'lt': ConditionOperator.LESS_THAN,
    'lessThan': ConditionOperator.LESS_THAN,
    'lte': ConditionOperator.LESS_THAN_OR_EQUAL,
    'lessThanOrEqual': ConditionOperator.LESS_THAN_OR_EQUAL,
}

_LEADING_NUMBER = re.compile(r'^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?')


def normalize_operator(operator: str) -> ConditionOperator:
    """Map an operator or alias to its canonical form; unknown means exists."""
    if operator in OPERATOR_ALIASES:
        return OPERATOR_ALIASES[operator]
    try:
        return ConditionOperator(operator)
    except ValueError:
        logger.warning(f"Unknown operator: {operator}, defaulting to 'exists'")
        return ConditionOperator.EXISTS


def parse_number(value: Any) -> float:
    """
    Lenient float parse: leading numeric prefix, NaN when there is none.

        "12.5kg" -> 12.5,  "abc" -> nan,  None -> nan
    """
    if isinstance(value, bool) or value is None:
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value)
    try:
        return float(text)
    except ValueError:
        match = _LEADING_NUMBER.match(text)
        return float(match.group(0)) if match else math.nan


def _as_text(value: Any) -> str:
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def check_condition(actual: Any, operator: ConditionOperator, expected: Any) -> bool:
    """
    Check a simple condition.

    Args:
        actual: Value resolved from the context (None when missing)
        operator: Canonical operator
        expected: Configured comparison value

    Returns:
        True if the condition holds; never raises
    """
    if operator == ConditionOperator.EXISTS:
        return actual is not None and actual != ''

    elif operator == ConditionOperator.NOT_EXISTS:
        return actual is None or actual == ''

    elif operator == ConditionOperator.IS_NULL:
        return actual is None

    elif operator == ConditionOperator.IS_NOT_NULL:
        return actual is not None

    elif operator == ConditionOperator.EQUALS:
        return _as_text(actual) == _as_text(expected)

    elif operator == ConditionOperator.NOT_EQUALS:
        return _as_text(actual) != _as_text(expected)

    elif operator == ConditionOperator.CONTAINS:
        return _as_text(expected) in _as_text(actual)

    elif operator == ConditionOperator.NOT_CONTAINS:
        return _as_text(expected) not in _as_text(actual)

    left, right = parse_number(actual), parse_number(expected)
    if math.isnan(left) or math.isnan(right):
        return False

    if operator == ConditionOperator.GREATER_THAN:
        return left > right
    elif operator == ConditionOperator.GREATER_THAN_OR_EQUAL:
        return left >= right
    elif operator == ConditionOperator.LESS_THAN:
        return left < right
    elif operator == ConditionOperator.LESS_THAN_OR_EQUAL:
        return left <= right

    return False


def result_key(step: Step, config: ConditionalCheckConfig) -> str:
    return config.store_result_as or f"condition_{step.step_order}_result"


async def execute_conditional_check(step: Step, context: ExecutionContext, runtime=None) -> Dict[str, Any]:
    """
    Evaluate the step's condition and store the boolean result.

    Example config:
        {"fieldPath": "{{orders[0].total}}", "operator": "gt", "expectedValue": 100}
    """
    config: ConditionalCheckConfig = step.config
    operator = normalize_operator(config.operator)
    actual = context.get(config.field_path) if config.field_path else None

    condition_met = check_condition(actual, operator, config.expected_value)
    store_as = result_key(step, config)
    context.set(store_as, condition_met)

    logger.info(
        f"Condition {config.field_path!r} {operator.value} {config.expected_value!r} "
        f"(actual={actual!r}) -> {condition_met}, stored as {store_as}"
    )

    return {
        'conditionMet': condition_met,
        'fieldPath': config.field_path,
        'operator': config.operator,
        'actualValue': actual,
        'expectedValue': config.expected_value,
        'storeResultAs': store_as,
    }

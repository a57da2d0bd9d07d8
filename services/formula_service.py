"""Formula Service - sandboxed evaluation of derived field formulas

Formulas are evaluated with simpleeval over a fixed set of bindings: the parent
field values, `currentYear`, `today`, and the `Math` and `Date` namespaces. No
other host capability is reachable from a formula.

Before parsing, a formula is prepared in four steps:

1. JavaScript style operators (`&&`, `||`, `===`, `!==`, `!`) outside string
   literals are rewritten to their Python equivalents.
2. Conditionals `c ? a : b` become `(a) if (c) else (b)`.
3. Every whole-token occurrence of a parent field id outside string literals
   is replaced with the JSON serialisation of that parent's current value.
4. JSON literals (`null`, `true`, `false`) are resolved as names.
"""

import ast
import json
import math
import operator as op
import re
from datetime import date, datetime, timedelta
from types import SimpleNamespace
from typing import Any, Iterable, Mapping, Optional

from simpleeval import (
    DEFAULT_OPERATORS,
    MAX_STRING_LENGTH,
    AttributeDoesNotExist,
    EvalWithCompoundTypes,
    FeatureNotAvailable,
    FunctionNotDefined,
    NameNotDefined,
    safe_add,
    safe_mult,
)

from core.logging_config import get_logger

logger = get_logger(__name__)

STRING_LITERAL_REGEX = re.compile(r"(\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*')")

JS_OPERATOR_REPLACEMENTS = (
    (re.compile(r"==="), "=="),
    (re.compile(r"!=="), "!="),
    (re.compile(r"&&"), " and "),
    (re.compile(r"\|\|"), " or "),
    (re.compile(r"!(?!=)"), " not "),
)

JSON_LITERALS = {"null": None, "true": True, "false": False}


class FormulaError(Exception):
    """A formula could not be parsed or evaluated"""

    def __init__(self, formula: str, reason: str):
        super().__init__(f"{reason} (formula: {formula!r})")
        self.formula = formula
        self.reason = reason


def _to_number(value: Any) -> int | float:
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text == "":
            return 0
        try:
            return int(text)
        except ValueError:
            return float(text)
    raise TypeError(f"Cannot use {type(value).__name__} as a number")


def _to_js_string(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return ",".join("" if v is None else _to_js_string(v) for v in value)
    return str(value)


def js_add(left: Any, right: Any) -> Any:
    """`+` with string concatenation when either side is a string"""
    if isinstance(left, str) or isinstance(right, str):
        result = _to_js_string(left) + _to_js_string(right)
        if len(result) > MAX_STRING_LENGTH:
            raise ValueError("Resulting string is too long")
        return result
    if isinstance(left, (datetime, date)) or isinstance(right, (datetime, date)):
        return left + right
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return safe_add(left, right)
    return _to_number(left) + _to_number(right)


def _numeric(operation):
    def apply(left, right):
        return operation(_to_number(left), _to_number(right))
    return apply


def js_sub(left: Any, right: Any) -> Any:
    if isinstance(left, (datetime, date)) or isinstance(left, timedelta):
        return left - right
    return _to_number(left) - _to_number(right)


FORMULA_OPERATORS = {
    **DEFAULT_OPERATORS,
    ast.Add: js_add,
    ast.Sub: js_sub,
    ast.Mult: _numeric(safe_mult),
    ast.Div: _numeric(op.truediv),
    ast.FloorDiv: _numeric(op.floordiv),
    ast.Mod: _numeric(op.mod),
}


def _parse_date(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    raise ValueError(f"Not a date: {value!r}")


def _naive(value: datetime) -> datetime:
    return value.replace(tzinfo=None) if value.tzinfo else value


def _days_between(start: Any, end: Any) -> int:
    return (_naive(_parse_date(end)).date() - _naive(_parse_date(start)).date()).days


def _years_between(start: Any, end: Any) -> int:
    first = _naive(_parse_date(start))
    second = _naive(_parse_date(end))
    years = second.year - first.year
    if (second.month, second.day) < (first.month, first.day):
        years -= 1
    return years


def _js_round(value: Any) -> int:
    return math.floor(_to_number(value) + 0.5)


def build_math_namespace() -> SimpleNamespace:
    return SimpleNamespace(
        floor=lambda x: math.floor(_to_number(x)),
        ceil=lambda x: math.ceil(_to_number(x)),
        round=_js_round,
        trunc=lambda x: math.trunc(_to_number(x)),
        abs=lambda x: abs(_to_number(x)),
        min=lambda *args: min(_to_number(a) for a in args),
        max=lambda *args: max(_to_number(a) for a in args),
        pow=lambda x, y: _to_number(x) ** _to_number(y),
        sqrt=lambda x: math.sqrt(_to_number(x)),
        PI=math.pi,
        E=math.e,
    )


def build_date_namespace(now: datetime) -> SimpleNamespace:
    return SimpleNamespace(
        now=lambda: now,
        parse=_parse_date,
        year=lambda d: _parse_date(d).year,
        month=lambda d: _parse_date(d).month,
        day=lambda d: _parse_date(d).day,
        daysBetween=_days_between,
        yearsBetween=_years_between,
    )


FORMULA_FUNCTIONS = {
    "str": _to_js_string,
    "int": lambda x: int(_to_number(x)),
    "float": lambda x: float(_to_number(x)),
    "len": len,
    "round": round,
    "abs": abs,
    "min": min,
    "max": max,
}


def identifier_for(field_id: str) -> str:
    """Identifier-safe alias of a field id (non-alphanumerics become `_`)"""
    return re.sub(r"[^a-zA-Z0-9]", "_", field_id)


def translate_js_operators(formula: str) -> str:
    parts = STRING_LITERAL_REGEX.split(formula)
    # Odd indexes are the captured string literals
    for index in range(0, len(parts), 2):
        segment = parts[index]
        for pattern, replacement in JS_OPERATOR_REPLACEMENTS:
            segment = pattern.sub(replacement, segment)
        parts[index] = segment
    return "".join(parts)


OPENING_BRACKETS = "([{"
CLOSING_BRACKETS = ")]}"


def _top_level_chars(text: str):
    """Yield (index, char) for characters outside string literals and brackets."""
    depth = 0
    quote = None
    escaped = False
    for index, char in enumerate(text):
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char in OPENING_BRACKETS:
            depth += 1
        elif char in CLOSING_BRACKETS:
            depth -= 1
        elif depth == 0:
            yield index, char


def _rewrite_conditional(piece: str) -> str:
    question = next((i for i, char in _top_level_chars(piece) if char == "?"), None)
    if question is None:
        return piece

    nested = 0
    colon = None
    for index, char in _top_level_chars(piece):
        if index <= question:
            continue
        if char == "?":
            nested += 1
        elif char == ":":
            if nested == 0:
                colon = index
                break
            nested -= 1
    if colon is None:
        # Left for the parser to reject
        return piece

    condition = piece[:question].strip()
    when_true = _rewrite_conditional(piece[question + 1:colon]).strip()
    when_false = _rewrite_conditional(piece[colon + 1:]).strip()
    return f"({when_true}) if ({condition}) else ({when_false})"


def translate_conditionals(formula: str) -> str:
    """Rewrite JavaScript's `c ? a : b` into Python's `(a) if (c) else (b)`.

    Bracket groups are rewritten innermost first, and each comma separated
    argument on its own.
    """
    if "?" not in formula:
        return formula

    # Rewrite the contents of every top-level bracket group
    parts = []
    start = 0
    depth = 0
    quote = None
    escaped = False
    group_start = 0
    for index, char in enumerate(formula):
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char in OPENING_BRACKETS:
            if depth == 0:
                group_start = index
            depth += 1
        elif char in CLOSING_BRACKETS and depth > 0:
            depth -= 1
            if depth == 0:
                parts.append(formula[start:group_start + 1])
                parts.append(translate_conditionals(formula[group_start + 1:index]))
                start = index
    parts.append(formula[start:])
    rewritten = "".join(parts)

    commas = [index for index, char in _top_level_chars(rewritten) if char == ","]
    bounds = zip([-1] + commas, commas + [len(rewritten)])
    return ",".join(_rewrite_conditional(rewritten[first + 1:last]) for first, last in bounds)


def substitute_parent_values(formula: str, parent_ids: Iterable[str], values: Mapping[str, Any]) -> str:
    """Replace whole-token parent ids with their JSON-serialised values.

    All ids are replaced in a single pass, so text inserted for one parent is
    never rescanned for another. String literals of the formula are left as is.
    """
    ids = sorted({parent_id for parent_id in parent_ids if parent_id}, key=len, reverse=True)
    if not ids:
        return formula

    # Longest first, so an id that prefixes another never shadows it
    alternatives = "|".join(re.escape(parent_id) for parent_id in ids)
    pattern = re.compile(rf"(?<![\w$.])(?:{alternatives})(?![\w$])")

    def replace(match: re.Match) -> str:
        return json.dumps(values.get(match.group(0)), default=str)

    parts = STRING_LITERAL_REGEX.split(formula)
    for index in range(0, len(parts), 2):
        parts[index] = pattern.sub(replace, parts[index])
    return "".join(parts)


def build_names(parent_ids: Iterable[str], values: Mapping[str, Any], now: datetime) -> dict[str, Any]:
    names: dict[str, Any] = dict(JSON_LITERALS)
    for parent_id in parent_ids:
        value = values.get(parent_id)
        names[parent_id] = value
        names[identifier_for(parent_id)] = value
    names["currentYear"] = now.year
    names["today"] = now
    names["Math"] = build_math_namespace()
    names["Date"] = build_date_namespace(now)
    return names


def normalize_result(formula: str, result: Any) -> Any:
    if isinstance(result, bool) or result is None or isinstance(result, str):
        return result
    if isinstance(result, (int, float)):
        if isinstance(result, float):
            if not math.isfinite(result):
                raise FormulaError(formula, "Result is not a finite number")
            if result.is_integer():
                return int(result)
        return result
    if isinstance(result, datetime):
        return result.isoformat()
    if isinstance(result, date):
        return result.isoformat()
    if isinstance(result, timedelta):
        return result.days
    if isinstance(result, (list, tuple)):
        return [normalize_result(formula, item) for item in result]
    if isinstance(result, dict):
        return {str(k): normalize_result(formula, v) for k, v in result.items()}
    raise FormulaError(formula, f"Formula produced an unsupported {type(result).__name__} value")


def evaluate_formula(
    formula: str,
    values: Mapping[str, Any],
    parent_ids: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> Any:
    """Evaluate formula against the given parent values.

    Args:
        formula: Expression text
        values: Current form values keyed by field id
        parent_ids: Field ids the formula may reference; defaults to all keys of values
        now: Clock used for `currentYear`, `today` and `Date.now()`

    Returns:
        The normalised result (JSON-compatible)

    Raises:
        FormulaError: On any parse or evaluation failure
    """
    if not formula or not formula.strip():
        raise FormulaError(formula, "Formula is empty")

    now = now or datetime.now()
    parent_ids = list(values.keys() if parent_ids is None else parent_ids)

    prepared = translate_conditionals(translate_js_operators(formula))
    expression = substitute_parent_values(prepared, parent_ids, values)
    evaluator = EvalWithCompoundTypes(
        operators=FORMULA_OPERATORS,
        functions=FORMULA_FUNCTIONS,
        names=build_names(parent_ids, values, now),
    )

    try:
        result = evaluator.eval(expression.strip())
    except FormulaError:
        raise
    except Exception as e:
        raise FormulaError(formula, f"{type(e).__name__}: {e}") from e

    return normalize_result(formula, result)


STRUCTURAL_FAILURES = (SyntaxError, NameNotDefined, FunctionNotDefined, FeatureNotAvailable, AttributeDoesNotExist)


def check_formula(formula: str, parent_ids: Iterable[str], now: Optional[datetime] = None) -> Optional[str]:
    """Dry-run a formula with every parent unset.

    Only structural problems (syntax, unknown names or functions, forbidden
    features) are reported. Runtime errors caused by the missing values are
    not. Returns the error reason or None.
    """
    parent_ids = list(parent_ids)
    try:
        evaluate_formula(formula, {}, parent_ids, now=now)
    except FormulaError as e:
        if e.__cause__ is None or isinstance(e.__cause__, STRUCTURAL_FAILURES):
            logger.debug(f"Formula check failed: {e}")
            return e.reason
    return None

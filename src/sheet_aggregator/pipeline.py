"""Post-processing pipeline — pure DataFrame -> DataFrame steps, no side effects."""

from __future__ import annotations

import operator
import re
from collections.abc import Callable, Iterable, Sequence
from functools import partial
from typing import Any

import pandas as pd

from sheet_aggregator import MISSING
from sheet_aggregator.models import Step

Predicate = Callable[[pd.DataFrame], pd.Series]

COMPARISONS: dict[str, Callable[[Any, Any], Any]] = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}
ARITHMETIC: dict[str, Callable[[Any, Any], Any]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
}

# ── Header normalisation ────────────────────────────────────────


def normalize_column_name(name: object) -> str:
    return re.sub(r"\s+", "_", str(name).lower())


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Lower-case every column name and collapse whitespace runs to ``_``.

    Raises ``ValueError`` when two source columns map to the same name.
    """
    sources: dict[str, list[str]] = {}
    for column in df.columns:
        sources.setdefault(normalize_column_name(column), []).append(str(column))
    clashes = [names for names in sources.values() if len(names) > 1]
    if clashes:
        detail = "; ".join(" / ".join(repr(n) for n in names) for names in clashes)
        raise ValueError(f"Normalized column names collide: {detail}")

    df = df.copy()
    df.columns = pd.Index(list(sources))
    return df


# ── Row / column steps ───────────────────────────────────────────


def filter_rows(df: pd.DataFrame, predicate: Predicate) -> pd.DataFrame:
    """Keep records where *predicate* is True; a missing result drops the record."""
    mask = pd.Series(predicate(df), index=df.index).astype("boolean").fillna(False)
    return df[mask.astype(bool)].reset_index(drop=True)


def drop_column(df: pd.DataFrame, name: str) -> pd.DataFrame:
    """Remove column *name*; absent columns are left alone."""
    return df.drop(columns=[name], errors="ignore")


def derive_column(
    df: pd.DataFrame,
    name: str,
    inputs: Sequence[str],
    func: Callable[[pd.DataFrame], Any],
) -> pd.DataFrame:
    """Add column *name* computed by *func*.

    Records where any of *inputs* is missing get the missing marker, whatever
    *func* returns for them.
    """
    unknown = [col for col in inputs if col not in df.columns]
    if unknown:
        raise KeyError(f"Derived column {name!r} needs unknown columns: {', '.join(unknown)}")
    values = pd.Series(func(df), index=df.index)
    if values.dtype == object:
        values = values.convert_dtypes()
    has_missing = df[list(inputs)].isna().any(axis=1)
    df = df.copy()
    df[name] = values.mask(has_missing, MISSING)
    return df


def apply_steps(df: pd.DataFrame, steps: Iterable[Step]) -> pd.DataFrame:
    """Run *steps* over *df* in order."""
    for step in steps:
        df = step(df)
    return df


# ── Predicate / expression builders ─────────────────────────────


def _as_numeric(s: pd.Series) -> pd.Series:
    if pd.api.types.is_numeric_dtype(s) and not pd.api.types.is_bool_dtype(s):
        return s
    return pd.to_numeric(s.astype("string"), errors="coerce")


def compare(column: str, op: str, value: Any) -> Predicate:
    """Return a predicate ``df[column] <op> value``.

    Numeric *value* compares numerically (text that does not parse counts as
    missing); anything else compares as text.
    """
    if op not in COMPARISONS:
        raise ValueError(f"Unsupported comparison {op!r}. Use one of {', '.join(COMPARISONS)}")
    func = COMPARISONS[op]

    def _predicate(df: pd.DataFrame) -> pd.Series:
        if column not in df.columns:
            raise KeyError(f"Filter references unknown column {column!r}")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            left = _as_numeric(df[column])
            result = func(left, value)
        else:
            left = df[column].astype("string")
            result = func(left, str(value))
        return pd.Series(result, index=df.index).astype("boolean").mask(left.isna(), pd.NA)

    return _predicate


def arithmetic(left: str, op: str, right: str) -> Callable[[pd.DataFrame], pd.Series]:
    """Return ``df -> df[left] <op> df[right]`` over the numeric values of both columns."""
    if op not in ARITHMETIC:
        raise ValueError(f"Unsupported operator {op!r}. Use one of {', '.join(ARITHMETIC)}")
    func = ARITHMETIC[op]

    def _expr(df: pd.DataFrame) -> pd.Series:
        return func(_as_numeric(df[left]), _as_numeric(df[right]))

    return _expr


# ── Text steps ───────────────────────────────────────────────────

_FILTER_RE = re.compile(r"^\s*(.+?)\s*(==|!=|>=|<=|>|<)\s*(.*?)\s*$")
_OPERAND = r"""("[^"]*"|'[^']*'|.+?)"""
_DERIVE_RE = re.compile(rf"^\s*([^=]+?)\s*=\s*{_OPERAND}\s*([-+*/])\s*{_OPERAND}\s*$")


def _unquote(raw: str) -> str:
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in "'\"":
        return raw[1:-1]
    return raw


def _parse_value(raw: str) -> Any:
    unquoted = _unquote(raw)
    if unquoted is not raw:
        return unquoted
    try:
        number = float(raw)
    except ValueError:
        return raw
    return int(number) if number.is_integer() and "." not in raw else number


def parse_step(text: str) -> Step:
    """Parse a text step into a pipeline callable.

    Accepted forms::

        normalize
        filter:<column> <op> <value>     op in == != > >= < <=
        drop:<column>
        derive:<name>=<left><op><right>  op in + - * /

    A derive operand is split at the first operator character, so a column
    whose name holds one of them must be quoted: ``derive:x="col-1"+b``.
    """
    kind, _, arg = text.partition(":")
    kind = kind.strip().lower()

    if kind == "normalize" and not arg.strip():
        return normalize_columns

    if kind == "filter":
        match = _FILTER_RE.fullmatch(arg)
        if not match:
            raise ValueError(f"Invalid filter step: {text!r}  (expected filter:<col> <op> <value>)")
        column, op, raw_value = match.groups()
        return partial(filter_rows, predicate=compare(column, op, _parse_value(raw_value)))

    if kind == "drop":
        column = arg.strip()
        if not column:
            raise ValueError(f"Invalid drop step: {text!r}  (expected drop:<col>)")
        return partial(drop_column, name=column)

    if kind == "derive":
        match = _DERIVE_RE.fullmatch(arg)
        if not match:
            raise ValueError(
                f"Invalid derive step: {text!r}  (expected derive:<name>=<col><op><col>)"
            )
        name, left, op, right = match.groups()
        left, right = _unquote(left), _unquote(right)
        return partial(
            derive_column, name=name, inputs=[left, right], func=arithmetic(left, op, right)
        )

    raise ValueError(f"Unknown step: {text!r}. Use normalize, filter:, drop: or derive:")


def parse_steps(texts: Iterable[str]) -> list[Step]:
    return [parse_step(text) for text in texts]

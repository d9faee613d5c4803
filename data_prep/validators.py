"""
Ledger quality checks run before transactions reach the analytics core.

Each check inspects the canonical frame and reports into a shared
ValidationResult. Errors block analysis, warnings only describe rows that
will be dropped or may skew aggregates (double imports, post-dated entries).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional

import pandas as pd

from core.schema import REQUIRED_TRANSACTION_COLUMNS
from core.utils import resolve_as_of

from .ledger import canonicalize_columns

DUPLICATE_KEY = ("date", "amount", "vendor_id")


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def warn(self, count: int, message: str) -> None:
        if count > 0:
            self.warnings.append(f"{count} {message}")

    def summary(self) -> str:
        if not (self.errors or self.warnings):
            return "✓ All checks passed."
        sections = []
        for title, marker, items in (("ERRORS", "✗", self.errors), ("WARNINGS", "⚠", self.warnings)):
            if items:
                sections.append(f"{title} ({len(items)}):")
                sections.extend(f"  {marker} {item}" for item in items)
        return "\n".join(sections)


def _check_dates(df: pd.DataFrame, result: ValidationResult, as_of: pd.Timestamp) -> None:
    dates = pd.to_datetime(df["date"], errors="coerce")
    unparsed = int(dates.isna().sum())
    if unparsed == len(df):
        result.errors.append("No parseable transaction dates.")
        return
    result.warn(unparsed, "rows have a missing or unparseable date and will be dropped.")
    result.warn(int((dates > as_of + pd.Timedelta(days=1)).sum()), f"rows are dated after {as_of.date()}.")


def _check_amounts(df: pd.DataFrame, result: ValidationResult, as_of: pd.Timestamp) -> None:
    amounts = pd.to_numeric(df["amount"], errors="coerce")
    result.warn(int(amounts.isna().sum()), "rows have a missing or non-numeric amount (read as 0).")
    result.warn(int((amounts == 0).sum()), "rows carry a zero amount.")


def _check_duplicates(df: pd.DataFrame, result: ValidationResult, as_of: pd.Timestamp) -> None:
    key = [c for c in DUPLICATE_KEY if c in df.columns]
    result.warn(int(df.duplicated(subset=key).sum()), f"duplicate rows on {key}.")


CHECKS: List[Callable[[pd.DataFrame, ValidationResult, pd.Timestamp], None]] = [
    _check_dates,
    _check_amounts,
    _check_duplicates,
]


def validate_transactions(
    transactions: pd.DataFrame,
    *,
    as_of_date: Optional[pd.Timestamp] = None,
) -> ValidationResult:
    """Run every ledger check against ``transactions`` (raw or canonical columns)."""
    result = ValidationResult()
    df = canonicalize_columns(transactions)

    missing = [c for c in REQUIRED_TRANSACTION_COLUMNS if c not in df.columns]
    if missing:
        result.errors.append(f"Missing required columns: {missing}")
        return result
    if df.empty:
        result.errors.append("Ledger has no rows.")
        return result

    as_of = resolve_as_of(as_of_date)
    for check in CHECKS:
        check(df, result, as_of)
    return result

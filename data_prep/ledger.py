"""
Canonical transaction ledger.

Normalizes column names from common ledger exports, coerces types, and
provides an in-memory TransactionSource over per-organization frames.
"""

from __future__ import annotations

from typing import Dict, Optional

import pandas as pd

from core.ports import TransactionSource
from core.schema import REQUIRED_TRANSACTION_COLUMNS, TRANSACTION_COLUMNS
from core.utils import require_columns


_COLUMN_ALIASES: Dict[str, str] = {
    # dates
    "Date": "date",
    "txn_date": "date",
    "transaction_date": "date",
    "Transaction Date": "date",
    "posted_at": "date",
    # amounts
    "Amount": "amount",
    "signedAmount": "amount",
    "signed_amount": "amount",
    # identifiers
    "vendorId": "vendor_id",
    "Vendor": "vendor_id",
    "vendor": "vendor_id",
    "vendorNormalized": "vendor_id",
    "categoryId": "category_id",
    "Category": "category_id",
    "category": "category_id",
    # flags
    "isRecurring": "is_recurring",
    "recurring": "is_recurring",
    "isPayroll": "is_payroll",
    "payroll": "is_payroll",
}


def canonicalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Return a copy with common ledger column aliases normalized; first occurrence wins on clashes."""
    ren = {c: _COLUMN_ALIASES.get(c, c) for c in df.columns}
    out = df.rename(columns=ren)
    if out.columns.duplicated().any():
        out = out.loc[:, ~out.columns.duplicated()]
    return out.copy()


def prepare_transactions(df: pd.DataFrame) -> pd.DataFrame:
    """
    Coerce a raw ledger frame into the canonical schema.

    - dates parsed (unparseable rows dropped), amounts numeric (NaN -> 0)
    - vendor/category identifiers as strings or None
    - recurring/payroll flags as nullable booleans
    - sorted by date
    """
    out = canonicalize_columns(df)
    require_columns(out, REQUIRED_TRANSACTION_COLUMNS)

    out["date"] = pd.to_datetime(out["date"], errors="coerce")
    out = out.dropna(subset=["date"])
    if getattr(out["date"].dt, "tz", None) is not None:
        out["date"] = out["date"].dt.tz_localize(None)
    out["amount"] = pd.to_numeric(out["amount"], errors="coerce").fillna(0.0).astype(float)

    for col in ("vendor_id", "category_id"):
        if col in out.columns:
            out[col] = out[col].map(_coerce_id).astype(object)
        else:
            out[col] = None

    for col in ("is_recurring", "is_payroll"):
        if col in out.columns:
            out[col] = out[col].map(_coerce_flag).astype("boolean")
        else:
            out[col] = pd.array([pd.NA] * len(out), dtype="boolean")

    extra = [c for c in out.columns if c not in TRANSACTION_COLUMNS]
    out = out.loc[:, list(TRANSACTION_COLUMNS) + extra]
    return out.sort_values("date", kind="mergesort").reset_index(drop=True)


def _coerce_id(value):
    if value is None or value is pd.NA or (isinstance(value, float) and pd.isna(value)):
        return None
    text = str(value).strip()
    return text or None


def _coerce_flag(value):
    if value is None or (isinstance(value, float) and pd.isna(value)) or value is pd.NA:
        return pd.NA
    if isinstance(value, str):
        v = value.strip().lower()
        if v in ("y", "yes", "true", "t", "1"):
            return True
        if v in ("n", "no", "false", "f", "0"):
            return False
        return pd.NA
    return bool(value)


class InMemoryLedger(TransactionSource):
    """TransactionSource over frames held in memory, keyed by organization id."""

    def __init__(self, ledgers: Optional[Dict[str, pd.DataFrame]] = None):
        self._ledgers: Dict[str, pd.DataFrame] = {}
        for org_id, frame in (ledgers or {}).items():
            self.add(org_id, frame)

    def add(self, organization_id: str, transactions: pd.DataFrame) -> None:
        prepared = prepare_transactions(transactions)
        existing = self._ledgers.get(organization_id)
        if existing is not None:
            prepared = pd.concat([existing, prepared], ignore_index=True)
            prepared = prepared.sort_values("date", kind="mergesort").reset_index(drop=True)
        self._ledgers[organization_id] = prepared

    def get_transactions(
        self,
        organization_id: str,
        *,
        start: Optional[pd.Timestamp] = None,
        end: Optional[pd.Timestamp] = None,
    ) -> pd.DataFrame:
        frame = self._ledgers.get(organization_id)
        if frame is None:
            return prepare_transactions(pd.DataFrame(columns=list(TRANSACTION_COLUMNS)))
        mask = pd.Series(True, index=frame.index)
        if start is not None:
            mask &= frame["date"] >= pd.Timestamp(start)
        if end is not None:
            mask &= frame["date"] <= pd.Timestamp(end)
        return frame.loc[mask].reset_index(drop=True).copy()

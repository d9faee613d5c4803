from __future__ import annotations

from typing import Tuple

# Canonical ledger columns. Amounts are signed: inflows positive, outflows negative.
TRANSACTION_COLUMNS: Tuple[str, ...] = (
    "date",
    "amount",
    "vendor_id",
    "category_id",
    "is_recurring",
    "is_payroll",
)

REQUIRED_TRANSACTION_COLUMNS: Tuple[str, ...] = ("date", "amount")

# Label used for transactions without a vendor / category identifier.
UNKNOWN_VENDOR = "unknown"
UNCATEGORIZED = "uncategorized"

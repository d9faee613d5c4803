from __future__ import annotations

from pathlib import Path
from typing import Union

import pandas as pd

from .ledger import prepare_transactions


def load_transactions(path: Union[str, Path], *, sheet_name: Union[str, int] = 0) -> pd.DataFrame:
    """
    Load a ledger export (CSV, XLSX or legacy XLS) into the canonical transaction frame.
    """
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix in (".xlsx", ".xlsm"):
        raw = pd.read_excel(p, sheet_name=sheet_name, engine="openpyxl")
    elif suffix == ".xls":
        raw = pd.read_excel(p, sheet_name=sheet_name, engine="xlrd")
    else:
        raw = pd.read_csv(p, low_memory=False)
    return prepare_transactions(raw)

"""
Bulk-load expenses from a spreadsheet into a running API.

    TOKEN=... python -m family_finance.import_expenses_xlsx bills.xlsx

The sheet needs a header row with a date column, a category column and an
amount column; an optional notes column is carried over.  Rows whose category
is not one of the household categories are skipped and reported.
"""

import os
import sys
from typing import Dict, List, Optional, Tuple

import pandas as pd
import requests

from family_finance.core.config import CATEGORY_ORDER

API_URL = os.getenv("API_URL", "http://127.0.0.1:4000") + "/api/expenses"

# header keywords
DATE_KEYS = ["due", "date"]
CATEGORY_KEYS = ["category", "type"]
AMT_KEYS = ["amount", "total", "cost"]
NOTES_KEYS = ["notes", "description", "memo"]


def norm(s) -> str:
    return str(s).strip().lower()

def detect_header_row(df_raw: pd.DataFrame, max_rows: int = 60) -> Optional[int]:
    """
    df_raw is read with header=None.  Returns the first row that mentions a
    date, a category and an amount.
    """
    n = min(max_rows, len(df_raw))
    for i in range(n):
        row = [norm(x) for x in df_raw.iloc[i].tolist()]
        has_date = any(any(k in cell for k in DATE_KEYS) for cell in row)
        has_cat = any(any(k in cell for k in CATEGORY_KEYS) for cell in row)
        has_amt = any(any(k in cell for k in AMT_KEYS) for cell in row)
        if has_date and has_cat and has_amt:
            return i
    return None

def find_col(df: pd.DataFrame, keys):
    cols = [norm(c) for c in df.columns]
    for k in keys:
        for idx, c in enumerate(cols):
            if k in c:
                return df.columns[idx]
    return None

def parse_amount_series(s: pd.Series) -> pd.Series:
    """"$1,234.56" / "1,234.56" / numeric -> float"""
    x = s.astype(str).str.replace(",", "", regex=False)
    x = x.str.replace("$", "", regex=False).str.strip()
    return pd.to_numeric(x, errors="coerce")

def match_category(raw) -> Optional[str]:
    key = norm(raw)
    for category in CATEGORY_ORDER:
        if category.lower() == key:
            return category
    return None

def build_items(df: pd.DataFrame) -> Tuple[List[Dict], List[str]]:
    """Returns (payloads for POST /api/expenses, skipped row descriptions)."""
    col_date = find_col(df, DATE_KEYS)
    col_cat = find_col(df, CATEGORY_KEYS)
    col_amt = find_col(df, AMT_KEYS)
    col_notes = find_col(df, NOTES_KEYS)
    if not (col_date and col_cat and col_amt):
        raise ValueError(f"Missing columns; found {list(df.columns)}")

    df = df.dropna(subset=[col_date, col_cat, col_amt]).copy()

    dates = pd.to_datetime(df[col_date], errors="coerce")
    df["__date__"] = dates
    df["__amt__"] = parse_amount_series(df[col_amt])

    items, skipped = [], []
    for idx, r in df.iterrows():
        category = match_category(r[col_cat])
        if pd.isna(r["__date__"]) or pd.isna(r["__amt__"]) or category is None:
            skipped.append(f"row {idx}: {r[col_cat]!s} {r[col_amt]!s} {r[col_date]!s}")
            continue

        notes = None
        if col_notes is not None and not pd.isna(r[col_notes]):
            notes = str(r[col_notes]).strip() or None

        items.append({
            "category": category,
            "amount": round(abs(float(r["__amt__"])), 2),
            "due_date": r["__date__"].to_pydatetime().isoformat(),
            "notes": notes,
        })
    return items, skipped

def require_token() -> str:
    token = os.getenv("TOKEN", "").strip()
    if not token:
        print("ERROR: TOKEN is not set (log in and export the access token).")
        sys.exit(1)
    return token

def post_item(item: Dict, headers: Dict) -> Dict:
    resp = requests.post(API_URL, json=item, headers=headers, timeout=30)
    if resp.status_code == 401:
        print("ERROR 401 Unauthorized: token missing or expired.")
        raise SystemExit(1)
    if resp.status_code == 403:
        print("ERROR 403: this member is not allowed to add expenses.")
        raise SystemExit(1)
    if resp.status_code >= 400:
        print(f"ERROR {resp.status_code}: {resp.text}")
        resp.raise_for_status()
    return resp.json()

def main(argv: List[str]) -> None:
    if len(argv) < 2:
        print("usage: python -m family_finance.import_expenses_xlsx FILE.xlsx")
        sys.exit(2)
    file_path = argv[1]

    token = require_token()
    headers = {"Authorization": f"Bearer {token}"}

    if not os.path.exists(file_path):
        print(f"ERROR: file not found: {file_path}")
        sys.exit(1)

    df_raw = pd.read_excel(file_path, sheet_name=0, header=None)
    hdr = detect_header_row(df_raw)
    if hdr is None:
        print("Could not find a header row with date / category / amount columns.")
        sys.exit(1)

    df = pd.read_excel(file_path, sheet_name=0, header=hdr)
    items, skipped = build_items(df)

    print(f"Header row: {hdr}")
    print(f"Expenses to upload: {len(items)} (skipped {len(skipped)})")
    for line in skipped:
        print(f"  skipped {line}")

    for n, item in enumerate(items, start=1):
        out = post_item(item, headers)
        print(f"Uploaded {n}/{len(items)} - id {out.get('id')}")

    print("DONE")

if __name__ == "__main__":
    main(sys.argv)

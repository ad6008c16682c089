#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
summarize.py
Aggregates monthly procurement rows for one obra (or all of them) into the
year summary consumed by narrate.py and the HTTP functions.

Implements:
- Month labels normalized to the 3-letter canonical code (JAN ... DEZ).
- Obra filter ("Todas" keeps everything) and year filter (applied to both the
  month buckets and YTD when a year is requested).
- Two block kinds:
    * summed blocks (prazo_pedido, prazo_entrega): plain sums of meta/real.
    * averaged blocks (pontualidade, negociacao): values are already
      percentages; meta/real are the mean over ALL rows of the bucket, so a row
      with a missing/non-numeric value still counts in the denominator and adds 0.
- perc = real / meta * 100, or 0 when meta is 0.
- Exactly 12 month records, each with a delta vs. the previous month
  (empty deltas for JAN).
"""

import argparse
import json
import os
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

MONTHS_ORDER = ["JAN", "FEV", "MAR", "ABR", "MAI", "JUN", "JUL", "AGO", "SET", "OUT", "NOV", "DEZ"]
ALL_OBRAS = "Todas"

# (block key, meta column, real column, is_percent)
METRIC_BLOCKS: List[Tuple[str, str, str, bool]] = [
    ("prazo_pedido", "prazo_pedido_meta", "prazo_pedido_real", False),
    ("prazo_entrega", "prazo_entrega_meta", "prazo_entrega_real", False),
    ("pontualidade", "pontualidade_meta", "pontualidade_real", True),
    ("negociacao", "negociacao_meta", "negociacao_real", True),
]

# Accepted on input, never aggregated
PASSTHROUGH_COLUMNS: Tuple[str, ...] = (
    "prazo_pedido_perc",
    "prazo_entrega_perc",
    "pontualidade_perc",
    "negociacao_perc",
)

METRIC_COLUMNS = [col for _, meta_col, real_col, _ in METRIC_BLOCKS for col in (meta_col, real_col)]
REQUIRED_COLS = ["obra", "mes"]

# ---------------------- Helpers ----------------------

def coerce_number(x: Any) -> float:
    """Numeric value of *x*; 0.0 when absent, non-numeric or NaN."""
    try:
        f = float(x)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if np.isnan(f):
        return 0.0
    return f

def normalize_month(label: Any) -> str:
    if not label:
        return ""
    return str(label).strip()[:3].upper()

def _numeric_column(rows: pd.DataFrame, col: str) -> pd.Series:
    if col not in rows.columns:
        return pd.Series(0.0, index=rows.index, dtype=float)
    return rows[col].map(coerce_number).astype(float)

def ensure_columns(df: pd.DataFrame) -> None:
    missing = [c for c in REQUIRED_COLS if c not in df.columns]
    if missing and not df.empty:
        raise ValueError(f"Missing required columns: {missing}")

def prepare_rows(records: Sequence[Dict[str, Any]], default_year: Optional[int] = None) -> pd.DataFrame:
    """
    Build the working DataFrame from validated row dicts:
    - every metric column exists (NaN when never supplied)
    - mes normalized to the canonical code
    - ano defaulted to *default_year*, or the current year when that is None
    """
    df = pd.DataFrame.from_records(list(records))
    ensure_columns(df)
    year = default_year if default_year is not None else datetime.now().year

    for col in REQUIRED_COLS + ["ano"] + METRIC_COLUMNS:
        if col not in df.columns:
            df[col] = np.nan
    df["obra"] = df["obra"].fillna("").astype(str)
    df["mes"] = df["mes"].map(normalize_month)
    df["ano"] = pd.to_numeric(df["ano"], errors="coerce").fillna(year).astype(int)
    return df

# ---------------------- Filtering ----------------------

def selected_obra(obra: Optional[str]) -> Optional[str]:
    """Return the obra to filter on, or None for all obras."""
    if not obra or obra == ALL_OBRAS:
        return None
    return obra

def filter_rows(df: pd.DataFrame, obra: Optional[str]) -> pd.DataFrame:
    sel = selected_obra(obra)
    if sel is None:
        return df
    return df[df["obra"] == sel]

def filter_year(df: pd.DataFrame, ano: Optional[int]) -> pd.DataFrame:
    if ano is None:
        return df
    return df[df["ano"] == ano]

# ---------------------- Aggregation ----------------------

def summarize_block(rows: pd.DataFrame, meta_col: str, real_col: str, is_percent: bool = False) -> Dict[str, float]:
    """
    Reduce *rows* into {"meta", "real", "perc"}.

    Percent blocks divide by the row count, not by the count of numeric values.
    """
    meta = float(_numeric_column(rows, meta_col).sum())
    real = float(_numeric_column(rows, real_col).sum())

    if is_percent:
        n = len(rows)
        meta = meta / n if n else 0.0
        real = real / n if n else 0.0

    perc = (real / meta) * 100 if meta else 0.0
    return {"meta": meta, "real": real, "perc": perc}

def summarize_blocks(rows: pd.DataFrame) -> Dict[str, Dict[str, float]]:
    return {
        key: summarize_block(rows, meta_col, real_col, is_percent)
        for key, meta_col, real_col, is_percent in METRIC_BLOCKS
    }

def build_month_series(df: pd.DataFrame, ano: Optional[int] = None) -> List[Dict[str, Any]]:
    """One record per canonical month, in calendar order, even for empty months."""
    scoped = filter_year(df, ano)
    months = []
    for mes in MONTHS_ORDER:
        rs = scoped[scoped["mes"] == mes]
        rec: Dict[str, Any] = {"mes": mes}
        rec.update(summarize_blocks(rs))
        months.append(rec)
    return months

def month_delta(curr: Optional[Dict[str, Any]], prev: Optional[Dict[str, Any]]) -> Dict[str, float]:
    if not curr or not prev:
        return {}
    out = {}
    for k, v in curr.items():
        p = prev.get(k)
        if isinstance(v, (int, float)) and isinstance(p, (int, float)):
            out[k] = v - p
    return out

def attach_deltas(months: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    out = []
    for idx, rec in enumerate(months):
        prev = months[idx - 1] if idx > 0 else None
        rr = dict(rec)
        rr["delta"] = {
            key: month_delta(rec.get(key), prev.get(key)) if prev else {}
            for key, _, _, _ in METRIC_BLOCKS
        }
        out.append(rr)
    return out

def build_ytd(df: pd.DataFrame, ano: Optional[int] = None) -> Dict[str, Dict[str, float]]:
    """Blocks over every filtered row of the year, regardless of month label."""
    return summarize_blocks(filter_year(df, ano))

def compute_year_summary(
    df: pd.DataFrame,
    ano: Optional[int],
    obra: Optional[str],
    alvo_pct: float,
) -> Dict[str, Any]:
    """Compute the year summary payload for the given obra/year."""
    filtered = filter_rows(df, obra)
    months = attach_deltas(build_month_series(filtered, ano))
    ytd = build_ytd(filtered, ano)

    return {
        "obra": selected_obra(obra) or ALL_OBRAS,
        "ano": ano,
        "alvoPct": alvo_pct,
        "ytd": ytd,
        "meses": months,
    }

# ---------------------- Main ----------------------

def load_records(path: str) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    """
    Read rows from a CSV file or a JSON file. JSON may be a bare list of rows
    or an /analyze-obras request body; in the latter case its ano/obra/alvoPct
    are returned as defaults.
    """
    if path.lower().endswith(".csv"):
        df = pd.read_csv(path)
        df = df.astype(object).where(df.notna(), None)
        return df.to_dict(orient="records"), {}

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, list):
        return data, {}
    if isinstance(data, dict) and isinstance(data.get("rows"), list):
        params = {k: data[k] for k in ("ano", "obra", "alvoPct") if data.get(k) is not None}
        return data["rows"], params
    raise ValueError(f"{path} must hold a list of rows or an object with a 'rows' list")

def parse_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Summarize procurement rows into the year summary JSON.")
    ap.add_argument("--rows", required=True, help="Path to a JSON (list or request body) or CSV file of rows.")
    ap.add_argument("--ano", type=int, default=None, help="Year filter (default: from file, else no filter).")
    ap.add_argument("--obra", default=None, help=f"Obra filter (default: {ALL_OBRAS}).")
    ap.add_argument("--alvo-pct", type=float, default=None, help="Attainment target fraction (default: 0.75).")
    ap.add_argument("--outdir", default="work", help="Output directory (default: work)")
    return ap.parse_args()

def main():
    args = parse_args()
    if not os.path.exists(args.rows):
        raise FileNotFoundError(f"Rows file not found: {args.rows}")

    records, params = load_records(args.rows)
    ano = args.ano if args.ano is not None else params.get("ano")
    obra = args.obra if args.obra is not None else params.get("obra")
    alvo_pct = args.alvo_pct if args.alvo_pct is not None else params.get("alvoPct", 0.75)

    df = prepare_rows(records, default_year=ano)
    summary = compute_year_summary(df, ano, obra, alvo_pct)

    os.makedirs(args.outdir, exist_ok=True)
    obra_slug = summary["obra"].replace(" ", "_").replace("/", "-")
    out_name = f"{obra_slug}_{ano or 'all'}_summary.json"
    out_path = os.path.join(args.outdir, out_name)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2, ensure_ascii=False)
    print(out_path)

if __name__ == "__main__":
    main()

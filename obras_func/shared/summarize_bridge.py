"""Bridge helpers for invoking :mod:`summarize` from the Function App."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from .. import summarize
from .logging_utils import get_json_logger

LOGGER = get_json_logger("obras.summarize_bridge")


@dataclass(frozen=True)
class SummaryArtifacts:
    """Outputs produced by the summarization pipeline."""
    summary: Dict[str, Any]
    rows_in: int
    rows_selected: int


def generate_year_summary(
    records: Sequence[Dict[str, Any]],
    *,
    ano: Optional[int],
    obra: Optional[str],
    alvo_pct: float,
) -> SummaryArtifacts:
    """Compute the year summary from validated request rows."""
    LOGGER.info("Rows received", extra={"event": "rows_received", "row_count": len(records)})

    df = summarize.prepare_rows(records, default_year=ano)
    LOGGER.info(
        "DataFrame constructed",
        extra={
            "event": "df_constructed",
            "shape": list(df.shape),
            "obras": sorted(df["obra"].unique().tolist())[:50],
            "unknown_months": sorted(set(df["mes"]) - set(summarize.MONTHS_ORDER)),
        },
    )

    selected = summarize.filter_year(summarize.filter_rows(df, obra), ano)
    LOGGER.info(
        "Rows filtered",
        extra={
            "event": "rows_filtered",
            "obra": summarize.selected_obra(obra) or summarize.ALL_OBRAS,
            "ano": ano,
            "rows_before": len(df),
            "rows_after": len(selected),
        },
    )

    summary = summarize.compute_year_summary(df, ano, obra, alvo_pct)
    LOGGER.info(
        "Summary computed",
        extra={
            "event": "summary_done",
            "months": len(summary["meses"]),
            "ytd_prazo_pedido": summary["ytd"]["prazo_pedido"],
        },
    )
    return SummaryArtifacts(summary=summary, rows_in=len(records), rows_selected=len(selected))

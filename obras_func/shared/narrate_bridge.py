"""Bridge helpers for invoking :mod:`narrate` from the Function App."""

from __future__ import annotations

from typing import Any, Dict, Optional

from .. import narrate
from .config import AppConfig


def generate_obras_analysis(summary: Dict[str, Any], config: AppConfig) -> Dict[str, Any]:
    """Narrative for a year summary; raises :class:`narrate.NarrativeError` on failure."""
    if not config.narrative_enabled:
        raise narrate.NarrativeError("Narrative generation disabled: OPENAI_API_KEY is not configured")
    return narrate.build_obras_analysis(summary, config)


def generate_period_analysis(
    ano: Any,
    mes: str,
    metric: Optional[str],
    resumo: Any,
    config: AppConfig,
) -> Dict[str, Any]:
    """Narrative for a month (or, with ``mes="TODOS"``, a whole year) of a client-built resumo."""
    if not config.narrative_enabled:
        raise narrate.NarrativeError("Narrative generation disabled: OPENAI_API_KEY is not configured")
    return narrate.build_period_analysis(ano, mes, metric, resumo, config)

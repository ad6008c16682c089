"""HTTP-triggered Azure Function that aggregates obra metrics and asks for a narrative."""

from __future__ import annotations

from typing import Any, Dict

import azure.functions as func

from ..narrate import NarrativeError
from ..shared import (
    AppConfig,
    PayloadTooLargeError,
    ValidationError,
    ensure_json_response,
    generate_obras_analysis,
    generate_year_summary,
    get_config,
    get_json_logger,
    log_exception,
    parse_request_json,
    validate_analyze_obras,
)

LOGGER = get_json_logger("obras.HttpAnalyzeObras")


def handle(req: func.HttpRequest, config: AppConfig) -> func.HttpResponse:
    """Run validation, aggregation and narration for one request."""
    LOGGER.info("HttpAnalyzeObras triggered", extra={"event": "start"})
    try:
        data = parse_request_json(req, config.max_body_bytes)
        request = validate_analyze_obras(data)
    except PayloadTooLargeError as exc:
        LOGGER.warning("Request body too large", extra={"event": "request_too_large", "error": str(exc)})
        return ensure_json_response({"ok": False, "error": exc.flatten()}, 413)
    except ValidationError as exc:
        LOGGER.warning(
            "Invalid request payload",
            extra={"event": "request_invalid", "field_errors": exc.field_errors, "form_errors": exc.form_errors},
        )
        return ensure_json_response({"ok": False, "error": exc.flatten()}, 400)

    log_context = {"obra": request.obra, "ano": request.ano, "alvo_pct": request.alvo_pct}
    LOGGER.info("Request received", extra={"event": "request_received", "row_count": len(request.rows), **log_context})

    try:
        # 1) Summarize
        artifacts = generate_year_summary(
            request.rows,
            ano=request.ano,
            obra=request.obra,
            alvo_pct=request.alvo_pct,
        )
        summary = artifacts.summary

        # 2) Narrate (optional: aggregates are returned either way)
        analise: Dict[str, Any] = {}
        try:
            analise = generate_obras_analysis(summary, config)
            LOGGER.info("Narration done", extra={"event": "narration_done", "keys": sorted(analise), **log_context})
        except NarrativeError as exc:
            LOGGER.warning("Narrative unavailable", extra={"event": "narration_failed", "error": str(exc), **log_context})

        response = {
            "ok": True,
            "obra": summary["obra"],
            "ano": summary["ano"],
            "ytd": summary["ytd"],
            "meses": summary["meses"],
            "analise": analise,
        }
        LOGGER.info("Request complete", extra={"event": "done", "rows_selected": artifacts.rows_selected, **log_context})
        return ensure_json_response(response, 200)

    except Exception as exc:  # pragma: no cover - runtime error path
        log_exception(LOGGER, "Pipeline execution failed", extra=log_context)
        return ensure_json_response({"ok": False, "error": str(exc)}, 500)


def main(req: func.HttpRequest) -> func.HttpResponse:
    return handle(req, get_config())

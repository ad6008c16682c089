"""HTTP-triggered Azure Function that narrates a summary built by the client.

``mes="TODOS"`` asks for a whole-year reading; any other month label asks for
that month compared with the previous one. Unlike ``/analyze-obras`` there are
no aggregates to fall back on, so a narrative failure is an error here.
"""

from __future__ import annotations

import azure.functions as func

from ..narrate import NarrativeError
from ..shared import (
    AppConfig,
    PayloadTooLargeError,
    ValidationError,
    ensure_json_response,
    generate_period_analysis,
    get_config,
    get_json_logger,
    log_exception,
    parse_request_json,
    validate_analyze,
)

LOGGER = get_json_logger("obras.HttpAnalyze")


def handle(req: func.HttpRequest, config: AppConfig) -> func.HttpResponse:
    LOGGER.info("HttpAnalyze triggered", extra={"event": "start"})
    try:
        request = validate_analyze(parse_request_json(req, config.max_body_bytes))
    except PayloadTooLargeError as exc:
        LOGGER.warning("Request body too large", extra={"event": "request_too_large", "error": str(exc)})
        return ensure_json_response({"ok": False, "error": exc.flatten()}, 413)
    except ValidationError as exc:
        LOGGER.warning("Invalid request payload", extra={"event": "request_invalid", "field_errors": exc.field_errors})
        return ensure_json_response({"ok": False, "error": exc.flatten()}, 400)

    log_context = {"ano": request.ano, "mes": request.mes, "metric": request.metric}
    LOGGER.info("Request received", extra={"event": "request_received", **log_context})

    try:
        data = generate_period_analysis(request.ano, request.mes, request.metric, request.resumo, config)
    except NarrativeError as exc:
        log_exception(LOGGER, "Narrative generation failed", extra=log_context)
        return ensure_json_response({"ok": False, "error": str(exc)}, 500)
    except Exception as exc:  # pragma: no cover - runtime error path
        log_exception(LOGGER, "Analyze failed", extra=log_context)
        return ensure_json_response({"ok": False, "error": str(exc)}, 500)

    LOGGER.info("Request complete", extra={"event": "done", **log_context})
    return ensure_json_response({"ok": True, "data": data}, 200)


def main(req: func.HttpRequest) -> func.HttpResponse:
    return handle(req, get_config())

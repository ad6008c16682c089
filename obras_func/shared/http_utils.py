"""Response helpers shared by the HTTP-triggered functions."""

from __future__ import annotations

import json
from typing import Any, Dict

import azure.functions as func


def ensure_json_response(payload: Dict[str, Any], status: int) -> func.HttpResponse:
    return func.HttpResponse(
        body=json.dumps(payload, ensure_ascii=False),
        status_code=status,
        mimetype="application/json",
        charset="utf-8",
    )

"""Health check: answers {"ok": true} while the Function App is up."""

from __future__ import annotations

import azure.functions as func

from ..shared import ensure_json_response


def main(req: func.HttpRequest) -> func.HttpResponse:
    del req
    return ensure_json_response({"ok": True}, 200)

"""Validation helpers for the HTTP request pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import azure.functions as func

from ..summarize import ALL_OBRAS, METRIC_BLOCKS, PASSTHROUGH_COLUMNS

DEFAULT_ALVO_PCT = 0.75
ALVO_PCT_MIN = 0.1
ALVO_PCT_MAX = 1.0

# Years are stored in an int64 column
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

NUMERIC_ROW_FIELDS: Tuple[str, ...] = tuple(
    col for _, meta_col, real_col, _ in METRIC_BLOCKS for col in (meta_col, real_col)
) + PASSTHROUGH_COLUMNS


class ValidationError(ValueError):
    """Raised when the HTTP request payload is invalid.

    Collects every problem found instead of stopping at the first one.
    """

    def __init__(
        self,
        form_errors: Optional[List[str]] = None,
        field_errors: Optional[Dict[str, List[str]]] = None,
    ) -> None:
        self.form_errors = list(form_errors or [])
        self.field_errors = {k: list(v) for k, v in (field_errors or {}).items()}
        super().__init__(self._summary())

    def _summary(self) -> str:
        parts = list(self.form_errors)
        parts.extend(f"{path}: {'; '.join(msgs)}" for path, msgs in self.field_errors.items())
        return " | ".join(parts) or "Invalid request."

    def flatten(self) -> Dict[str, Any]:
        return {"formErrors": list(self.form_errors), "fieldErrors": dict(self.field_errors)}


class PayloadTooLargeError(ValidationError):
    """Raised when the request body exceeds the configured size limit."""


class _Errors:
    def __init__(self) -> None:
        self.fields: Dict[str, List[str]] = {}

    def add(self, path: str, message: str) -> None:
        self.fields.setdefault(path, []).append(message)

    def raise_if_any(self) -> None:
        if self.fields:
            raise ValidationError(field_errors=self.fields)


@dataclass(frozen=True)
class AnalyzeObrasRequest:
    rows: List[Dict[str, Any]]
    ano: Optional[int] = None
    obra: Optional[str] = None
    alvo_pct: float = DEFAULT_ALVO_PCT


@dataclass(frozen=True)
class AnalyzeRequest:
    ano: Any
    resumo: Any
    mes: str = ""
    metric: Optional[str] = None


def _is_number(value: Any) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(float(value))
    except OverflowError:
        return False


def _as_int(value: Any) -> Optional[int]:
    """Integer value of *value*, or None when it is not an integer pandas can hold."""
    if not _is_number(value) or not float(value).is_integer():
        return None
    value = int(value)
    if not INT64_MIN <= value <= INT64_MAX:
        return None
    return value


def _is_falsy(value: Any) -> bool:
    """Falsiness as JavaScript sees it: empty objects and arrays count as present."""
    if value is None or isinstance(value, bool):
        return not value
    if isinstance(value, (int, float)):
        return value == 0 or value != value
    if isinstance(value, str):
        return not value
    return False


def parse_request_json(req: func.HttpRequest, max_body_bytes: int) -> Dict[str, Any]:
    """Return the JSON object sent in *req*, enforcing the body size limit."""
    body = req.get_body() or b""
    if len(body) > max_body_bytes:
        raise PayloadTooLargeError(
            form_errors=[f"Request body exceeds {max_body_bytes} bytes ({len(body)} received)."]
        )
    try:
        data = req.get_json()
    except ValueError as exc:
        raise ValidationError(form_errors=["Request body must be valid JSON."]) from exc
    if not isinstance(data, dict):
        raise ValidationError(form_errors=["Request JSON must be an object."])
    return data


def _validate_row(row: Any, path: str, errors: _Errors) -> Optional[Dict[str, Any]]:
    if not isinstance(row, dict):
        errors.add(path, "Expected object.")
        return None

    clean: Dict[str, Any] = {}
    for key in ("obra", "mes"):
        value = row.get(key)
        if not isinstance(value, str):
            errors.add(f"{path}.{key}", "Required string.")
        elif not value:
            errors.add(f"{path}.{key}", "Must contain at least 1 character.")
        else:
            clean[key] = value

    ano = row.get("ano")
    if ano is not None:
        ano_int = _as_int(ano)
        if ano_int is None:
            errors.add(f"{path}.ano", "Expected integer.")
        else:
            clean["ano"] = ano_int

    # null is treated the same as an absent metric
    for key in NUMERIC_ROW_FIELDS:
        value = row.get(key)
        if value is None:
            continue
        if not _is_number(value):
            errors.add(f"{path}.{key}", "Expected number.")
        else:
            clean[key] = value
    return clean


def validate_analyze_obras(data: Dict[str, Any]) -> AnalyzeObrasRequest:
    """Validate the ``/analyze-obras`` body, reporting every violated field."""
    errors = _Errors()

    ano = data.get("ano")
    ano_int: Optional[int] = None
    if ano is not None:
        ano_int = _as_int(ano)
        if ano_int is None:
            errors.add("ano", "Expected integer.")

    obra = data.get("obra")
    if obra is not None and not isinstance(obra, str):
        errors.add("obra", "Expected string.")
        obra = None

    alvo_pct = data.get("alvoPct")
    if alvo_pct is None:
        alvo_pct = DEFAULT_ALVO_PCT
    elif not _is_number(alvo_pct):
        errors.add("alvoPct", "Expected number.")
    elif not ALVO_PCT_MIN <= alvo_pct <= ALVO_PCT_MAX:
        errors.add("alvoPct", f"Must be between {ALVO_PCT_MIN} and {ALVO_PCT_MAX}.")

    raw_rows = data.get("rows")
    rows: List[Dict[str, Any]] = []
    if not isinstance(raw_rows, list):
        errors.add("rows", "Required array.")
    else:
        for idx, raw in enumerate(raw_rows):
            row = _validate_row(raw, f"rows.{idx}", errors)
            if row is not None:
                rows.append(row)

    errors.raise_if_any()
    return AnalyzeObrasRequest(
        rows=rows,
        ano=ano_int,
        obra=obra or None,
        alvo_pct=float(alvo_pct),
    )


def validate_analyze(data: Dict[str, Any]) -> AnalyzeRequest:
    """Validate the ``/analyze`` body: ``ano`` and ``resumo`` are mandatory."""
    errors = _Errors()

    ano = data.get("ano")
    if _is_falsy(ano):
        errors.add("ano", "Required.")

    resumo = data.get("resumo")
    if _is_falsy(resumo):
        errors.add("resumo", "Required.")

    mes = data.get("mes")
    if mes is not None and not isinstance(mes, str):
        errors.add("mes", "Expected string.")

    metric = data.get("metric")
    if metric is not None and not isinstance(metric, str):
        errors.add("metric", "Expected string.")

    errors.raise_if_any()
    return AnalyzeRequest(ano=ano, resumo=resumo, mes=mes or "", metric=metric or None)

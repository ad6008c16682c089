#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
narrate.py
Turns a year summary (or a client-supplied resumo) into a narrative analysis:
  - out/<obra>_<ano>_analise.json when run from the command line

Key behaviors:
- The model must answer with one JSON object (resumo, destaques, riscos,
  oportunidades, acoesRecomendadas, tarefas); missing keys are filled with
  empty values.
- Markdown code fences around the answer are tolerated.
- Malformed JSON gets exactly one repair request at temperature 0. A second
  failure raises NarrativeError; callers decide whether that is fatal.
- Each request/response pair is written to Azure Blob Storage when
  OBRAS_LOG_BLOB_STORAGE is configured. Blob logging never breaks the pipeline.
"""

import argparse
import dataclasses
import json
import os
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from azure.core.exceptions import AzureError, ResourceExistsError
from azure.storage.blob import BlobServiceClient, ContentSettings
from openai import OpenAI, OpenAIError

from .shared.config import AppConfig, load_config
from .shared.logging_utils import get_json_logger

LOGGER = get_json_logger("obras.narrate")

OUT_DIR = "out"
ALL_MONTHS = "TODOS"

ANALYSIS_LIST_FIELDS = ("destaques", "riscos", "oportunidades", "acoesRecomendadas", "tarefas")

SYSTEM_SUPRIMENTOS = """Você é um analista sênior de planejamento e suprimentos.
Responda APENAS em JSON válido UTF-8, sem markdown.
Seja claro, objetivo e priorize o que mais impacta o resultado."""

SYSTEM_PCO = """Você é um analista sênior de planejamento e controle de obras (PCO) e suprimentos.
Responda APENAS em JSON válido UTF-8, sem markdown.
Seja claro, objetivo e priorize o que mais impacta o resultado."""

REPAIR_SYSTEM = "Conserte o texto abaixo para JSON válido. Responda apenas o JSON."

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\s*```$")

_OPENAI: Optional[OpenAI] = None
_OPENAI_KEY: Optional[str] = None

_BLOB_SERVICE_CLIENT: Optional[BlobServiceClient] = None
_BLOB_INIT_FAILED = False


class NarrativeError(RuntimeError):
    """Raised when the language model cannot produce a usable analysis."""


def _response_schema(impactos: str) -> str:
    return f"""Responda EXCLUSIVAMENTE neste JSON:
{{
  "resumo": "string",
  "destaques": ["string"],
  "riscos": ["string"],
  "oportunidades": ["string"],
  "acoesRecomendadas": ["string"],
  "tarefas": [
    {{ "titulo": "string", "descricao": "string", "responsavel": "string",
      "prioridade": "alta|media|baixa", "impacto": "{impactos}", "prazoDias": 7 }}
  ]
}}
- Nunca omita campos."""


def build_obras_messages(summary: Dict[str, Any]) -> List[Dict[str, str]]:
    """Prompt for the /analyze-obras year summary."""
    alvo_pct = float(summary.get("alvoPct") or 0.75)
    user = f"""
Analise o desempenho de compras/suprimentos da obra "{summary.get('obra')}" no ano {summary.get('ano')}.
Considere prazos (sol×pedido e sol×entrega), pontualidade e % de negociação.
Use YTD, % do planejado e comprometimento ao alvo de {alvo_pct * 100:.0f}%.
Traga 5–8 ações priorizadas e 3–5 riscos/oportunidades.

DADOS:
{json.dumps(summary, indent=2, ensure_ascii=False)}

{_response_schema("prazo|negociacao|pontualidade|operacao")}"""
    return [{"role": "system", "content": SYSTEM_SUPRIMENTOS}, {"role": "user", "content": user}]


def build_period_messages(ano: Any, mes: str, metric: Optional[str], resumo: Any) -> List[Dict[str, str]]:
    """Prompt for /analyze: one month vs. the previous one, or the whole year."""
    metric_label = metric or "geral"
    dados = json.dumps(resumo, indent=2, ensure_ascii=False)
    if str(mes or "").upper() == ALL_MONTHS:
        intro = f"""
Analise o desempenho GERAL do ano {ano} ({metric_label}), usando todos os meses fornecidos.
Identifique tendências do ano, meses atípicos, principais desvios, riscos e oportunidades."""
    else:
        intro = f"""
Analise o mês {mes}/{ano} considerando a métrica "{metric_label}".
Compare com o mês anterior (se existir) e destaque variações, causas prováveis e ações corretivas."""
    user = f"""{intro}
Traga 5–8 ações recomendadas e 3–5 riscos/oportunidades.

DADOS:
{dados}

{_response_schema("operacao|receita|prazo|margem")}"""
    return [{"role": "system", "content": SYSTEM_PCO}, {"role": "user", "content": user}]


def strip_code_fences(text: Optional[str]) -> str:
    cleaned = str(text or "").strip()
    cleaned = _FENCE_OPEN_RE.sub("", cleaned)
    return _FENCE_CLOSE_RE.sub("", cleaned).strip()


def _parse_json_object(text: str) -> Dict[str, Any]:
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def normalize_analysis(data: Dict[str, Any]) -> Dict[str, Any]:
    """Fill in any field the model left out."""
    out = dict(data)
    if not isinstance(out.get("resumo"), str):
        out["resumo"] = str(out.get("resumo") or "")
    for key in ANALYSIS_LIST_FIELDS:
        if not isinstance(out.get(key), list):
            out[key] = []
    return out


def _get_openai_client(config: AppConfig) -> Optional[OpenAI]:
    global _OPENAI, _OPENAI_KEY  # pylint: disable=global-statement
    if not config.openai_api_key:
        return None
    if _OPENAI is not None and _OPENAI_KEY == config.openai_api_key:
        return _OPENAI
    _OPENAI = OpenAI(api_key=config.openai_api_key, timeout=config.timeout_seconds)
    _OPENAI_KEY = config.openai_api_key
    return _OPENAI


def _get_log_blob_client(config: AppConfig) -> Optional[BlobServiceClient]:
    """
    Lazily construct a BlobServiceClient from the configured connection string.
    On failure, blob logging stays disabled for the process lifetime.
    """
    global _BLOB_SERVICE_CLIENT, _BLOB_INIT_FAILED  # pylint: disable=global-statement

    if _BLOB_INIT_FAILED or not config.log_blob_connection:
        return None
    if _BLOB_SERVICE_CLIENT is not None:
        return _BLOB_SERVICE_CLIENT

    try:
        _BLOB_SERVICE_CLIENT = BlobServiceClient.from_connection_string(config.log_blob_connection)
    except (ValueError, AzureError) as exc:
        _BLOB_INIT_FAILED = True
        LOGGER.warning("Blob audit log disabled", extra={"event": "log_blob_init_error", "error": str(exc)})
        return None
    return _BLOB_SERVICE_CLIENT


def _write_log_blob(config: AppConfig, kind: str, log_meta: Dict[str, Any], timestamp: str, payload: Dict[str, Any]) -> None:
    """Persist *payload* under ``<kind>/<obra>/``; kind is 'requests' or 'responses'."""
    client = _get_log_blob_client(config)
    if client is None:
        return

    obra = re.sub(r"[^A-Za-z0-9_-]+", "_", str(log_meta.get("obra") or "Todas")).strip("_") or "Todas"
    ano = log_meta.get("ano") or "all"
    purpose = log_meta.get("purpose") or "analysis"
    blob_name = f"{kind}/{obra}/{ano}_{purpose}_{kind}_{timestamp}.json"

    try:
        container = client.get_container_client(config.log_container)
        try:
            container.create_container()
        except ResourceExistsError:
            pass
        container.upload_blob(
            name=blob_name,
            data=json.dumps(payload, indent=2, default=str, ensure_ascii=False).encode("utf-8"),
            overwrite=True,
            content_settings=ContentSettings(content_type="application/json"),
        )
    except AzureError as exc:
        LOGGER.warning(
            "Blob audit write failed",
            extra={"event": "log_blob_write_error", "kind": kind, "blob": blob_name, "error": str(exc)},
        )


def _call_chat_completion(
    config: AppConfig,
    messages: List[Dict[str, str]],
    *,
    purpose: str,
    temperature: float,
    log_meta: Optional[Dict[str, Any]] = None,
) -> str:
    """Send *messages* to the chat completions API and return the raw text."""
    client = _get_openai_client(config)
    if client is None:
        raise NarrativeError("OPENAI_API_KEY is not configured")

    meta = dict(log_meta or {})
    meta["purpose"] = purpose
    timestamp = datetime.utcnow().strftime("%Y%m%d%H%M%S%f")

    request_body = {
        "model": config.model,
        "messages": messages,
        "response_format": {"type": "json_object"},
        "temperature": temperature,
    }
    _write_log_blob(config, "requests", meta, timestamp, {"event": "openai_request", "request": request_body})

    LOGGER.info("OpenAI request", extra={"event": "openai_request", "purpose": purpose, "model": config.model})
    try:
        resp = client.chat.completions.create(**request_body)
    except OpenAIError as exc:
        _write_log_blob(config, "responses", meta, timestamp, {"event": "openai_call_error", "error": str(exc)})
        raise NarrativeError(f"OpenAI call failed ({purpose}): {exc}") from exc

    content = ""
    if resp.choices and resp.choices[0].message:
        content = (resp.choices[0].message.content or "").strip()
    _write_log_blob(config, "responses", meta, timestamp, {"event": "openai_response", "raw_content": content})
    LOGGER.info("OpenAI response", extra={"event": "openai_response", "purpose": purpose, "length": len(content)})
    return content


def request_analysis(
    config: AppConfig,
    messages: List[Dict[str, str]],
    *,
    purpose: str,
    log_meta: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Ask the model for a JSON analysis, with a single repair attempt."""
    raw = strip_code_fences(
        _call_chat_completion(config, messages, purpose=purpose, temperature=config.temperature, log_meta=log_meta)
    )
    try:
        return normalize_analysis(_parse_json_object(raw))
    except ValueError as exc:
        LOGGER.warning(
            "Model answer is not a JSON object; requesting repair",
            extra={"event": "json_repair_start", "purpose": purpose, "error": str(exc)},
        )

    fixed = strip_code_fences(
        _call_chat_completion(
            config,
            [{"role": "system", "content": REPAIR_SYSTEM}, {"role": "user", "content": raw}],
            purpose=f"{purpose}_repair",
            temperature=0.0,
            log_meta=log_meta,
        )
    )
    try:
        return normalize_analysis(_parse_json_object(fixed))
    except ValueError as exc:
        raise NarrativeError(f"Model output for {purpose} is not valid JSON after repair") from exc


def build_obras_analysis(summary: Dict[str, Any], config: AppConfig) -> Dict[str, Any]:
    log_meta = {"obra": summary.get("obra"), "ano": summary.get("ano")}
    return request_analysis(config, build_obras_messages(summary), purpose="analyze_obras", log_meta=log_meta)


def build_period_analysis(
    ano: Any,
    mes: str,
    metric: Optional[str],
    resumo: Any,
    config: AppConfig,
) -> Dict[str, Any]:
    log_meta = {"obra": metric or "geral", "ano": ano}
    purpose = "analyze_year" if str(mes or "").upper() == ALL_MONTHS else "analyze_month"
    return request_analysis(config, build_period_messages(ano, mes, metric, resumo), purpose=purpose, log_meta=log_meta)


def load_json(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def resolve_summary_path(p: str) -> str:
    if os.path.exists(p):
        return os.path.abspath(p)
    candidate = os.path.join("work", os.path.basename(p))
    if os.path.exists(candidate):
        return os.path.abspath(candidate)
    raise FileNotFoundError(f"Summary not found: {p} (also tried {candidate})")


def parse_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Turn a year summary JSON into a narrative analysis JSON.")
    ap.add_argument("--summary", required=True, help="Path to summary JSON (or name in ./work).")
    ap.add_argument("--model", default=None, help="OpenAI model override (default: OBRAS_MODEL or gpt-4o-mini).")
    return ap.parse_args()


def main():
    args = parse_args()
    config = load_config()
    if args.model:
        config = dataclasses.replace(config, model=args.model)

    summary = load_json(resolve_summary_path(args.summary))
    analise = build_obras_analysis(summary, config)

    os.makedirs(OUT_DIR, exist_ok=True)
    obra_slug = str(summary.get("obra") or "Todas").replace(" ", "_").replace("/", "-")
    out_path = os.path.join(OUT_DIR, f"{obra_slug}_{summary.get('ano') or 'all'}_analise.json")
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(analise, f, indent=2, ensure_ascii=False)
    print(out_path)


if __name__ == "__main__":
    main()

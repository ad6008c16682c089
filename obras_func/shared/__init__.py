"""Shared utilities for the Function App."""

from .logging_utils import get_json_logger, log_exception
from .config import AppConfig, get_config, load_config
from .summarize_bridge import SummaryArtifacts, generate_year_summary
from .http_utils import ensure_json_response
from .narrate_bridge import generate_obras_analysis, generate_period_analysis
from .validators import (
    AnalyzeObrasRequest,
    AnalyzeRequest,
    PayloadTooLargeError,
    ValidationError,
    parse_request_json,
    validate_analyze,
    validate_analyze_obras,
)

__all__ = [
    "get_json_logger",
    "log_exception",
    "AppConfig",
    "get_config",
    "load_config",
    "SummaryArtifacts",
    "generate_year_summary",
    "ensure_json_response",
    "generate_obras_analysis",
    "generate_period_analysis",
    "AnalyzeObrasRequest",
    "AnalyzeRequest",
    "PayloadTooLargeError",
    "ValidationError",
    "parse_request_json",
    "validate_analyze",
    "validate_analyze_obras",
]

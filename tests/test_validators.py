"""Tests for request parsing and validation."""

from __future__ import annotations

import json
import unittest

import azure.functions as func

from obras_func.shared import ValidationError
from obras_func.shared.validators import (
    DEFAULT_ALVO_PCT,
    PayloadTooLargeError,
    parse_request_json,
    validate_analyze,
    validate_analyze_obras,
)


def _request(body: bytes) -> func.HttpRequest:
    return func.HttpRequest(
        method="POST",
        url="/analyze-obras",
        headers={"Content-Type": "application/json"},
        body=body,
    )


class ParseRequestJsonTests(unittest.TestCase):
    def test_returns_object(self) -> None:
        data = parse_request_json(_request(json.dumps({"rows": []}).encode("utf-8")), 1024)
        self.assertEqual(data, {"rows": []})

    def test_rejects_invalid_json(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_request_json(_request(b"{not json"), 1024)
        self.assertEqual(ctx.exception.form_errors, ["Request body must be valid JSON."])

    def test_rejects_non_object(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            parse_request_json(_request(b"[1, 2]"), 1024)
        self.assertIn("object", str(ctx.exception))

    def test_rejects_oversized_body(self) -> None:
        with self.assertRaises(PayloadTooLargeError):
            parse_request_json(_request(b'{"rows": []}'), 5)


class ValidateAnalyzeObrasTests(unittest.TestCase):
    def test_defaults_and_normalization(self) -> None:
        request = validate_analyze_obras(
            {
                "rows": [
                    {
                        "obra": "Obra 1",
                        "mes": "jan",
                        "ano": 2024.0,
                        "prazo_pedido_meta": 10,
                        "pontualidade_real": None,
                        "prazo_pedido_perc": 80,
                        "ignored": "x",
                    }
                ]
            }
        )

        self.assertIsNone(request.ano)
        self.assertIsNone(request.obra)
        self.assertEqual(request.alvo_pct, DEFAULT_ALVO_PCT)
        self.assertEqual(
            request.rows,
            [{"obra": "Obra 1", "mes": "jan", "ano": 2024, "prazo_pedido_meta": 10, "prazo_pedido_perc": 80}],
        )

    def test_accepts_todas_and_boundaries(self) -> None:
        low = validate_analyze_obras({"obra": "Todas", "ano": 2025, "alvoPct": 0.1, "rows": []})
        high = validate_analyze_obras({"alvoPct": 1, "rows": []})

        self.assertEqual(low.obra, "Todas")
        self.assertEqual(low.ano, 2025)
        self.assertEqual(low.alvo_pct, 0.1)
        self.assertEqual(high.alvo_pct, 1.0)

    def test_reports_every_violation(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_analyze_obras(
                {
                    "ano": "2024",
                    "obra": 7,
                    "alvoPct": 2,
                    "rows": [
                        {"mes": "", "prazo_pedido_meta": "10", "ano": 2024.5},
                        5,
                        {"obra": "ok", "mes": "fev", "negociacao_real": True},
                    ],
                }
            )

        errors = ctx.exception.flatten()
        self.assertEqual(errors["formErrors"], [])
        self.assertEqual(
            sorted(errors["fieldErrors"]),
            sorted(
                [
                    "ano",
                    "obra",
                    "alvoPct",
                    "rows.0.obra",
                    "rows.0.mes",
                    "rows.0.ano",
                    "rows.0.prazo_pedido_meta",
                    "rows.1",
                    "rows.2.negociacao_real",
                ]
            ),
        )

    def test_numbers_too_large_for_a_float(self) -> None:
        huge = 10 ** 400
        with self.assertRaises(ValidationError) as ctx:
            validate_analyze_obras(
                {"alvoPct": huge, "rows": [{"obra": "X", "mes": "jan", "prazo_pedido_meta": huge}]}
            )
        self.assertEqual(
            ctx.exception.field_errors,
            {"alvoPct": ["Expected number."], "rows.0.prazo_pedido_meta": ["Expected number."]},
        )

    def test_years_outside_int64_are_rejected(self) -> None:
        year = 10 ** 20
        with self.assertRaises(ValidationError) as ctx:
            validate_analyze_obras({"ano": year, "rows": [{"obra": "X", "mes": "jan", "ano": year}]})
        self.assertEqual(sorted(ctx.exception.field_errors), ["ano", "rows.0.ano"])

    def test_rows_are_required(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_analyze_obras({"ano": 2024})
        self.assertEqual(list(ctx.exception.field_errors), ["rows"])


class ValidateAnalyzeTests(unittest.TestCase):
    def test_requires_ano_and_resumo(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_analyze({"mes": "JAN"})
        self.assertEqual(sorted(ctx.exception.field_errors), ["ano", "resumo"])

    def test_required_fields_follow_javascript_falsiness(self) -> None:
        for resumo in ({}, [], "texto", 1):
            with self.subTest(resumo=resumo):
                self.assertEqual(validate_analyze({"ano": 2024, "resumo": resumo}).resumo, resumo)

        for value in (0, False, "", None, float("nan")):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError) as ctx:
                    validate_analyze({"ano": value, "resumo": value})
                self.assertEqual(sorted(ctx.exception.field_errors), ["ano", "resumo"])

    def test_valid_request(self) -> None:
        request = validate_analyze({"ano": 2024, "mes": "TODOS", "resumo": {"meses": []}, "metric": "prazo"})
        self.assertEqual(request.ano, 2024)
        self.assertEqual(request.mes, "TODOS")
        self.assertEqual(request.metric, "prazo")
        self.assertEqual(request.resumo, {"meses": []})


if __name__ == "__main__":
    unittest.main()

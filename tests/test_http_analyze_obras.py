"""Tests for the HttpAnalyzeObras Azure Function."""

import json
from typing import Any, Dict
import unittest
from unittest import mock

import azure.functions as func

from obras_func.HttpAnalyzeObras import handle
from obras_func.narrate import NarrativeError
from obras_func.shared import AppConfig


def _request(payload: Any) -> func.HttpRequest:
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    return func.HttpRequest(
        method="POST",
        url="/analyze-obras",
        headers={"Content-Type": "application/json"},
        body=body,
    )


def _json(response: func.HttpResponse) -> Dict[str, Any]:
    return json.loads(response.get_body().decode("utf-8"))


class AnalyzeObrasTests(unittest.TestCase):
    def setUp(self) -> None:
        self.config = AppConfig(openai_api_key="sk-test")
        self.payload = {
            "ano": 2024,
            "obra": "X",
            "rows": [
                {"obra": "X", "ano": 2024, "mes": "jan", "prazo_pedido_meta": 10, "prazo_pedido_real": 8},
                {"obra": "Y", "ano": 2024, "mes": "jan", "prazo_pedido_meta": 99, "prazo_pedido_real": 1},
            ],
        }

    def test_returns_aggregates_and_analysis(self) -> None:
        analise = {"resumo": "ok", "destaques": [], "riscos": [], "oportunidades": [], "acoesRecomendadas": [], "tarefas": []}
        with mock.patch(
            "obras_func.HttpAnalyzeObras.generate_obras_analysis",
            return_value=analise,
        ) as mock_narrate:
            response = handle(_request(self.payload), self.config)

        self.assertEqual(response.status_code, 200)
        body = _json(response)
        self.assertTrue(body["ok"])
        self.assertEqual(body["obra"], "X")
        self.assertEqual(body["ano"], 2024)
        self.assertEqual(body["analise"], analise)
        self.assertEqual(len(body["meses"]), 12)
        self.assertEqual(body["meses"][0]["prazo_pedido"]["meta"], 10.0)
        self.assertEqual(body["ytd"]["prazo_pedido"], body["meses"][0]["prazo_pedido"])
        self.assertEqual(body["meses"][1]["delta"]["prazo_pedido"]["meta"], -10.0)

        summary, config = mock_narrate.call_args.args
        self.assertIs(config, self.config)
        self.assertEqual(summary["alvoPct"], 0.75)
        self.assertEqual(summary["obra"], "X")

    def test_narrative_failure_keeps_aggregates(self) -> None:
        with mock.patch(
            "obras_func.HttpAnalyzeObras.generate_obras_analysis",
            side_effect=NarrativeError("model down"),
        ):
            response = handle(_request(self.payload), self.config)

        self.assertEqual(response.status_code, 200)
        body = _json(response)
        self.assertEqual(body["analise"], {})
        self.assertEqual(body["ytd"]["prazo_pedido"]["real"], 8.0)

    def test_missing_api_key_skips_narrative(self) -> None:
        response = handle(_request(self.payload), AppConfig())

        self.assertEqual(response.status_code, 200)
        self.assertEqual(_json(response)["analise"], {})

    def test_todas_aggregates_every_obra(self) -> None:
        payload = dict(self.payload, obra="Todas")
        with mock.patch("obras_func.HttpAnalyzeObras.generate_obras_analysis", return_value={}):
            body = _json(handle(_request(payload), self.config))

        self.assertEqual(body["obra"], "Todas")
        self.assertEqual(body["ytd"]["prazo_pedido"]["meta"], 109.0)

    def test_validation_errors_list_every_field(self) -> None:
        payload = {"alvoPct": 0.01, "rows": [{"obra": "", "mes": 3}]}
        with mock.patch("obras_func.HttpAnalyzeObras.generate_obras_analysis") as mock_narrate:
            response = handle(_request(payload), self.config)

        self.assertEqual(response.status_code, 400)
        body = _json(response)
        self.assertFalse(body["ok"])
        self.assertEqual(sorted(body["error"]["fieldErrors"]), ["alvoPct", "rows.0.mes", "rows.0.obra"])
        mock_narrate.assert_not_called()

    def test_oversized_integer_is_a_validation_error(self) -> None:
        body = b'{"ano": 2024, "rows": [{"obra": "X", "mes": "jan", "prazo_pedido_meta": 1' + b"0" * 400 + b"}]}"
        response = handle(_request(body), self.config)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(list(_json(response)["error"]["fieldErrors"]), ["rows.0.prazo_pedido_meta"])
        self.assertEqual(response.mimetype, "application/json")

    def test_invalid_json(self) -> None:
        response = handle(_request(b"{oops"), self.config)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(_json(response)["error"]["formErrors"], ["Request body must be valid JSON."])

    def test_body_size_limit(self) -> None:
        response = handle(_request(self.payload), AppConfig(max_body_bytes=16))

        self.assertEqual(response.status_code, 413)
        self.assertFalse(_json(response)["ok"])


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
import requests

from folha_presenca.api.f029_client import (
    API_ENDPOINT,
    MISSING_DOCUMENT_MSG,
    F029ApiClient,
    parse_outcome,
)
from folha_presenca.settings import ApiSettings

API = ApiSettings(base_url="https://api.example.com/", base_url_test="http://localhost:5141", timeout_sec=30)


def _response(status: int, payload=None, text: str = ""):
    r = MagicMock()
    r.status_code = status
    r.text = text or (json.dumps(payload) if payload is not None else "")
    if payload is None:
        r.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        r.json.return_value = payload
    return r


def _client(response=None, error=None, test_mode=False):
    session = MagicMock()
    session.headers = {}
    if error is not None:
        session.post.side_effect = error
    else:
        session.post.return_value = response
    return F029ApiClient(API, test_mode=test_mode, session=session), session


OK_BODY = {
    "Ambiente": "PROD",
    "SUCESSO": True,
    "mensagem": None,
    "totalProcessado": 2,
    "TotalSucesso": 1,
    "totalFalhas": 1,
    "Sessoes": [
        {
            "RowIdSessao": 11,
            "numeroSessao": "3",
            "dataSessao": "10/01/2026",
            "pathDocx": "/docs/11.docx",
            "PATHPDF": "/docs/11.pdf",
            "sucesso": True,
        },
        {"rowIdSessao": 12, "numeroSessao": "4", "sucesso": False, "mensagemErro": "Sem presenças"},
    ],
}


def test_posts_request_body_to_endpoint():
    client, session = _client(_response(200, OK_BODY))

    client.generate("ACC-1", [11, 12])

    args, kwargs = session.post.call_args
    assert args[0] == "https://api.example.com" + API_ENDPOINT
    assert json.loads(kwargs["data"].decode("utf-8")) == {"refAcao": "ACC-1", "rowIdsSessoes": [11, 12]}
    assert kwargs["timeout"] == 30


def test_test_mode_uses_local_api():
    client, session = _client(_response(200, OK_BODY), test_mode=True)
    client.generate("ACC-1", [11])
    assert session.post.call_args[0][0] == "http://localhost:5141" + API_ENDPOINT


def test_parses_response_case_insensitively():
    client, _ = _client(_response(200, OK_BODY))

    out = client.generate("ACC-1", [11, 12])

    assert out.success is True
    assert out.environment == "PROD"
    assert (out.total_processed, out.total_success, out.total_failures) == (2, 1, 1)
    first, second = out.sessions
    assert first.session_id == 11 and first.success
    assert first.document_path == "/docs/11.pdf"
    assert first.docx_path == "/docs/11.docx"
    assert second.success is False
    assert second.error_message == "Sem presenças"


def test_non_2xx_carries_status_and_body():
    client, _ = _client(_response(500, text="Internal Server Error"))
    out = client.generate("ACC-1", [1])
    assert out.success is False
    assert out.message == "HTTP 500: Internal Server Error"
    assert out.sessions == []


def test_timeout_is_distinguishable():
    client, _ = _client(error=requests.Timeout("read timed out"))
    out = client.generate("ACC-1", [1])
    assert out.success is False
    assert out.message == "Timeout ao chamar a API (>30s)"


def test_transport_error_is_folded_into_outcome():
    client, _ = _client(error=requests.ConnectionError("connection refused"))
    out = client.generate("ACC-1", [1])
    assert out.success is False
    assert out.message.startswith("Exceção ao chamar API:")
    assert "connection refused" in out.message


@pytest.mark.parametrize("payload", [None, ["not", "an", "object"], {"sucesso": True, "sessoes": "x"}])
def test_unparseable_body_is_a_failure(payload):
    client, _ = _client(_response(200, payload, text="<html>oops</html>"))
    out = client.generate("ACC-1", [1])
    assert out.success is False
    assert out.message.startswith("Resposta inválida da API:")


def test_success_without_any_document_is_downgraded():
    out = parse_outcome(
        {"sucesso": True, "sessoes": [{"rowIdSessao": 5, "sucesso": True, "pathPdf": "  "}]}
    )
    (s,) = out.sessions
    assert s.success is False
    assert s.error_message == MISSING_DOCUMENT_MSG


def test_success_with_only_docx_is_kept():
    out = parse_outcome(
        {"sucesso": True, "sessoes": [{"rowIdSessao": 5, "sucesso": True, "pathDocx": "/d/5.docx", "pathPdf": ""}]}
    )
    (s,) = out.sessions
    assert s.success is True
    assert s.document_path is None
    assert s.error_message is None

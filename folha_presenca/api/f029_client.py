# folha_presenca/api/f029_client.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

import requests
from requests import Session

from ..models import GenerationOutcome, SessionResult
from ..settings import ApiSettings

logger = logging.getLogger("folha_presenca.api")

API_ENDPOINT = "/api/v2/acoes-dtp/gerar-f029-preenchido"

MISSING_DOCUMENT_MSG = "Resposta sem caminho do documento"


# ─────────────────────────────────────────────────────────────────────────────
# Response parsing (keys are matched case-insensitively)
# ─────────────────────────────────────────────────────────────────────────────


def _lower_keys(d: Dict[str, Any]) -> Dict[str, Any]:
    return {str(k).lower(): v for k, v in d.items()}


def _opt_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _as_int(v: Any, default: int = 0) -> int:
    if v is None or isinstance(v, bool):
        return default
    return int(v)


def _as_bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        return v.strip().lower() == "true"
    return bool(v)


def parse_session(raw: Dict[str, Any]) -> SessionResult:
    d = _lower_keys(raw)
    res = SessionResult(
        session_id=_as_int(d.get("rowidsessao")),
        session_number=_opt_str(d.get("numerosessao")),
        session_date=_opt_str(d.get("datasessao")),
        document_path=_opt_str(d.get("pathpdf")),
        docx_path=_opt_str(d.get("pathdocx")),
        success=_as_bool(d.get("sucesso")),
        error_message=_opt_str(d.get("mensagemerro")),
    )
    # a "generated" session must point at some document, otherwise it is a failure
    if res.success and not (res.document_path or res.docx_path):
        res.success = False
        res.error_message = res.error_message or MISSING_DOCUMENT_MSG
    return res


def parse_outcome(payload: Any) -> GenerationOutcome:
    """
    Converts the decoded JSON body into a GenerationOutcome.
    Raises ValueError/TypeError on a body that does not have the expected shape.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    d = _lower_keys(payload)

    sessions_raw = d.get("sessoes") or []
    if not isinstance(sessions_raw, list):
        raise ValueError("'sessoes' is not a list")
    sessions = [parse_session(s) for s in sessions_raw if isinstance(s, dict)]

    return GenerationOutcome(
        success=_as_bool(d.get("sucesso")),
        message=_opt_str(d.get("mensagem")),
        environment=_opt_str(d.get("ambiente")),
        total_processed=_as_int(d.get("totalprocessado")),
        total_success=_as_int(d.get("totalsucesso")),
        total_failures=_as_int(d.get("totalfalhas")),
        sessions=sessions,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Client
# ─────────────────────────────────────────────────────────────────────────────


class F029ApiClient:
    """
    One instance per run: base URL and timeout are fixed at construction.
    `generate` never raises; every failure is folded into a failed GenerationOutcome.
    """

    def __init__(
        self,
        settings: ApiSettings,
        test_mode: bool = False,
        session: Optional[Session] = None,
    ) -> None:
        self.st = settings
        self.base_url = settings.url_for(test_mode).rstrip("/")
        self.timeout_sec = settings.timeout_sec
        self.s = session or Session()
        self.s.headers.update(
            {"accept": "application/json", "content-type": "application/json"}
        )

    @property
    def url(self) -> str:
        return f"{self.base_url}{API_ENDPOINT}"

    def generate(self, action_ref: str, session_ids: Iterable[int]) -> GenerationOutcome:
        ids: List[int] = list(session_ids)
        body = {"refAcao": action_ref, "rowIdsSessoes": ids}
        logger.info(
            "  POST %s | RefAccao=%s | %d sessão(ões)", API_ENDPOINT, action_ref, len(ids)
        )

        try:
            r = self.s.post(
                self.url,
                data=json.dumps(body, ensure_ascii=False).encode("utf-8"),
                timeout=self.timeout_sec,
            )
        except requests.Timeout:
            return GenerationOutcome.failure(
                f"Timeout ao chamar a API (>{self.timeout_sec}s)"
            )
        except Exception as e:
            return GenerationOutcome.failure(f"Exceção ao chamar API: {e}")

        if not (200 <= r.status_code < 300):
            return GenerationOutcome.failure(f"HTTP {r.status_code}: {r.text}")

        try:
            return parse_outcome(r.json())
        except Exception as e:
            return GenerationOutcome.failure(f"Resposta inválida da API: {e}")

    def close(self) -> None:
        self.s.close()

from __future__ import annotations

from datetime import date, datetime
from typing import Callable, Dict, List, Optional

import pytest

from folha_presenca.mail.smtp_sender import SendResult
from folha_presenca.models import (
    GenerationOutcome,
    SessionQueryResult,
    SessionResult,
    SessionRow,
)
from folha_presenca.monitoring.run_log import setup_logging
from folha_presenca.reports.gerar_folha_presenca import GerarFolhaPresencaRoutine
from folha_presenca.reports.notifications import REPORT_SUBJECT_PREFIX
from folha_presenca.settings import RoutineSettings

TARGET = date(2026, 1, 10)


def make_row(
    session_id: int,
    action_ref: Optional[str] = "ACC-1",
    instructor_code: int = 100,
    name: str = "Ana Silva",
    email: str = "ana@example.com",
    **kw,
) -> SessionRow:
    return SessionRow(
        session_id=session_id,
        action_ref=action_ref,
        date=kw.get("date", TARGET),
        start_time=kw.get("start_time", "19:00:00"),
        end_time=kw.get("end_time", "22:00:00"),
        course_description=kw.get("course_description", "Pós-Graduação em Psicologia"),
        instructor_short_name=name,
        instructor_code=instructor_code,
        instructor_email=email,
        session_number=kw.get("session_number", str(session_id)),
    )


def ok_session(session_id: int, pdf: Optional[str] = "/docs/f029.pdf", docx="/docs/f029.docx") -> SessionResult:
    return SessionResult(
        session_id=session_id,
        session_number=str(session_id),
        session_date="10/01/2026",
        document_path=pdf,
        docx_path=docx,
        success=True,
    )


def failed_session(session_id: int, msg: str = "Template em falta") -> SessionResult:
    return SessionResult(
        session_id=session_id,
        session_number=str(session_id),
        session_date="10/01/2026",
        success=False,
        error_message=msg,
    )


def ok_outcome(*sessions: SessionResult) -> GenerationOutcome:
    ok = sum(1 for s in sessions if s.success)
    return GenerationOutcome(
        success=True,
        total_processed=len(sessions),
        total_success=ok,
        total_failures=len(sessions) - ok,
        sessions=list(sessions),
    )


class FakeGateway:
    def __init__(self, rows=None, fail: Optional[str] = None):
        self.rows = rows or []
        self.fail = fail
        self.calls: List[date] = []

    def fetch_sessions(self, target_date):
        self.calls.append(target_date)
        if self.fail:
            return SessionQueryResult(rows=[], failed=True, error=self.fail)
        return SessionQueryResult(rows=list(self.rows))


class FakeApi:
    """action_ref -> GenerationOutcome (or an exception to raise)."""

    def __init__(self, outcomes: Optional[Dict[str, object]] = None, default=None):
        self.outcomes = outcomes or {}
        self.default = default
        self.calls: List[tuple] = []

    def generate(self, action_ref, session_ids):
        self.calls.append((action_ref, list(session_ids)))
        out = self.outcomes.get(action_ref, self.default)
        if isinstance(out, Exception):
            raise out
        if out is None:
            return GenerationOutcome.failure("Sem resposta / timeout da API")
        return out

    def close(self):
        pass


class FakeMailer:
    def __init__(self, fail_when: Optional[Callable[[dict], bool]] = None):
        self.sent: List[dict] = []
        self.fail_when = fail_when

    def send(self, to, subject, html_body, cc=None, reply_to=None, attachments=None):
        call = dict(
            to=list(to),
            subject=subject,
            html_body=html_body,
            cc=list(cc or []),
            reply_to=list(reply_to or []),
            attachments=list(attachments or []),
        )
        self.sent.append(call)
        if self.fail_when and self.fail_when(call):
            return SendResult.failed("SMTPServerDisconnected: Connection unexpectedly closed")
        return SendResult.sent()

    @property
    def reports(self):
        return [m for m in self.sent if m["subject"].startswith(REPORT_SUBJECT_PREFIX)]

    @property
    def alerts(self):
        return [m for m in self.sent if m["subject"].startswith("ERRO - ")]

    @property
    def instructor_emails(self):
        return [m for m in self.sent if m not in self.reports and m not in self.alerts]


class FakeAudit:
    def __init__(self):
        self.records: List[dict] = []

    def record_action(self, entity_id, message, category, action_ref):
        self.records.append(
            dict(entity_id=entity_id, message=message, category=category, action_ref=action_ref)
        )


@pytest.fixture
def routine_settings():
    return RoutineSettings(
        test_mode=False,
        test_email="teste@example.com",
        date_override=TARGET,
        informatica_email="informatica@example.com",
        pedagogico_email="pedagogico@example.com",
    )


@pytest.fixture
def make_routine(routine_settings):
    def _make(gateway=None, api=None, mailer=None, audit=None, settings=None, now=None):
        run_log = setup_logging("test-routine", console=False)
        return GerarFolhaPresencaRoutine(
            routine=settings or routine_settings,
            gateway=gateway or FakeGateway(),
            api=api or FakeApi(),
            mailer=mailer or FakeMailer(),
            audit=audit or FakeAudit(),
            run_log=run_log,
            now=now or (lambda: datetime(2026, 1, 11, 7, 0)),
        )

    return _make

"""
Rotina: Gerar Folha Sumário de Presença (F029).

Logic:
- Target day = yesterday in the configured TZ, or the fixed override date
  (routine.date_override in config.yaml / --date=YYYY-MM-DD).
- Reads the in-person sessions of that day from HT, groups them by RefAccao and
  asks the F029 API to generate the filled attendance sheet for each group.
- Every instructor of a generated session gets an email with the PDF attached,
  plus one audit row in sv_logs.
- A final report (outcome table + run log) goes to Informática + Pedagógico.
- The run never ends on an unhandled exception: every failure becomes a report
  row and, at ERROR level, an alert email.

Usage:
  python -m folha_presenca.reports.gerar_folha_presenca
  python -m folha_presenca.reports.gerar_folha_presenca --date 2026-01-10 --test-mode
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections import OrderedDict, defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

import pytz

from ..api.f029_client import F029ApiClient
from ..db import Database
from ..mail.smtp_sender import EmailService
from ..models import (
    NO_REF_KEY,
    STATUS_API_ERROR,
    STATUS_EMAIL_ERROR,
    STATUS_GENERATION_ERROR,
    STATUS_OK,
    STATUS_QUERY_ERROR,
    GenerationGroup,
    GenerationOutcome,
    ReportItem,
    SessionResult,
    SessionRow,
)
from ..monitoring.notify_failure import alert_subject, build_alert_body
from ..monitoring.run_log import RunLog, setup_logging, success
from ..settings import (
    DB_HT,
    DB_SV,
    ConfigError,
    RoutineSettings,
    load_settings,
    parse_date_override,
)
from .audit_log import AuditLog
from .notifications import (
    compose_instructor_email,
    compose_run_report,
    format_date,
    report_subject,
    session_window_text,
)
from .sessions_query import SessionsGateway

ROUTINE_NAME = "RotinaGerarFolhaSumarioPresenca"
VERSION = "1.0.0"

logger = logging.getLogger("folha_presenca.routine")


# ─────────────────────────────────────────────────────────────────────────────
# Target date and grouping
# ─────────────────────────────────────────────────────────────────────────────


def resolve_target_date(
    override: Optional[date],
    tz_name: str = "Europe/Lisbon",
    now: Optional[datetime] = None,
) -> date:
    """
    Fixed override wins; otherwise «yesterday» in the local TZ (the routine runs
    once a day for the previous day's sessions).
    """
    if override:
        return override
    if now is None:
        now = datetime.now(pytz.timezone(tz_name or "Europe/Lisbon"))
    return (now - timedelta(days=1)).date()


def group_sessions(rows: Sequence[SessionRow]) -> List[GenerationGroup]:
    """
    RefAccao -> distinct session ids. Rows without a key share the SEM_REF bucket.
    Groups keep first-seen order; ids are sorted so the result does not depend
    on row order.
    """
    buckets: "OrderedDict[str, set]" = OrderedDict()
    for row in rows:
        key = row.action_ref or NO_REF_KEY
        buckets.setdefault(key, set()).add(row.session_id)
    return [GenerationGroup(action_ref=k, session_ids=sorted(v)) for k, v in buckets.items()]


def rows_by_session(rows: Sequence[SessionRow]) -> Dict[int, List[SessionRow]]:
    lookup: Dict[int, List[SessionRow]] = defaultdict(list)
    for row in rows:
        lookup[row.session_id].append(row)
    return lookup


def _build_stamp() -> str:
    try:
        return datetime.fromtimestamp(os.path.getmtime(__file__)).strftime("%d/%m/%Y %H:%M")
    except OSError:
        return "N/A"


# ─────────────────────────────────────────────────────────────────────────────
# Orchestrator
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class RunSummary:
    target_date: date
    items: List[ReportItem] = field(default_factory=list)
    report_sent: bool = False

    @property
    def ok_count(self) -> int:
        return sum(1 for i in self.items if i.ok)

    @property
    def error_count(self) -> int:
        return len(self.items) - self.ok_count


class GerarFolhaPresencaRoutine:
    def __init__(
        self,
        routine: RoutineSettings,
        gateway: SessionsGateway,
        api: F029ApiClient,
        mailer: EmailService,
        audit: AuditLog,
        run_log: Optional[RunLog] = None,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.cfg = routine
        self.gateway = gateway
        self.api = api
        self.mailer = mailer
        self.audit = audit
        self.run_log = run_log or RunLog()
        self.now = now
        self._items: List[ReportItem] = []

    # --- entry point ---
    def run(self) -> RunSummary:
        self._items = []
        logger.info("=== %s v%s iniciado ===", ROUTINE_NAME, VERSION)
        logger.info(
            "Modo Teste: %s | Data alvo override: '%s'",
            self.cfg.test_mode,
            self.cfg.date_override or "",
        )

        target = self._resolve_date()
        summary = RunSummary(target_date=target, items=self._items)

        try:
            self._process(target)
        except Exception as e:
            # collaborators are not supposed to raise; if one does, still report
            self._error(f"Erro inesperado durante o processamento: {e}", exc=e)

        summary.report_sent = self._send_final_report(target)
        logger.info("=== %s finalizado ===", ROUTINE_NAME)
        return summary

    def _resolve_date(self) -> date:
        if self.cfg.date_override:
            logger.warning(
                "DataFiltroOverride ativo: usando %s em vez de ontem.",
                format_date(self.cfg.date_override),
            )
        now = self.now() if self.now else None
        target = resolve_target_date(self.cfg.date_override, self.cfg.timezone, now)
        logger.info("Data alvo: %s", format_date(target))
        return target

    def _process(self, target: date) -> None:
        result = self.gateway.fetch_sessions(target)
        if result.failed:
            self._error(f"Erro ao consultar sessões na BD: {result.error}")
            self._items.append(
                ReportItem(
                    status=STATUS_QUERY_ERROR,
                    message=f"Consulta de sessões falhou: {result.error}",
                )
            )
            return

        rows = result.rows
        if not rows:
            logger.warning("Nenhuma sessão presencial encontrada para %s.", format_date(target))
            return

        logger.info("%d registo(s) encontrado(s).", len(rows))

        by_ref: Dict[str, List[SessionRow]] = defaultdict(list)
        for row in rows:
            by_ref[row.action_ref or NO_REF_KEY].append(row)

        for group in group_sessions(rows):
            try:
                self._process_group(group, by_ref[group.action_ref])
            except Exception as e:
                self._error(f"Erro inesperado ao processar '{group.action_ref}': {e}", exc=e)
                self._items.append(
                    ReportItem(
                        action_ref=group.action_ref,
                        status=STATUS_API_ERROR,
                        message=f"Erro inesperado: {type(e).__name__}: {e}",
                    )
                )

    def _process_group(self, group: GenerationGroup, group_rows: List[SessionRow]) -> None:
        ref = group.action_ref
        logger.info("→ Processando RefAccao '%s' com %d sessão(ões)...", ref, len(group.session_ids))

        outcome: Optional[GenerationOutcome] = self.api.generate(ref, group.session_ids)

        # group-level failure: one report row for the whole group
        if outcome is None or not outcome.success:
            msg = (outcome.message if outcome else None) or "Sem resposta / timeout da API"
            self._error(f"API falhou para '{ref}': {msg}")
            self._items.append(
                ReportItem(
                    action_ref=ref,
                    description=group_rows[0].course_description if group_rows else None,
                    status=STATUS_API_ERROR,
                    message=msg,
                )
            )
            return

        success(
            logger,
            "  API OK: %d gerada(s), %d falha(s).",
            outcome.total_success,
            outcome.total_failures,
        )

        lookup = rows_by_session(group_rows)

        # session-level failures: one row per session, no fan-out
        for res in outcome.sessions:
            if res.success:
                continue
            err = res.error_message or "Falha ao gerar F029"
            self._error(f"  Falha ao gerar sessão {res.session_number}: {err}")
            matched = lookup.get(res.session_id) or []
            self._items.append(
                ReportItem(
                    action_ref=ref,
                    description=matched[0].course_description if matched else None,
                    session_number=res.session_number,
                    session_when=res.session_date,
                    status=STATUS_GENERATION_ERROR,
                    message=err,
                )
            )

        returned = {res.session_id for res in outcome.sessions}
        for sid in group.session_ids:
            if sid not in returned:
                logger.warning("  Sessão %s sem resultado na resposta da API.", sid)
                first = lookup[sid][0]
                self._items.append(
                    ReportItem(
                        action_ref=ref,
                        description=first.course_description,
                        session_number=first.session_number,
                        status=STATUS_GENERATION_ERROR,
                        message="Sessão sem resultado na resposta da API",
                    )
                )

        # successes fan out to every instructor of the session
        for res in outcome.sessions:
            if not res.success:
                continue
            instructors = lookup.get(res.session_id) or []
            if not instructors:
                logger.warning(
                    "  Sessão %s (rowid %s) devolvida pela API sem formadores associados.",
                    res.session_number,
                    res.session_id,
                )
                continue
            for row in instructors:
                # the document exists at this point; a crash here is a delivery failure
                try:
                    self._notify_instructor(ref, row, res)
                except Exception as e:
                    self._error(
                        f"  Erro inesperado ao notificar {row.instructor_short_name}: {e}", exc=e
                    )
                    self._items.append(
                        ReportItem(
                            action_ref=row.action_ref or ref,
                            description=row.course_description,
                            instructor_name=row.instructor_short_name,
                            instructor_email=row.instructor_email,
                            session_number=res.session_number,
                            status=STATUS_EMAIL_ERROR,
                            message=f"Erro inesperado: {type(e).__name__}: {e}",
                        )
                    )

    def _notify_instructor(self, ref: str, row: SessionRow, res: SessionResult) -> None:
        email = compose_instructor_email(row, res)
        sent = self.mailer.send(
            to=[row.instructor_email or ""],
            subject=email.subject,
            html_body=email.html_body,
            cc=[self.cfg.pedagogico_email, self.cfg.informatica_email],
            reply_to=[self.cfg.pedagogico_email],
            attachments=email.attachments,
        )

        base = dict(
            action_ref=row.action_ref or ref,
            description=row.course_description,
            instructor_name=row.instructor_short_name,
            instructor_email=row.instructor_email,
            session_number=res.session_number,
            session_when=session_window_text(row, res),
        )

        if sent.ok:
            success(
                logger,
                "  Email enviado → %s (%s) | Sessão %s",
                row.instructor_short_name,
                row.instructor_email,
                res.session_number,
            )
            if email.attachments:
                message = "Email enviado com sucesso"
            else:
                logger.warning(
                    "  Sessão %s sem PDF gerado: email enviado sem anexo.", res.session_number
                )
                message = "Email enviado sem anexo (caminho do PDF vazio)"
            self._items.append(ReportItem(status=STATUS_OK, message=message, **base))
            audit_msg = (
                f"F029 gerado e email enviado | Sessão {res.session_number} | "
                f"{res.session_date} | PDF: {res.document_path or ''}"
            )
        else:
            self._error(f"  Falha ao enviar email para {row.instructor_short_name}: {sent.error}")
            self._items.append(ReportItem(status=STATUS_EMAIL_ERROR, message=sent.error, **base))
            audit_msg = (
                f"F029 gerado, falha no envio de email | Sessão {res.session_number} | "
                f"{res.session_date} | Erro: {sent.error}"
            )

        try:
            self.audit.record_action(
                entity_id=str(row.instructor_code),
                message=audit_msg,
                category=self.cfg.audit_menu,
                action_ref=ref,
            )
        except Exception as e:
            logger.warning("[LogDb] Falha ao gravar log para %s: %s", row.instructor_code, e)

    # --- errors / alerts ---
    def _error(self, message: str, exc: Optional[BaseException] = None) -> None:
        """
        Logs at ERROR and sends the side-channel alert to Informática.
        Never raises.
        """
        if exc is not None:
            logger.error(message, exc_info=(type(exc), exc, exc.__traceback__))
            detail = f"{message} | {type(exc).__name__}: {exc}"
        else:
            logger.error(message)
            detail = message

        if not self.cfg.alerts_enabled:
            return
        try:
            sent = self.mailer.send(
                to=[self.cfg.informatica_email],
                subject=alert_subject(ROUTINE_NAME),
                html_body=build_alert_body(ROUTINE_NAME, detail),
            )
            if not sent.ok:
                logger.warning("Falha ao enviar alerta de erro: %s", sent.error)
        except Exception as e:
            logger.warning("Falha ao enviar alerta de erro: %s", e)

    # --- final report ---
    def _send_final_report(self, target: date) -> bool:
        logger.info("Preparando e enviando email de relatório final...")
        try:
            body = compose_run_report(
                target_date=target,
                items=self._items,
                run_log_html=self.run_log.to_html(),
                test_mode=self.cfg.test_mode,
                version=f"v{VERSION} | {ROUTINE_NAME} | Build: {_build_stamp()}",
            )
            sent = self.mailer.send(
                to=[self.cfg.informatica_email, self.cfg.pedagogico_email],
                subject=report_subject(target),
                html_body=body,
            )
        except Exception as e:
            self._error("Erro ao enviar relatório final", exc=e)
            return False

        if not sent.ok:
            self._error(f"Erro ao enviar relatório final: {sent.error}")
            return False
        success(logger, "Email de relatório final enviado.")
        return True


# ─────────────────────────────────────────────────────────────────────────────
# Process entry point
# ─────────────────────────────────────────────────────────────────────────────


def build_routine(settings, run_log: RunLog) -> GerarFolhaPresencaRoutine:
    r = settings.routine
    return GerarFolhaPresencaRoutine(
        routine=r,
        gateway=SessionsGateway(
            Database(settings.connection_string(DB_HT)), r.excluded_instructors
        ),
        api=F029ApiClient(settings.api, test_mode=r.test_mode),
        mailer=EmailService(settings.email, r.test_mode, r.test_email),
        audit=AuditLog(Database(settings.connection_string(DB_SV))),
        run_log=run_log,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Generate and send the F029 attendance sheets")
    parser.add_argument("--date", help="YYYY-MM-DD (target date; default: yesterday)")
    parser.add_argument("--test-mode", action="store_true", help="redirect every email to the test address")
    parser.add_argument("--config", help="path to config.yaml")
    args = parser.parse_args(argv)

    print(f"[{datetime.now():%d/%m/%Y %H:%M:%S}] Iniciando {ROUTINE_NAME}...", flush=True)

    try:
        settings = load_settings(args.config)
        if args.date:
            settings.routine.date_override = parse_date_override(args.date)
        if args.test_mode:
            settings.routine.test_mode = True
            if not settings.routine.test_email:
                raise ConfigError("--test-mode requires routine.test_email")
    except ConfigError as e:
        print(f"[FATAL] Configuração inválida: {e}", file=sys.stderr, flush=True)
        return 1

    run_log = setup_logging(ROUTINE_NAME)
    routine = build_routine(settings, run_log)
    try:
        routine.run()
    except Exception as e:
        # last resort; the routine itself should never get here
        print(f"[FATAL] Erro não tratado: {e!r}", file=sys.stderr, flush=True)
        return 1
    finally:
        routine.api.close()

    print(f"\n[{datetime.now():%d/%m/%Y %H:%M:%S}] Rotina concluída.", flush=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())

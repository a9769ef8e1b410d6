"""
HTML composition for the two emails of the routine:
- the instructor email with the filled F029 attached;
- the end-of-run report for Informática + Pedagógico.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import List, Optional, Sequence, Union

from ..mail.layout import build_layout_html
from ..models import STATUS_OK, ReportItem, SessionResult, SessionRow

EMAIL_SUBJECT_PREFIX = "Instituto CRIAP || Folha Sumário Presença"
REPORT_SUBJECT_PREFIX = "Instituto CRIAP || Relatório Folha Sumário Presença F029"

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{1,2})(?::(\d{1,2})(?:\.\d+)?)?\s*$")
_DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
)


@dataclass
class ComposedEmail:
    subject: str
    html_body: str
    attachments: List[str] = field(default_factory=list)


# ─────────────────────────────────────────────────────────────────────────────
# Formatting
# ─────────────────────────────────────────────────────────────────────────────


def format_time(value: Union[str, time, datetime, None]) -> str:
    """
    '19:00:00' -> '19h00', '9:05' -> '09h05', full datetime text -> its time.
    Anything unparsable is returned unchanged.
    """
    if value is None:
        return ""
    if isinstance(value, (time, datetime)):
        return f"{value.hour:02d}h{value.minute:02d}"

    text = str(value)
    if not text.strip():
        return ""

    m = _TIME_RE.match(text)
    if m:
        hh, mm = int(m.group(1)), int(m.group(2))
        if hh < 24 and mm < 60:
            return f"{hh:02d}h{mm:02d}"
        return text

    for fmt in _DATETIME_FORMATS:
        try:
            dt = datetime.strptime(text.strip(), fmt)
        except ValueError:
            continue
        return f"{dt.hour:02d}h{dt.minute:02d}"
    return text


def format_date(d: Optional[date]) -> str:
    return d.strftime("%d/%m/%Y") if d else ""


def session_date_text(row: SessionRow, result: SessionResult) -> str:
    """dd/mm/YYYY from the row; falls back to the API text, then to today."""
    if row.date:
        return format_date(row.date)
    if result.session_date:
        return result.session_date
    return datetime.now().strftime("%d/%m/%Y")


def session_window_text(row: SessionRow, result: SessionResult) -> str:
    return (
        f"{session_date_text(row, result)} "
        f"{format_time(row.start_time)}-{format_time(row.end_time)}"
    )


# ─────────────────────────────────────────────────────────────────────────────
# Instructor email
# ─────────────────────────────────────────────────────────────────────────────


def compose_instructor_email(row: SessionRow, result: SessionResult) -> ComposedEmail:
    date_text = session_date_text(row, result)
    date_dots = html.escape(date_text.replace("/", "."))
    start = html.escape(format_time(row.start_time))
    end = html.escape(format_time(row.end_time))
    name = html.escape(row.instructor_short_name or "")

    subject = f"{EMAIL_SUBJECT_PREFIX} - {row.course_description or ''} - {date_text}"

    content = f"""
<p>Estimado(a) Professor(a) <b>{name}</b>,</p>
<p>Fazemos votos de que se encontre bem.</p>
<p>No seguimento da aula prevista para o dia <b>{date_dots}</b>, a decorrer no hor&aacute;rio das <b>{start}</b> &agrave;s <b>{end}</b>, procedemos ao envio, em anexo, da folha de presen&ccedil;as preenchida.</p>
<p>Caso necessite de qualquer esclarecimento adicional, n&atilde;o hesite em contactar-nos.</p>
<p>Com os melhores cumprimentos,<br><b>Departamento T&eacute;cnico-Pedag&oacute;gico</b><br>Instituto CRIAP</p>
"""

    # only the PDF goes out
    attachments = []
    if result.document_path and result.document_path.strip():
        attachments.append(result.document_path)

    return ComposedEmail(
        subject=subject,
        html_body=build_layout_html(
            "Folha de Presen&ccedil;as (F029)", content, internal_footer=False
        ),
        attachments=attachments,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Run report
# ─────────────────────────────────────────────────────────────────────────────


def report_subject(target_date: date) -> str:
    return f"{REPORT_SUBJECT_PREFIX} - Sessões {format_date(target_date)}"


def count_items(items: Sequence[ReportItem]):
    ok = sum(1 for i in items if i.status == STATUS_OK)
    return len(items), ok, len(items) - ok


def build_summary_block(items: Sequence[ReportItem]) -> str:
    total, ok, errors = count_items(items)
    return f"""
<p style='margin:8px 0;'>
    <b>Total:</b> {total}
    &nbsp;|&nbsp;<b style='color:#27ae60;'>Sucesso:</b> {ok}
    &nbsp;|&nbsp;<b style='color:#c0392b;'>Erros:</b> {errors}
</p>"""


def build_report_table(items: Sequence[ReportItem]) -> str:
    if not items:
        return "<p style='color:#888;'>Nenhum item processado.</p>"

    def cell(v: Optional[str]) -> str:
        return html.escape(v or "")

    lines = []
    for item in items:
        bg = "#eafaf1" if item.ok else "#ffe4d6"
        color = "#27ae60" if item.ok else "#c0392b"
        lines.append(
            f"""<tr style='background:{bg};'>
    <td>{cell(item.action_ref)}</td>
    <td>{cell(item.description)}</td>
    <td>{cell(item.instructor_name)}</td>
    <td>{cell(item.instructor_email)}</td>
    <td style='text-align:center;'>{cell(item.session_number)}</td>
    <td>{cell(item.session_when)}</td>
    <td style='color:{color};font-weight:bold;text-align:center;'>{cell(item.status)}</td>
    <td>{cell(item.message)}</td>
  </tr>"""
        )

    rows_html = "".join(lines)
    return f"""
<table border='0' cellpadding='5' cellspacing='0' style='border-collapse:collapse;font-size:12px;width:100%;'>
  <tr style='background:#ed7520;color:#fff;'>
    <th>Ref A&ccedil;&atilde;o</th>
    <th>Curso</th>
    <th>Formador</th>
    <th>Email</th>
    <th>Sess&atilde;o N&ordm;</th>
    <th>Data/Hora</th>
    <th>Status</th>
    <th>Mensagem</th>
  </tr>
  {rows_html}
</table>"""


def compose_run_report(
    target_date: date,
    items: Sequence[ReportItem],
    run_log_html: str,
    test_mode: bool = False,
    version: Optional[str] = None,
) -> str:
    date_text = format_date(target_date)
    content = (
        f"<p><b>Data alvo:</b> {date_text} &nbsp;&nbsp; <b>Modo Teste:</b> {test_mode}</p>\n"
        + build_summary_block(items)
        + build_report_table(items)
        + "\n<hr style='margin:24px 0;border:none;border-top:1px solid #ddd;'>\n"
        + "<h3 style='font-size:13px;color:#555;'>Log de Execu&ccedil;&atilde;o</h3>\n"
        + run_log_html
    )
    return build_layout_html(
        f"Relat&oacute;rio F029 &mdash; Sess&otilde;es de {date_text}",
        content,
        internal_footer=True,
        version=version,
    )

import html
from datetime import datetime
from typing import Optional

from ..mail.layout import build_layout_html


def alert_subject(routine_name: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"ERRO - {routine_name} [{now:%d/%m/%Y %H:%M}]"


def build_alert_body(routine_name: str, detail: str) -> str:
    content = f"""
    <p style='color:#c0392b;'><b>Ocorreu um erro na rotina <u>{routine_name}</u>.</b></p>
    <pre style='background:#ffe4d6;border:1px solid #ed7520;padding:12px;font-size:11px;white-space:pre-wrap;word-break:break-all;'>{html.escape(detail)}</pre>
    """
    return build_layout_html(
        f"Erro na Rotina &mdash; {routine_name}", content, internal_footer=True
    )

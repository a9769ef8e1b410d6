from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from ..models import SessionQueryResult, SessionRow

logger = logging.getLogger("folha_presenca.sessions")

# Comp_elr = 'P' -> in-person sessions only.
# Instructor email: first of email1/email2 that is filled in.
SQL_SESSIONS_BY_DATE = """
SELECT DISTINCT
    s.versao_rowid,
    s.data,
    s.hora_inicio,
    s.hora_fim,
    s.rowid_modulo,
    s.num_sessao,
    f.nome_abreviado,
    cu.descricao,
    a.numero_accao,
    a.ref_accao,
    f.codigo_formador,
    COALESCE(c.email1, c.email2) AS email
FROM tbforsessoesformadores sf
INNER JOIN tbforsessoes s    ON s.versao_rowid = sf.rowid_sessao
INNER JOIN tbforaccoes a     ON s.rowid_accao = a.versao_rowid
INNER JOIN tbforformadores f ON f.codigo_formador = sf.codigo_formador
INNER JOIN tbgercontactos c  ON f.versao_rowid = c.codigo_entidade
                            AND c.tipo_entidade = 4
INNER JOIN tbforcursos cu    ON cu.codigo_curso = a.codigo_curso
WHERE CAST(s.data AS DATE) = %s
  AND s.comp_elr = 'P'
  AND f.codigo_formador <> ALL(%s::int[])
  AND COALESCE(c.email1, c.email2) IS NOT NULL
"""


def _str(v: Any) -> Optional[str]:
    if v is None:
        return None
    return str(v).strip()


def _time_text(v: Any) -> Optional[str]:
    # time/datetime columns come back as objects; keep them as "HH:MM:SS" text
    if v is None:
        return None
    if hasattr(v, "strftime"):
        return v.strftime("%H:%M:%S")
    return str(v).strip()


def _date(v: Any) -> Optional[date]:
    if v is None:
        return None
    if isinstance(v, datetime):
        return v.date()
    return v


def _int(v: Any, default: int = 0) -> int:
    return default if v is None else int(v)


def map_row(r: Dict[str, Any]) -> SessionRow:
    return SessionRow(
        session_id=int(r["versao_rowid"]),
        action_ref=_str(r.get("ref_accao")),
        date=_date(r.get("data")),
        start_time=_time_text(r.get("hora_inicio")),
        end_time=_time_text(r.get("hora_fim")),
        course_description=_str(r.get("descricao")),
        instructor_short_name=_str(r.get("nome_abreviado")),
        instructor_code=_int(r.get("codigo_formador")),
        instructor_email=_str(r.get("email")),
        module_id=None if r.get("rowid_modulo") is None else int(r["rowid_modulo"]),
        session_number=_str(r.get("num_sessao")),
        action_number=_int(r.get("numero_accao")),
    )


def _dedupe(rows: List[SessionRow]) -> List[SessionRow]:
    seen = set()
    out: List[SessionRow] = []
    for row in rows:
        key = (row.session_id, row.instructor_code, row.instructor_email)
        if key in seen:
            continue
        seen.add(key)
        out.append(row)
    return out


class SessionsGateway:
    """
    Reads the in-person sessions of one day from the attendance source (HT).
    A failing query does not abort the run: it comes back as failed=True with no rows.
    """

    def __init__(self, db, excluded_instructors: Sequence[int] = ()) -> None:
        self.db = db
        self.excluded_instructors = [int(x) for x in excluded_instructors]

    def fetch_sessions(self, target_date: date) -> SessionQueryResult:
        logger.info("Consultando sessões na base de dados HT...")
        if isinstance(target_date, datetime):
            target_date = target_date.date()
        try:
            raw = self.db.fetchall(
                SQL_SESSIONS_BY_DATE, (target_date, self.excluded_instructors)
            )
            rows = _dedupe([map_row(r) for r in raw])
        except Exception as e:
            logger.warning("Consulta de sessões falhou para %s", target_date, exc_info=True)
            return SessionQueryResult(rows=[], failed=True, error=f"{type(e).__name__}: {e}")
        return SessionQueryResult(rows=rows)

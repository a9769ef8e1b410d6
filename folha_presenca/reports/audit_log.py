"""
Audit trail in sv_logs (SecretariaVirtual). Best effort: a failed insert is
only logged as a warning and never reaches the caller.
"""

import logging
from typing import Iterable, Tuple

logger = logging.getLogger("folha_presenca.audit")

AUDIT_ACTOR = "system_rotina"

SQL_INSERT_LOG = """
INSERT INTO sv_logs (idformando, refacao, dataregisto, registo, menu, username)
VALUES (%s, %s, now(), %s, %s, %s)
"""


class AuditLog:
    def __init__(self, db) -> None:
        self.db = db

    def record_action(self, entity_id: str, message: str, category: str, action_ref: str) -> None:
        try:
            self.db.execute(
                SQL_INSERT_LOG,
                (str(entity_id), action_ref, message, category, AUDIT_ACTOR),
            )
        except Exception as e:
            logger.warning(
                "[LogDb] Falha ao gravar log '%s' para entidade %s: %s",
                category,
                entity_id,
                e,
            )

    def record_actions(self, actions: Iterable[Tuple[str, str, str, str]]) -> None:
        for entity_id, message, category, action_ref in actions:
            self.record_action(entity_id, message, category, action_ref)

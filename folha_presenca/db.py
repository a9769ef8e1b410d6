from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Sequence

import psycopg2
import psycopg2.extras


@contextmanager
def get_conn(dsn: str):
    conn = psycopg2.connect(dsn, application_name="folha_presenca")
    try:
        yield conn
    finally:
        conn.close()


class Database:
    """
    One named data source. A connection is opened and closed per call,
    no state is kept between calls.
    """

    def __init__(self, dsn: str) -> None:
        self.dsn = dsn

    def fetchall(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> List[Dict[str, Any]]:
        with get_conn(self.dsn) as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(sql, params or ())
                return [dict(r) for r in cur.fetchall()]

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        """
        Runs a single INSERT/UPDATE/DELETE, returns cur.rowcount.
        """
        with get_conn(self.dsn) as conn, conn.cursor() as cur:
            cur.execute(sql, params or ())
            rc = cur.rowcount
            conn.commit()
        return rc

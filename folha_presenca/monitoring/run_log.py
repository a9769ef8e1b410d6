"""
Run log: console output with timestamp/level plus an in-memory copy of every
entry, rendered as an HTML table at the end of the run for the report email.
"""

from __future__ import annotations

import html
import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from typing import List

SUCCESS = 25
logging.addLevelName(SUCCESS, "OK")

# tag -> (row background, tag color)
_TAG_STYLE = {
    "ERRO": ("#ffe4d6", "#c0392b"),
    "AVISO": ("#fff9e6", "#d68910"),
    "OK": ("#eafaf1", "#27ae60"),
    "INFO": ("#fff", "#333"),
}


def level_tag(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return "ERRO"
    if levelno >= logging.WARNING:
        return "AVISO"
    if levelno >= SUCCESS:
        return "OK"
    return "INFO"


@dataclass(frozen=True)
class LogEntry:
    levelno: int
    message: str
    created: datetime

    @property
    def tag(self) -> str:
        return level_tag(self.levelno)


class RunLog(logging.Handler):
    """Keeps every record of the run; nothing is ever dropped."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self._entries: List[LogEntry] = []

    def emit(self, record: logging.LogRecord) -> None:
        msg = record.getMessage()
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            msg = f"{msg} | {type(exc).__name__}: {exc}"
        self._entries.append(
            LogEntry(
                levelno=record.levelno,
                message=msg,
                created=datetime.fromtimestamp(record.created),
            )
        )

    @property
    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    @property
    def error_count(self) -> int:
        return sum(1 for e in self._entries if e.levelno >= logging.ERROR)

    def to_html(self) -> str:
        if not self._entries:
            return "<p>Nenhum log registado.</p>"

        rows = []
        for e in self._entries:
            bg, color = _TAG_STYLE[e.tag]
            rows.append(
                f"<tr style='background:{bg};'>"
                f"<td style='white-space:nowrap;'>{e.created:%H:%M:%S}</td>"
                f"<td style='color:{color};font-weight:bold;white-space:nowrap;'>{e.tag}</td>"
                f"<td>{html.escape(e.message)}</td>"
                "</tr>"
            )

        return (
            "<table border='0' cellpadding='4' cellspacing='0' "
            "style='border-collapse:collapse;font-size:12px;width:100%;'>\n"
            "  <tr style='background:#ed7520;color:#fff;'>"
            "<th>Hora</th><th>N&iacute;vel</th><th>Mensagem</th></tr>\n"
            + "\n".join(rows)
            + "\n</table>"
        )


class _ConsoleFormatter(logging.Formatter):
    def __init__(self, routine_name: str) -> None:
        super().__init__(datefmt="%H:%M:%S")
        self.routine_name = routine_name

    def format(self, record: logging.LogRecord) -> str:
        ts = self.formatTime(record, self.datefmt)
        tag = level_tag(record.levelno)
        line = f"[{ts}] [{tag:<5}] [{self.routine_name}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    routine_name: str,
    logger_name: str = "folha_presenca",
    level: int = logging.INFO,
    stream=None,
    console: bool = True,
) -> RunLog:
    """
    Attaches a fresh RunLog (and a console handler) to `logger_name`.
    Handlers from a previous call are replaced, so one run = one buffer.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for h in list(logger.handlers):
        logger.removeHandler(h)

    if console:
        ch = logging.StreamHandler(stream or sys.stdout)
        ch.setFormatter(_ConsoleFormatter(routine_name))
        logger.addHandler(ch)

    run_log = RunLog(level)
    logger.addHandler(run_log)
    return run_log


def success(logger: logging.Logger, msg: str, *args) -> None:
    logger.log(SUCCESS, msg, *args)

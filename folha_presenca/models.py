from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

# ──────────────────────────────────────────────────────────────────────────────
# Report status tags

STATUS_OK = "OK"
STATUS_API_ERROR = "ERRO_API"
STATUS_GENERATION_ERROR = "ERRO_GERACAO"
STATUS_EMAIL_ERROR = "ERRO_EMAIL"
STATUS_QUERY_ERROR = "ERRO_CONSULTA"

NO_REF_KEY = "SEM_REF"


# ──────────────────────────────────────────────────────────────────────────────
# Attendance source


@dataclass
class SessionRow:
    """
    One (session, instructor) pair. A session with two instructors yields two rows.
    """

    session_id: int
    action_ref: Optional[str]
    date: Optional[date]
    start_time: Optional[str]
    end_time: Optional[str]
    course_description: Optional[str]
    instructor_short_name: Optional[str]
    instructor_code: int
    instructor_email: Optional[str]
    module_id: Optional[int] = None
    session_number: Optional[str] = None
    action_number: int = 0


@dataclass
class SessionQueryResult:
    rows: List[SessionRow] = field(default_factory=list)
    failed: bool = False
    error: Optional[str] = None


@dataclass
class GenerationGroup:
    action_ref: str
    session_ids: List[int]


# ──────────────────────────────────────────────────────────────────────────────
# Generation API


@dataclass
class SessionResult:
    session_id: int
    session_number: Optional[str] = None
    session_date: Optional[str] = None
    document_path: Optional[str] = None
    docx_path: Optional[str] = None
    success: bool = False
    error_message: Optional[str] = None


@dataclass
class GenerationOutcome:
    success: bool
    message: Optional[str] = None
    environment: Optional[str] = None
    total_processed: int = 0
    total_success: int = 0
    total_failures: int = 0
    sessions: List[SessionResult] = field(default_factory=list)

    @classmethod
    def failure(cls, message: str) -> "GenerationOutcome":
        return cls(success=False, message=message)


# ──────────────────────────────────────────────────────────────────────────────
# Run report


@dataclass(frozen=True)
class ReportItem:
    action_ref: Optional[str] = None
    description: Optional[str] = None
    instructor_name: Optional[str] = None
    instructor_email: Optional[str] = None
    session_number: Optional[str] = None
    session_when: Optional[str] = None
    status: str = STATUS_OK
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv

CONFIG_PATH = Path(__file__).resolve().parents[1] / "config" / "config.yaml"

# Connection string names (entries of `connection_strings` in config.yaml)
DB_HT = "DatabaseHT"
DB_SV = "DatabaseSV"

DEFAULT_EXCLUDED_INSTRUCTORS = (699, 704, 827, 1046, 1053, 15683, 15684, 1425, 16221)


class ConfigError(RuntimeError):
    """Settings cannot be loaded or are inconsistent. Fatal for the run."""


@dataclass
class EmailSettings:
    sender: str = ""
    sender_name: str = "Instituto CRIAP"
    password: str = ""
    smtp_host: str = ""
    smtp_port: int = 25
    timeout_sec: int = 15
    use_tls: bool = False


@dataclass
class ApiSettings:
    base_url: str = ""
    base_url_test: str = "http://localhost:5141"
    timeout_sec: int = 60

    def url_for(self, test_mode: bool) -> str:
        return self.base_url_test if test_mode else self.base_url


@dataclass
class RoutineSettings:
    test_mode: bool = False
    test_email: str = ""
    date_override: Optional[date] = None
    informatica_email: str = "informatica@criap.com"
    pedagogico_email: str = "tecnicopedagogico@criap.com"
    excluded_instructors: Tuple[int, ...] = DEFAULT_EXCLUDED_INSTRUCTORS
    timezone: str = "Europe/Lisbon"
    audit_menu: str = "Folha Sumário Presença - F029"
    alerts_enabled: bool = True


@dataclass
class AppSettings:
    email: EmailSettings = field(default_factory=EmailSettings)
    api: ApiSettings = field(default_factory=ApiSettings)
    connection_strings: Dict[str, str] = field(default_factory=dict)
    routine: RoutineSettings = field(default_factory=RoutineSettings)

    def connection_string(self, key: str) -> str:
        cs = self.connection_strings.get(key)
        if cs and cs.strip():
            return cs
        raise ConfigError(f"Connection string '{key}' not found in config.yaml / .env")


# ─────────────────────────────────────────────────────────────────────────────
# Parsing helpers
# ─────────────────────────────────────────────────────────────────────────────


def _as_bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    return str(v).strip().lower() in {"1", "true", "yes", "on", "sim"}


def _as_int(v: Any, name: str) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {v!r}") from None


def parse_date_override(v: Any) -> Optional[date]:
    """
    '' / None -> None (use yesterday); 'YYYY-MM-DD' or 'dd/mm/YYYY' -> fixed date.
    """
    if v is None:
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    s = str(v).strip()
    if not s:
        return None
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    raise ConfigError(f"Invalid date override {s!r}, expected YYYY-MM-DD")


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}") from None
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file {path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at top level")
    return data


# ─────────────────────────────────────────────────────────────────────────────
# Loading
# ─────────────────────────────────────────────────────────────────────────────


def load_settings(path: Optional[Path] = None) -> AppSettings:
    """
    config/config.yaml holds the non-secret defaults; .env (or the process
    environment) takes priority for secrets and per-host overrides.
    """
    load_dotenv()

    cfg_path = Path(path or os.getenv("FOLHA_CONFIG_PATH") or CONFIG_PATH)
    cfg = _read_yaml(cfg_path)

    email_cfg = cfg.get("email") or {}
    api_cfg = cfg.get("api") or {}
    routine_cfg = cfg.get("routine") or {}
    conn_cfg = dict(cfg.get("connection_strings") or {})

    email = EmailSettings(
        sender=os.getenv("SMTP_SENDER") or email_cfg.get("sender", ""),
        sender_name=email_cfg.get("sender_name", "Instituto CRIAP"),
        password=os.getenv("SMTP_PASSWORD") or email_cfg.get("password", ""),
        smtp_host=os.getenv("SMTP_HOST") or email_cfg.get("smtp_host", ""),
        smtp_port=_as_int(
            os.getenv("SMTP_PORT") or email_cfg.get("smtp_port", 25), "smtp_port"
        ),
        timeout_sec=_as_int(email_cfg.get("timeout_sec", 15), "email.timeout_sec"),
        use_tls=_as_bool(email_cfg.get("use_tls", False)),
    )

    api = ApiSettings(
        base_url=os.getenv("F029_API_BASE_URL") or api_cfg.get("base_url", ""),
        base_url_test=api_cfg.get("base_url_test", "http://localhost:5141"),
        timeout_sec=_as_int(
            os.getenv("F029_API_TIMEOUT_SEC") or api_cfg.get("timeout_sec", 60),
            "api.timeout_sec",
        ),
    )

    # .env DSNs override the file
    if os.getenv("DB_HT_DSN"):
        conn_cfg[DB_HT] = os.getenv("DB_HT_DSN")
    if os.getenv("DB_SV_DSN"):
        conn_cfg[DB_SV] = os.getenv("DB_SV_DSN")

    excluded = routine_cfg.get("excluded_instructors")
    if excluded is None:
        excluded = DEFAULT_EXCLUDED_INSTRUCTORS

    routine = RoutineSettings(
        test_mode=_as_bool(
            os.getenv("F029_TEST_MODE") or routine_cfg.get("test_mode", False)
        ),
        test_email=os.getenv("F029_TEST_EMAIL") or routine_cfg.get("test_email", ""),
        date_override=parse_date_override(
            os.getenv("F029_DATE_OVERRIDE") or routine_cfg.get("date_override")
        ),
        informatica_email=routine_cfg.get("informatica_email", "informatica@criap.com"),
        pedagogico_email=routine_cfg.get(
            "pedagogico_email", "tecnicopedagogico@criap.com"
        ),
        excluded_instructors=tuple(
            _as_int(x, "excluded_instructors") for x in excluded
        ),
        timezone=routine_cfg.get("timezone", "Europe/Lisbon"),
        audit_menu=routine_cfg.get("audit_menu", "Folha Sumário Presença - F029"),
        alerts_enabled=_as_bool(routine_cfg.get("alerts_enabled", True)),
    )

    settings = AppSettings(
        email=email, api=api, connection_strings=conn_cfg, routine=routine
    )
    validate_settings(settings)
    return settings


def validate_settings(settings: AppSettings) -> None:
    r = settings.routine
    if r.test_mode and not r.test_email:
        raise ConfigError("routine.test_mode is on but routine.test_email is empty")
    if settings.api.timeout_sec <= 0:
        raise ConfigError("api.timeout_sec must be positive")
    if not settings.api.url_for(r.test_mode):
        raise ConfigError("API base URL is empty (api.base_url / F029_API_BASE_URL)")
    if not settings.email.smtp_host or not settings.email.sender:
        raise ConfigError("email.smtp_host and email.sender are required")
    # both data sources must resolve before the run starts
    settings.connection_string(DB_HT)
    settings.connection_string(DB_SV)

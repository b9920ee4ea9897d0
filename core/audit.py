# core/audit.py
from __future__ import annotations
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Literal, Dict, Any
import json
import os
import re
import threading

from rich.console import Console

# ------------------------------------------------------------------------------------
# Destination
# - audit.log   : one pipe-separated line per admin action
# - audit.jsonl : same records, structured
# configure() points both at the active data directory.
# ------------------------------------------------------------------------------------
_AUDIT_DIR: Optional[Path] = None
_CONSOLE_ENABLED = False
_console = Console(stderr=True)
_lock = threading.Lock()

ROTATE_BYTES = int(os.getenv("CERTADMIN_AUDIT_ROTATE", "10485760"))  # 10 MB
RETENTION = int(os.getenv("CERTADMIN_AUDIT_RETENTION", "7"))

SCHEMA_VERSION = 1

Level = Literal["INFO", "WARN", "ERROR", "SECURITY"]

_LEVEL_COLORS = {"INFO": "cyan", "WARN": "yellow", "ERROR": "red", "SECURITY": "magenta"}

# Writes that could not reach disk (visible through dropped_writes())
_DROPPED_WRITES = 0


def configure(data_dir: Path, *, console: bool = False) -> None:
    """Send audit records to `data_dir` and optionally echo them to stderr."""
    global _AUDIT_DIR, _CONSOLE_ENABLED
    data_dir = Path(data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    _AUDIT_DIR = data_dir
    _CONSOLE_ENABLED = console


def log_paths() -> Optional[tuple]:
    if _AUDIT_DIR is None:
        return None
    return _AUDIT_DIR / "audit.log", _AUDIT_DIR / "audit.jsonl"


def dropped_writes() -> int:
    return _DROPPED_WRITES


# ------------------------------------------------------------------------------------
# Sanitization (log injection, light PII masking)
# ------------------------------------------------------------------------------------
_EMAIL_RE = re.compile(r"([A-Za-z0-9._%+-]+)@([A-Za-z0-9.-]+\.[A-Za-z]{2,})")
_LONG_DIGIT_RE = re.compile(r"\b(\d{6,})\b")
_CTRL_RE = re.compile(r"[\r\n\t]")


def _mask_email(m: "re.Match[str]") -> str:
    return m.group(1)[:2] + "***@***"


def _mask_digits(m: "re.Match[str]") -> str:
    return m.group(1)[:2] + "***"


def mask_pii(s: str) -> str:
    """Mask emails and digit runs of six or more (phones, student ids)."""
    return _LONG_DIGIT_RE.sub(_mask_digits, _EMAIL_RE.sub(_mask_email, s))


def _clean_col(s: str) -> str:
    s = _CTRL_RE.sub(" ", s or "")
    s = s.replace("|", "¦")
    if len(s) > 2000:
        s = s[:2000] + "…"
    return s


def _sanitize_extra(obj: Any) -> Any:
    if isinstance(obj, str):
        return mask_pii(obj)
    if isinstance(obj, dict):
        return {str(k): _sanitize_extra(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_sanitize_extra(x) for x in obj]
    if obj is None or isinstance(obj, (bool, int, float)):
        return obj
    return mask_pii(str(obj))


# ------------------------------------------------------------------------------------
# Rotation & append
# ------------------------------------------------------------------------------------
def _rotate_if_needed(target: Path) -> None:
    try:
        size = target.stat().st_size if target.exists() else 0
    except OSError:
        return
    if size < ROTATE_BYTES:
        return
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    target.replace(target.with_name(f"{target.stem}-{stamp}{target.suffix}"))
    rotated = sorted(target.parent.glob(f"{target.stem}-*{target.suffix}"))
    for old in rotated[:-RETENTION] if RETENTION > 0 else []:
        old.unlink(missing_ok=True)


def _append(path: Path, line: str) -> None:
    global _DROPPED_WRITES
    try:
        _rotate_if_needed(path)
        with open(path, "a", encoding="utf-8") as fh:
            fh.write(line)
    except OSError:
        _DROPPED_WRITES += 1


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ------------------------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------------------------
def log(
    action: str,
    who: str,
    detail: str = "",
    *,
    level: Level = "INFO",
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Record an admin action.
    Audit failures never interrupt the action being audited; they are counted
    in dropped_writes().
    """
    ts = _timestamp()
    detail_masked = mask_pii(detail or "")
    line = (
        f"{ts} | {level:<8} | {_clean_col(mask_pii(who)):<16} | "
        f"{_clean_col(action):<24} | {_clean_col(detail_masked)}\n"
    )
    record = {
        "schema_version": SCHEMA_VERSION,
        "ts": ts,
        "level": level,
        "who": mask_pii(who),
        "action": action,
        "detail": detail_masked,
        "extra": _sanitize_extra(extra or {}),
    }

    if _CONSOLE_ENABLED:
        color = _LEVEL_COLORS.get(level, "white")
        _console.print(f"[{color}]{ts} {level}[/] {action} :: {_clean_col(detail_masked)}", highlight=False)

    paths = log_paths()
    if paths is None:
        return
    text_path, json_path = paths
    with _lock:
        _append(text_path, line)
        _append(json_path, json.dumps(record, ensure_ascii=False) + "\n")


def log_security(who: str, action: str, detail: str = "", **kw) -> None:
    log(action, who, detail, level="SECURITY", **kw)


def log_error(who: str, action: str, detail: str = "", **kw) -> None:
    log(action, who, detail, level="ERROR", **kw)


def log_warn(who: str, action: str, detail: str = "", **kw) -> None:
    log(action, who, detail, level="WARN", **kw)

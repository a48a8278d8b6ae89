#!/usr/bin/env python3
"""Core engine for Windows Event Log enumeration, backup, and clearing.

All real work is delegated to OS tooling:
- Classic logs (Application, Security, System, ...) through PowerShell's
  legacy Event Log cmdlets
- Modern (ETW / Windows Event Log) channels through ``wevtutil``

The engine provides:
- Log enumeration with graceful degradation
- Backup-before-clear into a per-run timestamped folder
- Batch clearing with dry-run support and per-log failure isolation
- A per-run audit log and run summaries
"""

from __future__ import annotations

import ctypes
import dataclasses
import datetime as dt
import enum
import json
import logging
import os
import re
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol, Sequence

# ------------------------------- Constants ---------------------------------- #

APP_NAME = "event_log_cleaner"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
AUDIT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

CLASSIC_LOG_GROUP = ("Application", "Security", "System", "Setup")
BACKUP_EXTENSION = ".evtx"

DEFAULT_BACKUP_ROOT = Path(os.getenv("EVENTLOG_BACKUP_ROOT", r"C:\EventLogBackups"))
DEFAULT_LOG_DIR = Path(os.getenv("EVENTLOG_LOG_DIR", str(Path(tempfile.gettempdir()) / APP_NAME)))
DEFAULT_COMMAND_TIMEOUT = int(os.getenv("EVENTLOG_COMMAND_TIMEOUT", "120"))

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


# ------------------------------- Errors ------------------------------------- #


class EventLogError(RuntimeError):
    """Base exception for event log cleaner failures."""


class EnumerationFailed(EventLogError):
    """Raised by a provider when the OS could not list its log sources."""


class NoSelection(EventLogError):
    """Raised when a run has no criteria to select logs from."""


class BackupFolderError(EventLogError):
    """Raised when the per-run backup folder cannot be created."""


class PrivilegeError(EventLogError):
    """Raised when the process lacks the rights to clear event logs."""


class InputAborted(EventLogError):
    """Raised when the operator closes stdin or interrupts a prompt."""


# ------------------------------- Utilities ---------------------------------- #


def run_timestamp(now: dt.datetime | None = None) -> str:
    return (now or dt.datetime.now()).strftime(TIMESTAMP_FORMAT)


def run_command(command: list[str], timeout: int = DEFAULT_COMMAND_TIMEOUT) -> tuple[int, str, str]:
    try:
        cp = subprocess.run(
            command,
            text=True,
            capture_output=True,
            timeout=timeout,
            check=False,
        )
        return cp.returncode, cp.stdout, cp.stderr
    except FileNotFoundError:
        return 127, "", f"command not found: {command[0]}"
    except subprocess.TimeoutExpired:
        return 1, "", f"command timed out after {timeout}s: {' '.join(command)}"
    except Exception as exc:  # pylint: disable=broad-except
        return 1, "", str(exc)


def _failure_detail(rc: int, out: str, err: str) -> str:
    text = (err or "").strip() or (out or "").strip()
    return f"rc={rc} {text}".strip()


def is_elevated() -> bool:
    """True when running as Administrator (Windows) or root (elsewhere)."""
    windll = getattr(ctypes, "windll", None)
    if windll is not None:
        try:
            return bool(windll.shell32.IsUserAnAdmin())
        except (AttributeError, OSError):
            return False
    geteuid = getattr(os, "geteuid", None)
    return bool(geteuid and geteuid() == 0)


def sanitize_log_name(name: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", name)


def write_json(path: str | Path, data: Any) -> None:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(data, indent=2, ensure_ascii=True), encoding="utf-8")


# ------------------------------ Data Models --------------------------------- #


class LogKind(str, enum.Enum):
    CLASSIC = "Classic"
    MODERN = "Modern"


@dataclasses.dataclass(frozen=True, slots=True)
class LogSource:
    """One event log to act on."""

    name: str
    kind: LogKind

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("log source name must be non-empty")

    @classmethod
    def classic(cls, name: str) -> "LogSource":
        return cls(name=name, kind=LogKind.CLASSIC)

    @classmethod
    def modern(cls, name: str) -> "LogSource":
        return cls(name=name, kind=LogKind.MODERN)


@dataclasses.dataclass(frozen=True, slots=True)
class SelectionScope:
    """Resolved set of logs for one run.

    ``all_modern`` stands for every enumerated modern log; the list is only
    materialized once, right before backup and clearing.
    """

    classic: tuple[LogSource, ...] = ()
    modern: tuple[LogSource, ...] = ()
    all_modern: bool = False
    label: str = "specific list"

    @property
    def is_empty(self) -> bool:
        return not self.classic and not self.modern and not self.all_modern


@dataclasses.dataclass(frozen=True, slots=True)
class RunContext:
    """Process-wide, read-only state for one invocation."""

    timestamp: str
    dry_run: bool = False
    backup_enabled: bool = True
    force: bool = False
    backup_root: Path = DEFAULT_BACKUP_ROOT
    log_dir: Path = DEFAULT_LOG_DIR
    command_timeout: int = DEFAULT_COMMAND_TIMEOUT

    @classmethod
    def create(
        cls,
        *,
        dry_run: bool = False,
        backup_enabled: bool = True,
        force: bool = False,
        backup_root: str | Path = DEFAULT_BACKUP_ROOT,
        log_dir: str | Path = DEFAULT_LOG_DIR,
        command_timeout: int = DEFAULT_COMMAND_TIMEOUT,
        now: dt.datetime | None = None,
    ) -> "RunContext":
        return cls(
            timestamp=run_timestamp(now),
            dry_run=dry_run,
            backup_enabled=backup_enabled,
            force=force,
            backup_root=Path(backup_root).expanduser(),
            log_dir=Path(log_dir).expanduser(),
            command_timeout=command_timeout,
        )

    @property
    def audit_log_path(self) -> Path:
        return self.log_dir / f"EventLogClear_{self.timestamp}.log"

    @property
    def backup_folder(self) -> Path:
        return self.backup_root / self.timestamp


@dataclasses.dataclass(slots=True)
class OperationResult:
    """Outcome of exporting or clearing one log."""

    source: LogSource
    succeeded: bool
    error_detail: str | None = None
    note: str | None = None
    output_path: str | None = None

    @property
    def log_id(self) -> str:
        return self.source.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "log": self.source.name,
            "kind": self.source.kind.value,
            "succeeded": self.succeeded,
            "error": self.error_detail,
            "note": self.note,
            "output_path": self.output_path,
        }


@dataclasses.dataclass(slots=True)
class BatchSummary:
    success_count: int = 0
    fail_count: int = 0

    @property
    def total(self) -> int:
        return self.success_count + self.fail_count

    def to_dict(self) -> dict[str, int]:
        return {"succeeded": self.success_count, "failed": self.fail_count, "total": self.total}


def summarize(results: Iterable[OperationResult]) -> BatchSummary:
    summary = BatchSummary()
    for res in results:
        if res.succeeded:
            summary.success_count += 1
        else:
            summary.fail_count += 1
    return summary


# ------------------------------- Logging ------------------------------------ #


def setup_audit_logger(ctx: RunContext) -> logging.Logger:
    """Attach the per-run audit file and a console handler to the app logger."""
    logger = logging.getLogger(APP_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    log_file = ctx.audit_log_path
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        log_file = Path(tempfile.gettempdir()) / APP_NAME / log_file.name
        log_file.parent.mkdir(parents=True, exist_ok=True)

    logger.setLevel(logging.INFO)
    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setFormatter(logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s", datefmt=AUDIT_DATE_FORMAT))
    logger.addHandler(fh)

    sh = logging.StreamHandler()
    sh.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.addHandler(sh)
    return logger


def close_audit_logger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


# ------------------------------- Providers ---------------------------------- #

CommandRunner = Callable[..., tuple[int, str, str]]


class LogProvider(Protocol):
    kind: LogKind

    def list_sources(self) -> list[str]: ...

    def export(self, name: str, dest: Path) -> tuple[bool, str]: ...

    def clear(self, name: str) -> tuple[bool, str]: ...


class _CommandProvider:
    kind: LogKind

    def __init__(self, runner: CommandRunner = run_command, timeout: int = DEFAULT_COMMAND_TIMEOUT):
        self.runner = runner
        self.timeout = timeout

    def _run(self, command: list[str]) -> tuple[int, str, str]:
        return self.runner(command, timeout=self.timeout)

    def _status(self, command: list[str]) -> tuple[bool, str]:
        rc, out, err = self._run(command)
        if rc != 0:
            return False, _failure_detail(rc, out, err)
        return True, (out or "").strip()

    def export(self, name: str, dest: Path) -> tuple[bool, str]:
        return self._status(["wevtutil", "epl", name, str(dest), "/ow:true"])


class ClassicLogProvider(_CommandProvider):
    """Legacy Event Log API, driven through PowerShell cmdlets."""

    kind = LogKind.CLASSIC

    @staticmethod
    def _powershell(script: str) -> list[str]:
        return ["powershell.exe", "-NoProfile", "-NonInteractive", "-Command", script]

    def list_sources(self) -> list[str]:
        rc, out, err = self._run(
            self._powershell("Get-EventLog -List | ForEach-Object { $_.Log }")
        )
        if rc != 0:
            raise EnumerationFailed(_failure_detail(rc, out, err))
        return [line.strip() for line in (out or "").splitlines() if line.strip()]

    def clear(self, name: str) -> tuple[bool, str]:
        quoted = name.replace("'", "''")
        return self._status(self._powershell(f"Clear-EventLog -LogName '{quoted}' -ErrorAction Stop"))


class ModernLogProvider(_CommandProvider):
    """Windows Event Log channels, driven through wevtutil."""

    kind = LogKind.MODERN

    def list_sources(self) -> list[str]:
        rc, out, err = self._run(["wevtutil", "el"])
        if rc != 0:
            raise EnumerationFailed(_failure_detail(rc, out, err))
        return [line.strip() for line in (out or "").splitlines() if line.strip()]

    def clear(self, name: str) -> tuple[bool, str]:
        return self._status(["wevtutil", "cl", name])


# ------------------------------- Enumerator --------------------------------- #


class LogEnumerator:
    """Best-effort listing of classic and modern log sources."""

    def __init__(self, classic: LogProvider, modern: LogProvider, logger: logging.Logger):
        self.classic = classic
        self.modern = modern
        self.logger = logger
        self.last_error: EnumerationFailed | None = None

    def list_classic_logs(self) -> list[LogSource]:
        names = self._list(self.classic, "classic")
        return [LogSource.classic(n) for n in dict.fromkeys(names)]

    def list_modern_logs(self) -> list[LogSource]:
        names = sorted(set(self._list(self.modern, "modern")))
        return [LogSource.modern(n) for n in names]

    def _list(self, provider: LogProvider, label: str) -> list[str]:
        try:
            return [n for n in provider.list_sources() if n and n.strip()]
        except EnumerationFailed as exc:
            self.last_error = exc
            self.logger.warning("enumeration_failed kind=%s err=%s", label, exc)
            return []


# ------------------------------- Backup ------------------------------------- #


def backup_file_name(source: LogSource) -> str:
    return f"{source.kind.value}_{sanitize_log_name(source.name)}{BACKUP_EXTENSION}"


class BackupEngine:
    """Export logs into ``<backup_root>/<timestamp>/`` before they are cleared."""

    def __init__(self, ctx: RunContext, providers: dict[LogKind, LogProvider], logger: logging.Logger):
        self.ctx = ctx
        self.providers = providers
        self.logger = logger

    def backup(
        self,
        sources: Sequence[LogSource],
        backup_root: str | Path | None = None,
    ) -> tuple[Path, list[OperationResult]]:
        root = Path(backup_root) if backup_root is not None else self.ctx.backup_root
        folder = root / self.ctx.timestamp
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            self.logger.error("backup_folder_failed path=%s err=%s", folder, exc)
            raise BackupFolderError(f"Cannot create backup folder {folder}: {exc}") from exc

        self.logger.info("backup_start folder=%s logs=%s", folder, len(sources))
        results = [self._export_one(source, folder) for source in sources]
        summary = summarize(results)
        self.logger.info(
            "backup_complete folder=%s succeeded=%s failed=%s",
            folder,
            summary.success_count,
            summary.fail_count,
        )
        return folder, results

    def _export_one(self, source: LogSource, folder: Path) -> OperationResult:
        target = folder / backup_file_name(source)
        try:
            ok, detail = self.providers[source.kind].export(source.name, target)
        except Exception as exc:  # pylint: disable=broad-except
            ok, detail = False, str(exc)

        if not ok:
            self.logger.warning("backup_failed log=%s err=%s", source.name, detail)
            return OperationResult(source=source, succeeded=False, error_detail=detail)

        self.logger.info("backup_success log=%s file=%s", source.name, target)
        return OperationResult(source=source, succeeded=True, output_path=str(target))


# ------------------------------- Clearing ----------------------------------- #


class ClearingEngine:
    """Clear logs one at a time; a failure never stops the batch."""

    def __init__(self, ctx: RunContext, providers: dict[LogKind, LogProvider], logger: logging.Logger):
        self.ctx = ctx
        self.providers = providers
        self.logger = logger

    def clear(self, source: LogSource) -> OperationResult:
        if self.ctx.dry_run:
            self.logger.info("[DRY RUN] Would clear %s log: %s", source.kind.value, source.name)
            return OperationResult(source=source, succeeded=True, note="would clear")

        try:
            ok, detail = self.providers[source.kind].clear(source.name)
        except Exception as exc:  # pylint: disable=broad-except
            ok, detail = False, str(exc)

        if not ok:
            self.logger.warning("clear_failed log=%s err=%s", source.name, detail)
            return OperationResult(source=source, succeeded=False, error_detail=detail)

        self.logger.info("clear_success log=%s kind=%s", source.name, source.kind.value)
        return OperationResult(source=source, succeeded=True)

    def clear_batch(self, sources: Sequence[LogSource]) -> list[OperationResult]:
        return [self.clear(source) for source in sources]


def default_providers(timeout: int = DEFAULT_COMMAND_TIMEOUT) -> dict[LogKind, LogProvider]:
    return {
        LogKind.CLASSIC: ClassicLogProvider(timeout=timeout),
        LogKind.MODERN: ModernLogProvider(timeout=timeout),
    }


__all__ = [
    "APP_NAME",
    "BackupEngine",
    "BackupFolderError",
    "BatchSummary",
    "CLASSIC_LOG_GROUP",
    "ClassicLogProvider",
    "ClearingEngine",
    "EnumerationFailed",
    "EventLogError",
    "InputAborted",
    "LogEnumerator",
    "LogKind",
    "LogSource",
    "ModernLogProvider",
    "NoSelection",
    "OperationResult",
    "PrivilegeError",
    "RunContext",
    "SelectionScope",
    "backup_file_name",
    "close_audit_logger",
    "default_providers",
    "is_elevated",
    "run_command",
    "sanitize_log_name",
    "setup_audit_logger",
    "summarize",
    "write_json",
]

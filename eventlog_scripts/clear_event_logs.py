#!/usr/bin/env python3
"""Clear Windows Event Logs, optionally backing them up first.

Flow: validate -> privilege check -> resolve selection -> confirm ->
backup (optional) -> clear -> summary. Use --what-if for a dry run and
--list-only to print the available logs.
"""

from __future__ import annotations

import argparse
import enum
import logging
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, Field, ValidationError

try:
    from eventlog_scripts.event_log_engine import (
        DEFAULT_BACKUP_ROOT,
        DEFAULT_COMMAND_TIMEOUT,
        DEFAULT_LOG_DIR,
        BackupEngine,
        BackupFolderError,
        ClearingEngine,
        LogEnumerator,
        LogKind,
        LogProvider,
        LogSource,
        InputAborted,
        NoSelection,
        OperationResult,
        PrivilegeError,
        RunContext,
        SelectionScope,
        close_audit_logger,
        default_providers,
        is_elevated,
        setup_audit_logger,
        summarize,
        write_json,
    )
    from eventlog_scripts.log_selector import ask_yes_no, request_from_options, resolve
except ModuleNotFoundError:
    from event_log_engine import (
        DEFAULT_BACKUP_ROOT,
        DEFAULT_COMMAND_TIMEOUT,
        DEFAULT_LOG_DIR,
        BackupEngine,
        BackupFolderError,
        ClearingEngine,
        LogEnumerator,
        LogKind,
        LogProvider,
        LogSource,
        InputAborted,
        NoSelection,
        OperationResult,
        PrivilegeError,
        RunContext,
        SelectionScope,
        close_audit_logger,
        default_providers,
        is_elevated,
        setup_audit_logger,
        summarize,
        write_json,
    )
    from log_selector import ask_yes_no, request_from_options, resolve


LOG_TYPES = ("Application", "Security", "System", "Classic", "Modern", "All", "Interactive")


# ------------------------------- Options ------------------------------------ #


class RunOptions(BaseModel):
    log_type: str | None = Field(default=None, pattern=f"^({'|'.join(LOG_TYPES)})$")
    log_name: str | None = None
    backup_path: str = str(DEFAULT_BACKUP_ROOT)
    no_backup: bool = False
    force: bool = False
    what_if: bool = False
    list_only: bool = False
    log_dir: str = str(DEFAULT_LOG_DIR)
    timeout: int = Field(default=DEFAULT_COMMAND_TIMEOUT, gt=0)
    report: str | None = None

    def to_context(self) -> RunContext:
        return RunContext.create(
            dry_run=self.what_if,
            backup_enabled=not self.no_backup,
            force=self.force,
            backup_root=self.backup_path,
            log_dir=self.log_dir,
            command_timeout=self.timeout,
        )


# ---------------------------- Run Controller -------------------------------- #


class RunState(str, enum.Enum):
    START = "start"
    VALIDATE_INPUT = "validate_input"
    LIST = "list"
    CHECK_PRIVILEGE = "check_privilege"
    RESOLVE = "resolve"
    CONFIRM = "confirm"
    BACKUP_PROMPT = "backup_prompt"
    BACKUP = "backup"
    CLEAR = "clear"
    SUMMARIZE = "summarize"
    TERMINATE = "terminate"
    EXIT = "exit"


class RunController:
    """Drive one invocation from option validation to the final summary."""

    def __init__(
        self,
        options: RunOptions,
        ctx: RunContext,
        logger: logging.Logger,
        *,
        providers: dict[LogKind, LogProvider] | None = None,
        elevated: Callable[[], bool] = is_elevated,
        prompt: Callable[[str], str] = input,
    ):
        self.options = options
        self.ctx = ctx
        self.logger = logger
        self.providers = providers or default_providers(ctx.command_timeout)
        self.elevated = elevated
        self.prompt = self._guarded(prompt)
        self.enumerator = LogEnumerator(self.providers[LogKind.CLASSIC], self.providers[LogKind.MODERN], logger)
        self.history: list[RunState] = []
        self.backup_folder: Path | None = None
        self.backup_results: list[OperationResult] = []
        self.classic_results: list[OperationResult] = []
        self.modern_results: list[OperationResult] = []

    def _enter(self, state: RunState) -> None:
        self.history.append(state)
        self.logger.debug("state=%s", state.value)

    def _terminate(self, code: int) -> int:
        self._enter(RunState.TERMINATE)
        return code

    @staticmethod
    def _guarded(prompt: Callable[[str], str]) -> Callable[[str], str]:
        def ask(text: str) -> str:
            try:
                return prompt(text)
            except EOFError as exc:
                raise InputAborted("input closed") from exc
            except KeyboardInterrupt as exc:
                raise InputAborted("interrupted") from exc

        return ask

    def check_privilege(self) -> None:
        if not self.elevated():
            raise PrivilegeError("Administrator privileges are required to clear event logs.")

    def run(self) -> int:
        try:
            return self._run()
        except InputAborted as exc:
            # prompts only happen before backup and clearing
            self.logger.warning("input_aborted reason=%s. Nothing was cleared.", exc)
            return self._terminate(0)

    def _run(self) -> int:
        self._enter(RunState.START)
        self.logger.info(
            "run_start timestamp=%s dry_run=%s backup=%s force=%s",
            self.ctx.timestamp,
            self.ctx.dry_run,
            self.ctx.backup_enabled,
            self.ctx.force,
        )

        self._enter(RunState.VALIDATE_INPUT)
        if self.options.list_only:
            self._enter(RunState.LIST)
            self.list_logs()
            self._enter(RunState.EXIT)
            return 0
        try:
            request = request_from_options(self.options.log_type, self.options.log_name)
        except NoSelection as exc:
            self.logger.error("%s", exc)
            return self._terminate(1)
        if self.options.log_name and self.options.log_type != "Modern":
            self.logger.warning("log_name_ignored name=%s log_type=%s", self.options.log_name, self.options.log_type)

        self._enter(RunState.CHECK_PRIVILEGE)
        try:
            self.check_privilege()
        except PrivilegeError as exc:
            self.logger.error("%s", exc)
            return self._terminate(1)

        self._enter(RunState.RESOLVE)
        scope = resolve(request, self.enumerator, self.prompt)
        if scope.is_empty:
            self.logger.info("No logs selected. Nothing to do.")
            return self._terminate(0)
        classic, modern = self.materialize(scope)
        if not classic and not modern:
            self.logger.info("No logs found for scope '%s'. Nothing to do.", scope.label)
            return self._terminate(0)

        if not (self.ctx.force or self.ctx.dry_run):
            self._enter(RunState.CONFIRM)
            print(f"\nLogs to clear ({len(classic) + len(modern)}): {self._preview(classic, modern)}")
            if not ask_yes_no("Clear these logs? This cannot be undone.", self.prompt):
                self.logger.info("Operation cancelled by user.")
                return self._terminate(0)

        if self.ctx.backup_enabled and not self.ctx.dry_run:
            self._enter(RunState.BACKUP_PROMPT)
            wanted = self.ctx.force or ask_yes_no(
                f"Back up logs to {self.ctx.backup_folder} first?", self.prompt, default_yes=True
            )
            if not wanted:
                self.logger.info("Backup declined; nothing cleared. Re-run with --no-backup to skip the backup.")
                return self._terminate(0)
            self._enter(RunState.BACKUP)
            try:
                self.backup_folder, self.backup_results = BackupEngine(self.ctx, self.providers, self.logger).backup(
                    [*classic, *modern]
                )
            except BackupFolderError as exc:
                self.logger.error("%s. Aborting before any log is cleared.", exc)
                return self._terminate(1)

        self._enter(RunState.CLEAR)
        clearing = ClearingEngine(self.ctx, self.providers, self.logger)
        self.classic_results = clearing.clear_batch(classic)
        self.modern_results = clearing.clear_batch(modern)

        self._enter(RunState.SUMMARIZE)
        self.report(self.summary())
        self._enter(RunState.EXIT)
        return 0

    def materialize(self, scope: SelectionScope) -> tuple[list[LogSource], list[LogSource]]:
        modern = list(scope.modern)
        if scope.all_modern:
            seen = set(modern)
            modern.extend(s for s in self.enumerator.list_modern_logs() if s not in seen)
        return list(scope.classic), modern

    def list_logs(self) -> None:
        classic = self.enumerator.list_classic_logs()
        modern = self.enumerator.list_modern_logs()
        print(f"\nClassic logs ({len(classic)}):")
        for source in classic:
            print(f"  {source.name}")
        print(f"\nModern logs ({len(modern)}):")
        for i, source in enumerate(modern, start=1):
            print(f"  {i}. {source.name}")

    def summary(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "timestamp": self.ctx.timestamp,
            "dry_run": self.ctx.dry_run,
            "audit_log": str(self.ctx.audit_log_path),
            "classic": summarize(self.classic_results).to_dict(),
            "modern": summarize(self.modern_results).to_dict(),
            "results": [r.to_dict() for r in [*self.classic_results, *self.modern_results]],
        }
        if self.backup_folder is not None:
            data["backup"] = summarize(self.backup_results).to_dict()
            data["backup"]["folder"] = str(self.backup_folder)
            data["backup_results"] = [r.to_dict() for r in self.backup_results]
        return data

    def report(self, data: dict[str, Any]) -> None:
        verb = "would clear" if self.ctx.dry_run else "cleared"
        if "backup" in data:
            b = data["backup"]
            self.logger.info("Backup: %s succeeded, %s failed -> %s", b["succeeded"], b["failed"], b["folder"])
        for label in ("classic", "modern"):
            part = data[label]
            if part["total"]:
                self.logger.info("%s logs %s: %s succeeded, %s failed", label.capitalize(), verb, part["succeeded"], part["failed"])
        for res in [*self.classic_results, *self.modern_results]:
            if not res.succeeded:
                self.logger.warning("  failed: %s (%s)", res.log_id, res.error_detail)
        self.logger.info("Audit log: %s", self.ctx.audit_log_path)
        if self.options.report:
            write_json(self.options.report, data)
            self.logger.info("Report written: %s", self.options.report)

    @staticmethod
    def _preview(classic: list[LogSource], modern: list[LogSource], limit: int = 10) -> str:
        names = [s.name for s in [*classic, *modern]]
        shown = ", ".join(names[:limit])
        if len(names) > limit:
            shown += f", ... (+{len(names) - limit} more)"
        return shown


# -------------------------------- CLI --------------------------------------- #


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clear-event-logs",
        description="Clear Windows Event Logs with optional backup and dry-run preview",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--log-type", choices=LOG_TYPES, default=None, help="Which logs to clear")
    parser.add_argument("--log-name", default=None, help="Specific modern log name (with --log-type Modern)")
    parser.add_argument("--backup-path", default=str(DEFAULT_BACKUP_ROOT), help="Backup root folder")
    parser.add_argument("--no-backup", action="store_true", help="Skip the backup step")
    parser.add_argument("--force", action="store_true", help="Do not prompt for confirmation")
    parser.add_argument("--what-if", action="store_true", help="Dry run: show what would be cleared")
    parser.add_argument("--list-only", action="store_true", help="List available logs and exit")
    parser.add_argument("--log-dir", default=str(DEFAULT_LOG_DIR), help="Folder for the per-run audit log")
    parser.add_argument("--timeout", type=int, default=DEFAULT_COMMAND_TIMEOUT, help="Seconds allowed per OS command")
    parser.add_argument("--report", default=None, help="Write a JSON run report to this path")
    return parser


def options_from_args(args: argparse.Namespace) -> RunOptions:
    return RunOptions(**vars(args))


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        options = options_from_args(args)
    except ValidationError as exc:
        logger = setup_audit_logger(RunContext.create(log_dir=args.log_dir))
        try:
            problems = "; ".join(f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors())
            logger.error("invalid_options %s", problems)
        finally:
            close_audit_logger(logger)
        return 1

    ctx = options.to_context()
    logger = setup_audit_logger(ctx)
    try:
        controller = RunController(
            options,
            ctx,
            logger,
            providers=default_providers(ctx.command_timeout),
            elevated=is_elevated,
        )
        return controller.run()
    finally:
        close_audit_logger(logger)


if __name__ == "__main__":
    raise SystemExit(main())

import logging

import pytest

from conftest import FakeProvider
from eventlog_scripts.event_log_engine import (
    BackupEngine,
    BackupFolderError,
    ClassicLogProvider,
    ClearingEngine,
    LogEnumerator,
    LogKind,
    LogSource,
    ModernLogProvider,
    SelectionScope,
    backup_file_name,
    close_audit_logger,
    run_command,
    sanitize_log_name,
    setup_audit_logger,
    summarize,
)


CLASSIC = [LogSource.classic(n) for n in ("Application", "Security", "System", "Setup")]


def test_log_source_rejects_empty_name():
    with pytest.raises(ValueError):
        LogSource.modern("")
    with pytest.raises(ValueError):
        LogSource.classic("   ")


def test_empty_scope_flags():
    assert SelectionScope().is_empty
    assert not SelectionScope(all_modern=True).is_empty
    assert not SelectionScope(classic=(CLASSIC[0],)).is_empty


def test_run_context_paths_share_timestamp(make_ctx, tmp_path):
    ctx = make_ctx()
    assert ctx.backup_folder == tmp_path / "backups" / ctx.timestamp
    assert ctx.audit_log_path == tmp_path / "logs" / f"EventLogClear_{ctx.timestamp}.log"


def test_backup_file_name_is_sanitized_and_prefixed():
    source = LogSource.modern('Microsoft-Windows-PowerShell/Operational')
    assert backup_file_name(source) == "Modern_Microsoft-Windows-PowerShell_Operational.evtx"
    assert backup_file_name(LogSource.classic("System")) == "Classic_System.evtx"
    assert sanitize_log_name('a\\b:c*d?e"f<g>h|i') == "a_b_c_d_e_f_g_h_i"


def test_backup_file_name_is_stable_for_same_source():
    source = LogSource.modern("Microsoft-Windows-Sysmon/Operational")
    assert backup_file_name(source) == backup_file_name(LogSource.modern("Microsoft-Windows-Sysmon/Operational"))


def test_enumerator_sorts_and_dedupes_modern(logger):
    modern = FakeProvider(LogKind.MODERN, ["b/x", "A/y", "b/x", "a/z", " "])
    enum = LogEnumerator(FakeProvider(LogKind.CLASSIC), modern, logger)
    assert [s.name for s in enum.list_modern_logs()] == ["A/y", "a/z", "b/x"]


def test_enumerator_failure_degrades_to_empty(logger, caplog):
    modern = FakeProvider(LogKind.MODERN, list_error="rc=1 wevtutil missing")
    enum = LogEnumerator(FakeProvider(LogKind.CLASSIC, ["Application"]), modern, logger)
    with caplog.at_level(logging.WARNING):
        assert enum.list_modern_logs() == []
    assert enum.last_error is not None
    assert "enumeration_failed kind=modern" in caplog.text
    assert [s.name for s in enum.list_classic_logs()] == ["Application"]


def test_clear_batch_one_result_per_log_in_order(make_ctx, providers, logger, classic_provider):
    classic_provider.fail_clear = {"System"}
    results = ClearingEngine(make_ctx(), providers, logger).clear_batch(CLASSIC)

    assert [r.log_id for r in results] == ["Application", "Security", "System", "Setup"]
    assert classic_provider.cleared() == ["Application", "Security", "System", "Setup"]
    summary = summarize(results)
    assert (summary.success_count, summary.fail_count) == (3, 1)
    failed = [r for r in results if not r.succeeded]
    assert failed[0].log_id == "System"
    assert "being used" in failed[0].error_detail


def test_clear_provider_exception_is_isolated(make_ctx, logger):
    class Exploding(FakeProvider):
        def clear(self, name):
            if name == "Security":
                raise OSError("handle closed")
            return super().clear(name)

    classic = Exploding(LogKind.CLASSIC)
    providers = {LogKind.CLASSIC: classic, LogKind.MODERN: FakeProvider(LogKind.MODERN)}
    results = ClearingEngine(make_ctx(), providers, logger).clear_batch(CLASSIC)

    assert [r.succeeded for r in results] == [True, False, True, True]
    assert results[1].error_detail == "handle closed"


def test_dry_run_never_clears(make_ctx, providers, logger, classic_provider, modern_provider):
    sources = CLASSIC + [LogSource.modern("Microsoft-Windows-PowerShell/Operational")]
    results = ClearingEngine(make_ctx(dry_run=True), providers, logger).clear_batch(sources)

    assert classic_provider.cleared() == []
    assert modern_provider.cleared() == []
    assert all(r.succeeded for r in results)
    assert {r.note for r in results} == {"would clear"}
    summary = summarize(results)
    assert summary.success_count + summary.fail_count == len(sources)


def test_backup_creates_timestamp_folder_and_exports(make_ctx, providers, logger, tmp_path):
    ctx = make_ctx()
    sources = [LogSource.classic("System"), LogSource.modern("Microsoft-Windows-PowerShell/Operational")]
    folder, results = BackupEngine(ctx, providers, logger).backup(sources)

    assert folder == tmp_path / "backups" / ctx.timestamp
    assert sorted(p.name for p in folder.iterdir()) == [
        "Classic_System.evtx",
        "Modern_Microsoft-Windows-PowerShell_Operational.evtx",
    ]
    assert all(r.succeeded for r in results)
    assert results[0].output_path == str(folder / "Classic_System.evtx")


def test_backup_failure_is_per_item(make_ctx, providers, logger, classic_provider):
    classic_provider.fail_export = {"Security"}
    _, results = BackupEngine(make_ctx(), providers, logger).backup(CLASSIC)

    assert [r.log_id for r in results] == ["Application", "Security", "System", "Setup"]
    assert [r.succeeded for r in results] == [True, False, True, True]
    assert classic_provider.exported() == ["Application", "Security", "System", "Setup"]


def test_backup_folder_failure_is_fatal(make_ctx, providers, logger, tmp_path, classic_provider):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x", encoding="utf-8")
    engine = BackupEngine(make_ctx(backup_root=blocker), providers, logger)

    with pytest.raises(BackupFolderError):
        engine.backup(CLASSIC)
    assert classic_provider.exported() == []


def test_modern_provider_builds_wevtutil_commands(tmp_path):
    seen = []

    def runner(command, timeout):
        seen.append((command, timeout))
        if command[1] == "el":
            return 0, "Setup\nMicrosoft-Windows-Sysmon/Operational\n\n", ""
        return 0, "", ""

    provider = ModernLogProvider(runner=runner, timeout=30)
    assert provider.list_sources() == ["Setup", "Microsoft-Windows-Sysmon/Operational"]
    assert provider.clear("Microsoft-Windows-Sysmon/Operational") == (True, "")
    provider.export("Setup", tmp_path / "Modern_Setup.evtx")

    assert seen[1][0] == ["wevtutil", "cl", "Microsoft-Windows-Sysmon/Operational"]
    assert seen[2][0] == ["wevtutil", "epl", "Setup", str(tmp_path / "Modern_Setup.evtx"), "/ow:true"]
    assert all(t == 30 for _, t in seen)


def test_classic_provider_reports_failure_status():
    def runner(command, timeout):
        assert command[0] == "powershell.exe"
        assert "Clear-EventLog -LogName 'O''Brien'" in command[-1]
        return 1, "", "Access denied\n"

    ok, detail = ClassicLogProvider(runner=runner).clear("O'Brien")
    assert not ok
    assert detail == "rc=1 Access denied"


def test_run_command_missing_executable():
    rc, out, err = run_command(["definitely-not-a-real-command-xyz"])
    assert rc == 127
    assert "command not found" in err


def test_audit_logger_writes_bracketed_lines(make_ctx):
    ctx = make_ctx()
    log = setup_audit_logger(ctx)
    try:
        log.warning("clear_failed log=%s err=%s", "System", "locked")
    finally:
        close_audit_logger(log)

    line = ctx.audit_log_path.read_text(encoding="utf-8").strip().splitlines()[-1]
    assert line.startswith("[")
    assert "] [WARNING] clear_failed log=System err=locked" in line

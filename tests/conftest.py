"""Shared fixtures: fake log providers, scripted prompts, run contexts."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from eventlog_scripts.event_log_engine import EnumerationFailed, LogKind, RunContext


MODERN_NAMES = [
    "Microsoft-Windows-PowerShell/Operational",
    "Windows PowerShell",
    "Microsoft-Windows-TaskScheduler/Operational",
    "Microsoft-Windows-PowerShell/Admin",
    "Microsoft-Windows-Sysmon/Operational",
]


class FakeProvider:
    """Stands in for the PowerShell / wevtutil providers and records every call."""

    def __init__(self, kind, names=(), *, fail_clear=(), fail_export=(), list_error=None):
        self.kind = kind
        self.names = list(names)
        self.fail_clear = set(fail_clear)
        self.fail_export = set(fail_export)
        self.list_error = list_error
        self.calls = []

    def list_sources(self):
        self.calls.append(("list",))
        if self.list_error:
            raise EnumerationFailed(self.list_error)
        return list(self.names)

    def export(self, name, dest):
        self.calls.append(("export", name, Path(dest)))
        if name in self.fail_export:
            return False, "rc=5 Access is denied."
        Path(dest).write_bytes(b"evtx")
        return True, ""

    def clear(self, name):
        self.calls.append(("clear", name))
        if name in self.fail_clear:
            return False, "rc=32 The process cannot access the file because it is being used."
        return True, ""

    def cleared(self):
        return [c[1] for c in self.calls if c[0] == "clear"]

    def exported(self):
        return [c[1] for c in self.calls if c[0] == "export"]


class ScriptedPrompt:
    """Answers prompts from a fixed script, in order."""

    def __init__(self, *answers):
        self.answers = list(answers)
        self.prompts = []

    def __call__(self, text):
        self.prompts.append(text)
        if not self.answers:
            raise AssertionError(f"unexpected prompt: {text!r}")
        return self.answers.pop(0)


@pytest.fixture
def classic_provider():
    return FakeProvider(LogKind.CLASSIC, ["Application", "HardwareEvents", "Security", "System", "Windows PowerShell"])


@pytest.fixture
def modern_provider():
    return FakeProvider(LogKind.MODERN, MODERN_NAMES)


@pytest.fixture
def providers(classic_provider, modern_provider):
    return {LogKind.CLASSIC: classic_provider, LogKind.MODERN: modern_provider}


@pytest.fixture
def logger():
    log = logging.getLogger("event_log_cleaner.tests")
    log.setLevel(logging.DEBUG)
    return log


@pytest.fixture
def make_ctx(tmp_path):
    def _make(**overrides):
        params = {
            "backup_root": tmp_path / "backups",
            "log_dir": tmp_path / "logs",
        }
        params.update(overrides)
        return RunContext.create(**params)

    return _make

#!/usr/bin/env python3
"""Turn a requested log scope into a concrete SelectionScope.

Non-interactive requests resolve directly. ``Interactive`` runs a small
turn-based menu (keyword search, category browse, numbered list, manual
entry, select all) against the enumerated modern logs.
"""

from __future__ import annotations

import dataclasses
from typing import Callable, Sequence, Union

try:
    from eventlog_scripts.event_log_engine import (
        CLASSIC_LOG_GROUP,
        LogEnumerator,
        LogSource,
        NoSelection,
        SelectionScope,
    )
except ModuleNotFoundError:
    from event_log_engine import (
        CLASSIC_LOG_GROUP,
        LogEnumerator,
        LogSource,
        NoSelection,
        SelectionScope,
    )


FLAT_LIST_LIMIT = 50
CATEGORY_SEPARATOR = "/"
SINGLE_CLASSIC_TYPES = ("Application", "Security", "System")

Prompt = Callable[[str], str]


# ---------------------------- Scope Requests -------------------------------- #


@dataclasses.dataclass(frozen=True)
class SingleClassic:
    name: str


@dataclasses.dataclass(frozen=True)
class ClassicGroup:
    pass


@dataclasses.dataclass(frozen=True)
class ModernAll:
    pass


@dataclasses.dataclass(frozen=True)
class ModernSpecific:
    name: str


@dataclasses.dataclass(frozen=True)
class AllLogs:
    pass


@dataclasses.dataclass(frozen=True)
class Interactive:
    pass


ScopeRequest = Union[SingleClassic, ClassicGroup, ModernAll, ModernSpecific, AllLogs, Interactive]


def request_from_options(log_type: str | None, log_name: str | None = None) -> ScopeRequest:
    """Map the CLI ``--log-type``/``--log-name`` pair onto a ScopeRequest."""
    if not log_type:
        raise NoSelection("No log type given. Use --log-type or --list-only.")
    if log_type in SINGLE_CLASSIC_TYPES:
        return SingleClassic(log_type)
    if log_type == "Classic":
        return ClassicGroup()
    if log_type == "Modern":
        if log_name is None:
            return ModernAll()
        if not log_name.strip():
            raise NoSelection("--log-name is blank. Omit it to select every modern log.")
        return ModernSpecific(log_name.strip())
    if log_type == "All":
        return AllLogs()
    if log_type == "Interactive":
        return Interactive()
    raise NoSelection(f"Unknown log type: {log_type}")


def _classic_group() -> tuple[LogSource, ...]:
    return tuple(LogSource.classic(n) for n in CLASSIC_LOG_GROUP)


def resolve(
    request: ScopeRequest | None,
    enumerator: LogEnumerator,
    prompt: Prompt = input,
) -> SelectionScope:
    if request is None:
        raise NoSelection("No log selection criteria given.")
    if isinstance(request, SingleClassic):
        return SelectionScope(classic=(LogSource.classic(request.name),), label=request.name)
    if isinstance(request, ClassicGroup):
        return SelectionScope(classic=_classic_group(), label="all classic")
    if isinstance(request, ModernAll):
        return SelectionScope(all_modern=True, label="all modern")
    if isinstance(request, ModernSpecific):
        return SelectionScope(modern=(LogSource.modern(request.name),), label=request.name)
    if isinstance(request, AllLogs):
        return SelectionScope(classic=_classic_group(), all_modern=True, label="all logs")
    if isinstance(request, Interactive):
        chosen = InteractiveSelector(enumerator.list_modern_logs(), prompt).run()
        return SelectionScope(modern=tuple(chosen), label="specific list")
    raise NoSelection(f"Unsupported scope request: {request!r}")


# ---------------------------- Helpers --------------------------------------- #


def category_of(name: str) -> str:
    return name.split(CATEGORY_SEPARATOR, 1)[0]


def derive_categories(names: Sequence[str]) -> list[str]:
    return sorted({category_of(n) for n in names})


def members_of(category: str, names: Sequence[str]) -> list[str]:
    return [n for n in names if category_of(n) == category]


def search_logs(keyword: str, names: Sequence[str]) -> list[str]:
    needle = keyword.strip().lower()
    return [n for n in names if needle in n.lower()]


def parse_number(text: str) -> int | None:
    try:
        return int(text)
    except ValueError:
        return None


def parse_index_selection(answer: str, count: int) -> list[int]:
    """Parse ``"1,3,5"`` or ``"all"`` into 0-based indices; bad tokens are dropped."""
    text = answer.strip()
    if text.lower() == "all":
        return list(range(count))
    picked: list[int] = []
    for token in text.split(","):
        number = parse_number(token.strip())
        if number is None:
            continue
        idx = number - 1
        if 0 <= idx < count and idx not in picked:
            picked.append(idx)
    return picked


def ask_yes_no(question: str, prompt: Prompt, *, default_yes: bool = False) -> bool:
    hint = "[Y/n]" if default_yes else "[y/N]"
    raw = prompt(f"{question} {hint}: ").strip().lower()
    if not raw:
        return default_yes
    return raw in {"y", "yes"}


# ---------------------------- Interactive ----------------------------------- #


class InteractiveSelector:
    """One-shot interactive selection over the enumerated modern logs."""

    MODES = (
        ("1", "Search by keyword"),
        ("2", "Browse by category"),
        ("3", f"Pick from numbered list (first {FLAT_LIST_LIMIT})"),
        ("4", "Enter log names manually"),
        ("5", "Select all modern logs"),
    )

    def __init__(self, modern_logs: Sequence[LogSource], prompt: Prompt = input):
        self.names = [s.name for s in modern_logs]
        self.prompt = prompt

    def run(self) -> list[LogSource]:
        print("\nModern log selection")
        for key, label in self.MODES:
            print(f"  {key}. {label}")
        choice = self.prompt("Choose a mode (1-5): ").strip()

        handlers = {
            "1": self.keyword_search,
            "2": self.category_browse,
            "3": self.flat_list,
            "4": self.manual_entry,
            "5": self.select_all,
        }
        handler = handlers.get(choice)
        if handler is None:
            print("Invalid selection. No logs selected.")
            return []
        names = handler()
        return [LogSource.modern(n) for n in names]

    def keyword_search(self) -> list[str]:
        keyword = self.prompt("Keyword: ")
        found = search_logs(keyword, self.names)
        if not found:
            print(f"No logs match '{keyword.strip()}'.")
            return []
        return self._pick_numbered(found, f"Logs matching '{keyword.strip()}'")

    def category_browse(self) -> list[str]:
        categories = derive_categories(self.names)
        if not categories:
            print("No modern logs available.")
            return []
        print("\nCategories:")
        for i, cat in enumerate(categories, start=1):
            print(f"  {i}. {cat}")
        number = parse_number(self.prompt("Choose a category number: ").strip())
        if number is None or not 1 <= number <= len(categories):
            print("Invalid category. No logs selected.")
            return []
        category = categories[number - 1]
        return self._pick_numbered(members_of(category, self.names), f"Logs in {category}")

    def flat_list(self) -> list[str]:
        if not self.names:
            print("No modern logs available.")
            return []
        return self._pick_numbered(self.names[:FLAT_LIST_LIMIT], "Modern logs")

    def manual_entry(self) -> list[str]:
        known = set(self.names)
        picked: list[str] = []
        print("Enter log names, one per line. Empty line to finish.")
        while True:
            name = self.prompt("Log name: ").strip()
            if not name:
                break
            if name in picked:
                continue
            if name not in known and not ask_yes_no(
                f"Log '{name}' was not found. Add it anyway?", self.prompt
            ):
                print(f"Skipped: {name}")
                continue
            picked.append(name)
        return picked

    def select_all(self) -> list[str]:
        if not self.names:
            print("No modern logs available.")
        return list(self.names)

    def _pick_numbered(self, names: Sequence[str], title: str) -> list[str]:
        if not names:
            print("Nothing to choose from.")
            return []
        print(f"\n{title}:")
        for i, name in enumerate(names, start=1):
            print(f"  {i}. {name}")
        answer = self.prompt("Select numbers (comma-separated) or 'all': ")
        return [names[i] for i in parse_index_selection(answer, len(names))]


__all__ = [
    "AllLogs",
    "ClassicGroup",
    "Interactive",
    "InteractiveSelector",
    "ModernAll",
    "ModernSpecific",
    "ScopeRequest",
    "SingleClassic",
    "derive_categories",
    "members_of",
    "parse_index_selection",
    "parse_number",
    "request_from_options",
    "resolve",
    "search_logs",
]

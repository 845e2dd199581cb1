#!/usr/bin/env python3
"""Deny/allow rule compilation and path matching.

This module turns the comma-separated deny and allow lists from the
configuration into structured rules:
- Rule classification (exact, wildcard, folder-recursive)
- Target detection (file or folder)
- Conflict detection between deny and allow lists
- Matching of relative paths against a single rule

Example:
    >>> rules = compile_rules("logs/*, reports/*.pdf, secrets.txt")
    >>> [rule.kind for rule in rules]
    [<RuleKind.FOLDER_RECURSIVE: 'folder_recursive'>, <RuleKind.WILDCARD: 'wildcard'>, <RuleKind.EXACT: 'exact'>]
    >>> matches_rule("reports/q1.pdf", rules[1], is_folder=False)
    True
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from dirindex.core.paths import base_name, file_extension, parent_dir


class RuleKind(Enum):
    """How a rule path is compared against candidate paths."""

    EXACT = "exact"  # Path equality
    WILDCARD = "wildcard"  # Glob on file names or prefix on top-level folders
    FOLDER_RECURSIVE = "folder_recursive"  # Folder and everything beneath it


class RuleTarget(Enum):
    """What kind of entry a rule is aimed at."""

    FILE = "file"
    FOLDER = "folder"
    BOTH = "both"


@dataclass(frozen=True)
class Rule:
    """A single parsed entry from a deny or allow list."""

    original: str  # Raw text, used for conflict identity
    path: str  # Normalized fragment matched against paths
    kind: RuleKind
    target: RuleTarget


RuleSet = Tuple[Rule, ...]


@dataclass(frozen=True)
class ConflictRecord:
    """A deny rule and an allow rule with identical path and kind."""

    deny: Rule
    allow: Rule


def parse_rule(entry: str) -> Rule:
    """Classify one list entry.

    Args:
        entry: Trimmed, non-empty list entry

    Returns:
        Parsed rule
    """
    if entry.endswith("/*"):
        return Rule(entry, entry[:-2], RuleKind.FOLDER_RECURSIVE, RuleTarget.FOLDER)

    if entry.endswith("*"):
        if _has_extension_dot(entry):
            return Rule(entry, entry, RuleKind.WILDCARD, RuleTarget.FILE)
        return Rule(entry, entry[:-1], RuleKind.WILDCARD, RuleTarget.FOLDER)

    if "*" in entry:
        return Rule(entry, entry, RuleKind.WILDCARD, RuleTarget.FILE)

    target = RuleTarget.FILE if "." in base_name(entry) else RuleTarget.FOLDER
    return Rule(entry, entry, RuleKind.EXACT, target)


def _has_extension_dot(entry: str) -> bool:
    """Check for a dot after the last slash.

    Without any slash a dot at position 0 does not count, so ``.env*`` is a
    folder prefix while ``name.*`` is a file pattern.
    """
    dot = entry.rfind(".")
    slash = entry.rfind("/")
    if slash < 0:
        return dot > 0
    return dot > slash


def compile_rules(config_text: Optional[str]) -> RuleSet:
    """Parse a comma-separated rule list.

    Empty and whitespace-only entries are skipped. Never fails: anything that
    is not recognized as a wildcard degrades to an exact rule.

    Args:
        config_text: Raw deny or allow list

    Returns:
        Rules in the order they appear in the text
    """
    if not config_text or not config_text.strip():
        return ()

    rules = []
    for item in config_text.split(","):
        item = item.strip()
        if not item:
            continue
        rules.append(parse_rule(item))
    return tuple(rules)


def find_conflicts(deny_rules: Sequence[Rule], allow_rules: Sequence[Rule]) -> List[ConflictRecord]:
    """Pair every deny rule with every allow rule of the same path and kind.

    Args:
        deny_rules: Compiled deny list
        allow_rules: Compiled allow list

    Returns:
        Conflicts in deny-list order, then allow-list order
    """
    conflicts = []
    for deny in deny_rules:
        for allow in allow_rules:
            if deny.path == allow.path and deny.kind == allow.kind:
                conflicts.append(ConflictRecord(deny=deny, allow=allow))
    return conflicts


def matches_rule(path: str, rule: Rule, is_folder: bool = False) -> bool:
    """Check if a relative path is matched by a rule.

    Args:
        path: Normalized relative path
        rule: Rule to test
        is_folder: Whether the path denotes a folder

    Returns:
        True if the rule matches
    """
    if rule.kind == RuleKind.EXACT:
        return path == rule.path

    if rule.kind == RuleKind.WILDCARD:
        if rule.target == RuleTarget.FILE and not is_folder:
            return _matches_file_wildcard(path, rule.path)
        if rule.target == RuleTarget.FOLDER:
            return _matches_folder_wildcard(path, rule.path, is_folder)
        return False

    if rule.kind == RuleKind.FOLDER_RECURSIVE:
        return path == rule.path or path.startswith(rule.path + "/")

    return False


def _matches_file_wildcard(path: str, rule_path: str) -> bool:
    """Match ``dir/pattern`` rules against files directly inside ``dir``."""
    if "/" not in rule_path:
        return False

    directory, pattern = rule_path.rsplit("/", 1)
    if parent_dir(path).rstrip("/") != directory.rstrip("/"):
        return False

    file_name = base_name(path)
    if pattern.startswith("."):
        # ".pdf*" tests the extension
        extension = pattern[1:].rstrip("*").lower()
        return file_extension(file_name) == extension

    return glob_to_regex(pattern).fullmatch(file_name) is not None


def _matches_folder_wildcard(path: str, prefix: str, is_folder: bool) -> bool:
    """Match name-prefix rules against top-level folders and their files."""
    if is_folder:
        segments = path.split("/")
        return len(segments) == 1 and segments[0].startswith(prefix)

    folder = parent_dir(path)
    if "/" in folder:
        return False
    return folder.startswith(prefix)


def glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """Compile a file-name pattern where ``*`` is the only wildcard.

    Args:
        pattern: Pattern such as ``*.pdf`` or ``report_*``

    Returns:
        Case-insensitive compiled regex
    """
    regex_pattern = re.escape(pattern).replace(re.escape("*"), ".*")
    return re.compile(regex_pattern, re.IGNORECASE)

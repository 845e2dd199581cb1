#!/usr/bin/env python3
"""Visibility policy for files and folders.

This module answers "may this path be listed or served?" by combining:
- The compiled deny and allow lists (conflicting pairs are inert)
- The index-everything override
- The hidden-file policy
- Per-extension indexing and viewing defaults

Every decision is a pure function of the configuration and the path; the
engine never raises for malformed rules or missing settings and falls back
to visible.

Example:
    >>> engine = PolicyEngine(IndexerConfig(deny_list="logs/*", allow_list="logs/public/*"))
    >>> engine.is_folder_visible("logs/2024")
    False
    >>> engine.is_folder_visible("logs/public")
    True
"""

from typing import Any, Dict, FrozenSet, List, Optional

from dirindex.core.constants import INTERNAL_FOLDER_NAME, ConfigKey, SettingKind
from dirindex.core.paths import base_name, is_hidden, parent_dir
from dirindex.infrastructure.config_manager import IndexerConfig
from dirindex.infrastructure.logger import get_logger
from dirindex.rules.patterns import (
    ConflictRecord,
    Rule,
    RuleKind,
    RuleSet,
    RuleTarget,
    compile_rules,
    find_conflicts,
    matches_rule,
)


class PolicyEngine:
    """Decides visibility of relative paths for one request.

    The deny and allow lists are compiled once at construction. A rule that
    takes part in any conflict is skipped by every check.
    """

    def __init__(self, config: IndexerConfig):
        """Initialize policy engine.

        Args:
            config: Configuration of the current request
        """
        self.config = config
        self.deny_rules: RuleSet = compile_rules(config.deny_list)
        self.allow_rules: RuleSet = compile_rules(config.allow_list)
        self.conflicts: List[ConflictRecord] = find_conflicts(self.deny_rules, self.allow_rules)

        self._inert_deny: FrozenSet[str] = frozenset(c.deny.original for c in self.conflicts)
        self._inert_allow: FrozenSet[str] = frozenset(c.allow.original for c in self.conflicts)

        if self.conflicts:
            logger = get_logger("dirindex.policy")
            for conflict in self.conflicts:
                logger.debug(
                    "Ignoring conflicting rules",
                    deny=conflict.deny.original,
                    allow=conflict.allow.original,
                )

    def live_deny_rules(self) -> List[Rule]:
        """Deny rules that are not part of a conflict."""
        return [r for r in self.deny_rules if r.original not in self._inert_deny]

    def live_allow_rules(self) -> List[Rule]:
        """Allow rules that are not part of a conflict."""
        return [r for r in self.allow_rules if r.original not in self._inert_allow]

    def is_denied(self, path: str, is_folder: bool = False) -> bool:
        """Check if any live deny rule matches the path."""
        return any(matches_rule(path, rule, is_folder) for rule in self.live_deny_rules())

    def is_allowed(self, path: str, is_folder: bool = False) -> bool:
        """Check if any live allow rule matches the path."""
        return any(matches_rule(path, rule, is_folder) for rule in self.live_allow_rules())

    def is_allowed_by_folder_wildcard(self, path: str, is_folder: bool = False) -> bool:
        """Check if the path sits under a wildcard-allowed folder prefix.

        Content beneath ``name*`` allow rules inherits their visibility even
        when the deeper path would not match the rule on its own.
        """
        for rule in self.live_allow_rules():
            if rule.kind == RuleKind.WILDCARD and rule.target == RuleTarget.FOLDER:
                if path.startswith(rule.path):
                    return True
        return False

    def is_folder_visible(self, path: str) -> bool:
        """Decide whether a folder may be listed.

        Args:
            path: Normalized relative folder path ("" for the root)

        Returns:
            True if the folder is visible
        """
        if self.config.index_all:
            return True

        for rule in self.live_allow_rules():
            if matches_rule(path, rule, is_folder=True):
                return True

        top_level = path.split("/")[0]
        for rule in self.live_deny_rules():
            if rule.kind == RuleKind.FOLDER_RECURSIVE:
                if path == rule.path or path.startswith(rule.path + "/"):
                    return False
            elif rule.kind == RuleKind.WILDCARD and rule.target == RuleTarget.FOLDER:
                if top_level.startswith(rule.path) and path == top_level:
                    return False
            elif rule.kind == RuleKind.EXACT:
                if path == rule.path:
                    return False

        return True

    def is_file_visible(self, path: str, extension: str) -> bool:
        """Decide whether a file may be served.

        Args:
            path: Normalized relative file path
            extension: Lower-cased extension ("" if none)

        Returns:
            True if the file is visible
        """
        if not self.is_folder_visible(parent_dir(path)):
            return False

        if self.is_denied(path, False) and not self.is_allowed(path, False):
            return False

        return self.should_index_file(path, extension)

    def should_index(self, name: str, extension: str, is_folder: bool) -> bool:
        """Decide whether a folder entry appears in a listing.

        Args:
            name: Relative path of the entry
            extension: Lower-cased extension ("" for folders and bare names)
            is_folder: Whether the entry is a folder

        Returns:
            True if the entry should be indexed
        """
        if is_folder:
            return self.should_index_folder(name)
        return self.should_index_file(name, extension)

    def should_index_file(self, path: str, extension: str) -> bool:
        if not extension or not extension.strip():
            if not self.config.index_non_descript_files:
                return False
            decision = self._rule_decision(path, is_folder=False)
            return True if decision is None else decision

        decision = self._rule_decision(path, is_folder=False)
        if decision is not None:
            return decision

        setting_key = self.extension_setting(extension, SettingKind.INDEXING)
        if setting_key is not None:
            return bool(self.config.exclusions.get(setting_key, True))
        return True

    def should_index_folder(self, path: str) -> bool:
        if base_name(path) == INTERNAL_FOLDER_NAME:
            return self.config.index_all

        decision = self._rule_decision(path, is_folder=True)
        if decision is not None:
            return decision
        return self.config.index_folders

    def _rule_decision(self, path: str, is_folder: bool) -> Optional[bool]:
        """Run the shared precedence chain.

        Order: deny (unless also allowed), allowed by folder wildcard,
        allowed, index everything, hidden entries. Returns None when the
        chain does not decide and the caller's default applies.
        """
        if self.is_denied(path, is_folder):
            return self.is_allowed(path, is_folder)

        if self.is_allowed_by_folder_wildcard(path, is_folder):
            return True

        if self.is_allowed(path, is_folder):
            return True

        if self.config.index_all:
            return True

        if is_hidden(path) and not self.config.index_hidden:
            return False

        return None

    def extension_setting(self, extension: str, kind: SettingKind = SettingKind.INDEXING) -> Optional[str]:
        """Map an extension to its setting key.

        Args:
            extension: File extension without the dot
            kind: Indexing or viewing setting

        Returns:
            Setting key, or None if the extension is not mapped
        """
        if not extension or not extension.strip():
            if kind == SettingKind.INDEXING:
                return ConfigKey.INDEX_NON_DESCRIPT
            return ConfigKey.VIEW_NON_DESCRIPT

        mapping = (
            self.config.indexing_extensions
            if kind == SettingKind.INDEXING
            else self.config.viewing_extensions
        )
        return mapping.get(extension.lower())

    def is_file_viewable(self, extension: str) -> bool:
        """Check if files with this extension open in the viewer."""
        setting_key = self.extension_setting(extension, SettingKind.VIEWING)
        if setting_key is None:
            return False
        return bool(self.config.viewable_files.get(setting_key, False))

    def rules_report(self) -> Dict[str, Any]:
        """Describe compiled rules and conflicts for diagnostics."""

        def describe(rule: Rule) -> Dict[str, Any]:
            return {
                "original": rule.original,
                "path": rule.path,
                "kind": rule.kind.value,
                "target": rule.target.value,
                "inert": rule.original in self._inert_deny or rule.original in self._inert_allow,
            }

        return {
            "deny": [describe(r) for r in self.deny_rules],
            "allow": [describe(r) for r in self.allow_rules],
            "conflicts": [
                {"deny": c.deny.original, "allow": c.allow.original} for c in self.conflicts
            ],
        }

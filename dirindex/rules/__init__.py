"""dirindex Rules System.

This module provides the visibility policy:
- compile_rules / find_conflicts / matches_rule: deny and allow list handling
- PolicyEngine: folder and file visibility decisions

Rules come from the comma-separated ``deny_list`` and ``allow_list``
configuration strings and are recompiled for every request.
"""

from .engine import PolicyEngine
from .patterns import (
    ConflictRecord,
    Rule,
    RuleKind,
    RuleSet,
    RuleTarget,
    compile_rules,
    find_conflicts,
    glob_to_regex,
    matches_rule,
    parse_rule,
)

__all__ = [
    # Rule compilation and matching
    "RuleKind",
    "RuleTarget",
    "Rule",
    "RuleSet",
    "ConflictRecord",
    "parse_rule",
    "compile_rules",
    "find_conflicts",
    "matches_rule",
    "glob_to_regex",
    # Policy
    "PolicyEngine",
]

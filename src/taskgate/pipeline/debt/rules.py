"""Debt rule table loading.

The built-in table ships as package data (``rules.yaml``). A repository can
append its own rules through the ``debt_rules_path`` config key; rules are
evaluated in order and new ones are additive.
"""

from __future__ import annotations

import re
from importlib.resources import files
from pathlib import Path
from typing import Any

import yaml

from taskgate.errors import ConfigError
from taskgate.pipeline.debt.types import SEVERITY_ORDER, DebtRule

BUILTIN_RULES_RESOURCE = "rules.yaml"

_REQUIRED_KEYS = ("pattern", "severity", "category", "template", "business_impact", "effort")


def load_builtin_rules() -> list[DebtRule]:
    text = files("taskgate.pipeline.debt").joinpath(BUILTIN_RULES_RESOURCE).read_text(encoding="utf-8")
    return parse_rules(yaml.safe_load(text), source=BUILTIN_RULES_RESOURCE)


def load_rules(extra_path: Path | None = None) -> list[DebtRule]:
    """Built-in rules followed by any rules from ``extra_path``."""
    rules = load_builtin_rules()
    if extra_path is not None:
        if not extra_path.exists():
            raise ConfigError(f"Debt rules file not found: {extra_path}")
        try:
            data = yaml.safe_load(extra_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigError(f"Malformed YAML in {extra_path}: {e}") from e
        rules.extend(parse_rules(data, source=str(extra_path)))
    return rules


def parse_rules(data: Any, source: str) -> list[DebtRule]:
    """Validate a ``{rules: [...]}`` document into DebtRule records.

    Raises:
        ConfigError: If a rule is missing keys or has a bad pattern/severity
    """
    entries = data.get("rules") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise ConfigError(f"{source}: expected a top-level 'rules' list")

    rules: list[DebtRule] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ConfigError(f"{source}: rule #{index + 1} must be a mapping")
        missing = [key for key in _REQUIRED_KEYS if key not in entry]
        if missing:
            raise ConfigError(f"{source}: rule #{index + 1} missing keys {missing}")
        severity = str(entry["severity"]).upper()
        if severity not in SEVERITY_ORDER:
            raise ConfigError(f"{source}: rule #{index + 1} has unknown severity {entry['severity']!r}")
        try:
            pattern = re.compile(str(entry["pattern"]), re.IGNORECASE)
        except re.error as e:
            raise ConfigError(f"{source}: rule #{index + 1} has invalid pattern: {e}") from e
        rules.append(
            DebtRule(
                pattern=pattern,
                severity=severity,  # type: ignore[arg-type]
                category=str(entry["category"]),
                template=str(entry["template"]),
                business_impact=str(entry["business_impact"]),
                effort=str(entry["effort"]),
                dependencies=tuple(str(dep) for dep in entry.get("dependencies") or ()),
            )
        )
    return rules

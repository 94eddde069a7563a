"""Gate 1: the implementation type-checks, lints clean and changed something."""

from __future__ import annotations

import json
import logging
import re
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from taskgate.errors import ToolUnavailable
from taskgate.pipeline.gates.types import GateResult
from taskgate.utils.exec import run_command, run_git

if TYPE_CHECKING:
    from taskgate.config import GateConfig

logger = logging.getLogger(__name__)

EXCERPT_CHARS = 500

# mypy/tsc "error", flake8/ruff "path:1:2: E501", tsc "error TS2322"
_DIAGNOSTIC_RE = re.compile(r"\berror\b|:\d+(?::\d+)?:\s*[A-Z]{1,3}\d+\b|\berror TS\d+", re.IGNORECASE)
# Tool totals: mypy/ruff/tsc "Found 2 errors", eslint "✖ 3 problems", pyright "1 error, 0 warnings"
_SUMMARY_RE = re.compile(r"^\s*(?:Found \d+ errors?\b|[✖×]\s*\d+ problems?\b|\d+ errors?\b)", re.IGNORECASE)


def count_diagnostics(output: str) -> int:
    """Lines that look like compiler/linter diagnostics, at least 1. Summary lines are not counted."""
    return max(
        1,
        sum(1 for line in output.splitlines() if _DIAGNOSTIC_RE.search(line) and not _SUMMARY_RE.match(line)),
    )


def excerpt(output: str, limit: int = EXCERPT_CHARS) -> str:
    text = output.strip()
    return text if len(text) <= limit else text[:limit] + "..."


def _run_tool(result: GateResult, check: str, label: str, argv: tuple[str, ...], config: GateConfig) -> None:
    if not argv:
        result.warn(f"No {label} command configured; {check} skipped")
        return
    try:
        outcome = run_command(list(argv), cwd=config.repo_root)
    except ToolUnavailable as e:
        result.fail(check, f"{label} could not run: {e}. Install {e.tool} or fix the '{check}_command' setting")
        return
    if outcome.returncode != 0:
        count = count_diagnostics(outcome.output)
        result.fail(
            check,
            f"{label} reported {count} problem(s) (`{' '.join(argv)}` exit {outcome.returncode}); "
            f"fix them and re-run:\n{excerpt(outcome.output)}",
        )
        return
    result.ok(check)
    logger.debug("%s clean: %s", label, " ".join(argv))


def _parse_config_file(path: Path) -> None:
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix == ".json":
        json.loads(text)
    elif suffix == ".toml":
        tomllib.loads(text)
    elif suffix in {".yaml", ".yml"}:
        yaml.safe_load(text)


def check_config_health(result: GateResult, config: GateConfig) -> None:
    """Project config files that exist must parse; a corrupt one blocks the gate."""
    present = [config.resolve(Path(name)) for name in config.config_health_files]
    present = [path for path in present if path.is_file()]
    if not present:
        return
    for path in present:
        try:
            _parse_config_file(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            result.fail(
                "config_health",
                f"Configuration file {path.name} is corrupt ({e}); fix it before completing the task",
            )
    if result.checks.get("config_health") is not False:
        result.ok("config_health")
        logger.debug("config files parse: %s", ", ".join(path.name for path in present))


def run_implementation_gate(config: GateConfig) -> GateResult:
    """Run the configured type-checker and linter, check project config files, then look for changed files."""
    result = GateResult(gate="implementation")
    _run_tool(result, "typecheck", "Type checker", config.typecheck_command, config)
    _run_tool(result, "lint", "Linter", config.lint_command, config)
    check_config_health(result, config)

    try:
        diff = run_git(["diff", "--name-only", config.diff_base], repo_root=config.repo_root)
    except ToolUnavailable as e:
        result.warn(f"Could not inspect changed files: {e}")
        return result
    if diff.returncode != 0:
        result.warn(f"git diff against {config.diff_base} failed: {(diff.stderr or diff.stdout).strip()}")
    elif not diff.stdout.strip():
        result.warn(f"No files changed since {config.diff_base}; confirm the implementation was committed")
    else:
        result.ok("changed_files")
    return result

"""Gate configuration loader.

Supports .taskgate/config.toml or .taskgate/config.yaml files for tuning
paths, external commands and fraud thresholds. The resulting GateConfig is
built once per invocation and passed into every component.
"""

from __future__ import annotations

import os

# Use tomllib for 3.11+
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from taskgate.errors import ConfigError

TASKGATE_REPO_ROOT_ENV = "TASKGATE_REPO_ROOT"
CONFIG_DIR = ".taskgate"


@dataclass(frozen=True)
class GateConfig:
    """Explicit configuration for every taskgate component."""

    repo_root: Path = field(default_factory=Path.cwd)

    # Layout (relative entries resolve against repo_root)
    queue_path: Path = Path("tasks.md")
    evidence_root: Path = Path("evidence")
    inventory_path: Path = Path(".taskgate/debt-inventory.json")
    tests_dir: Path = Path("tests")
    debt_rules_path: Path | None = None

    # External collaborators
    typecheck_command: tuple[str, ...] = ("mypy", ".")
    lint_command: tuple[str, ...] = ("ruff", "check", ".")
    diff_base: str = "HEAD~1"
    browser_endpoint: str | None = "http://127.0.0.1:9222/json/version"
    service_url: str | None = "http://127.0.0.1:3000"
    probe_timeout: float = 2.0
    dependency_markers: tuple[str, ...] = ()
    config_health_files: tuple[str, ...] = ("pyproject.toml", "package.json", "tsconfig.json")

    # Evidence policy
    na_sentinel: str = "N/A"
    require_evidence_tag: bool = True
    generic_size_floor: int = 100
    response_size_floor: int = 200
    cluster_window_seconds: float = 1.0
    staleness_days: int = 7

    # Audit policy
    spot_check_count: int = 3
    compliance_halt: int = 80
    compliance_warn: int = 95
    audit_workers: int = 4

    # Debt placement policy
    sprint_max_total: int = 6
    sprint_max_critical_high: int = 4

    # "wallclock" for real runs, "deterministic" for reproducible artifacts
    timestamp_mode: str = "wallclock"

    def resolve(self, path: Path) -> Path:
        """Resolve a configured path against the repository root."""
        return path if path.is_absolute() else self.repo_root / path

    @property
    def queue_file(self) -> Path:
        return self.resolve(self.queue_path)

    @property
    def evidence_dir(self) -> Path:
        return self.resolve(self.evidence_root)

    @property
    def inventory_file(self) -> Path:
        return self.resolve(self.inventory_path)

    @property
    def audit_dir(self) -> Path:
        return self.evidence_dir / "audits"

    @classmethod
    def from_dict(cls, data: dict[str, Any], repo_root: Path) -> GateConfig:
        """Parse and validate config dict into GateConfig."""
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known) - {"repo_root"})
        if unknown:
            raise ValueError(f"unknown config keys: {unknown}")

        values: dict[str, Any] = {"repo_root": repo_root}
        for key, raw in data.items():
            if key == "repo_root":
                continue
            values[key] = _coerce(key, raw, getattr(cls, key, None))

        if values.get("timestamp_mode", "wallclock") not in {"wallclock", "deterministic"}:
            raise ValueError("timestamp_mode must be 'wallclock' or 'deterministic'")
        return cls(**values)


def _coerce(key: str, raw: Any, default: Any) -> Any:
    """Coerce one raw config value to the type of its default."""
    if key in {"queue_path", "evidence_root", "inventory_path", "tests_dir", "debt_rules_path"}:
        if raw is None and key == "debt_rules_path":
            return None
        if not isinstance(raw, str):
            raise TypeError(f"{key} must be a path string")
        return Path(raw)
    if key in {"typecheck_command", "lint_command", "dependency_markers", "config_health_files"}:
        if isinstance(raw, str):
            return tuple(raw.split())
        if not isinstance(raw, list) or not all(isinstance(part, str) for part in raw):
            raise TypeError(f"{key} must be a list of strings")
        return tuple(raw)
    if key in {"browser_endpoint", "service_url"}:
        if raw in (None, "", False):
            return None
        if not isinstance(raw, str):
            raise TypeError(f"{key} must be a URL string")
        return raw
    if isinstance(default, bool):
        if not isinstance(raw, bool):
            raise TypeError(f"{key} must be a boolean")
        return raw
    if isinstance(default, int):
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise TypeError(f"{key} must be an integer")
        return raw
    if isinstance(default, float):
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise TypeError(f"{key} must be a number")
        return float(raw)
    if not isinstance(raw, str):
        raise TypeError(f"{key} must be a string")
    return raw


def resolve_repo_root(cli_repo_root: Path | None = None) -> Path:
    """Resolve repository root using CLI flag, then environment, then cwd."""
    if cli_repo_root is not None:
        return cli_repo_root.expanduser().resolve()
    env_root = os.getenv(TASKGATE_REPO_ROOT_ENV, "").strip()
    if env_root:
        return Path(env_root).expanduser().resolve()
    return Path.cwd().resolve()


def load_config(repo_root: Path, config_path: Path | None = None) -> GateConfig:
    """Load gate configuration.

    Priority order:
    1. explicit config_path (.toml or .yaml)
    2. .taskgate/config.toml
    3. .taskgate/config.yaml
    4. built-in defaults

    Raises:
        ConfigError: If a config file is malformed or invalid
    """
    candidates: list[Path]
    if config_path is not None:
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        candidates = [config_path]
    else:
        config_dir = repo_root / CONFIG_DIR
        candidates = [config_dir / "config.toml", config_dir / "config.yaml", config_dir / "config.yml"]

    for path in candidates:
        if not path.exists():
            continue
        data = _read_config_file(path)
        try:
            return GateConfig.from_dict(data, repo_root)
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid config structure in {path}: {e}") from e

    return GateConfig(repo_root=repo_root)


def _read_config_file(path: Path) -> dict[str, Any]:
    if path.suffix == ".toml":
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Malformed TOML config at {path}: {e}") from e
    else:
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Malformed YAML config at {path}: {e}") from e

    # Allow the settings to live under a [taskgate] table
    if isinstance(data, dict) and isinstance(data.get("taskgate"), dict):
        data = data["taskgate"]
    if not isinstance(data, dict):
        raise ConfigError(f"Config at {path} must be a mapping")
    return data


def with_overrides(config: GateConfig, **overrides: Any) -> GateConfig:
    """Return a copy of config with non-None overrides applied."""
    applied = {key: value for key, value in overrides.items() if value is not None}
    return replace(config, **applied) if applied else config

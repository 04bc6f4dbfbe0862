"""Runtime settings: policy defaults, signal collection knobs, and YAML config loading."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from hachiko.shared.errors import ConfigurationError

DEFAULT_CONFIG_PATH = Path(".hachiko.yml")

DEFAULT_SENSITIVE_GLOBS = [
    "**/.env*",
    "**/secrets/**",
    "**/*password*",
    "**/*secret*",
    "**/*key*",
    "**/config/production/**",
]

DEFAULT_DANGEROUS_COMMANDS = [
    "rm -rf",
    "sudo",
    "curl",
    "wget",
    "nc ",
    "netcat",
    "exec",
    "eval",
    "system",
    "/bin/sh",
    "/bin/bash",
]


class PolicySettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    allow_workflow_edits: bool = False
    network: Literal["none", "restricted", "unrestricted"] = "none"
    max_attempts_per_step: int = Field(default=2, ge=1, le=5)
    step_timeout_minutes: int = Field(default=15, ge=1, le=180)
    risky_globs: list[str] = Field(
        default_factory=lambda: [".github/workflows/**", ".git/**", "**/*.sh"]
    )
    allowlist_globs: list[str] = Field(
        default_factory=lambda: ["src/**", "services/**", "packages/**", "modules/**"]
    )
    sensitive_globs: list[str] = Field(default_factory=lambda: list(DEFAULT_SENSITIVE_GLOBS))
    dangerous_commands: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DANGEROUS_COMMANDS)
    )


class HachikoConfig(BaseModel):
    """Parsed `.hachiko.yml`; `rules` stay raw until the rule store validates them."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    policy: PolicySettings = Field(default_factory=PolicySettings)
    rules: list[dict[str, Any]] = Field(default_factory=list)


@dataclass(frozen=True)
class CollectorSettings:
    """Where and how persistently pull-request signals are fetched."""

    repo: str
    base_url: str = "https://api.github.com"
    max_attempts: int = 3
    backoff_s: float = 1.0
    timeout_s: float = 30.0

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> "CollectorSettings":
        source = os.environ if env is None else env
        repo = (source.get("HACHIKO_REPO") or source.get("GITHUB_REPOSITORY") or "").strip()
        try:
            return cls(
                repo=repo,
                base_url=(source.get("HACHIKO_GITHUB_API_URL") or "https://api.github.com").rstrip(
                    "/"
                ),
                max_attempts=max(1, int(source.get("HACHIKO_SIGNAL_MAX_ATTEMPTS", "3"))),
                backoff_s=max(0.0, float(source.get("HACHIKO_SIGNAL_BACKOFF_S", "1.0"))),
                timeout_s=max(0.1, float(source.get("HACHIKO_SIGNAL_TIMEOUT_S", "30"))),
            )
        except ValueError as exc:
            raise ConfigurationError(f"Invalid signal collector setting: {exc}") from exc


def load_hachiko_config(path: Path | None = None, env: dict[str, str] | None = None) -> HachikoConfig:
    """Load `.hachiko.yml`; a missing file yields defaults, a malformed one is fatal."""

    source = os.environ if env is None else env
    config_path = path or Path(source.get("HACHIKO_CONFIG_PATH") or DEFAULT_CONFIG_PATH)
    if not config_path.exists():
        return HachikoConfig()

    try:
        raw = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            f"Config is not valid YAML: {config_path}", details={"error": str(exc)}
        ) from exc
    if raw is None:
        return HachikoConfig()
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config root must be a mapping: {config_path}")

    try:
        return HachikoConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid config: {config_path}",
            details={"errors": [err["msg"] for err in exc.errors()]},
        ) from exc

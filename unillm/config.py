"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < profile overlay < env vars < CLI flags

Secrets never live in the config: each provider names the environment
variable its API key is read from.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any

import yaml


PROVIDER_KINDS = ("openai", "ollama")


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class ProviderConfig:
    kind: str = "openai"
    url: str = "https://api.openai.com/v1"
    api_key_env: str = "OPENAI_API_KEY"
    models: list[str] = field(default_factory=lambda: ["*"])
    timeout_seconds: float = 120.0

    def api_key(self) -> str:
        """Read the key from the configured environment variable."""
        if not self.api_key_env:
            return ""
        return os.environ.get(self.api_key_env, "")


@dataclass
class CompletionConfig:
    model: str = "gpt-4o"
    stream: bool = True
    max_rounds: int = 8
    system_prompt: str = ""


@dataclass
class LoggingConfig:
    level: str = "WARNING"


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class ClientConfig:
    providers: list[ProviderConfig] = field(default_factory=lambda: [ProviderConfig()])
    completion: CompletionConfig = field(default_factory=CompletionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Walk obj via dotpath and set the final attribute.

    Numeric parts index into lists, e.g. ``providers.0.url``.
    """
    parts = dotpath.split(".")
    for part in parts[:-1]:
        obj = obj[int(part)] if part.isdigit() else getattr(obj, part)
    setattr(obj, parts[-1], value)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay into base, returning a new dict."""
    merged = dict(base)
    for k, v in overlay.items():
        if k in merged and isinstance(merged[k], dict) and isinstance(v, dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


def _coerce(value: str, target_type: type) -> Any:
    """Coerce a string env value to the target type."""
    if target_type is bool:
        return value.lower() in ("1", "true", "yes", "on")
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    if target_type is list:
        return [s.strip() for s in value.split(",") if s.strip()]
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in raw.items() if k in valid_fields}
    return cls(**filtered)


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "UNILLM_MODEL":            ("completion.model", str),
    "UNILLM_STREAM":           ("completion.stream", bool),
    "UNILLM_MAX_ROUNDS":       ("completion.max_rounds", int),
    "UNILLM_SYSTEM_PROMPT":    ("completion.system_prompt", str),
    "UNILLM_LOG_LEVEL":        ("logging.level", str),
    "UNILLM_PROVIDER_KIND":    ("providers.0.kind", str),
    "UNILLM_PROVIDER_URL":     ("providers.0.url", str),
    "UNILLM_PROVIDER_KEY_ENV": ("providers.0.api_key_env", str),
    "UNILLM_PROVIDER_MODELS":  ("providers.0.models", list),
    "UNILLM_PROVIDER_TIMEOUT": ("providers.0.timeout_seconds", float),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> ClientConfig:
    """
    Build a ClientConfig by layering sources in precedence order:

        defaults  <  config file  <  profile  <  env vars  <  CLI flags

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    profile : name of a profile to apply from the config file
    cli_overrides : dict of dotpath -> value CLI flag overrides
    """
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            with p.open("r", encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            raw = _deep_merge(raw, file_data)

    # --- 2. Profile overlay ---
    if profile and "profiles" in raw:
        profile_data = raw.get("profiles", {}).get(profile, {})
        if profile_data:
            raw = _deep_merge(raw, profile_data)

    # --- Build sections from raw ---
    cfg = ClientConfig(
        completion=_build_section(CompletionConfig, raw.get("completion", {})),
        logging=_build_section(LoggingConfig, raw.get("logging", {})),
        profiles=raw.get("profiles", {}),
    )
    if raw.get("providers"):
        cfg.providers = [_build_section(ProviderConfig, p) for p in raw["providers"]]

    # --- 3. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = os.environ.get(env_var)
        if val is not None:
            _apply_dotpath(cfg, dotpath, _coerce(val, target_type))

    # --- 4. CLI flag overrides ---
    if cli_overrides:
        for dotpath, value in cli_overrides.items():
            _apply_dotpath(cfg, dotpath, value)

    return cfg


def validate_config(cfg: ClientConfig) -> list[str]:
    """Return a list of human-readable problems (empty when valid)."""
    problems: list[str] = []
    if not cfg.providers:
        problems.append("no providers configured")

    seen: set[str] = set()
    for i, p in enumerate(cfg.providers):
        if p.kind not in PROVIDER_KINDS:
            problems.append(
                f"providers[{i}]: unknown kind {p.kind!r} (expected one of {', '.join(PROVIDER_KINDS)})"
            )
        elif p.kind in seen:
            # The registry keeps one adapter per class.
            problems.append(f"providers[{i}]: duplicate kind {p.kind!r} would replace an earlier entry")
        seen.add(p.kind)
        if not p.models:
            problems.append(f"providers[{i}]: models must list at least one pattern")
        if p.timeout_seconds <= 0:
            problems.append(f"providers[{i}]: timeout_seconds must be positive")

    if cfg.completion.max_rounds < 1:
        problems.append("completion.max_rounds must be at least 1")
    if not isinstance(logging.getLevelName(cfg.logging.level.upper()), int):
        problems.append(f"logging.level: unknown level {cfg.logging.level!r}")
    return problems

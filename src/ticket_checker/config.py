# ticket_checker/config.py
import os
from pathlib import Path
from typing import Any, Literal, Mapping

import structlog
import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .engine.exceptions import ConfigurationError
from .engine.models import Credentials, MatchMode, SearchCriteria
from .utils import get_artifacts_root, parse_bool

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://teams.eoxs.com/"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Chromium flags for unattended runs inside containers and CI boxes.
CHROMIUM_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--disable-gpu",
    "--disable-web-security",
    "--disable-features=VizDisplayCompositor",
    "--disable-extensions",
    "--disable-plugins",
)


class BrowserOptions(BaseModel):
    """How the browser is launched and how its context is shaped."""

    model_config = ConfigDict(frozen=True)

    browser_type: Literal["chromium", "firefox", "webkit"] = "chromium"
    headless: bool = True
    slow_mo_ms: int = Field(100, ge=0)
    viewport_width: int = Field(1920, gt=0)
    viewport_height: int = Field(1080, gt=0)
    user_agent: str = DEFAULT_USER_AGENT
    ignore_https_errors: bool = True
    extra_args: tuple[str, ...] = ()

    def launch_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "headless": self.headless,
            # Slow motion only helps a human watching a headed run.
            "slow_mo": 0 if self.headless else self.slow_mo_ms,
        }
        if self.browser_type == "chromium":
            args = list(CHROMIUM_ARGS)
            args.append("--headless=new" if self.headless else "--start-maximized")
            kwargs["args"] = args + list(self.extra_args)
        elif self.extra_args:
            kwargs["args"] = list(self.extra_args)
        return kwargs

    def context_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "user_agent": self.user_agent,
            "ignore_https_errors": self.ignore_https_errors,
        }
        if self.headless:
            kwargs["viewport"] = {
                "width": self.viewport_width,
                "height": self.viewport_height,
            }
            kwargs["reduced_motion"] = "reduce"
        else:
            kwargs["no_viewport"] = True
        return kwargs


class Timeouts(BaseModel):
    """Every per-operation bound, in milliseconds unless noted."""

    model_config = ConfigDict(frozen=True)

    navigation_ms: int = Field(30000, gt=0)
    login_control_ms: int = Field(2000, gt=0)
    menu_control_ms: int = Field(3000, gt=0)
    section_ms: int = Field(3000, gt=0)
    candidate_visible_ms: int = Field(1000, gt=0)
    last_resort_ms: int = Field(3000, gt=0)
    auth_confirm_ms: int = Field(5000, gt=0)
    action_ms: int = Field(7000, gt=0)
    initial_settle_ms: int = Field(1500, ge=0)
    step_settle_ms: int = Field(1000, ge=0)
    login_settle_ms: int = Field(5000, ge=0)
    navigation_settle_ms: int = Field(2000, ge=0)
    board_settle_ms: int = Field(3000, ge=0)
    type_delay_ms: int = Field(50, ge=0)
    run_deadline_s: float | None = Field(None, gt=0)


class CheckerConfig(BaseModel):
    """Immutable configuration for one run. Passed explicitly, never global."""

    model_config = ConfigDict(frozen=True)

    base_url: str = DEFAULT_BASE_URL
    credentials: Credentials
    criteria: SearchCriteria = SearchCriteria(title="Testing")
    browser: BrowserOptions = BrowserOptions()
    timeouts: Timeouts = Timeouts()
    artifacts_dir: Path = Field(default_factory=get_artifacts_root)
    capture_screenshots: bool = True
    max_concurrent_runs: int = Field(1, ge=1)

    def with_criteria(self, **changes: Any) -> "CheckerConfig":
        """Returns a copy whose search criteria carry `changes` (None values ignored)."""
        updates = {k: v for k, v in changes.items() if v is not None}
        if not updates:
            return self
        criteria = self.criteria.model_copy(update=updates)
        return self.model_copy(update={"criteria": criteria})


# --- Loading ---

# Environment variable -> nested config key. Later entries win on conflict.
ENV_KEYS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("CHECKER_BASE_URL", ("base_url",)),
    ("EOXS_EMAIL", ("credentials", "identity")),
    ("EOXS_PASSWORD", ("credentials", "secret")),
    ("CHECKER_EMAIL", ("credentials", "identity")),
    ("CHECKER_PASSWORD", ("credentials", "secret")),
    ("CHECKER_PROJECT", ("criteria", "project_name")),
    ("CHECKER_SECTION", ("criteria", "section_label")),
    ("EMAIL_SUBJECT", ("criteria", "title")),
    ("CHECKER_TITLE", ("criteria", "title")),
    ("CHECKER_MATCH_MODE", ("criteria", "match_mode")),
    ("CHECKER_BROWSER", ("browser", "browser_type")),
    ("CHECKER_ARTIFACTS_DIR", ("artifacts_dir",)),
    ("CHECKER_RUN_DEADLINE_S", ("timeouts", "run_deadline_s")),
    ("CHECKER_MAX_CONCURRENT_RUNS", ("max_concurrent_runs",)),
)


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    node = target
    for key in path[:-1]:
        node = node.setdefault(key, {})
    node[path[-1]] = value


def deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merges `override` into a copy of `base`, skipping None values."""
    merged = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def values_from_env(env: Mapping[str, str | None]) -> dict[str, Any]:
    """Translates environment variables into the nested config shape."""
    values: dict[str, Any] = {}
    for name, path in ENV_KEYS:
        raw = env.get(name)
        if raw:
            _set_nested(values, path, raw)

    headless = env.get("HEADLESS")
    if headless:
        _set_nested(values, ("browser", "headless"), parse_bool(headless))
    elif "production" in (env.get("NODE_ENV"), env.get("CHECKER_ENV")):
        _set_nested(values, ("browser", "headless"), True)
    return values


def read_config_file(config_file: Path) -> dict[str, Any]:
    if not config_file.is_file():
        raise ConfigurationError(f"Config file not found: {config_file}")
    try:
        content = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_file}: {e}") from e
    if not isinstance(content, dict):
        raise ConfigurationError(f"Config file {config_file} must hold a mapping.")
    return content


def load_config(
    config_file: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    env: Mapping[str, str | None] | None = None,
    dotenv_path: Path | None = Path(".env"),
) -> CheckerConfig:
    """
    Builds the run configuration from, in increasing priority: model defaults,
    a YAML file, a .env file, the process environment and explicit overrides.
    """
    values: dict[str, Any] = {}
    if config_file:
        values = deep_merge(values, read_config_file(config_file))

    if dotenv_path and dotenv_path.is_file():
        values = deep_merge(values, values_from_env(dotenv_values(dotenv_path)))

    values = deep_merge(values, values_from_env(os.environ if env is None else env))

    if overrides:
        values = deep_merge(values, overrides)

    mode = values.get("criteria", {}).get("match_mode")
    if isinstance(mode, str):
        values["criteria"] = {**values["criteria"], "match_mode": mode.strip().lower()}

    try:
        config = CheckerConfig.model_validate(values)
    except ValidationError as e:
        missing = [
            ".".join(str(p) for p in err["loc"])
            for err in e.errors()
            if err["type"] == "missing"
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}. "
                "Set CHECKER_EMAIL and CHECKER_PASSWORD or provide a config file."
            ) from e
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    logger.debug(
        "Configuration loaded.",
        base_url=config.base_url,
        project=config.criteria.project_name,
        section=config.criteria.section_label,
        match_mode=config.criteria.match_mode.value,
        headless=config.browser.headless,
    )
    return config


__all__ = [
    "BrowserOptions",
    "CheckerConfig",
    "Credentials",
    "MatchMode",
    "SearchCriteria",
    "Timeouts",
    "load_config",
]

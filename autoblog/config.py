"""
Centralized configuration loader for the autoblog pipeline.

Loads settings from ``config/settings.yaml`` and environment variables,
providing sensible defaults when the file is absent.

Provides:
    - StageTimeoutsConfig: Per-stage time budgets with env var overrides
    - Settings: Global application settings loaded from YAML + env vars
    - get_settings(): Singleton accessor for Settings
    - reset_settings(): Clear the cached Settings (tests)
    - validate_env(): Startup validation of required environment variables
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from autoblog.exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# Load .env file (no-op if file does not exist)
# ---------------------------------------------------------------------------
load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)


# ===========================================================================
# STAGE TIMEOUTS
# ===========================================================================


@dataclass
class StageTimeoutsConfig:
    """
    Time budget in seconds for each pipeline stage.

    Every field can be overridden by ``STAGE_TIMEOUT_<FIELD_NAME_UPPER>``
    (e.g. ``STAGE_TIMEOUT_RESEARCH=900``). Research and refinement make
    several model calls, each also bounded by ``Settings.call_timeout``;
    their stage budget is the outer limit.
    """

    gather_context: int = 120
    select_topic: int = 120
    write_outline: int = 90
    research: int = 900
    write_draft: int = 180
    refine: int = 900
    polish: int = 120
    extract_metadata: int = 90
    validate: int = 120
    illustrate: int = 180
    persist: int = 30
    tool_post: int = 180

    def __post_init__(self) -> None:
        """Load overrides from environment variables."""
        for f in fields(self):
            env_var = f"STAGE_TIMEOUT_{f.name.upper()}"
            env_value = os.environ.get(env_var)
            if env_value is None:
                continue
            try:
                setattr(self, f.name, int(env_value))
            except ValueError:
                logger.warning(
                    "Invalid value for %s='%s', using default", env_var, env_value
                )

    def get(self, stage: str, default: int = 60) -> int:
        """Return the budget for *stage*, falling back to *default*."""
        return getattr(self, stage, default)

    def as_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# ===========================================================================
# GLOBAL SETTINGS
# ===========================================================================


@dataclass
class Settings:
    """
    Global application settings.

    Loaded from ``config/settings.yaml`` when available, falling back to
    defaults. Environment variables override YAML values.
    """

    # Models
    text_model: str = "gemini-2.5-flash"
    image_model: str = "gemini-2.0-flash-preview-image-generation"

    # Sampling temperatures per stage
    summary_temperature: float = 0.3
    topic_temperature: float = 0.9
    outline_temperature: float = 0.7
    research_temperature: float = 0.2
    draft_temperature: float = 0.6
    evaluator_temperature: float = 0.2
    revision_temperature: float = 0.6
    polish_temperature: float = 0.2
    metadata_temperature: float = 0.5
    validator_temperature: float = 0.1
    tool_post_temperature: float = 0.8

    # Seconds allowed for each model call (grounded research, evaluator,
    # revision); stage_timeouts bound whole stages
    call_timeout: float = 120.0

    # Research
    research_max_points: Optional[int] = None

    # Metadata
    metadata_char_budget: int = 8000
    words_per_minute: int = 225

    # Content store
    existing_titles_limit: int = 50
    image_bucket: str = "blogs"
    post_author: str = "Gemini"

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    # Stage timeouts (seconds)
    stage_timeouts: StageTimeoutsConfig = field(default_factory=StageTimeoutsConfig)

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "Settings":
        """
        Load settings from a YAML file.

        If the file does not exist, returns an instance with all defaults.
        Environment variables override YAML values for specific keys.

        Args:
            path: Path to the YAML file. Defaults to
                ``<PROJECT_ROOT>/config/settings.yaml``.

        Raises:
            ConfigurationError: If the YAML file exists but cannot be parsed
                or an override has the wrong type.
        """
        path = path or PROJECT_ROOT / "config" / "settings.yaml"

        data: Dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(
                    f"Failed to parse settings YAML at {path}: {exc}"
                ) from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings YAML at {path} must be a mapping")

        # -----------------------------------------------------------------
        # Stage timeouts: YAML first, then STAGE_TIMEOUT_* env vars win
        # -----------------------------------------------------------------
        timeouts = StageTimeoutsConfig()
        for stage, seconds in (data.pop("stage_timeouts", None) or {}).items():
            if not hasattr(timeouts, stage):
                logger.warning("Unknown stage in stage_timeouts: %s", stage)
                continue
            if os.environ.get(f"STAGE_TIMEOUT_{stage.upper()}") is None:
                setattr(timeouts, stage, int(seconds))

        known = {f.name for f in fields(cls)} - {"stage_timeouts"}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key in known:
                kwargs[key] = value
            else:
                logger.warning("Ignoring unknown settings key: %s", key)

        # -----------------------------------------------------------------
        # Environment variable overrides
        # -----------------------------------------------------------------
        env_overrides = {
            "GEMINI_TEXT_MODEL": ("text_model", str),
            "GEMINI_IMAGE_MODEL": ("image_model", str),
            "RESEARCH_MAX_POINTS": ("research_max_points", int),
            "LLM_CALL_TIMEOUT": ("call_timeout", float),
            "SUPABASE_IMAGE_BUCKET": ("image_bucket", str),
            "LOG_LEVEL": ("log_level", str),
            "LOG_DIR": ("log_dir", str),
        }
        for env_key, (attr_name, cast_fn) in env_overrides.items():
            env_val = os.environ.get(env_key)
            if env_val is None or env_val == "":
                continue
            try:
                kwargs[attr_name] = cast_fn(env_val)
            except (ValueError, TypeError) as exc:
                raise ConfigurationError(
                    f"Invalid value for env var {env_key}='{env_val}': {exc}"
                ) from exc

        return cls(stage_timeouts=timeouts, **kwargs)


# ===========================================================================
# SINGLETON SETTINGS ACCESSOR
# ===========================================================================

_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global Settings singleton.

    On first call, loads from ``config/settings.yaml`` (or defaults).
    Subsequent calls return the cached instance. Only ``run.py`` uses
    this; pipeline code receives its Settings explicitly.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.from_yaml()
    return _settings_instance


def reset_settings() -> None:
    """Reset the cached Settings singleton."""
    global _settings_instance
    _settings_instance = None


# ===========================================================================
# ENVIRONMENT VARIABLE VALIDATION
# ===========================================================================

# Any one name in a group satisfies the requirement
REQUIRED_ENV_VARS: List[List[str]] = [
    ["GEMINI_API_KEY", "GOOGLE_API_KEY"],
    ["SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"],
    ["SUPABASE_SERVICE_KEY", "SUPABASE_SERVICE_ROLE_KEY"],
]

OPTIONAL_ENV_VARS: List[str] = [
    "GEMINI_TEXT_MODEL",
    "GEMINI_IMAGE_MODEL",
    "RESEARCH_MAX_POINTS",
]


def validate_env(strict: bool = True) -> Dict[str, bool]:
    """
    Validate that required environment variables are set.

    Args:
        strict: If ``True``, raise ``ConfigurationError`` when any required
            variable is missing. If ``False``, only report.

    Returns:
        Dict mapping variable name (the first alias of each group) to
        presence status.

    Raises:
        ConfigurationError: If ``strict=True`` and required vars are missing.
    """
    status: Dict[str, bool] = {}
    missing: List[str] = []

    for aliases in REQUIRED_ENV_VARS:
        present = any(os.environ.get(name) for name in aliases)
        status[aliases[0]] = present
        if not present:
            missing.append(" or ".join(aliases))

    for var in OPTIONAL_ENV_VARS:
        status[var] = bool(os.environ.get(var))

    if strict and missing:
        raise ConfigurationError(
            f"Missing required environment variables: {missing}. "
            f"Copy .env.example to .env and fill in the values."
        )

    return status

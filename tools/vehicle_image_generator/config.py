import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigError, MissingConfigError

REQUIRED_ENV_VARS = ("SUPABASE_URL", "SUPABASE_ANON_KEY", "OPENAI_API_KEY")

RUN_MODES = ("incremental", "full")


@dataclass(frozen=True)
class Config:
    store_url: str
    store_key: str
    provider_key: str


@dataclass(frozen=True)
class Settings:
    table: str = "vehicle"
    id_column: str = "id"
    category_column: str = "vehicletype"
    image_column: str = "vehiclegraphic"
    updated_at_column: str = "updated_at"
    store_timeout_s: float = 30.0

    provider_base_url: str = "https://api.openai.com/v1"
    image_model: str = "dall-e-3"
    image_size: str = "1024x1024"
    image_quality: str = "hd"
    image_style: str = "vivid"
    provider_timeout_s: float = 120.0

    mode: str = "incremental"
    delay_seconds: float = 2.0
    prompt_template: Optional[str] = None


def load_config(env: Optional[Mapping[str, str]] = None) -> Config:
    """Read the required secrets, collecting every missing name before failing."""
    source = os.environ if env is None else env
    values: Dict[str, str] = {}
    missing = []
    for name in REQUIRED_ENV_VARS:
        value = str(source.get(name) or "").strip()
        if value:
            values[name] = value
        else:
            missing.append(name)

    if missing:
        raise MissingConfigError(missing)

    return Config(
        store_url=values["SUPABASE_URL"].rstrip("/"),
        store_key=values["SUPABASE_ANON_KEY"],
        provider_key=values["OPENAI_API_KEY"],
    )


def load_dotenv_files() -> None:
    tool_dir = Path(__file__).resolve().parent
    repo_root = tool_dir.parent.parent

    # Lowest priority first, highest priority last.
    for p in (repo_root / ".env", tool_dir / ".env", Path.cwd() / ".env"):
        if p.exists():
            load_dotenv(dotenv_path=str(p), override=False)


def _positive_number(section: Dict[str, Any], key: str, default: float, allow_zero: bool = False) -> float:
    raw = section.get(key)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid value for '{key}': {raw!r}")
    if not math.isfinite(value) or value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"Invalid value for '{key}': {raw!r}")
    return value


def settings_from_dict(data: Dict[str, Any]) -> Settings:
    defaults = Settings()

    store = data.get("store") or {}
    provider = data.get("provider") or data.get("openai") or {}
    run = data.get("run") or {}
    prompting = data.get("prompting") or {}
    for name, section in (("store", store), ("provider", provider), ("run", run), ("prompting", prompting)):
        if not isinstance(section, dict):
            raise ConfigError(f"Settings section '{name}' must be a mapping")

    mode = str(run.get("mode") or defaults.mode).strip().lower()
    if mode not in RUN_MODES:
        raise ConfigError(f"Invalid run mode '{mode}'. Expected one of: {', '.join(RUN_MODES)}")

    template = prompting.get("template")

    return Settings(
        table=str(store.get("table") or defaults.table),
        id_column=str(store.get("id_column") or defaults.id_column),
        category_column=str(store.get("category_column") or defaults.category_column),
        image_column=str(store.get("image_column") or defaults.image_column),
        updated_at_column=str(store.get("updated_at_column") or defaults.updated_at_column),
        store_timeout_s=_positive_number(store, "timeout_s", defaults.store_timeout_s),
        provider_base_url=str(provider.get("base_url") or defaults.provider_base_url).rstrip("/"),
        image_model=str(provider.get("model") or defaults.image_model),
        image_size=str(provider.get("size") or defaults.image_size),
        image_quality=str(provider.get("quality") or defaults.image_quality),
        image_style=str(provider.get("style") or defaults.image_style),
        provider_timeout_s=_positive_number(provider, "timeout_s", defaults.provider_timeout_s),
        mode=mode,
        delay_seconds=_positive_number(run, "delay_seconds", defaults.delay_seconds, allow_zero=True),
        prompt_template=str(template) if template else None,
    )


def load_settings(path: Optional[Path] = None) -> Settings:
    if not path:
        return Settings()
    if not path.exists():
        raise ConfigError(f"Settings file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse settings file {path}: {e}")
    if data is None:
        return Settings()
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a mapping")
    return settings_from_dict(data)

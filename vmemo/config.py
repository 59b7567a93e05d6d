"""
Settings handling.

Settings live in a YAML file and are owned by a SettingsStore, which can
load, mutate and persist them. Each pipeline run works from a frozen
snapshot taken at run start, so edits made mid-run apply to the next run.
"""

from dataclasses import dataclass, field, replace, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging
import os

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "vmemo.yaml"

PROVIDER_TYPES = ("anthropic", "openai", "google", "xai")

# Environment fallbacks used when a provider key is left empty
API_KEY_ENV_VARS = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "google": "GOOGLE_API_KEY",
    "xai": "XAI_API_KEY",
}


@dataclass(frozen=True)
class ProviderConfig:
    """Credential, model and endpoint for one LLM provider."""
    api_key: str = ""
    model: str = ""
    endpoint: str = ""
    max_tokens: int = 8192


DEFAULT_PROVIDERS: Dict[str, ProviderConfig] = {
    "anthropic": ProviderConfig(
        model="claude-sonnet-4-20250514",
        endpoint="https://api.anthropic.com",
    ),
    "openai": ProviderConfig(
        model="gpt-4.1",
        endpoint="https://api.openai.com/v1",
    ),
    "google": ProviderConfig(
        model="gemini-2.5-pro",
        endpoint="https://generativelanguage.googleapis.com/v1beta/models",
    ),
    "xai": ProviderConfig(
        model="grok-3",
        endpoint="https://api.x.ai/v1",
    ),
}


@dataclass(frozen=True)
class CustomTemplate:
    """A user-defined markdown template."""
    name: str
    content: str
    description: str = ""
    system_prompt: Optional[str] = None


@dataclass(frozen=True)
class Settings:
    # Storage
    recording_folder: str = "vmemo-recordings"
    keep_audio_files: bool = True

    # Transcription
    tool_path: str = ""  # empty means auto-detect
    tool_model: str = "mlx-community/Voxtral-Mini-4B-6bit"
    language: str = "auto"

    # AI processing
    ai_provider: str = "anthropic"
    auto_format: bool = True
    providers: Dict[str, ProviderConfig] = field(
        default_factory=lambda: dict(DEFAULT_PROVIDERS)
    )

    # Templates
    default_template: str = "meeting-notes"
    custom_templates: Dict[str, CustomTemplate] = field(default_factory=dict)
    custom_fields: Dict[str, str] = field(default_factory=dict)

    # Advanced
    max_recording_minutes: float = 120.0
    show_notifications: bool = True
    debug_mode: bool = False

    def provider_config(self, provider_type: str) -> ProviderConfig:
        """Get the configuration for a provider, falling back to defaults."""
        return self.providers.get(
            provider_type, DEFAULT_PROVIDERS.get(provider_type, ProviderConfig())
        )

    @property
    def max_recording_seconds(self) -> float:
        return self.max_recording_minutes * 60


def settings_from_dict(data: Dict[str, Any]) -> Settings:
    """Build Settings from a parsed YAML mapping, filling in defaults."""
    data = dict(data or {})

    providers = dict(DEFAULT_PROVIDERS)
    for name, values in (data.pop("providers", None) or {}).items():
        base = providers.get(name, ProviderConfig())
        providers[name] = replace(base, **(values or {}))

    templates = {
        template_id: CustomTemplate(**values)
        for template_id, values in (data.pop("custom_templates", None) or {}).items()
    }
    custom_fields = {
        str(key): str(value)
        for key, value in (data.pop("custom_fields", None) or {}).items()
    }

    known = set(Settings.__dataclass_fields__)
    unknown = set(data) - known
    if unknown:
        logger.warning(f"Ignoring unknown settings keys: {', '.join(sorted(unknown))}")

    scalars = {key: value for key, value in data.items() if key in known}
    if "max_recording_minutes" in scalars:
        scalars["max_recording_minutes"] = float(scalars["max_recording_minutes"])
    return Settings(
        providers=providers,
        custom_templates=templates,
        custom_fields=custom_fields,
        **scalars,
    )


def settings_to_dict(settings: Settings) -> Dict[str, Any]:
    """Convert Settings to a plain mapping suitable for YAML."""
    return asdict(settings)


def apply_env_fallbacks(settings: Settings) -> Settings:
    """Fill empty provider keys from the environment."""
    providers = dict(settings.providers)
    for name, env_var in API_KEY_ENV_VARS.items():
        config = settings.provider_config(name)
        if not config.api_key and os.getenv(env_var):
            providers[name] = replace(config, api_key=os.getenv(env_var))
    return replace(settings, providers=providers)


class SettingsStore:
    """
    Process-wide settings with an init / mutate / persist lifecycle.

    Readers never hold on to the store: they call snapshot() once per run
    and work from the returned frozen Settings.
    """

    def __init__(self, path: Union[str, Path, None] = None, settings: Optional[Settings] = None):
        self.path = Path(path or DEFAULT_CONFIG_PATH)
        self._settings = settings or Settings()

    def load(self) -> Settings:
        """
        Load settings from the YAML file.

        A missing file leaves the defaults in place.

        Raises:
            ValueError: If the file is not valid YAML or has invalid values.
        """
        if not self.path.exists():
            logger.info(f"No settings file at {self.path}, using defaults")
            self._settings = Settings()
            return self._settings

        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in settings file {self.path}: {e}") from e

        try:
            self._settings = settings_from_dict(data)
        except TypeError as e:
            raise ValueError(f"Invalid settings in {self.path}: {e}") from e

        logger.info(f"Settings loaded from {self.path}")
        return self._settings

    def save(self) -> None:
        """Persist the current settings to the YAML file."""
        if self.path.parent and not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as handle:
            yaml.safe_dump(settings_to_dict(self._settings), handle, sort_keys=False)
        logger.info(f"Settings saved to {self.path}")

    def update(self, **changes: Any) -> Settings:
        """Replace top-level settings fields."""
        self._settings = replace(self._settings, **changes)
        return self._settings

    def set(self, key_path: str, value: Any) -> Settings:
        """
        Set a value using dot notation (e.g. 'providers.openai.api_key').

        Raises:
            KeyError: If the key path does not name a known setting.
        """
        data = settings_to_dict(self._settings)
        keys = key_path.split(".")
        target = data
        for key in keys[:-1]:
            if not isinstance(target.get(key), dict):
                raise KeyError(f"Unknown setting: {key_path}")
            target = target[key]

        last = keys[-1]
        # custom fields are open-ended, everything else must already exist
        if last not in target and keys[0] != "custom_fields":
            raise KeyError(f"Unknown setting: {key_path}")

        current = target.get(last)
        if isinstance(current, dict):
            raise KeyError(f"Setting '{key_path}' is a section, name a key inside it")
        target[last] = _coerce(value, current)
        self._settings = settings_from_dict(data)
        logger.debug(f"Setting '{key_path}' set to: {target[last]!r}")
        return self._settings

    def snapshot(self) -> Settings:
        """Get the frozen settings for one run, with environment key fallbacks."""
        return apply_env_fallbacks(self._settings)

    @property
    def settings(self) -> Settings:
        return self._settings


def _coerce(value: Any, current: Any) -> Any:
    """Coerce a CLI string value to the type of the setting it replaces."""
    if not isinstance(value, str):
        return value
    if isinstance(current, bool):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    return value

"""
Central settings for Toolwise.

Reads configuration from ``~/.config/toolwise/config.toml`` (POSIX) or
``%APPDATA%/toolwise/config.toml`` (Windows).  Environment variables
override config-file values.

Usage::

    from .settings import get_settings
    settings = get_settings()
    print(settings.catalog_path)
"""

import logging
import os
import platform
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

# Use stdlib tomllib on 3.11+, fall back to tomli on older versions
if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib  # type: ignore[no-redef]
    except ImportError:
        tomllib = None  # type: ignore[assignment]

GROQ_BASE_URL = "https://api.groq.com/openai/v1"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai"


def _default_config_dir() -> Path:
    """Return the platform-appropriate config directory."""
    if platform.system() == "Windows":
        appdata = os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming"))
        return Path(appdata) / "toolwise"
    return Path.home() / ".config" / "toolwise"


def default_config_path() -> Path:
    return _default_config_dir() / "config.toml"


def _default_data_dir() -> Path:
    return Path.home() / ".toolwise"


@dataclass
class ProviderSettings:
    """One OpenAI-compatible chat-completions endpoint."""

    name: str
    api_key: str = ""
    base_url: str = ""
    model: str = ""
    timeout: float = 20.0

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.base_url and self.model)


@dataclass
class Settings:
    """Resolved toolwise settings (config file + env var overrides)."""

    # [catalog]
    catalog_path: Path = field(default_factory=lambda: _default_data_dir() / "catalog.json")
    discovery_log_path: Path = field(
        default_factory=lambda: _default_data_dir() / "discovered.json"
    )

    # [providers.groq] / [providers.gemini]
    groq: ProviderSettings = field(
        default_factory=lambda: ProviderSettings(
            name="groq", base_url=GROQ_BASE_URL, model="llama-3.3-70b-versatile"
        )
    )
    gemini: ProviderSettings = field(
        default_factory=lambda: ProviderSettings(
            name="gemini", base_url=GEMINI_BASE_URL, model="gemini-2.0-flash"
        )
    )

    # [discovery]
    request_delay: float = 2.0
    bulk_import_delay: float = 1.5
    listing_url: str = "https://alternativeto.net/category/ai-tools/"
    listing_timeout: float = 10.0
    page_timeout: float = 15.0

    # [logging]
    log_level: str = "WARNING"

    # Path to the config file that was loaded (empty string if none)
    _config_file: str = ""

    @property
    def providers(self) -> List[ProviderSettings]:
        """Configured providers in priority order (Groq first)."""
        return [p for p in (self.groq, self.gemini) if p.enabled]


# Module-level singleton
_settings: Optional[Settings] = None


def _as_float(raw: object, default: float) -> float:
    try:
        return float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.debug("ignoring non-numeric setting value: %r", raw)
        return default


def _apply_provider(provider: ProviderSettings, data: dict) -> None:
    if not isinstance(data, dict):
        return
    provider.api_key = str(data.get("api_key", provider.api_key)).strip()
    provider.base_url = str(data.get("base_url", provider.base_url)).strip()
    provider.model = str(data.get("model", provider.model)).strip()
    provider.timeout = _as_float(data.get("timeout", provider.timeout), provider.timeout)


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """Load settings from config file, then apply env var overrides."""
    settings = Settings()
    path = config_path or default_config_path()

    # --- Read config file ---
    if path.is_file() and tomllib is not None:
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
            settings._config_file = str(path)

            catalog = data.get("catalog", {})
            if catalog.get("path"):
                settings.catalog_path = Path(str(catalog["path"])).expanduser()
            if catalog.get("discovery_log_path"):
                settings.discovery_log_path = Path(
                    str(catalog["discovery_log_path"])
                ).expanduser()

            providers = data.get("providers", {})
            _apply_provider(settings.groq, providers.get("groq", {}))
            _apply_provider(settings.gemini, providers.get("gemini", {}))

            discovery = data.get("discovery", {})
            settings.request_delay = _as_float(
                discovery.get("request_delay", settings.request_delay),
                settings.request_delay,
            )
            settings.bulk_import_delay = _as_float(
                discovery.get("bulk_import_delay", settings.bulk_import_delay),
                settings.bulk_import_delay,
            )
            if discovery.get("listing_url"):
                settings.listing_url = str(discovery["listing_url"]).strip()

            log = data.get("logging", {})
            if log.get("level"):
                settings.log_level = str(log["level"]).upper()

            logger.debug("Loaded settings from %s", path)
        except Exception:
            logger.warning("Failed to parse config file %s", path, exc_info=True)
    elif path.is_file() and tomllib is None:
        logger.warning(
            "Config file %s exists but tomli is not installed "
            "(install `tomli` for Python <3.11 support)",
            path,
        )

    # --- Env var overrides (take priority over config file) ---
    groq_key = os.environ.get("GROQ_API_KEY", "").strip()
    if groq_key:
        settings.groq.api_key = groq_key

    gemini_key = os.environ.get("GEMINI_API_KEY", "").strip()
    if gemini_key:
        settings.gemini.api_key = gemini_key

    env_catalog = os.environ.get("TOOLWISE_CATALOG_PATH", "").strip()
    if env_catalog:
        settings.catalog_path = Path(env_catalog).expanduser()

    env_log = os.environ.get("TOOLWISE_DISCOVERY_LOG_PATH", "").strip()
    if env_log:
        settings.discovery_log_path = Path(env_log).expanduser()

    env_delay = os.environ.get("TOOLWISE_REQUEST_DELAY", "").strip()
    if env_delay:
        settings.request_delay = _as_float(env_delay, settings.request_delay)

    env_level = os.environ.get("TOOLWISE_LOG_LEVEL", "").strip()
    if env_level:
        settings.log_level = env_level.upper()

    return settings


def get_settings() -> Settings:
    """Return the cached Settings singleton, loading on first call."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the singleton so the next ``get_settings()`` reloads from disk."""
    global _settings
    _settings = None


# ---------------------------------------------------------------------------
# Default config template
# ---------------------------------------------------------------------------

DEFAULT_CONFIG_TOML = """\
# Toolwise configuration

[catalog]
# path = "~/.toolwise/catalog.json"
# discovery_log_path = "~/.toolwise/discovered.json"

[providers.groq]
# api_key = ""            # or GROQ_API_KEY
model = "llama-3.3-70b-versatile"

[providers.gemini]
# api_key = ""            # or GEMINI_API_KEY
model = "gemini-2.0-flash"

[discovery]
request_delay = 2.0
bulk_import_delay = 1.5

[logging]
level = "WARNING"
"""

"""
Settings for the render pipeline, site lists, HTTP service and logging.

Each section is a pydantic-settings model with its own env prefix
(RENDER_, SITE_, API_); a YAML file passed to ``init_config`` overrides
whole sections key by key.
"""

import yaml
from pathlib import Path
from typing import Annotated, Optional, Dict, Any, List
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from pydantic import Field, field_validator
import logging

logger = logging.getLogger(__name__)


# Ordered page list of the media guide sites; "{base}" is the site root for a slug.
DEFAULT_SITE_PATHS = [
    "/",
    "/print/",
    "/print1/",
    "/print1/?product=Digital%20Edition",
    "/print1/?product=Direct%20Mail",
    "/print1/content-calendar",
    "/print2/",
    "/print2/?product=Digital%20Edition",
    "/print2/?product=Direct%20Mail",
    "/print2/?product=MLE",
    "/print2/?product=Profiles",
    "/enews1/",
    "/web1/",
    "/obg1/",
    "/obg1/?product=Profiles",
    "/obg1/?product=Sponsored%20Content",
    "/contact/",
]


class RenderConfig(BaseSettings):
    """Rendering pipeline configuration."""
    model_config = SettingsConfigDict(env_prefix='RENDER_', extra='ignore')

    batch_size: int = Field(default=5, ge=1, le=100)
    width_cap_px: int = Field(default=1280, ge=320, le=10000)
    viewport_width: int = Field(default=1280, ge=320, le=10000)
    viewport_height: int = Field(default=800, ge=200, le=10000)
    navigation_timeout_ms: int = Field(default=20000, ge=1000, le=120000)
    network_idle_timeout_ms: int = Field(default=10000, ge=0, le=120000)
    settle_delay_ms: int = Field(default=500, ge=0, le=60000)
    counter_selector: Optional[str] = Field(default='[data-count]')
    counter_target_attribute: str = Field(default='data-count')
    counter_timeout_ms: int = Field(default=5000, ge=0, le=60000)
    counter_poll_interval_ms: int = Field(default=200, ge=10, le=5000)
    scroll_pause_ms: int = Field(default=250, ge=0, le=5000)
    expand_accordions_selector: Optional[str] = Field(default=None)
    replace_iframes_selector: Optional[str] = Field(default=None)
    # Comma-separated CSS selectors hidden on every page
    hide_selectors: str = Field(default='')
    job_deadline_seconds: Optional[float] = Field(default=None, gt=0)
    emission_timeout_ms: int = Field(default=30000, ge=1000, le=300000)
    headless: bool = Field(default=True)
    stealth: bool = Field(default=True)
    user_agent: Optional[str] = Field(default=None)

    @field_validator('hide_selectors', mode='before')
    @classmethod
    def join_hide_selectors(cls, v):
        """Accept a list of selectors as well as a comma-separated string."""
        if v is None:
            return ''
        if isinstance(v, (list, tuple)):
            return ', '.join(str(selector).strip() for selector in v if str(selector).strip())
        return v

    def hide_selector_list(self) -> List[str]:
        return [selector.strip() for selector in self.hide_selectors.split(',') if selector.strip()]


class SiteConfig(BaseSettings):
    """Site identifier to URL list configuration."""
    model_config = SettingsConfigDict(env_prefix='SITE_', extra='ignore')

    base_url_template: str = Field(default='https://www.officialmediaguide.com/{slug}')
    default_slug: str = Field(default='cpc')
    paths: List[str] = Field(default_factory=lambda: list(DEFAULT_SITE_PATHS))

    @field_validator('base_url_template')
    @classmethod
    def validate_template(cls, v):
        """Require the slug placeholder and an http(s) scheme."""
        if '{slug}' not in v:
            raise ValueError("base_url_template must contain '{slug}'")
        if not v.startswith(('http://', 'https://')):
            raise ValueError('base_url_template must include protocol (http:// or https://)')
        return v.rstrip('/')


class APIConfig(BaseSettings):
    """HTTP service settings."""
    model_config = SettingsConfigDict(env_prefix='API_', extra='ignore')

    host: str = Field(default='0.0.0.0')
    port: int = Field(default=8000, ge=1, le=65535)
    workers: int = Field(default=1, ge=1, le=32)
    reload: bool = Field(default=False)
    # API_CORS_ORIGINS="https://a.example.com, https://b.example.com"
    cors_origins: Annotated[List[str], NoDecode] = Field(default_factory=list)

    @field_validator('cors_origins', mode='before')
    @classmethod
    def split_origins(cls, v):
        if not v:
            return []
        if isinstance(v, str):
            v = v.split(',')
        return [str(origin).strip() for origin in v if str(origin).strip()]


LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')
ENVIRONMENTS = ('development', 'staging', 'production', 'test')


class MonitoringConfig(BaseSettings):
    """Logging and metrics settings (unprefixed: LOG_LEVEL, LOG_FORMAT, ENABLE_METRICS)."""
    model_config = SettingsConfigDict(env_prefix='', extra='ignore')

    log_level: str = Field(default='INFO')
    log_format: str = Field(default='json')
    enable_metrics: bool = Field(default=True)

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v):
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {v!r}")
        return level


class Config(BaseSettings):
    """Top-level settings; each section also reads its own prefixed variables."""
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore'
    )

    environment: str = Field(default='development')
    debug: bool = Field(default=False)

    render: RenderConfig = Field(default_factory=RenderConfig)
    site: SiteConfig = Field(default_factory=SiteConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    @field_validator('environment')
    @classmethod
    def normalize_environment(cls, v):
        env = v.lower()
        if env not in ENVIRONMENTS:
            raise ValueError(f"environment must be one of {', '.join(ENVIRONMENTS)}, got {v!r}")
        return env

    def validate_config(self) -> List[str]:
        """
        Cross-field checks that single-field validators cannot express.

        Returns:
            Messages prefixed "ERROR:" (startup must fail) or "WARNING:"
        """
        render = self.render
        checks = [
            (self.environment == 'production' and self.debug,
             "WARNING: Debug mode enabled in production"),
            (not self.site.paths,
             "ERROR: Site path list is empty"),
            (render.viewport_width > render.width_cap_px,
             "WARNING: Viewport width exceeds width cap; pages will be clipped"),
            (render.job_deadline_seconds is not None
             and render.job_deadline_seconds * 1000 < render.navigation_timeout_ms,
             "WARNING: Job deadline is shorter than one navigation timeout"),
        ]
        return [message for failed, message in checks if failed]


class YAMLConfigLoader:
    """Section overrides read from a YAML file (``--config``)."""

    @staticmethod
    def load_yaml_config(config_path: Path) -> Dict[str, Any]:
        """
        Read a YAML mapping of section name to settings.

        A missing file yields no overrides; a malformed one is an error.
        """
        path = Path(config_path)
        if not path.is_file():
            logger.warning(f"YAML config {path} not found, using environment and defaults")
            return {}

        try:
            data = yaml.safe_load(path.read_text(encoding='utf-8'))
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a mapping at the top level")
        logger.info(f"Read config overrides for {sorted(data)} from {path}")
        return data

    @staticmethod
    def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Nested-dict merge; keys in ``override`` win, nested mappings merge key by key."""
        merged = dict(base)
        for key, value in override.items():
            current = merged.get(key)
            if isinstance(current, dict) and isinstance(value, dict):
                value = YAMLConfigLoader.merge_configs(current, value)
            merged[key] = value
        return merged


_config: Optional[Config] = None


def get_config() -> Config:
    """Process-wide settings, built from environment and defaults on first access."""
    if _config is None:
        return init_config()
    return _config


def init_config(
    env_file: Optional[str] = None,
    yaml_config_path: Optional[Path] = None
) -> Config:
    """
    Build the settings and install them as the process-wide instance.

    Precedence, lowest first: field defaults, ``.env`` (or ``env_file``),
    environment variables, YAML overrides.

    Raises:
        ValueError: invalid values, unreadable YAML, or an ERROR from
            ``Config.validate_config``
    """
    global _config

    config = Config(_env_file=env_file) if env_file else Config()

    overrides = YAMLConfigLoader.load_yaml_config(yaml_config_path) if yaml_config_path else {}
    if overrides:
        config = Config.model_validate(YAMLConfigLoader.merge_configs(config.model_dump(), overrides))

    errors = []
    for message in config.validate_config():
        if message.startswith('ERROR'):
            errors.append(message)
        else:
            logger.warning(message)
    if errors:
        for message in errors:
            logger.error(message)
        raise ValueError('; '.join(errors))

    _config = config
    logger.info(
        f"Config ready: environment={config.environment}, batch_size={config.render.batch_size}, "
        f"width_cap_px={config.render.width_cap_px}, site_paths={len(config.site.paths)}"
    )
    return config


def reload_config() -> Config:
    """Drop the cached settings and rebuild them from the environment."""
    global _config
    _config = None
    return init_config()

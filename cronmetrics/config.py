"""
Configuration module for cronmetrics

Settings are layered: built-in defaults, then an optional YAML file, then
environment variables named CRONMETRICS_<SECTION>_<KEY>. The resulting
Settings value is passed explicitly to every component that needs it.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

ENV_PREFIX = "CRONMETRICS"
DEV_DATABASE_URL = "sqlite:////tmp/cronmetrics_dev.db"

VALID_LOG_LEVELS = ("debug", "info", "warning", "error", "critical")
VALID_LOG_FORMATS = ("json", "text")


def env_bool(value: Any, default: bool = False) -> bool:
    """Interpret a config/env value as a boolean"""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes", "on")


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080
    keep_alive_timeout: int = 120
    shutdown_timeout: int = 30


class DatabaseConfig(BaseModel):
    url: str = "sqlite:///./cronmetrics.db"
    pool_size: int = 5
    max_overflow: int = 10
    # seconds; bounds every store call, including the scrape bulk read
    timeout: float = 30.0
    # rows fetched per round trip when streaming jobs for a scrape
    batch_size: int = 1000
    auto_migrate: bool = False


class MetricsConfig(BaseModel):
    path: str = "/metrics"
    self_path: str = "/internal/metrics"


class LoggingConfig(BaseModel):
    level: str = "info"
    format: str = "json"
    output: str = "stdout"  # stdout, stderr, or a file path


class SecurityConfig(BaseModel):
    admin_api_keys: List[str] = Field(default_factory=list)
    require_https: bool = False
    tls_cert_file: str = ""
    tls_key_file: str = ""


class Settings(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    dev: bool = False


class ConfigError(ValueError):
    pass


def _read_config_file(config_file: str) -> Dict[str, Any]:
    path = Path(config_file)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"failed to read config file {config_file}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse config file {config_file}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {config_file} must contain a mapping")
    return data


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Dict[str, Any]]:
    """Collect CRONMETRICS_<SECTION>_<KEY> variables for every known field"""
    overrides: Dict[str, Dict[str, Any]] = {}
    for section, field in Settings.model_fields.items():
        model = field.annotation
        if not isinstance(model, type) or not issubclass(model, BaseModel):
            continue
        for key, sub in model.model_fields.items():
            name = f"{ENV_PREFIX}_{section}_{key}".upper()
            if name not in environ:
                continue
            raw = environ[name]
            if sub.annotation == List[str]:
                value: Any = [p.strip() for p in raw.split(",") if p.strip()]
            else:
                value = raw
            overrides.setdefault(section, {})[key] = value
    return overrides


def _merge(base: Dict[str, Any], extra: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in extra.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _merge(dict(merged[key]), value)
        else:
            merged[key] = value
    return merged


def validate_settings(settings: Settings) -> None:
    """Raise ConfigError when the settings cannot run a server"""
    if not 1 <= settings.server.port <= 65535:
        raise ConfigError(f"invalid server port: {settings.server.port}")

    if settings.logging.level.lower() not in VALID_LOG_LEVELS:
        raise ConfigError(f"invalid logging level: {settings.logging.level}")

    if settings.logging.format not in VALID_LOG_FORMATS:
        raise ConfigError(
            f"invalid logging format: {settings.logging.format} (must be 'json' or 'text')"
        )

    if settings.security.require_https and not (
        settings.security.tls_cert_file and settings.security.tls_key_file
    ):
        raise ConfigError("TLS cert and key files must be specified when HTTPS is required")

    if not settings.database.url:
        raise ConfigError("database url cannot be empty")

    if settings.database.batch_size < 1:
        raise ConfigError("database batch size must be positive")

    if not settings.metrics.path.startswith("/"):
        raise ConfigError(f"metrics path must start with '/': {settings.metrics.path}")

    if settings.metrics.path == settings.metrics.self_path:
        raise ConfigError("metrics path and self metrics path must differ")


def load_settings(
    config_file: Optional[str] = None,
    dev: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from defaults, an optional YAML file and the environment"""
    if environ is None:
        environ = os.environ

    data: Dict[str, Any] = {}
    if dev:
        data = {
            "database": {"url": DEV_DATABASE_URL},
            "logging": {"level": "debug", "format": "text"},
            "dev": True,
        }
    if config_file:
        data = _merge(data, _read_config_file(config_file))
    data = _merge(data, _env_overrides(environ))
    if dev:
        data["dev"] = True

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {e}") from e

    validate_settings(settings)
    return settings


def example_config() -> str:
    """Annotated example configuration file"""
    return """# cronmetrics configuration

server:
  host: "0.0.0.0"
  port: 8080
  keep_alive_timeout: 120
  shutdown_timeout: 30

database:
  url: "sqlite:////var/lib/cronmetrics/cronmetrics.db"
  pool_size: 5
  max_overflow: 10
  timeout: 30          # seconds, bounds every store call
  batch_size: 1000     # rows per round trip when streaming jobs for /metrics
  auto_migrate: false  # run alembic upgrade head at startup

metrics:
  path: "/metrics"
  self_path: "/internal/metrics"

logging:
  level: "info"        # debug, info, warning, error, critical
  format: "json"       # json or text
  output: "stdout"     # stdout, stderr, or file path

security:
  require_https: false
  tls_cert_file: "/etc/ssl/certs/cronmetrics.crt"
  tls_key_file: "/etc/ssl/private/cronmetrics.key"
  admin_api_keys:
    - "your-admin-api-key-here"

# Environment variable overrides:
# CRONMETRICS_SERVER_PORT=9090
# CRONMETRICS_DATABASE_URL=sqlite:////custom/path/db.sqlite
# CRONMETRICS_LOGGING_LEVEL=debug
# CRONMETRICS_SECURITY_ADMIN_API_KEYS=key-one,key-two
"""

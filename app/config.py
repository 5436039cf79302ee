from enum import Enum
import configparser
from os import environ
from os.path import exists
from typing import Any, Optional
import logging

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

_PATH = "app{suffix}.conf"
_CONFIG = None


def _as_bool(v: Any, default: bool) -> bool:
    if v in (None, "", " "):
        return default
    if isinstance(v, str):
        return v.lower() in ("yes", "true", "t", "1")
    return bool(v)


class LogLevel(str, Enum):
    debug = "debug"
    info = "info"
    warning = "warning"
    error = "error"
    critical = "critical"


class ConfigApp(BaseModel):
    loglevel: LogLevel = Field(default=LogLevel.info)


class ConfigDatabase(BaseModel):
    dsn: str
    create_tables: bool = Field(default=False)
    pool_size: int = Field(default=5, ge=0, lt=100)
    max_overflow: int = Field(default=10, ge=0, lt=100)
    pool_pre_ping: bool = Field(default=False)
    pool_recycle: int = Field(default=3600, ge=0)

    @field_validator("create_tables", "pool_pre_ping", mode="before")
    def validate_bools(cls, v: Any) -> bool:
        return _as_bool(v, False)

    @field_validator("pool_size", mode="before")
    def validate_pool_size(cls, v: Any) -> int:
        if v in (None, "", " "):
            return 5
        return int(v)

    @field_validator("max_overflow", mode="before")
    def validate_max_overflow(cls, v: Any) -> int:
        if v in (None, "", " "):
            return 10
        return int(v)

    @field_validator("pool_recycle", mode="before")
    def validate_pool_recycle(cls, v: Any) -> int:
        if v in (None, "", " "):
            return 3600
        return int(v)


class ConfigUvicorn(BaseModel):
    swagger_enabled: bool = Field(default=False)
    docs_url: str = Field(default="/docs")
    redoc_url: str = Field(default="/redoc")
    host: str = Field(default="127.0.0.1")
    port: Optional[int] = Field(default=8000, gt=0, lt=65535)
    reload: bool = Field(default=True)
    reload_delay: float = Field(default=1)
    reload_dirs: list[str] = Field(default=["app"])
    use_ssl: bool = Field(default=False)
    ssl_base_dir: str | None = Field(default=None)
    ssl_cert_file: str | None = Field(default=None)
    ssl_key_file: str | None = Field(default=None)

    @field_validator("host", mode="before")
    def validate_host(cls, v: Any) -> str:
        if v in (None, "", " "):
            return "127.0.0.1"
        return str(v)

    @field_validator("port", mode="before")
    def validate_port(cls, v: Any) -> int:
        if v in (None, "", " "):
            return 8000
        return int(v)

    @field_validator("swagger_enabled", "use_ssl", mode="before")
    def validate_switches(cls, v: Any) -> bool:
        return _as_bool(v, False)

    @field_validator("reload", mode="before")
    def validate_reload(cls, v: Any) -> bool:
        return _as_bool(v, True)

    @field_validator("reload_delay", mode="before")
    def validate_reload_delay(cls, v: Any) -> float:
        if v in (None, "", " "):
            return 1.0
        return float(v)

    @field_validator("reload_dirs", mode="before")
    def validate_reload_dirs(cls, v: Any) -> list[str]:
        if v in (None, "", " "):
            return ["app"]
        if isinstance(v, str):
            return [d.strip() for d in v.split(",")]
        return v  # type: ignore


class ConfigStats(BaseModel):
    enabled: bool = Field(default=False)
    host: str | None = Field(default=None)
    port: int | None = Field(default=None)
    module_name: str | None = Field(default=None)

    @field_validator("enabled", mode="before")
    def validate_enabled(cls, v: Any) -> bool:
        return _as_bool(v, False)

    @field_validator("port", mode="before")
    def validate_port(cls, v: Any) -> int | None:
        if v in (None, "", " "):
            return None
        return int(v)


class ConfigFhir(BaseModel):
    base_url: str = Field(
        default="http://localhost:8000",
        description="Base url used to build absolute references inside notifications",
    )
    topic_url: str = Field(
        default="http://hl7.org/fhir/us/davinci-pas/SubscriptionTopic/PASSubscriptionTopic",
        description="Canonical url of the subscription topic announced in every notification",
    )
    strict_validation: bool = Field(default=False)

    @field_validator("base_url", mode="before")
    def validate_base_url(cls, v: Any) -> str:
        if v in (None, "", " "):
            return "http://localhost:8000"
        return str(v).rstrip("/")

    @field_validator("strict_validation", mode="before")
    def validate_strict_validation(cls, v: Any) -> bool:
        return _as_bool(v, False)


class ConfigNotifications(BaseModel):
    store: str = Field(
        default="database",
        description="Subscription store backend, can be 'database' or 'memory'",
    )
    handshake_timeout: float = Field(default=2.0, gt=0)
    notification_timeout: float = Field(default=10.0, gt=0)
    notification_retries: int = Field(default=3, ge=0)
    notification_retry_delay: float = Field(default=1.0, ge=0)
    max_concurrent_deliveries: int = Field(default=5, ge=1, le=64)

    @field_validator("store")
    def validate_store(cls, value: Any) -> str:
        if value not in {"database", "memory"}:
            raise ValueError("store must be either 'database' or 'memory'")
        return str(value)

    @field_validator("handshake_timeout", mode="before")
    def validate_handshake_timeout(cls, v: Any) -> float:
        if v in (None, "", " "):
            return 2.0
        return float(v)

    @field_validator("notification_timeout", mode="before")
    def validate_notification_timeout(cls, v: Any) -> float:
        if v in (None, "", " "):
            return 10.0
        return float(v)

    @field_validator("notification_retries", mode="before")
    def validate_notification_retries(cls, v: Any) -> int:
        if v in (None, "", " "):
            return 3
        return int(v)

    @field_validator("notification_retry_delay", mode="before")
    def validate_notification_retry_delay(cls, v: Any) -> float:
        if v in (None, "", " "):
            return 1.0
        return float(v)

    @field_validator("max_concurrent_deliveries", mode="before")
    def validate_max_concurrent_deliveries(cls, v: Any) -> int:
        if v in (None, "", " "):
            return 5
        return int(v)


class Config(BaseModel):
    app: ConfigApp
    database: ConfigDatabase
    uvicorn: ConfigUvicorn
    stats: ConfigStats
    fhir: ConfigFhir
    notifications: ConfigNotifications


def read_ini_file(path: str) -> Any:
    ini_data = configparser.ConfigParser()
    ini_data.read(path)

    ret = {}
    for section in ini_data.sections():
        ret[section] = dict(ini_data[section])

    return ret


def reset_config() -> None:
    global _CONFIG
    _CONFIG = None


def set_config(config: Config) -> None:
    global _CONFIG
    _CONFIG = config


def get_config(path: str | None = None) -> Config:
    global _CONFIG
    global _PATH

    if _CONFIG is not None:
        return _CONFIG

    if path is None:
        suffix = environ.get("APP_ENV", "")
        if suffix:
            suffix = f".{suffix}"
        path = _PATH.replace("{suffix}", suffix)
        logger.info(f"Reading configuration using file: {path}")

    if not exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    # INI files are flat key/value sections, optional sections are filled in before validation
    ini_data = read_ini_file(path)
    for section in ("stats", "fhir", "notifications", "uvicorn"):
        ini_data.setdefault(section, {})

    try:
        _CONFIG = Config(**ini_data)
    except ValidationError as e:
        logger.error(f"Configuration validation error: {e}")
        raise e

    return _CONFIG

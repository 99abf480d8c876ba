"""
Application Settings

Centralized configuration management for the importer.
Loads settings from environment variables with sensible defaults.
"""

import os
from typing import Optional
from dataclasses import dataclass, field


@dataclass
class RedisSettings:
    """Redis configuration settings"""
    url: Optional[str] = None
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    span_key: str = "spansets"

    @property
    def connection_url(self) -> str:
        """Generate Redis connection URL"""
        if self.url:
            return self.url

        auth_part = f":{self.password}@" if self.password else ""
        return f"redis://{auth_part}{self.host}:{self.port}/{self.db}"


@dataclass
class ExchangeSettings:
    """Exchange client configuration settings"""
    binance_api_key: Optional[str] = None
    binance_api_secret: Optional[str] = None
    binance_tld: str = "us"
    request_timeout: float = 15.0


@dataclass
class ImportSettings:
    """Import pipeline configuration settings"""
    window_size_minutes: int = 1000
    request_delay_ms: int = 60
    persist_policy: str = "continue"


@dataclass
class LoggingSettings:
    """Logging configuration settings"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class APISettings:
    """API configuration settings"""
    host: str = "0.0.0.0"
    port: int = 3000
    reload: bool = False
    title: str = "Crypto Importer API"
    description: str = "Imports historical exchange klines into Redis"
    version: str = "1.0.0"
    cors_origins: list = field(default_factory=lambda: ["*"])


@dataclass
class AppSettings:
    """Main application settings"""
    # Environment
    environment: str = "development"
    debug: bool = False

    # 'redis' or 'memory'
    storage_backend: str = "redis"

    # Component settings
    redis: RedisSettings = field(default_factory=RedisSettings)
    exchange: ExchangeSettings = field(default_factory=ExchangeSettings)
    imports: ImportSettings = field(default_factory=ImportSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    api: APISettings = field(default_factory=APISettings)

    @property
    def redis_url(self) -> str:
        """Get Redis connection URL"""
        return self.redis.connection_url

    @property
    def log_level(self) -> str:
        """Get logging level"""
        return self.logging.level


def load_settings_from_env() -> AppSettings:
    """Load settings from environment variables"""

    # Environment
    environment = os.getenv("ENVIRONMENT", "development")
    debug = os.getenv("DEBUG", "false").lower() == "true"
    storage_backend = os.getenv("STORAGE_BACKEND", "redis").lower()

    # Redis settings
    redis = RedisSettings(
        url=os.getenv("REDIS_URL"),
        host=os.getenv("REDIS_HOST", "localhost"),
        port=int(os.getenv("REDIS_PORT", "6379")),
        db=int(os.getenv("REDIS_DB", "0")),
        password=os.getenv("REDIS_PASSWORD"),
        span_key=os.getenv("SPAN_REGISTRY_KEY", "spansets")
    )

    # Exchange settings
    exchange = ExchangeSettings(
        binance_api_key=os.getenv("BINANCE_API_KEY"),
        binance_api_secret=os.getenv("BINANCE_API_SECRET"),
        binance_tld=os.getenv("BINANCE_TLD", "us"),
        request_timeout=float(os.getenv("BINANCE_REQUEST_TIMEOUT", "15"))
    )

    # Import settings
    imports = ImportSettings(
        window_size_minutes=int(os.getenv("IMPORT_WINDOW_SIZE_MINUTES", "1000")),
        request_delay_ms=int(os.getenv("IMPORT_REQUEST_DELAY_MS", "60")),
        persist_policy=os.getenv("IMPORT_PERSIST_POLICY", "continue").lower()
    )

    # Logging settings
    logging_settings = LoggingSettings(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format=os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    # API settings
    api = APISettings(
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "3000")),
        reload=os.getenv("API_RELOAD", "false").lower() == "true",
        title=os.getenv("API_TITLE", "Crypto Importer API"),
        version=os.getenv("API_VERSION", "1.0.0"),
        cors_origins=os.getenv("CORS_ORIGINS", "*").split(",")
    )

    return AppSettings(
        environment=environment,
        debug=debug,
        storage_backend=storage_backend,
        redis=redis,
        exchange=exchange,
        imports=imports,
        logging=logging_settings,
        api=api
    )


# Global settings instance
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get the global settings instance"""
    global _settings

    if _settings is None:
        _settings = load_settings_from_env()

    return _settings


def set_settings(settings: AppSettings) -> None:
    """Set the global settings instance (for testing)"""
    global _settings
    _settings = settings


def reload_settings() -> AppSettings:
    """Reload settings from environment"""
    global _settings
    _settings = None
    return get_settings()

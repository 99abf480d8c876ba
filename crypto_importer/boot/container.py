"""
Dependency Injection Container

Builds the import pipeline from the settings: the shared import state, the
span registry and record sink, the exchange clients and the coordinator.
"""

import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass

from redis.asyncio import Redis

from crypto_importer.boot.settings import AppSettings
from crypto_importer.modules.data_import.adapter_exchange_binance import BinanceExchangeClient
from crypto_importer.modules.data_import.adapter_store_memory import (
    InMemoryRecordSink,
    InMemorySpanRegistry,
)
from crypto_importer.modules.data_import.adapter_store_redis import (
    RedisRecordSink,
    RedisSpanRegistry,
)
from crypto_importer.modules.data_import.core_import_models import ImportState
from crypto_importer.modules.data_import.port_import_stores import ExchangeFetchPort
from crypto_importer.modules.data_import.service_import_coordinator import (
    ImportConfig,
    ImportCoordinator,
    PersistPolicy,
)

logger = logging.getLogger(__name__)


@dataclass
class ContainerConfig:
    """Configuration for the dependency injection container"""
    environment: str = "development"
    storage_backend: str = "redis"
    redis_url: Optional[str] = None
    span_key: str = "spansets"
    binance_api_key: Optional[str] = None
    binance_api_secret: Optional[str] = None
    binance_tld: str = "us"
    request_timeout: float = 15.0
    window_size_minutes: int = 1000
    request_delay_ms: int = 60
    persist_policy: str = "continue"

    @classmethod
    def from_settings(cls, settings: AppSettings) -> 'ContainerConfig':
        return cls(
            environment=settings.environment,
            storage_backend=settings.storage_backend,
            redis_url=settings.redis_url,
            span_key=settings.redis.span_key,
            binance_api_key=settings.exchange.binance_api_key,
            binance_api_secret=settings.exchange.binance_api_secret,
            binance_tld=settings.exchange.binance_tld,
            request_timeout=settings.exchange.request_timeout,
            window_size_minutes=settings.imports.window_size_minutes,
            request_delay_ms=settings.imports.request_delay_ms,
            persist_policy=settings.imports.persist_policy
        )


class DependencyContainer:
    """
    Dependency injection container that manages all application dependencies.
    """

    def __init__(self, config: ContainerConfig):
        self.config = config
        self._instances: Dict[str, Any] = {}
        self._initialized = False

    def initialize(self) -> None:
        """Initialize all dependencies"""
        if self._initialized:
            return

        logger.info(f"Initializing container for {self.config.environment}")

        self._initialize_storage_components()
        self._initialize_exchange_components()
        self._initialize_import_components()

        self._initialized = True
        logger.info("Container initialization complete")

    def _initialize_storage_components(self):
        """Initialize the span registry and record sink"""
        backend = self.config.storage_backend

        if backend == "memory":
            self._instances['span_registry'] = InMemorySpanRegistry()
            self._instances['record_sink'] = InMemoryRecordSink()
        elif backend == "redis":
            client = Redis.from_url(self.config.redis_url, decode_responses=True)
            self._instances['redis_client'] = client
            self._instances['span_registry'] = RedisSpanRegistry(client, key=self.config.span_key)
            self._instances['record_sink'] = RedisRecordSink(client)
        else:
            raise ValueError(f"Unknown storage backend '{backend}'")

        logger.debug(f"Storage components initialized ({backend})")

    def _initialize_exchange_components(self):
        """Initialize exchange fetch clients"""
        exchanges: Dict[str, ExchangeFetchPort] = {
            'binance': BinanceExchangeClient(
                api_key=self.config.binance_api_key,
                api_secret=self.config.binance_api_secret,
                tld=self.config.binance_tld,
                timeout=self.config.request_timeout
            ),
        }
        self._instances['exchanges'] = exchanges

        logger.debug(f"Exchange clients initialized: {sorted(exchanges)}")

    def _initialize_import_components(self):
        """Initialize the import state and coordinator"""
        state = ImportState()
        self._instances['import_state'] = state

        config = ImportConfig(
            window_size_minutes=self.config.window_size_minutes,
            request_delay=self.config.request_delay_ms / 1000,
            persist_policy=PersistPolicy(self.config.persist_policy)
        )

        self._instances['import_coordinator'] = ImportCoordinator(
            state=state,
            registry=self._instances['span_registry'],
            sink=self._instances['record_sink'],
            exchanges=self._instances['exchanges'],
            config=config
        )

        logger.debug("Import components initialized")

    def get(self, component_name: str) -> Any:
        """Get a component by name"""
        if not self._initialized:
            self.initialize()

        if component_name not in self._instances:
            raise ValueError(f"Component '{component_name}' not found in container")

        return self._instances[component_name]

    def get_import_coordinator(self) -> ImportCoordinator:
        """Get import coordinator instance"""
        return self.get('import_coordinator')

    async def check_storage(self) -> bool:
        """Ping Redis when it backs the stores"""
        client: Optional[Redis] = self._instances.get('redis_client')
        if client is None:
            return True
        try:
            await client.ping()
            logger.info("Connected to Redis")
            return True
        except Exception as e:
            logger.error(f"Redis not reachable at {self.config.redis_url}: {e}")
            return False

    async def shutdown(self) -> None:
        """Shutdown the container and cleanup resources"""
        logger.info("Shutting down container")

        for name, client in self._instances.get('exchanges', {}).items():
            try:
                await client.close()
            except Exception as e:
                logger.error(f"Error closing {name} client: {e}")

        redis_client: Optional[Redis] = self._instances.get('redis_client')
        if redis_client is not None:
            try:
                await redis_client.aclose()
            except Exception as e:
                logger.error(f"Error closing Redis client: {e}")

        self._instances.clear()
        self._initialized = False
        logger.info("Container shutdown complete")


# Global container instance
_container: Optional[DependencyContainer] = None


def get_container() -> DependencyContainer:
    """Get the global container instance"""
    global _container

    if _container is None:
        from crypto_importer.boot.settings import get_settings
        settings = get_settings()

        _container = DependencyContainer(ContainerConfig.from_settings(settings))
        _container.initialize()

    return _container


def set_container(container: Optional[DependencyContainer]) -> None:
    """Set the global container instance (for testing)"""
    global _container
    _container = container

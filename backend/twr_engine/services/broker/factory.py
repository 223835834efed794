from __future__ import annotations

from typing import Dict, Type

from twr_engine.core.enums import BrokerType
from twr_engine.core.errors.base import ConfigurationError
from twr_engine.core.errors.decorators import error_handler
from twr_engine.core.logging.logger import get_logger
from .alpaca import AlpacaBrokerClient
from .base import BaseBrokerClient

logger = get_logger(__name__)


class BrokerClientFactory:
    """
    Factory for shared broker client instances.

    One client per broker type is kept; clients are account-agnostic, so
    every account on a broker shares its session.
    """

    _registry: Dict[BrokerType, Type[BaseBrokerClient]] = {
        BrokerType.ALPACA: AlpacaBrokerClient,
    }
    _instances: Dict[BrokerType, BaseBrokerClient] = {}

    @classmethod
    def register(cls, broker_type: BrokerType, client_class: Type[BaseBrokerClient]) -> None:
        cls._registry[broker_type] = client_class

    @classmethod
    @error_handler(
        context_extractor=lambda cls, broker_type=BrokerType.ALPACA: {"broker": str(broker_type)},
        log_message="Failed to get or create broker client",
    )
    async def get_client(cls, broker_type: BrokerType = BrokerType.ALPACA) -> BaseBrokerClient:
        """
        Return the shared client for ``broker_type``, opening it if needed.

        Raises:
            ConfigurationError: If the broker type is not registered.
        """
        client = cls._instances.get(broker_type)
        if client is not None:
            return client

        client_class = cls._registry.get(broker_type)
        if client_class is None:
            raise ConfigurationError("Unsupported broker", context={"broker": str(broker_type)})

        client = client_class()
        await client.connect()
        cls._instances[broker_type] = client
        logger.info("Created broker client", broker=broker_type.value)
        return client

    @classmethod
    async def close_all(cls) -> None:
        """Close and forget every shared client."""
        instances = list(cls._instances.values())
        cls._instances.clear()
        for client in instances:
            await client.close()

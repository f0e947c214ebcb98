"""
Connector framework for cartshift.

Every supported Platform has a source connector (reads) and a destination
connector (writes). Connectors are built through create_source /
create_destination, which dispatch over the Platform enum.
"""

from typing import Any, Dict, Type

from ..exceptions import ConfigurationError
from ..models.config import ConnectionConfig, Platform
from .base import ConnectorCapability, ConnectorField, ConnectorSchema, DestinationConnector, SourceConnector
from .shopify import ShopifyDestination, ShopifySource
from .woocommerce import WooCommerceDestination, WooCommerceSource

__all__ = [
    "ConnectorCapability",
    "ConnectorField",
    "ConnectorSchema",
    "SourceConnector",
    "DestinationConnector",
    "ShopifySource",
    "ShopifyDestination",
    "WooCommerceSource",
    "WooCommerceDestination",
    "SOURCE_REGISTRY",
    "DESTINATION_REGISTRY",
    "create_source",
    "create_destination",
]

# Connector registries, one entry per Platform
SOURCE_REGISTRY: Dict[Platform, Type[SourceConnector]] = {
    Platform.SHOPIFY: ShopifySource,
    Platform.WOOCOMMERCE: WooCommerceSource,
}

DESTINATION_REGISTRY: Dict[Platform, Type[DestinationConnector]] = {
    Platform.SHOPIFY: ShopifyDestination,
    Platform.WOOCOMMERCE: WooCommerceDestination,
}

for _registry in (SOURCE_REGISTRY, DESTINATION_REGISTRY):
    _missing = set(Platform) - set(_registry)
    if _missing:
        raise RuntimeError(f"No connector registered for: {sorted(p.value for p in _missing)}")


def _platform(value: Any) -> Platform:
    try:
        return Platform(value)
    except ValueError:
        raise ConfigurationError(f"Unknown platform: {value}")


def create_source(platform: Platform, config: ConnectionConfig, **kwargs) -> SourceConnector:
    """Build the source connector for a platform.

    Raises:
        ConfigurationError: If the platform is unknown or the config is invalid
    """
    return SOURCE_REGISTRY[_platform(platform)](config, **kwargs)


def create_destination(platform: Platform, config: ConnectionConfig, **kwargs) -> DestinationConnector:
    """Build the destination connector for a platform.

    Raises:
        ConfigurationError: If the platform is unknown or the config is invalid
    """
    return DESTINATION_REGISTRY[_platform(platform)](config, **kwargs)

"""
Custom exceptions for the cartshift application.
"""


class CartshiftException(Exception):
    """Base exception for all application-specific errors."""
    pass


class ConfigurationError(CartshiftException):
    """Error related to project or connector configuration."""
    pass


class ProjectNotFoundError(CartshiftException):
    """Requested project does not exist."""
    pass


class DecryptionError(CartshiftException):
    """Stored credentials could not be authenticated with the master key."""
    pass


class ConcurrencyConflictError(CartshiftException):
    """An operation was requested while an equivalent one is already running."""
    pass


class ConnectorError(CartshiftException):
    """Error related to a connector."""
    pass


class ConnectorConnectionError(ConnectorError):
    """Connector could not reach or authenticate against its platform."""
    pass


class ItemImportError(ConnectorError):
    """A single record could not be written to the destination."""
    pass


class SchemaFetchError(ConnectorError):
    """Live field discovery failed."""
    pass


class PlatformAPIError(ConnectorError):
    """Exception raised for platform API errors."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


# Specific API error classes for connectors
class ShopifyAPIError(PlatformAPIError):
    """Exception raised for Shopify API errors."""
    pass


class WooCommerceAPIError(PlatformAPIError):
    """Exception raised for WooCommerce / WordPress API errors."""

    def __init__(self, message: str, status_code: int = None, error_code: str = None):
        super().__init__(message, status_code)
        self.error_code = error_code

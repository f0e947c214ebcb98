"""
Base connector classes for source and destination platforms.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Any, Optional, Sequence, Set, Type
from pydantic import BaseModel, Field, ValidationError
import logging

from ..exceptions import ConfigurationError, ConnectorConnectionError, ConnectorError, PlatformAPIError, SchemaFetchError
from ..models.config import ConnectionConfig, Platform
from ..models.entities import (
    Category, Coupon, Customer, EntityRecord, EntityType, ImportResult, Order, Page, Post, Product,
    ShippingZone, StoreSettings, TaxRate,
)
from .pagination import ProgressCallback

logger = logging.getLogger(__name__)


class ConnectorCapability(BaseModel):
    """Defines which entity types a connector can read or write."""
    readable: Set[EntityType] = Field(default_factory=set)
    writable: Set[EntityType] = Field(default_factory=set)


class ConnectorField(BaseModel):
    """Defines a field that a connector can read or write."""
    name: str
    description: str = ""
    data_type: str = "string"  # "string", "number", "boolean", "object", "array"
    required: bool = False


class ConnectorSchema(BaseModel):
    """Static field list for one entity type."""
    fields: List[ConnectorField] = Field(default_factory=list)

    @classmethod
    def from_names(cls, *names: str) -> "ConnectorSchema":
        return cls(fields=[ConnectorField(name=name) for name in names])

    def get_field_names(self) -> List[str]:
        """Get list of field names."""
        return [field.name for field in self.fields]


def to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def split_tags(tags: Any) -> List[str]:
    """Comma-separated tag string (or list) to a list of tags."""
    if isinstance(tags, list):
        return [str(tag) for tag in tags]
    if not tags:
        return []
    return [tag.strip() for tag in str(tags).split(",") if tag.strip()]


def with_mapped_fields(payload: Dict[str, Any], record: EntityRecord) -> Dict[str, Any]:
    """Overlay a record's mapped fields on the platform payload; mapped values win."""
    merged = dict(payload)
    merged.update(record.mapped_fields)
    return merged


def report_single_page(on_progress: Optional[ProgressCallback]) -> None:
    """Progress for a resource fetched in one call."""
    if on_progress:
        on_progress(100)


class BaseConnector(ABC):
    """Shared lifecycle for platform connectors.

    Subclasses provide the platform client; connect() performs one
    authenticated read before the connector is considered usable.
    """

    platform: Platform
    auth_model: Type[BaseModel]
    role = "Connector"

    def __init__(self, config: ConnectionConfig, session: Any = None):
        """
        Initialize the connector.

        Args:
            config: Store URL and platform credentials
            session: Optional requests session handed to the platform client

        Raises:
            ConfigurationError: If the URL is missing or the credentials have the wrong shape
        """
        if not config.is_configured():
            raise ConfigurationError(f"{self.name} requires a store URL")
        try:
            self.auth = self.auth_model(**config.auth)
        except ValidationError as e:
            # Only report field locations; inputs may contain secrets
            fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in e.errors())
            raise ConfigurationError(f"Invalid {self.platform.value} credentials: {fields}")

        self.config = config
        self._session = session
        self._client = None
        logger.info(f"Initialized {self.__class__.__name__} connector")

    @property
    def name(self) -> str:
        return f"{self.platform.value.title()} {self.role}"

    @abstractmethod
    def _create_client(self) -> Any:
        """Build the platform HTTP client."""
        pass

    @abstractmethod
    def _check_connection(self, client: Any) -> None:
        """One lightweight authenticated read; raises PlatformAPIError on failure."""
        pass

    @abstractmethod
    def get_capabilities(self) -> ConnectorCapability:
        """Return what this connector can read or write."""
        pass

    @property
    def client(self) -> Any:
        if self._client is None:
            raise ConnectorError(f"{self.name} is not connected")
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def connect(self) -> None:
        """
        Validate reachability and credentials.

        Raises:
            ConnectorConnectionError: With the platform's diagnostic message
        """
        client = self._create_client()
        try:
            self._check_connection(client)
        except PlatformAPIError as e:
            client.close()
            logger.error(f"Failed to connect to {self.name}: {e}")
            raise ConnectorConnectionError(f"Failed to connect to {self.name}: {e}") from e
        except Exception:
            client.close()
            raise
        self._client = client
        logger.info(f"Connected to {self.name}")

    def disconnect(self) -> None:
        """Release the client. Safe to call any number of times."""
        client, self._client = self._client, None
        if client is not None:
            client.close()

    # Field discovery

    def get_schema(self, entity_type: EntityType) -> ConnectorSchema:
        """Static field list for an entity type."""
        return ConnectorSchema()

    def _sample_record(self, entity_type: EntityType) -> Optional[Dict[str, Any]]:
        """One raw record from the platform, used to discover live fields."""
        return None

    def _sample_fields(self, entity_type: EntityType) -> List[str]:
        try:
            record = self._sample_record(entity_type)
        except Exception as e:
            raise SchemaFetchError(f"Could not sample {entity_type.value} from {self.name}: {e}") from e
        return list(record.keys()) if isinstance(record, dict) else []

    def _discover_fields(self, entity_type: EntityType) -> List[str]:
        fields = self.get_schema(entity_type).get_field_names()
        try:
            sampled = self._sample_fields(entity_type)
        except SchemaFetchError as e:
            logger.warning(f"{e}; using static field list")
            return fields

        for name in sampled:
            if name not in fields:
                fields.append(name)
        return fields


class SourceConnector(BaseConnector):
    """Reads entity records from a platform."""

    role = "Source"

    def supports_read(self, entity_type: EntityType) -> bool:
        return entity_type in self.get_capabilities().readable

    def get_export_fields(self, entity_type: EntityType) -> List[str]:
        """Best-effort list of source field names for an entity type."""
        return self._discover_fields(entity_type)

    def get_entities(self, entity_type: EntityType, on_progress: Optional[ProgressCallback] = None) -> List[EntityRecord]:
        """
        Read every record of one entity type.

        Args:
            entity_type: What to read
            on_progress: Optional callback receiving 0-100 as pages are consumed

        Raises:
            NotImplementedError: If this connector cannot read the entity type
        """
        if not self.supports_read(entity_type):
            raise NotImplementedError(f"{self.__class__.__name__} does not support reading {entity_type.value}")

        if entity_type == EntityType.STORE_SETTINGS:
            settings = self._read_store_settings(on_progress)
            return [settings] if settings is not None else []

        readers: Dict[EntityType, Callable[[Optional[ProgressCallback]], List[Any]]] = {
            EntityType.PRODUCTS: self._read_products,
            EntityType.CUSTOMERS: self._read_customers,
            EntityType.ORDERS: self._read_orders,
            EntityType.POSTS: self._read_posts,
            EntityType.PAGES: self._read_pages,
            EntityType.CATEGORIES: self._read_categories,
            EntityType.SHIPPING_ZONES: self._read_shipping_zones,
            EntityType.TAXES: self._read_tax_rates,
            EntityType.COUPONS: self._read_coupons,
        }
        records = readers[entity_type](on_progress)
        logger.info(f"Read {len(records)} {entity_type.value} from {self.name}")
        return records

    def get_products(self, on_progress: Optional[ProgressCallback] = None) -> List[Product]:
        return self.get_entities(EntityType.PRODUCTS, on_progress)

    def get_customers(self, on_progress: Optional[ProgressCallback] = None) -> List[Customer]:
        return self.get_entities(EntityType.CUSTOMERS, on_progress)

    def get_orders(self, on_progress: Optional[ProgressCallback] = None) -> List[Order]:
        return self.get_entities(EntityType.ORDERS, on_progress)

    def get_posts(self, on_progress: Optional[ProgressCallback] = None) -> List[Post]:
        return self.get_entities(EntityType.POSTS, on_progress)

    def get_pages(self, on_progress: Optional[ProgressCallback] = None) -> List[Page]:
        return self.get_entities(EntityType.PAGES, on_progress)

    def get_categories(self, on_progress: Optional[ProgressCallback] = None) -> List[Category]:
        return self.get_entities(EntityType.CATEGORIES, on_progress)

    def get_shipping_zones(self, on_progress: Optional[ProgressCallback] = None) -> List[ShippingZone]:
        return self.get_entities(EntityType.SHIPPING_ZONES, on_progress)

    def get_tax_rates(self, on_progress: Optional[ProgressCallback] = None) -> List[TaxRate]:
        return self.get_entities(EntityType.TAXES, on_progress)

    def get_coupons(self, on_progress: Optional[ProgressCallback] = None) -> List[Coupon]:
        return self.get_entities(EntityType.COUPONS, on_progress)

    def get_store_settings(self, on_progress: Optional[ProgressCallback] = None) -> Optional[StoreSettings]:
        records = self.get_entities(EntityType.STORE_SETTINGS, on_progress)
        return records[0] if records else None

    # Platform-specific readers

    def _read_products(self, on_progress: Optional[ProgressCallback]) -> List[Product]:
        raise NotImplementedError()

    def _read_customers(self, on_progress: Optional[ProgressCallback]) -> List[Customer]:
        raise NotImplementedError()

    def _read_orders(self, on_progress: Optional[ProgressCallback]) -> List[Order]:
        raise NotImplementedError()

    def _read_posts(self, on_progress: Optional[ProgressCallback]) -> List[Post]:
        raise NotImplementedError()

    def _read_pages(self, on_progress: Optional[ProgressCallback]) -> List[Page]:
        raise NotImplementedError()

    def _read_categories(self, on_progress: Optional[ProgressCallback]) -> List[Category]:
        raise NotImplementedError()

    def _read_shipping_zones(self, on_progress: Optional[ProgressCallback]) -> List[ShippingZone]:
        raise NotImplementedError()

    def _read_tax_rates(self, on_progress: Optional[ProgressCallback]) -> List[TaxRate]:
        raise NotImplementedError()

    def _read_coupons(self, on_progress: Optional[ProgressCallback]) -> List[Coupon]:
        raise NotImplementedError()

    def _read_store_settings(self, on_progress: Optional[ProgressCallback]) -> Optional[StoreSettings]:
        raise NotImplementedError()


class DestinationConnector(BaseConnector):
    """Writes entity records to a platform, one ImportResult per record."""

    role = "Destination"

    def supports_write(self, entity_type: EntityType) -> bool:
        return entity_type in self.get_capabilities().writable

    def get_import_fields(self, entity_type: EntityType) -> List[str]:
        """Best-effort list of destination field names for an entity type."""
        return self._discover_fields(entity_type)

    def import_entities(self, entity_type: EntityType, records: Sequence[EntityRecord]) -> List[ImportResult]:
        """
        Write records of one entity type.

        A failure on one record is captured in its ImportResult and the
        remaining records are still written.

        Raises:
            NotImplementedError: If this connector cannot write the entity type
        """
        if not self.supports_write(entity_type):
            raise NotImplementedError(f"{self.__class__.__name__} does not support writing {entity_type.value}")

        writers: Dict[EntityType, Callable[[Any], Any]] = {
            EntityType.PRODUCTS: self._write_product,
            EntityType.CUSTOMERS: self._write_customer,
            EntityType.ORDERS: self._write_order,
            EntityType.POSTS: self._write_post,
            EntityType.PAGES: self._write_page,
            EntityType.CATEGORIES: self._write_category,
            EntityType.SHIPPING_ZONES: self._write_shipping_zone,
            EntityType.TAXES: self._write_tax_rate,
            EntityType.COUPONS: self._write_coupon,
            EntityType.STORE_SETTINGS: self._write_store_settings,
        }
        return self._import_each(entity_type, records, writers[entity_type])

    def _import_each(
        self, entity_type: EntityType, records: Sequence[EntityRecord], create: Callable[[Any], Any]
    ) -> List[ImportResult]:
        results = []
        for record in records:
            try:
                new_id = create(record)
            except Exception as e:
                logger.warning(f"Failed to import {entity_type.value} {record.original_id} into {self.name}: {e}")
                results.append(ImportResult(original_id=record.original_id, success=False, error=str(e)))
                continue

            record.new_id = str(new_id) if new_id is not None else None
            results.append(ImportResult(original_id=record.original_id, success=True, new_id=record.new_id))
        return results

    def import_products(self, records: Sequence[Product]) -> List[ImportResult]:
        return self.import_entities(EntityType.PRODUCTS, records)

    def import_customers(self, records: Sequence[Customer]) -> List[ImportResult]:
        return self.import_entities(EntityType.CUSTOMERS, records)

    def import_orders(self, records: Sequence[Order]) -> List[ImportResult]:
        return self.import_entities(EntityType.ORDERS, records)

    def import_posts(self, records: Sequence[Post]) -> List[ImportResult]:
        return self.import_entities(EntityType.POSTS, records)

    def import_pages(self, records: Sequence[Page]) -> List[ImportResult]:
        return self.import_entities(EntityType.PAGES, records)

    def import_categories(self, records: Sequence[Category]) -> List[ImportResult]:
        return self.import_entities(EntityType.CATEGORIES, records)

    def import_shipping_zones(self, records: Sequence[ShippingZone]) -> List[ImportResult]:
        return self.import_entities(EntityType.SHIPPING_ZONES, records)

    def import_tax_rates(self, records: Sequence[TaxRate]) -> List[ImportResult]:
        return self.import_entities(EntityType.TAXES, records)

    def import_coupons(self, records: Sequence[Coupon]) -> List[ImportResult]:
        return self.import_entities(EntityType.COUPONS, records)

    def import_store_settings(self, settings: StoreSettings) -> ImportResult:
        return self.import_entities(EntityType.STORE_SETTINGS, [settings])[0]

    # Platform-specific writers; each returns the new platform id

    def _write_product(self, record: Product) -> Any:
        raise NotImplementedError()

    def _write_customer(self, record: Customer) -> Any:
        raise NotImplementedError()

    def _write_order(self, record: Order) -> Any:
        raise NotImplementedError()

    def _write_post(self, record: Post) -> Any:
        raise NotImplementedError()

    def _write_page(self, record: Page) -> Any:
        raise NotImplementedError()

    def _write_category(self, record: Category) -> Any:
        raise NotImplementedError()

    def _write_shipping_zone(self, record: ShippingZone) -> Any:
        raise NotImplementedError()

    def _write_tax_rate(self, record: TaxRate) -> Any:
        raise NotImplementedError()

    def _write_coupon(self, record: Coupon) -> Any:
        raise NotImplementedError()

    def _write_store_settings(self, record: StoreSettings) -> Any:
        raise NotImplementedError()

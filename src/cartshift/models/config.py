"""
Configuration models for migration projects.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from .entities import EntityType


class Platform(str, Enum):
    """Supported e-commerce platforms."""
    SHOPIFY = "shopify"
    WOOCOMMERCE = "woocommerce"


class ConnectionConfig(BaseModel):
    """Where and how to reach one side of a migration."""
    url: str = Field("", description="Store URL")
    auth: Dict[str, Any] = Field(default_factory=dict, description="Platform-specific credentials")

    def is_configured(self) -> bool:
        return bool(self.url.strip())


class ShopifyAuth(BaseModel):
    """Credentials for token-auth platforms."""
    token: str = Field(..., min_length=1, description="Admin API access token")


class WooCommerceAuth(BaseModel):
    """Credentials for key/secret platforms."""
    key: str = Field(..., min_length=1, description="REST API consumer key")
    secret: str = Field(..., min_length=1, description="REST API consumer secret")
    wp_user: Optional[str] = Field(None, description="WordPress user for content/settings APIs")
    wp_app_password: Optional[str] = Field(None, description="WordPress application password")

    @model_validator(mode="before")
    @classmethod
    def accept_camel_case(cls, data: Any) -> Any:
        # Older project records stored the WordPress login as wpUser/wpAppPassword
        if isinstance(data, dict):
            data = dict(data)
            if "wpUser" in data and "wp_user" not in data:
                data["wp_user"] = data.pop("wpUser")
            if "wpAppPassword" in data and "wp_app_password" not in data:
                data["wp_app_password"] = data.pop("wpAppPassword")
        return data

    @property
    def has_wordpress_login(self) -> bool:
        return bool(self.wp_user and self.wp_app_password)


class EntityMapping(BaseModel):
    """Per-entity migration switch plus destination field -> source field map."""
    enabled: bool = Field(True, description="Whether this entity type is migrated")
    fields: Dict[str, str] = Field(default_factory=dict, description="destination field -> source field ('' = skip)")


def default_mapping() -> Dict[EntityType, EntityMapping]:
    return {entity_type: EntityMapping() for entity_type in EntityType}


class Project(BaseModel):
    """
    A migration project: one source, one destination, one mapping per entity type.
    """
    id: str = Field(..., description="Unique identifier for this project")
    name: str = Field("Untitled Project", description="Human-readable name")
    source_type: Platform = Field(Platform.SHOPIFY, description="Source platform")
    dest_type: Platform = Field(Platform.WOOCOMMERCE, description="Destination platform")

    source: ConnectionConfig = Field(default_factory=ConnectionConfig)
    destination: ConnectionConfig = Field(default_factory=ConnectionConfig)

    mapping: Dict[EntityType, EntityMapping] = Field(default_factory=default_mapping)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("mapping", mode="after")
    @classmethod
    def fill_missing_entities(cls, value: Dict[EntityType, EntityMapping]) -> Dict[EntityType, EntityMapping]:
        """Every known entity type gets a mapping record."""
        for entity_type in EntityType:
            if entity_type not in value:
                value[entity_type] = EntityMapping()
        return value

    def mapping_for(self, entity_type: EntityType) -> EntityMapping:
        return self.mapping.get(entity_type) or EntityMapping()

    def is_configured(self) -> bool:
        return self.source.is_configured() and self.destination.is_configured()


class ProjectCreate(BaseModel):
    """Payload for creating a project."""
    name: str = "Untitled Project"
    source_type: Platform = Platform.SHOPIFY
    dest_type: Platform = Platform.WOOCOMMERCE
    source: ConnectionConfig = Field(default_factory=ConnectionConfig)
    destination: ConnectionConfig = Field(default_factory=ConnectionConfig)


class ProjectUpdate(BaseModel):
    """Partial update; only fields that are set are applied."""
    name: Optional[str] = None
    source: Optional[ConnectionConfig] = None
    destination: Optional[ConnectionConfig] = None
    mapping: Optional[Dict[EntityType, EntityMapping]] = None

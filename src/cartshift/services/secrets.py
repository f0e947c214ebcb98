"""
Secret Manager service for retrieving the credential vault's master key.
"""

import logging
import os
from typing import Dict, Optional
from google.cloud import secretmanager

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class SecretManagerService:
    """Service for retrieving secrets from Google Secret Manager."""

    def __init__(self, project_id: Optional[str] = None, client: Optional[secretmanager.SecretManagerServiceClient] = None):
        """Initialize Secret Manager service."""
        self.project_id = project_id or os.getenv("GOOGLE_CLOUD_PROJECT")
        if not self.project_id:
            raise ConfigurationError("GOOGLE_CLOUD_PROJECT must be set to read secrets from Secret Manager")

        self.client = client or secretmanager.SecretManagerServiceClient()
        self._cache: Dict[str, str] = {}

    def get_secret(self, secret_name: str, version: str = "latest") -> str:
        """Retrieve a secret value from Secret Manager."""
        cache_key = f"{secret_name}:{version}"
        if cache_key in self._cache:
            return self._cache[cache_key]

        secret_path = f"projects/{self.project_id}/secrets/{secret_name}/versions/{version}"
        try:
            response = self.client.access_secret_version(request={"name": secret_path})
        except Exception as e:
            logger.error(f"Failed to retrieve secret {secret_name}: {e}")
            raise ConfigurationError(f"Could not read secret {secret_name}: {e}")

        secret_value = response.payload.data.decode("UTF-8").strip()
        self._cache[cache_key] = secret_value
        logger.info(f"Retrieved secret: {secret_name}")
        return secret_value

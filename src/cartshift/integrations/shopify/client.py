"""Shopify Admin REST API client."""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import requests

from ...core.config import get_http_timeout
from ...exceptions import ShopifyAPIError
from ..session import create_session

logger = logging.getLogger(__name__)

API_VERSION = "2023-10"


def shop_domain(store_url: str) -> str:
    """Strip protocol and trailing slashes from a store URL."""
    return re.sub(r"^https?://", "", store_url.strip()).rstrip("/")


class ShopifyClient:
    """Client for the Shopify Admin REST API."""

    def __init__(
        self,
        store_url: str,
        access_token: str,
        timeout: Optional[int] = None,
        retries: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the Shopify client.

        Args:
            store_url: Store domain, with or without protocol (e.g. my-shop.myshopify.com)
            access_token: Admin API access token
            timeout: Per-request timeout in seconds
            retries: Retries for throttled requests
            session: Preconfigured session (used by tests)
        """
        self.base_url = f"https://{shop_domain(store_url)}/admin/api/{API_VERSION}"
        self.timeout = timeout or get_http_timeout()

        self.session = session or create_session(retries)
        self.session.headers.update({
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        })

    def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        """Make a request to the Shopify API.

        Raises:
            ShopifyAPIError: If the request fails or returns an error status
        """
        url = f"{self.base_url}{endpoint}"

        try:
            logger.debug(f"Making {method} request to {url} with params: {params}")
            response = self.session.request(method, url, params=params, json=json_body, timeout=self.timeout)
            response.raise_for_status()
            return response

        except requests.exceptions.RequestException as e:
            response = getattr(e, "response", None)
            if response is not None:
                try:
                    body = response.json()
                    detail = body.get("errors", body) if isinstance(body, dict) else body
                except ValueError:
                    detail = response.text
                logger.error(f"Shopify API {method} {endpoint} failed with HTTP {response.status_code}: {detail}")
                raise ShopifyAPIError(f"HTTP {response.status_code}: {detail}", status_code=response.status_code)
            logger.error(f"Shopify API request failed: {e}")
            raise ShopifyAPIError(f"Request failed: {str(e)}")

    def _decode(self, response: requests.Response, endpoint: str) -> Dict[str, Any]:
        """Parse a successful response body.

        Raises:
            ShopifyAPIError: If the body is not a JSON object
        """
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"Shopify API {endpoint} returned a non-JSON body (HTTP {response.status_code})")
            raise ShopifyAPIError(f"Invalid JSON from {endpoint}: {e}", status_code=response.status_code)
        if not isinstance(body, dict):
            raise ShopifyAPIError(f"Unexpected response from {endpoint}: expected an object",
                                  status_code=response.status_code)
        return body

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._decode(self._make_request("GET", endpoint, params=params), endpoint)

    def post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._decode(self._make_request("POST", endpoint, json_body=payload), endpoint)

    def get_shop(self) -> Dict[str, Any]:
        """Fetch shop details. Used as the connection check."""
        return self.get("/shop.json").get("shop", {})

    def count(self, resource: str, params: Optional[Dict[str, Any]] = None) -> Optional[int]:
        """Declared size of a collection, or None when the platform does not report one."""
        try:
            return int(self.get(f"/{resource}/count.json", params=params).get("count"))
        except (ShopifyAPIError, TypeError, ValueError) as e:
            logger.debug(f"No count available for {resource}: {e}")
            return None

    def list_page(
        self,
        resource: str,
        key: str,
        limit: int,
        params: Optional[Dict[str, Any]] = None,
        page_info: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """Fetch one page of a cursor-paginated list.

        Returns:
            (items, page_info of the next page or None)
        """
        if page_info:
            # Shopify rejects filters alongside a cursor
            query = {"limit": limit, "page_info": page_info}
        else:
            query = dict(params or {})
            query["limit"] = limit

        response = self._make_request("GET", f"/{resource}.json", params=query)
        items = self._decode(response, f"/{resource}.json").get(key, [])
        return items, self.next_page_info(response)

    @staticmethod
    def next_page_info(response: requests.Response) -> Optional[str]:
        """Cursor for the next page from the Link header."""
        next_link = response.links.get("next", {}).get("url")
        if not next_link:
            return None
        values = parse_qs(urlparse(next_link).query).get("page_info")
        return values[0] if values else None

    def close(self) -> None:
        self.session.close()

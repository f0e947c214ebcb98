"""WooCommerce REST API and WordPress REST API client."""

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from ...core.config import get_http_timeout
from ...exceptions import WooCommerceAPIError
from ..session import create_session

logger = logging.getLogger(__name__)

INVALID_PAGE_CODE = "rest_post_invalid_page_number"


def site_url(store_url: str) -> str:
    """Normalize a store URL to scheme://host[/path] without a trailing slash."""
    url = store_url.strip().rstrip("/")
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


def _int_header(response: requests.Response, name: str) -> Optional[int]:
    value = response.headers.get(name)
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


class WooCommerceClient:
    """Client for the WooCommerce v3 API plus the WordPress v2 content API.

    Store data is authenticated with the consumer key/secret as query
    parameters. Posts, pages and site settings live in the WordPress API,
    which needs a WordPress user and application password for writes.
    """

    def __init__(
        self,
        store_url: str,
        consumer_key: str,
        consumer_secret: str,
        wp_user: Optional[str] = None,
        wp_app_password: Optional[str] = None,
        timeout: Optional[int] = None,
        retries: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        base = site_url(store_url)
        self.api_url = f"{base}/wp-json/wc/v3"
        self.wp_url = f"{base}/wp-json/wp/v2"
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.wp_auth = (wp_user, wp_app_password) if wp_user and wp_app_password else None
        self.timeout = timeout or get_http_timeout()
        self.session = session or create_session(retries)

    @property
    def has_wordpress_login(self) -> bool:
        return self.wp_auth is not None

    def _make_request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
        auth: Optional[Tuple[str, str]] = None,
    ) -> requests.Response:
        """Make a request and raise WooCommerceAPIError on failure.

        The error carries the HTTP status and the WordPress error code
        (e.g. woocommerce_rest_authentication_error) when the body has one.
        """
        try:
            logger.debug(f"Making {method} request to {url}")
            response = self.session.request(method, url, params=params, json=json_body, auth=auth, timeout=self.timeout)
            response.raise_for_status()
            return response

        except requests.exceptions.RequestException as e:
            response = getattr(e, "response", None)
            if response is None:
                logger.error(f"WooCommerce API request failed: {e}")
                raise WooCommerceAPIError(f"Request failed: {str(e)}")

            error_code = None
            try:
                body = response.json()
                if isinstance(body, dict):
                    error_code = body.get("code")
                    detail = body.get("message") or body
                else:
                    detail = body
            except ValueError:
                detail = response.text
            logger.error(f"WooCommerce API {method} {url} failed with HTTP {response.status_code}: {detail}")
            raise WooCommerceAPIError(
                f"HTTP {response.status_code}: {detail}",
                status_code=response.status_code,
                error_code=error_code,
            )

    def _decode(self, response: requests.Response, expected: type = object) -> Any:
        """Parse a successful response body.

        Raises:
            WooCommerceAPIError: If the body is not JSON, or not of the expected type
        """
        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"WooCommerce API {response.url} returned a non-JSON body (HTTP {response.status_code})")
            raise WooCommerceAPIError(f"Invalid JSON from {response.url}: {e}", status_code=response.status_code)
        if not isinstance(body, expected):
            raise WooCommerceAPIError(
                f"Unexpected response from {response.url}: expected a {expected.__name__}",
                status_code=response.status_code,
            )
        return body

    # WooCommerce API

    def wc_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
    ) -> requests.Response:
        query = dict(params or {})
        query["consumer_key"] = self.consumer_key
        query["consumer_secret"] = self.consumer_secret
        return self._make_request(method, f"{self.api_url}{endpoint}", params=query, json_body=json_body)

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._decode(self.wc_request("GET", endpoint, params=params))

    def post(self, endpoint: str, payload: Any) -> Any:
        return self._decode(self.wc_request("POST", endpoint, json_body=payload))

    def put(self, endpoint: str, payload: Any) -> Any:
        return self._decode(self.wc_request("PUT", endpoint, json_body=payload))

    def get_system_status(self) -> Dict[str, Any]:
        """Fetch system status. Used as the connection check."""
        return self._decode(self.wc_request("GET", "/system_status"), dict)

    def list_page(
        self, endpoint: str, page: int, per_page: int, params: Optional[Dict[str, Any]] = None
    ) -> Tuple[List[Any], Optional[int], Optional[int]]:
        """Fetch one page of a WooCommerce list.

        Returns:
            (items, declared total from X-WP-Total, total pages from X-WP-TotalPages)
        """
        query = dict(params or {})
        query.update({"page": page, "per_page": per_page})
        response = self.wc_request("GET", endpoint, params=query)
        return self._decode(response, list), _int_header(response, "X-WP-Total"), _int_header(response, "X-WP-TotalPages")

    # WordPress API

    def wp_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Any = None,
    ) -> requests.Response:
        return self._make_request(method, f"{self.wp_url}{endpoint}", params=params, json_body=json_body, auth=self.wp_auth)

    def wp_list_page(
        self, endpoint: str, page: int, per_page: int, params: Optional[Dict[str, Any]] = None
    ) -> Tuple[List[Any], Optional[int], Optional[int]]:
        """Fetch one page of a WordPress list; a page past the end is an empty page."""
        query = dict(params or {})
        query.update({"page": page, "per_page": per_page})
        try:
            response = self.wp_request("GET", endpoint, params=query)
        except WooCommerceAPIError as e:
            if e.status_code == 400 and e.error_code == INVALID_PAGE_CODE:
                return [], None, None
            raise
        return self._decode(response, list), _int_header(response, "X-WP-Total"), _int_header(response, "X-WP-TotalPages")

    def wp_post(self, endpoint: str, payload: Any) -> Any:
        return self._decode(self.wp_request("POST", endpoint, json_body=payload))

    def wp_get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._decode(self.wp_request("GET", endpoint, params=params))

    def close(self) -> None:
        self.session.close()

"""HTTP session setup shared by the platform clients."""

import logging
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..core.config import get_http_retries

logger = logging.getLogger(__name__)

USER_AGENT = "cartshift/1.0.0"


def create_session(retries: Optional[int] = None, headers: Optional[Dict[str, str]] = None) -> requests.Session:
    """Create a session, optionally retrying throttled (429) requests.

    Only 429 is retried: a throttled request was never applied by the
    platform, so repeating a POST cannot create a duplicate.

    Args:
        retries: Maximum retries; defaults to CARTSHIFT_HTTP_RETRIES (0 disables)
        headers: Default headers for every request
    """
    session = requests.Session()
    retries = get_http_retries() if retries is None else retries

    if retries > 0:
        retry_strategy = Retry(
            total=retries,
            status_forcelist=[429],
            allowed_methods=frozenset({"GET", "POST", "PUT"}),
            backoff_factor=1,
            respect_retry_after_header=True,
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        logger.debug(f"HTTP session will retry throttled requests up to {retries} times")

    session.headers.update({"User-Agent": USER_AGENT})
    if headers:
        session.headers.update(headers)
    return session

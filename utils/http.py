"""HTTP utilities for configuring reusable sessions."""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

DEFAULT_STATUS_FORCELIST = (429, 500, 502, 503, 504)

# Vertex AI publisher models are served from a regional host; the location
# appears both in the hostname and in the resource path.
VERTEX_HOST_TEMPLATE = "https://{location}-aiplatform.googleapis.com"
VERTEX_API_VERSION = "v1"


_LOGGER = logging.getLogger(__name__)


def build_auth_headers(
    *, token: Optional[str] = None, session: Optional[requests.Session] = None
) -> dict[str, str]:
    """Return default JSON headers with optional bearer token."""

    headers: dict[str, str] = {
        "Accept": "application/json",
        "Content-Type": "application/json",
    }
    auth_value: Optional[str] = None
    if token:
        auth_value = f"Bearer {token}"
    elif session is not None:
        auth_value = session.headers.get("Authorization")
    if auth_value:
        headers["Authorization"] = auth_value
    return headers


def get_session(auth_token: Optional[str] = None) -> requests.Session:
    """Return a configured :class:`requests.Session` with transport retries.

    Parameters
    ----------
    auth_token:
        OAuth access token for the Google Cloud project. When provided, the
        ``Authorization`` header will be configured automatically.
    """

    session = requests.Session()
    session.headers.update(build_auth_headers(token=auth_token))

    retry = Retry(
        total=3,
        status_forcelist=DEFAULT_STATUS_FORCELIST,
        backoff_factor=0.4,
        allowed_methods=("GET", "POST"),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(pool_connections=4, pool_maxsize=4, max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def build_vertex_predict_url(project_id: str, location: str, model_id: str) -> str:
    """Construct the ``:predict`` URL of a Google publisher model."""

    base = VERTEX_HOST_TEMPLATE.format(location=location.strip())
    return (
        f"{base}/{VERTEX_API_VERSION}/projects/{project_id.strip()}"
        f"/locations/{location.strip()}/publishers/google/models/{model_id.strip()}:predict"
    )


def post_json(
    session: requests.Session,
    url: str,
    payload: Mapping[str, Any],
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout: int = 60,
    token: Optional[str] = None,
) -> dict:
    """POST ``payload`` as JSON and return the decoded JSON body."""

    _LOGGER.debug("post_json URL=%s", url)
    auth_headers: Dict[str, str] = build_auth_headers(
        token=(token.strip() if isinstance(token, str) else None), session=session
    )
    if headers:
        auth_headers.update(headers)

    response = session.post(url, json=dict(payload), headers=auth_headers, timeout=timeout)
    response.raise_for_status()

    content_type = response.headers.get("Content-Type", "")
    if "application/json" not in content_type:
        snippet = response.text[:200]
        raise RuntimeError(f"Non-JSON response from {url}: {snippet}")

    return response.json()

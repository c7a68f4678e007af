"""CA directory bootstrap."""

from __future__ import annotations

import logging

import httpx

from cert_issuer.errors import NetworkError, ProtocolError
from cert_issuer.models import Directory
from cert_issuer.transport import USER_AGENT

logger = logging.getLogger(__name__)


def resolve_directory(directory_url: str, _http_client: httpx.Client | None = None) -> Directory:
    """Fetch and validate the CA's service directory.

    The directory is the one unauthenticated resource in the protocol, so it
    is fetched with a plain GET rather than through the signing transport.
    """
    client = _http_client or httpx.Client(headers={"User-Agent": USER_AGENT}, timeout=30)
    try:
        resp = client.get(directory_url)
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPStatusError as error:
        raise ProtocolError(
            f"get directory at '{directory_url}': server returned {error.response.status_code}"
        ) from error
    except httpx.HTTPError as error:
        raise NetworkError(f"get directory at '{directory_url}': {error}") from error
    except ValueError as error:
        raise ProtocolError(f"get directory at '{directory_url}': response is not JSON") from error
    finally:
        if _http_client is None:
            client.close()

    directory = Directory.from_json(data)
    logger.info("Loaded ACME directory %s", directory_url)
    return directory

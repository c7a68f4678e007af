"""Challenge validation: trigger the CA and poll until it decides."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping

from cert_issuer.errors import ChallengeError, ProtocolError
from cert_issuer.models import STATUS_INVALID, STATUS_PENDING, STATUS_PROCESSING, STATUS_VALID
from cert_issuer.transport import JSONPayload, SigningTransport, get_header

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 5


def _retry_after(headers: Mapping[str, str] | None) -> int:
    raw = get_header(headers, "Retry-After")
    try:
        seconds = int(raw)
    except (TypeError, ValueError):
        # The CA MUST send Retry-After; poll at the default rate when it doesn't
        return DEFAULT_RETRY_AFTER
    return seconds if seconds >= 0 else DEFAULT_RETRY_AFTER


def validate(transport: SigningTransport, domain: str, challenge_url: str) -> None:
    """Tell the CA the proof is in place and block until the challenge is valid or invalid.

    There is no overall deadline; the loop ends on valid, invalid, an
    unexpected status, or a transport error.
    """
    # Challenge initiation is an empty JSON object, not POST-as-GET
    headers, body = transport.post(challenge_url, JSONPayload({}))

    while True:
        if not isinstance(body, dict):
            raise ProtocolError(f"Challenge {challenge_url} is not a JSON object")

        status = body.get("status")
        if status == STATUS_VALID:
            logger.info("[%s] The server validated our request", domain)
            return
        if status == STATUS_INVALID:
            raise ChallengeError(domain, body.get("error"))
        if status not in (STATUS_PENDING, STATUS_PROCESSING):
            raise ProtocolError(f"[{domain}] the server returned an unexpected state: {status!r}")

        delay = _retry_after(headers)
        logger.debug("[%s] Challenge is %s, checking again in %ds", domain, status, delay)
        time.sleep(delay)
        headers, body = transport.post_as_get(challenge_url)

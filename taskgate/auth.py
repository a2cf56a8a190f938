"""Bearer token handling for the MCP HTTP endpoint."""

from __future__ import annotations

import hmac
import secrets
from typing import Optional, Tuple

BEARER_PREFIX = "bearer "
CLIENT_ID_SEPARATOR = "+"


def generate_token(nbytes: int = 32) -> str:
    """Return a new random token safe to embed in an ``Authorization`` header."""

    # token_urlsafe never emits ``+`` so the combined bearer form stays parseable
    return secrets.token_urlsafe(nbytes)


def parse_bearer(header_value: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Split an ``Authorization`` value into ``(token, client_id)``.

    Both ``Bearer <token>`` and the combined ``Bearer <token>+<client-id>``
    forms are accepted. Anything that is not a bearer credential yields
    ``(None, None)``.
    """

    if not header_value:
        return None, None
    value = header_value.strip()
    if not value.lower().startswith(BEARER_PREFIX):
        return None, None

    credential = value[len(BEARER_PREFIX):].strip()
    if not credential:
        return None, None

    token, separator, client_id = credential.partition(CLIENT_ID_SEPARATOR)
    if not separator:
        return credential, None
    return token or None, client_id or None


def tokens_match(provided: Optional[str], expected: Optional[str]) -> bool:
    """Exact comparison of ``provided`` against ``expected``.

    A missing token on either side never matches.
    """

    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))

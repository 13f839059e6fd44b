"""Principal identity used to namespace storage keys and history records."""
import re
from typing import Protocol

_PRINCIPAL_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class IdentityProvider(Protocol):
    def principal_id(self) -> str:
        ...


def validate_principal(principal: str) -> str:
    """Return ``principal`` if it is safe to embed in a storage key."""
    if not _PRINCIPAL_RE.match(principal or ""):
        raise ValueError(f"Invalid principal id: {principal!r}")
    return principal


class StaticIdentityProvider:
    """Always answers with one principal. 'default' is the anonymous identity."""

    def __init__(self, user_id: str = "default"):
        self._user_id = validate_principal(user_id)

    def principal_id(self) -> str:
        return self._user_id

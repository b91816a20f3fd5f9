"""Typed failures for exchange access."""

from __future__ import annotations


class InvalidKeyMaterial(ValueError):
    """Credentials cannot be used to sign: unparseable key, wrong type or curve, unknown algorithm."""


class ExchangeRequestFailed(Exception):
    """An exchange call did not produce a usable 2xx response.

    ``status`` is None for transport failures (timeout, connection refused).
    """

    def __init__(self, status: int | None, body: str = "", path: str = "") -> None:
        self.status = status
        self.body = body
        self.path = path
        label = status if status is not None else "network"
        super().__init__(f"exchange request failed ({label}) for {path}: {body[:200]}")

    @property
    def is_auth_failure(self) -> bool:
        """401/403: usually bad key material or clock skew."""
        return self.status in (401, 403)

    @property
    def is_rate_limited(self) -> bool:
        return self.status == 429

    @property
    def is_server_error(self) -> bool:
        return self.status is not None and self.status >= 500

    def to_dict(self) -> dict:
        return {"status": self.status, "path": self.path, "body": self.body[:500]}

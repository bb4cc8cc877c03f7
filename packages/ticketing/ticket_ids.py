from __future__ import annotations

import hashlib
from datetime import datetime

from .errors import DigestUnavailableError

DEFAULT_BRAND = "VIBE"
DEFAULT_DIGEST_ALGORITHM = "sha256"
DIGEST_PREFIX_LENGTH = 8


def to_unix_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class TicketIdGenerator:
    """Produce ``<BRAND>_<unixMillis>_<DIGEST>[_<n>]`` ticket identifiers.

    The digest covers buyer id, event id and the purchase timestamp, so the
    buyer never appears in cleartext. Siblings from one order share the
    ``<BRAND>_<unixMillis>_<DIGEST>`` root and are told apart by the suffix.
    """

    def __init__(
        self,
        *,
        brand: str = DEFAULT_BRAND,
        algorithm: str = DEFAULT_DIGEST_ALGORITHM,
        prefix_length: int = DIGEST_PREFIX_LENGTH,
    ) -> None:
        if not brand or "_" in brand:
            raise ValueError("brand must be a non-empty string without underscores")
        if prefix_length < 1:
            raise ValueError("prefix_length must be positive")
        self._brand = brand
        self._algorithm = algorithm
        self._prefix_length = prefix_length
        self.ensure_available()

    def ensure_available(self) -> None:
        """Raise ``DigestUnavailableError`` unless ids can be produced right now."""

        self._digest(b"")

    def generate(
        self,
        buyer_id: str,
        event_id: str,
        purchased_at: datetime,
        sequence_index: int = 0,
    ) -> str:
        if sequence_index < 0:
            raise ValueError("sequence_index must be >= 0")

        millis = to_unix_millis(purchased_at)
        digest = self._digest(f"{buyer_id}{event_id}{millis}".encode("utf-8"))
        ticket_id = f"{self._brand}_{millis}_{digest[: self._prefix_length].upper()}"
        if sequence_index > 0:
            ticket_id = f"{ticket_id}_{sequence_index + 1}"
        return ticket_id

    def generate_batch(
        self, buyer_id: str, event_id: str, purchased_at: datetime, quantity: int
    ) -> list[str]:
        return [self.generate(buyer_id, event_id, purchased_at, index) for index in range(quantity)]

    def _digest(self, data: bytes) -> str:
        # Variable-length digests (shake_*) fail in hexdigest() without a length.
        try:
            hasher = hashlib.new(self._algorithm)
            hasher.update(data)
            digest = hasher.hexdigest()
        except (ValueError, TypeError) as exc:
            raise DigestUnavailableError(
                f"Digest algorithm '{self._algorithm}' is not available"
            ) from exc
        if len(digest) < self._prefix_length:
            raise DigestUnavailableError(
                f"Digest algorithm '{self._algorithm}' is shorter than {self._prefix_length} hex characters"
            )
        return digest

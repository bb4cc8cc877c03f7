"""Signed payload embedded in a ticket's scannable code.

Layout::

    GP1.<ticket_id>.<event_id>.<buyer_id>.<ticket_type_id>.<tag>

Every segment after the version is unpadded URL-safe base64. The tag is an
HMAC-SHA256 over everything before the last dot, keyed with a secret only
the issuing system knows.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac

from .errors import DecodeFailure, IntegrityKeyError, PayloadDecodeError
from .models import TicketClaims

PAYLOAD_VERSION = "GP1"
_SEPARATOR = "."
_FIELD_COUNT = 4


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode((segment + padding).encode("ascii"))


class QRPayloadCodec:
    """Encode and verify ticket payloads. Pure: never touches persistence."""

    def __init__(self, signing_key: str | bytes) -> None:
        key = signing_key.encode("utf-8") if isinstance(signing_key, str) else bytes(signing_key)
        if not key:
            raise IntegrityKeyError("QR signing key must not be empty")
        self._key = key

    def encode(self, ticket_id: str, event_id: str, buyer_id: str, ticket_type_id: str) -> str:
        fields = (ticket_id, event_id, buyer_id, ticket_type_id)
        if any(not value for value in fields):
            raise ValueError("All payload fields must be non-empty")
        body = _SEPARATOR.join([PAYLOAD_VERSION, *(_b64encode(value.encode("utf-8")) for value in fields)])
        return f"{body}{_SEPARATOR}{self._tag(body)}"

    def encode_claims(self, claims: TicketClaims) -> str:
        return self.encode(claims.ticket_id, claims.event_id, claims.buyer_id, claims.ticket_type_id)

    def decode(self, payload: str) -> TicketClaims:
        if not isinstance(payload, str) or not payload:
            raise PayloadDecodeError(DecodeFailure.MALFORMED, "Payload is empty")

        segments = payload.strip().split(_SEPARATOR)
        if len(segments) != _FIELD_COUNT + 2:
            raise PayloadDecodeError(DecodeFailure.MALFORMED, "Unexpected number of payload segments")
        if segments[0] != PAYLOAD_VERSION:
            raise PayloadDecodeError(DecodeFailure.MALFORMED, f"Unsupported payload version: {segments[0]!r}")

        values: list[str] = []
        for segment in segments[1:-1]:
            try:
                value = _b64decode(segment).decode("utf-8")
            except (binascii.Error, ValueError) as exc:
                raise PayloadDecodeError(DecodeFailure.MALFORMED, "Payload field is not valid base64") from exc
            if not value:
                raise PayloadDecodeError(DecodeFailure.MALFORMED, "Payload field is empty")
            values.append(value)

        body = _SEPARATOR.join(segments[:-1])
        expected = self._tag(body).encode("ascii")
        if not hmac.compare_digest(expected, segments[-1].encode("utf-8")):
            raise PayloadDecodeError(DecodeFailure.TAG_MISMATCH, "Payload integrity tag does not match")

        ticket_id, event_id, buyer_id, ticket_type_id = values
        return TicketClaims(
            ticket_id=ticket_id,
            event_id=event_id,
            buyer_id=buyer_id,
            ticket_type_id=ticket_type_id,
        )

    def _tag(self, body: str) -> str:
        digest = hmac.new(self._key, body.encode("ascii"), hashlib.sha256).digest()
        return _b64encode(digest)

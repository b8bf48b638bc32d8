"""Opaque continuation tokens carrying call-session state between legs."""

from __future__ import annotations

import base64
import binascii
import logging

from pydantic import ValidationError

from callrouting.models import ContinuationPayload

logger = logging.getLogger(__name__)

PARAM = "payload"


def encode(payload: ContinuationPayload) -> str:
    """Serialize a payload into a URL-safe token."""
    raw = payload.model_dump_json(by_alias=True, exclude_defaults=True)
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode(token: str | None) -> ContinuationPayload:
    """Rebuild a payload from a token.

    A missing or malformed token yields an empty payload, which the call flow
    treats as a freshly started call.
    """
    if not token:
        return ContinuationPayload()

    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        return ContinuationPayload.model_validate_json(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError, ValidationError) as exc:
        logger.warning("Discarding malformed continuation token: %s", exc)
        return ContinuationPayload()

"""
Validation of reassembled text update writes.

Wire format: a UTF-8 JSON object with exactly two string fields,

    {"password": "<4 chars>", "text": "<display text>"}

Shape is checked before the password, so a correct password never rescues a
malformed payload. Password comparison is byte-exact and case-sensitive.
"""

import hmac
import json
from dataclasses import dataclass
from enum import Enum
from typing import Optional

REQUIRED_FIELDS = ("password", "text")


class DecisionKind(Enum):
    ACCEPTED = "accepted"
    AUTH_FAILED = "auth_failed"
    BAD_FORMAT = "bad_format"
    BAD_PAYLOAD = "bad_payload"


@dataclass(frozen=True)
class Decision:
    kind: DecisionKind
    text: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.kind is DecisionKind.ACCEPTED


AUTH_FAILED = Decision(DecisionKind.AUTH_FAILED)
BAD_FORMAT = Decision(DecisionKind.BAD_FORMAT)
BAD_PAYLOAD = Decision(DecisionKind.BAD_PAYLOAD)


def validate(data: bytes, expected_password: str) -> Decision:
    """
    Classify a reassembled write.

    Args:
        data: Complete payload bytes
        expected_password: The device password for this boot

    Returns:
        Decision; ACCEPTED carries the new display text verbatim
    """
    try:
        payload = json.loads(bytes(data).decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return BAD_PAYLOAD

    if not isinstance(payload, dict):
        return BAD_PAYLOAD

    if set(payload) != set(REQUIRED_FIELDS):
        return BAD_FORMAT

    password = payload["password"]
    text = payload["text"]
    if not isinstance(password, str) or not isinstance(text, str):
        return BAD_FORMAT

    # JSON escapes can smuggle lone surrogates that have no UTF-8 form
    try:
        password_bytes = password.encode("utf-8")
        text.encode("utf-8")
    except UnicodeEncodeError:
        return BAD_FORMAT

    if not hmac.compare_digest(password_bytes, expected_password.encode("utf-8")):
        return AUTH_FAILED

    return Decision(DecisionKind.ACCEPTED, text=text)

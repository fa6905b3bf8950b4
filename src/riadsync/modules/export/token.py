"""Export resource tokens: URL-safe Base64 of ``{"propertyId": .., "roomId": ..}``."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass

from riadsync.errors import InvalidExportToken


@dataclass(frozen=True)
class ExportTarget:
    property_id: int
    room_id: int | None = None


def encode_export_token(property_id: int, room_id: int | None = None) -> str:
    payload = {"propertyId": property_id}
    if room_id is not None:
        payload["roomId"] = room_id
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _as_id(value, field_name: str) -> int:
    if isinstance(value, bool):
        raise InvalidExportToken(f"{field_name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidExportToken(f"{field_name} must be an integer") from exc


def decode_export_token(token: str | None) -> ExportTarget:
    """Parse a token taken from the export URL path.

    A trailing ``.ics`` and missing Base64 padding are accepted.
    """
    if not token:
        raise InvalidExportToken("Missing calendar identifier")
    if token.lower().endswith(".ics"):
        token = token[:-4]
    padded = token + "=" * (-len(token) % 4)
    try:
        info = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise InvalidExportToken("Invalid calendar identifier") from exc
    if not isinstance(info, dict) or info.get("propertyId") in (None, ""):
        raise InvalidExportToken("Missing property identifier")

    room_id = info.get("roomId")
    return ExportTarget(
        property_id=_as_id(info["propertyId"], "propertyId"),
        room_id=None if room_id in (None, "") else _as_id(room_id, "roomId"),
    )

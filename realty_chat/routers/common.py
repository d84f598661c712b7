"""Helpers shared by the JSON routers."""

from __future__ import annotations

import json
from typing import Any

from fastapi import Request

from ..errors import InvalidRequest


def decode_json(body: bytes) -> Any:
    """Decode a request body; an empty body is an empty object."""

    if not body:
        return {}
    try:
        return json.loads(body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidRequest(f"Invalid JSON payload: {exc}") from exc


async def read_json(request: Request) -> Any:
    return decode_json(await request.body())

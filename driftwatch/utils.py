"""JSON column helpers shared by the store-backed services."""
from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel

_MISSING = object()


def json_parse(value: str | None, default: Any = _MISSING) -> Any:
    """Decode a stored JSON column; ``{}`` (or *default*) when empty or corrupt."""
    try:
        return json.loads(value or "")
    except (json.JSONDecodeError, TypeError):
        return {} if default is _MISSING else default


def dump_models(models: list[BaseModel]) -> str:
    return json.dumps([m.model_dump(mode="json") for m in models])

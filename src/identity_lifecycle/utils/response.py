from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from identity_lifecycle.utils.time_utils import now_ms


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True, mode="json")
    if isinstance(data, list):
        return [_dump(d) for d in data]
    return data


def success(data: Any, message: str = "request processed successfully") -> dict[str, Any]:
    return {"status": "success", "message": message, "data": _dump(data), "timestamp": now_ms()}


def failure(message: str, **extra: Any) -> dict[str, Any]:
    body = {"status": "failure", "message": message, "timestamp": now_ms()}
    body.update(extra)
    return body

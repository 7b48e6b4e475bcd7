"""
Uniform JSON response envelope
"""

from typing import Any, Optional
import math

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    if isinstance(data, (list, tuple)):
        return [_dump(item) for item in data]
    if isinstance(data, dict):
        return {key: _dump(value) for key, value in data.items()}
    return jsonable_encoder(data)


def success(data: Any = None, message: Optional[str] = None, pagination: Optional[dict] = None) -> dict:
    """Build a success envelope: {success, data?, message?, pagination?}"""
    body: dict = {"success": True}
    if data is not None:
        body["data"] = _dump(data)
    if message:
        body["message"] = message
    if pagination is not None:
        body["pagination"] = pagination
    return body


def paginate(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }

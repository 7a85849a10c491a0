"""
The response envelope shared by every endpoint.

Successful responses carry the payload under "data":

    {"success": true, "message": "Payment created successfully", "data": {...}}

Errors use the same top-level keys without "data" (see exceptions.py).
"""

from typing import Generic, TypeVar

from pydantic import BaseModel

DataT = TypeVar("DataT")


class ApiResponse(BaseModel, Generic[DataT]):
    success: bool = True
    message: str | None = None
    data: DataT | None = None

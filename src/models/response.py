"""Common response envelope for handler payloads."""

from typing import Any, Optional

from pydantic import BaseModel


class ApiResponse(BaseModel):
    """Envelope returned by every successful handler."""

    message: str
    status: str = "ok"
    data: Optional[Any] = None
    correlation_id: Optional[str] = None

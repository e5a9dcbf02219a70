from typing import Any, Optional

from pydantic import BaseModel


class OperationResult(BaseModel):
    """Uniform result shape handed to the transport layer."""

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    message: Optional[str] = None

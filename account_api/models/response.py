"""Response envelopes shared by every endpoint."""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ApiResponse(BaseModel):
    """Success envelope.

    Attributes:
        status_code: HTTP status code mirrored into the body
        data: Endpoint payload
        message: Human-readable outcome
        success: True when status_code < 400
    """

    model_config = ConfigDict(populate_by_name=True)

    status_code: int = Field(default=200, alias="statusCode")
    data: Any = None
    message: str = "Success"
    success: bool = True

    @model_validator(mode="after")
    def success_from_status(self) -> "ApiResponse":
        """Derive success from the status code."""
        self.success = self.status_code < 400
        return self


class ErrorResponse(BaseModel):
    """Error envelope.

    ``stack`` and ``errors`` are only populated outside production.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    message: str
    status_code: int = Field(alias="statusCode")
    error: str
    errors: Optional[List[Any]] = None
    stack: Optional[str] = None

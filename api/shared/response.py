"""Uniform JSON envelope returned by every feature router."""
from typing import Generic, Literal, Optional, TypeVar

from pydantic import BaseModel, Field

DataT = TypeVar("DataT")


class ResponseModel(BaseModel, Generic[DataT]):
    """``{"status": ..., "message": ..., "data": ...}`` wrapper around a feature DTO."""

    status: Literal["ok", "error"] = Field(default="ok")
    message: Optional[str] = Field(default=None, examples=["Found 3 similar entities"])
    data: Optional[DataT] = Field(default=None)

    @classmethod
    def success(cls, data: Optional[DataT] = None, message: str = "Success") -> "ResponseModel[DataT]":
        return cls(status="ok", message=message, data=data)

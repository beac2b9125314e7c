"""Response envelope and enum helpers shared by the API models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Self

from mashumaro import field_options
from mashumaro.config import BaseConfig
from mashumaro.mixins.json import DataClassJSONMixin


@dataclass
class BaseResponse(DataClassJSONMixin):
    """Common envelope of every API response.

    A failed response sets ``success`` to false and carries a machine readable
    ``errorCode`` next to a human readable ``errorMsg``.
    """

    success: bool = True

    error_code: str | None = field(
        metadata=field_options(alias="errorCode"), default=None
    )
    """Name of the error, e.g. ``NotFound``."""

    error_msg: str | None = field(
        metadata=field_options(alias="errorMsg"), default=None
    )

    class Config(BaseConfig):
        serialize_by_alias = True
        omit_none = True

    @classmethod
    def failure(
        cls, error_msg: str, error_code: str | None = None, **fields: Any
    ) -> Self:
        """Build a failed response of this type, with any extra fields set."""
        return cls(success=False, error_code=error_code, error_msg=error_msg, **fields)


def create_error_response(
    error_msg: str, error_code: str | None = None
) -> BaseResponse:
    """Create a bare error response."""
    return BaseResponse.failure(error_msg, error_code)


@dataclass
class PagedResponse(BaseResponse):
    """Response holding one page of a larger result set."""

    total_count: int = field(metadata=field_options(alias="totalCount"), default=0)
    """Number of matching items across all pages."""

    total_pages: int = field(metadata=field_options(alias="totalPages"), default=0)

    page: int = 1
    """1-based page number."""

    page_size: int = field(metadata=field_options(alias="pageSize"), default=0)


class BaseEnum(Enum):
    """Enum whose members can be looked up from their wire value."""

    @classmethod
    def from_value(cls, value: Any) -> Self:
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"Invalid {cls.__name__} value: {value}")

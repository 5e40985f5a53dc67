"""
classwork/schemas/common.py
Shared response models and the camelCase base used on the wire
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """snake_case in Python, camelCase in JSON"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MessageResponse(BaseModel):
    success: bool = True
    message: str


# =============================================================================
# ERRORS (documented shape of the global exception handlers)
# =============================================================================

class ErrorDetail(BaseModel):
    code: str
    detail: str
    timestamp: str
    field: Optional[str] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail

"""
PersonalPage Backend — Oracle Schemas
=======================================
"""

from typing import Optional

from pydantic import BaseModel, Field


class OracleRequest(BaseModel):
    """Body of POST /gpt-alt. A missing prompt is treated as an empty string."""
    prompt: Optional[str] = Field(default=None, description="Question for the oracle")


class OracleResponse(BaseModel):
    """
    Returned by POST /gpt-alt with HTTP 200, whatever happened upstream.

    success is false when `result` is the fallback text or the
    empty-output marker.
    """
    success: bool
    result: str

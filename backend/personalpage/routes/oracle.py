"""
PersonalPage Backend — Oracle Route
=====================================

What:  POST /gpt-alt, the site's "ask the oracle" box.
How:   Delegates to OracleService, which never raises for upstream
       problems; this route therefore always answers HTTP 200.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from personalpage.context import AppContext
from personalpage.dependencies import get_context
from personalpage.schemas.common import ErrorResponse
from personalpage.schemas.oracle import OracleRequest, OracleResponse

router = APIRouter(tags=["Oracle"])


@router.post(
    "/gpt-alt",
    response_model=OracleResponse,
    responses={429: {"description": "Rate limit exceeded", "model": ErrorResponse}},
    summary="Ask the oracle a question",
)
async def ask_oracle(
    body: Optional[OracleRequest] = None,
    ctx: AppContext = Depends(get_context),
) -> OracleResponse:
    """A missing body or prompt is asked as an empty question."""
    reply = await ctx.oracle.generate(body.prompt if body else None)
    return OracleResponse(success=reply.success, result=reply.text)

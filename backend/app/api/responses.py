"""Translate service results into HTTP responses"""
from fastapi.responses import JSONResponse

from app.schemas.billing import ActionResult


def action_response(result: ActionResult) -> JSONResponse:
    """200 for success, 429 when rate limited, 400 for any other error"""
    if result.ok:
        status_code = 200
    elif result.blocked:
        status_code = 429
    else:
        status_code = 400
    return JSONResponse(
        status_code=status_code,
        content=result.model_dump(by_alias=True, exclude_none=True)
    )

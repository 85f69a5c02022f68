from fastapi import Depends, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from core.database import get_db
from core.results import ActionResult
from services.flashcard_service import FlashcardService


def get_flashcard_service(db: Session = Depends(get_db)) -> FlashcardService:
    return FlashcardService(db)


def action_response(
    result: ActionResult,
    out: type[BaseModel] | None = None,
    *,
    success_status: int = 200,
) -> Response:
    """Render a mutation outcome as the ``{"success": ...}`` envelope."""
    if not result.success:
        return JSONResponse(status_code=result.status_code, content=result.to_dict())
    if out is None:
        return Response(status_code=204)
    payload = out.model_validate(result.data, from_attributes=True).model_dump(mode="json")
    return JSONResponse(status_code=success_status, content=result.to_dict(payload))

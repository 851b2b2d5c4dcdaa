from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from review360.db.session import get_db
from review360.services.ai import AICollaborator, DisabledCollaborator, get_ai_collaborator

router = APIRouter(tags=["health"])


@router.get("/health")
def health(
    db: Session = Depends(get_db),
    ai: AICollaborator = Depends(get_ai_collaborator),
):
    # Simple DB ping
    db.execute(text("SELECT 1"))
    return {"status": "ok", "ai": "disabled" if isinstance(ai, DisabledCollaborator) else "enabled"}

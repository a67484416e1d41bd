from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from market.bus import list_dead_letters, redrive_dead_letter
from market.models import get_db

router = APIRouter()


@router.get(
    "/dead-letters",
    summary="List dead-lettered deliveries",
)
def dead_letters(
    db: Annotated[Session, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
):
    """Deliveries that spent their attempt budget or failed permanently."""
    return list_dead_letters(db, limit=limit)


@router.post(
    "/dead-letters/{delivery_id}/redrive",
    summary="Re-drive a dead-lettered delivery",
)
def redrive(
    delivery_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    if not redrive_dead_letter(db, delivery_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Dead letter not found")
    return {"delivery_id": delivery_id, "status": "pending"}

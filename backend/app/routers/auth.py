"""Authentication endpoints for operators."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..security import CallerIdentity, authenticate_user, create_access_token

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/token", response_model=schemas.TokenResponse)
def obtain_access_token(
    payload: schemas.LoginRequest, db: Session = Depends(get_db)
) -> schemas.TokenResponse:
    """Authenticate an operator and return an access token."""

    identity: CallerIdentity = authenticate_user(db, payload.username, payload.password)
    token = create_access_token(identity)
    return schemas.TokenResponse(access_token=token)

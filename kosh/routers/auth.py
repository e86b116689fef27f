from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kosh.dependencies import get_db
from kosh.schemas.user import LoginRequest, UserRead
from kosh.services import user_service

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/login", response_model=UserRead)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = user_service.authenticate(db, payload.username, payload.password, payload.role)
    return UserRead.model_validate(user)

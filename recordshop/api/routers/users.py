# recordshop/api/routers/users.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from recordshop.data.database import get_db
from recordshop.domain.schemas import UserCreate, UserRead
from recordshop.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/", response_model=UserRead)
def register_user(payload: UserCreate, db: Session = Depends(get_db)):
    """Wolane przez warstwe auth po zalogowaniu - bezpieczne do powtorzenia."""
    try:
        return UserService(db).create_user(payload)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/{user_id}", response_model=UserRead)
def get_user(user_id: str, db: Session = Depends(get_db)):
    try:
        return UserService(db).get_user(user_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))

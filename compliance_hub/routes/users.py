from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Optional, List

from ..db import get_db
from ..models.models import User
from ..schemas.dispatch import ActivityResponse, UserCreate, UserResponse
from ..services.audit import list_activities


router = APIRouter(tags=["users"])


@router.get("/users", response_model=List[UserResponse])
def list_users(
    q: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
    db: Session = Depends(get_db),
):
    """
    List users with pagination

    Args:
        q: Search query (username or full name)
        page: Page number (1-indexed)
        limit: Number of items per page (default 50, max 200)
    """
    limit = min(max(1, limit), 200)
    page = max(1, page)
    offset = (page - 1) * limit

    query = db.query(User)
    if q:
        like = f"%{q}%"
        query = query.filter((User.username.ilike(like)) | (User.full_name.ilike(like)))
    return query.order_by(User.id).offset(offset).limit(limit).all()


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    if db.query(User).filter(User.username == payload.username).first():
        raise HTTPException(status_code=400, detail="Username already exists")
    user = User(**payload.model_dump())
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(user_id: int, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/activities", response_model=List[ActivityResponse])
def get_activities(
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    return list_activities(db, entity_type=entity_type, entity_id=entity_id, limit=max(1, min(500, limit)))

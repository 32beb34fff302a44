from fastapi import APIRouter
from sqlmodel import select

from anki_assistant.api.dependencies import AdminUserDep, SessionDep
from anki_assistant.models.user import User
from anki_assistant.schemas.user import UserProfile

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/users", response_model=list[UserProfile])
def list_users(_admin: AdminUserDep, session: SessionDep) -> list[User]:
    return list(session.exec(select(User).order_by(User.id)).all())

from fastapi import APIRouter

from anki_assistant.api.dependencies import ActiveUserDep
from anki_assistant.models.user import User
from anki_assistant.schemas.user import UserProfile

router = APIRouter(prefix="/user", tags=["user"])


@router.get("", response_model=UserProfile)
def get_user_profile(current_user: ActiveUserDep) -> User:
    return current_user

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...api.deps import get_admin_user
from ...services.auth_service import AuthService
from ...schemas.auth import AdminCreateUser, UserResponse
from ...schemas.common import ApiResponse
from ...models.user import User

router = APIRouter(prefix="/admin", tags=["Admin"])

@router.post("/users", response_model=ApiResponse[UserResponse], status_code=201)
async def create_user(
    user_data: AdminCreateUser,
    db: Session = Depends(get_db),
    _: User = Depends(get_admin_user)
):
    """Create a user with any role, e.g. dentist or secretary accounts."""
    user = AuthService(db).create_user(user_data)
    return ApiResponse(
        data=UserResponse.model_validate(user),
        message="User created successfully"
    )

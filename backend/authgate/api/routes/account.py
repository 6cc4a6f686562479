from fastapi import APIRouter, Depends
from authgate.api.dependencies import get_current_user, require_role
from authgate.api.routes.auth import UserResponse
from authgate.models.user import ROLE_ADMIN, User

router = APIRouter(tags=["account"])


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information"""
    return current_user


@router.get("/protected-route")
async def protected_route(current_user: User = Depends(get_current_user)):
    return {"success": True, "message": "You have access to this protected route"}


@router.get("/admin/ping")
async def admin_ping(current_user: User = Depends(require_role(ROLE_ADMIN))):
    """Reachable by administrators only"""
    return {"success": True, "message": f"Hello, {current_user.username}"}

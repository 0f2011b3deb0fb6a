from fastapi import APIRouter, Depends

from blog_api.dependencies import get_user_directory
from blog_api.schemas import LoginRequest, LoginResponse
from blog_api.services import auth_service
from blog_api.services.auth_service import UserDirectory

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(data: LoginRequest, users: UserDirectory = Depends(get_user_directory)):
    return auth_service.login(users, data.login, data.password)

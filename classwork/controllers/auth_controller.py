"""
classwork/controllers/auth_controller.py
FastAPI Authentication Routes – Register, Login, Profile
"""

from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from classwork.core.dependencies import get_current_user
from classwork.database.session import get_db
from classwork.schemas.user import LoginResponse, UserCreate, UserLogin, UserResponse
from classwork.services.auth_service import AuthService

router = APIRouter()


@router.post("/register", response_model=LoginResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: UserCreate,
    db: Session = Depends(get_db)
):
    """
    Register a teacher or student
    Students must give department and year (they drive broadcast tasks)
    """
    result = AuthService(db).register(user_data)
    return LoginResponse(message="Registration successful", token=result["token"], user=result["user"])


@router.post("/login", response_model=LoginResponse)
def login(
    credentials: UserLogin,
    db: Session = Depends(get_db)
):
    """
    Login with email + password → returns JWT + user profile
    """
    result = AuthService(db).login(credentials)
    return LoginResponse(token=result["token"], user=result["user"])


@router.post("/login/form", response_model=LoginResponse)
def login_form(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    """
    OAuth2 compatible login (for Swagger UI)
    """
    credentials = UserLogin(email=form_data.username, password=form_data.password)
    result = AuthService(db).login(credentials)
    return LoginResponse(token=result["token"], user=result["user"])


@router.get("/me", response_model=UserResponse)
def get_profile(
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    profile = AuthService(db).get_current_user_profile(current_user["user_id"])
    return UserResponse(message="Profile retrieved", data=profile)

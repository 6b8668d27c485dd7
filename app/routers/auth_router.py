from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.auth import (
    authenticate_user,
    get_current_user,
    change_password,
    get_profile,
    register_user,
    token_for_user,
    update_profile,
)
from app.database import get_db
from app.models.user import User
from app.schemas.user_schema import (
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
    UserOut,
)


router = APIRouter(prefix="/auth", tags=["Authentication"])


# ----------------- REGISTER ------------------

@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    user = register_user(
        db,
        email=payload.email,
        password=payload.password,
        name=payload.name,
        phone=payload.phone,
    )

    return {
        "message": "User registered successfully",
        "user": UserOut.model_validate(user),
        "token": token_for_user(user),
    }


# ------------------- LOGIN -------------------

@router.post("/login")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = authenticate_user(db, email=payload.email, password=payload.password)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    return {
        "message": "Login successful",
        "user": UserOut.model_validate(user),
        "token": token_for_user(user),
    }


# ------------------- PROFILE -------------------

@router.get("/profile")
def read_profile(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return get_profile(db, current_user.id)


@router.put("/profile", response_model=UserOut)
def edit_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return update_profile(db, current_user, payload.model_dump(exclude_unset=True))


@router.put("/change-password")
def edit_password(
    payload: ChangePasswordRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    change_password(db, current_user, payload.old_password, payload.new_password)
    return {"message": "Password updated successfully"}

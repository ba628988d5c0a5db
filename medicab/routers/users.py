"""User accounts and authentication endpoints"""
import logging
from typing import List

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medicab.auth import (
    VALID_ROLES, TokenIdentity, authenticate_user, get_admin,
    get_current_user, get_password_hash, get_token_service
)
from medicab.database import get_db
from medicab.errors import AuthError, DatabaseError, NotFoundError, ValidationError
from medicab.models import User
from medicab.schemas import LoginResponse, UserCreate, UserLogin, UserResponse, UserUpdate

logger = logging.getLogger("medicab.app")
audit_logger = logging.getLogger("medicab.audit")

router = APIRouter(
    prefix="/users",
    tags=["users"]
)

@router.post("/login", response_model=LoginResponse)
def login(credentials: UserLogin, request: Request, db: Session = Depends(get_db)):
    """Authenticate user and return a session token"""
    if not credentials.username or not credentials.password:
        raise ValidationError("Username and password are required")

    user = authenticate_user(db, credentials.username, credentials.password)
    if not user:
        audit_logger.info(f"Failed login for username={credentials.username}")
        raise AuthError("Invalid credentials", status_code=status.HTTP_401_UNAUTHORIZED)

    token = get_token_service(request).issue(user.id, user.role)
    audit_logger.info(f"User {user.id} ({user.username}) logged in, role={user.role}")
    return {"token": token, "token_type": "bearer", "user": UserResponse.model_validate(user)}

@router.post("/register", status_code=status.HTTP_201_CREATED)
def register_user(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    current_user: TokenIdentity = Depends(get_admin)
):
    """Register new user (admin only)"""
    role = user_data.role or "user"
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {VALID_ROLES}")

    # Check if user already exists
    if db.query(User).filter(User.username == user_data.username).first():
        raise ValidationError("Username already exists")

    new_user = User(
        username=user_data.username,
        password_hash=get_password_hash(user_data.password),
        role=role,
        email=user_data.email or "",
        avatar=user_data.avatar or "",
    )
    try:
        db.add(new_user)
        db.commit()
        db.refresh(new_user)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error creating user {user_data.username}: {e}")
        raise DatabaseError("Insert error", detail=str(e))

    audit_logger.info(f"User {new_user.id} ({new_user.username}) created by user {current_user.user_id}, role={role}")
    return {"message": "User registered successfully", "insert_id": new_user.id}

@router.get("/isverify")
def is_verify(current_user: TokenIdentity = Depends(get_current_user)):
    """Token still valid"""
    return {"valid": True, "user": current_user.user_id, "grade": current_user.grade}

@router.get("/me", response_model=UserResponse)
def get_me(
    db: Session = Depends(get_db),
    current_user: TokenIdentity = Depends(get_current_user)
):
    """Get current authenticated user info"""
    user = db.get(User, current_user.user_id)
    if not user:
        raise NotFoundError("User not found")
    return user

@router.get("/", response_model=List[UserResponse])
def list_users(
    db: Session = Depends(get_db),
    current_user: TokenIdentity = Depends(get_current_user)
):
    return db.query(User).order_by(User.id).all()

@router.put("/{user_id}")
def update_user(
    user_id: int,
    user_data: UserUpdate,
    db: Session = Depends(get_db),
    current_user: TokenIdentity = Depends(get_admin)
):
    """Edit a user account (admin only)"""
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    if user_data.role is not None and user_data.role not in VALID_ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {VALID_ROLES}")

    if user_data.username and user_data.username != user.username:
        taken = db.query(User).filter(User.username == user_data.username, User.id != user_id).first()
        if taken:
            raise ValidationError("Username already exists")
        user.username = user_data.username
    if user_data.password:
        user.password_hash = get_password_hash(user_data.password)
    if user_data.role is not None:
        user.role = user_data.role
    if user_data.email is not None:
        user.email = user_data.email
    if user_data.avatar is not None:
        user.avatar = user_data.avatar

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error updating user {user_id}: {e}")
        raise DatabaseError("Update error", detail=str(e))

    audit_logger.info(f"User {user_id} edited by user {current_user.user_id}")
    return {"message": "User updated successfully", "affectedRows": 1}

@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: TokenIdentity = Depends(get_admin)
):
    """Delete a user account (admin only)"""
    if user_id == current_user.user_id:
        raise ValidationError("You cannot delete your own account")

    try:
        affected = db.query(User).filter(User.id == user_id).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting user {user_id}: {e}")
        raise DatabaseError("Delete error", detail=str(e))

    if affected == 0:
        raise NotFoundError("User not found")

    audit_logger.info(f"User {user_id} deleted by user {current_user.user_id}")
    return {"message": "User deleted successfully", "affectedRows": affected}

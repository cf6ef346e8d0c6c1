"""Auth API — login, profile and the bearer-token dependencies used by every router."""
from __future__ import annotations
import uuid
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

import bcrypt
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from jose import JWTError, jwt

from lauf.core import config
from lauf.persistence.db import get_connection

router = APIRouter(prefix="/auth", tags=["auth"])

_bearer = HTTPBearer(auto_error=False)

# Roles allowed to author flows and assign them
AUTHOR_ROLES = {"admin", "moderator"}


# ------------------------------------------------------------------
# Password hashing (direct bcrypt)
# ------------------------------------------------------------------
def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


# ------------------------------------------------------------------
# Pydantic schemas
# ------------------------------------------------------------------
class LoginRequest(BaseModel):
    username: str
    password: str


class RegisterRequest(BaseModel):
    username: str
    password: str
    role: Literal["user", "moderator", "admin"] = "user"
    display_name: Optional[str] = None
    email: Optional[str] = None


# ------------------------------------------------------------------
# JWT helpers
# ------------------------------------------------------------------
def create_token(user_id: str, username: str, role: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": user_id,
        "username": username,
        "role": role,
        "exp": expire,
    }
    return jwt.encode(payload, config.SECRET_KEY, algorithm=config.ALGORITHM)


def _decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}")


# ------------------------------------------------------------------
# Dependencies: acting user from the Bearer token
# ------------------------------------------------------------------
def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer)) -> dict:
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return _decode_token(credentials.credentials)


def require_author(current_user: dict = Depends(get_current_user)) -> dict:
    if current_user.get("role") not in AUTHOR_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Flow management requires an admin role")
    return current_user


# ------------------------------------------------------------------
# DB helpers
# ------------------------------------------------------------------
def _get_user_by_username(username: str) -> Optional[dict]:
    conn = get_connection()
    row = conn.execute("SELECT * FROM users WHERE username = ?", (username,)).fetchone()
    conn.close()
    return dict(row) if row else None


def _get_user_by_id(user_id: str) -> Optional[dict]:
    conn = get_connection()
    row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    conn.close()
    return dict(row) if row else None


def _serialize_user(user: dict) -> dict:
    return {
        "id": user["id"],
        "username": user["username"],
        "role": user["role"],
        "display_name": user.get("display_name"),
        "email": user.get("email"),
    }


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------
@router.post("/login")
def login(body: LoginRequest):
    user = _get_user_by_username(body.username)
    if not user or not verify_password(body.password, user["password_hash"]):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = create_token(user["id"], user["username"], user["role"])
    return {"token": token, "user": _serialize_user(user)}


@router.post("/users", status_code=status.HTTP_201_CREATED)
def register_user(body: RegisterRequest, current_user: dict = Depends(require_author)):
    if body.role in AUTHOR_ROLES and current_user.get("role") != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only an admin can grant an author role")
    if _get_user_by_username(body.username):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"User '{body.username}' already exists")
    user = {
        "id": str(uuid.uuid4()),
        "username": body.username,
        "password_hash": hash_password(body.password),
        "role": body.role,
        "display_name": body.display_name,
        "email": body.email,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    conn = get_connection()
    conn.execute(
        """
        INSERT INTO users (id, username, password_hash, role, display_name, email, created_at)
        VALUES (:id, :username, :password_hash, :role, :display_name, :email, :created_at)
        """,
        user,
    )
    conn.close()
    return _serialize_user(user)


@router.get("/profile")
def get_profile(current_user: dict = Depends(get_current_user)):
    user = _get_user_by_id(current_user["sub"])
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return _serialize_user(user)

"""
Credential issuance and verification for the expense API.

Passwords are stored as bcrypt hashes; sessions are HS256 JWT bearer tokens
whose subject is the user id. The expense routes only ever see the owner id
returned by `get_current_owner`.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from fastapi import APIRouter, Depends, HTTPException, Request, status
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from expense_tracker.backend import crud, schemas
from expense_tracker.backend.config import get_settings
from expense_tracker.backend.database import get_db
from expense_tracker.logging_setup import get_logger

logger = get_logger("expense_tracker.backend.auth")

ALGORITHM = "HS256"

router = APIRouter(prefix="/auth", tags=["Auth"])


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=get_settings().bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        logger.error("Stored password hash is malformed")
        return False


def create_access_token(user_id: str) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(minutes=settings.access_token_ttl_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[str]:
    """Return the user id carried by `token`, or None if it is invalid or expired."""
    try:
        payload = jwt.decode(token, get_settings().jwt_secret, algorithms=[ALGORITHM])
    except JWTError:
        return None
    subject = payload.get("sub")
    return subject if isinstance(subject, str) and subject else None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_owner(request: Request, db: Session = Depends(get_db)) -> str:
    """Resolve `Authorization: Bearer <token>` to the caller's owner id."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise _unauthorized("Not authorized, no token")

    user_id = decode_access_token(auth_header[len("Bearer "):].strip())
    if user_id is None or crud.get_user(db, user_id) is None:
        raise _unauthorized("Not authorized, token failed")
    return user_id


def _auth_response(user) -> schemas.AuthResponse:
    return schemas.AuthResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        token=create_access_token(user.id),
    )


@router.post(
    "/register",
    response_model=schemas.AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account",
)
def register(user_in: schemas.UserCreate, db: Session = Depends(get_db)):
    if crud.get_user_by_email(db, user_in.email) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")

    user = crud.create_user(db, user_in.name, user_in.email, hash_password(user_in.password))
    if user is None:
        # Lost a race with a concurrent registration of the same email
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")

    logger.info("Registered user %s", user.id)
    return _auth_response(user)


@router.post("/login", response_model=schemas.AuthResponse, summary="Sign in")
def login(credentials: schemas.UserLogin, db: Session = Depends(get_db)):
    user = crud.get_user_by_email(db, credentials.email)
    if user is None or not verify_password(credentials.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password"
        )
    return _auth_response(user)

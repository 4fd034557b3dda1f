import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, SECRET_KEY
from database import get_db
from models import User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

CUSTOMER_COOKIE = "token"
ADMIN_COOKIE = "adminToken"


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(claims: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Signed HS256 token carrying ``claims`` plus an ``exp`` claim."""
    lifetime = expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    return jwt.encode({**claims, "exp": datetime.now(timezone.utc) + lifetime}, SECRET_KEY, algorithm=ALGORITHM)


def token_for(user: User) -> str:
    return create_access_token({"sub": str(user.id), "role": user.role})


def decode_user_id(token: Optional[str]) -> Optional[int]:
    """Return the user id carried by a valid token, or None."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return int(payload["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        return None


def _request_token(request: Request, bearer: Optional[str]) -> Optional[str]:
    # The bearer header wins over cookies set by /auth/login
    return bearer or request.cookies.get(CUSTOMER_COOKIE) or request.cookies.get(ADMIN_COOKIE)


async def get_optional_user_id(request: Request, token: Optional[str] = Depends(oauth2_scheme)) -> Optional[int]:
    """Identity for endpoints open to guests; a bad token means no identity."""
    user_id = decode_user_id(_request_token(request, token))
    if user_id is None and token:
        logger.info("Ignoring invalid credential on guest-capable request")
    return user_id


async def get_current_user(
    request: Request, token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    user_id = decode_user_id(_request_token(request, token))
    if user_id is None:
        raise credentials_exception

    user = db.get(User, user_id)
    if not user:
        raise credentials_exception
    return user


async def get_current_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user

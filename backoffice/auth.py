import logging
import time
from typing import Optional

import jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from . import models
from .config import get_settings
from .utils import utcnow

log = logging.getLogger(__name__)

# Use pbkdf2_sha256 as default to avoid bcrypt 72-byte limitation in some envs
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")

ALGORITHM = "HS256"


class AuthError(Exception):
    pass


def create_access_token(user_id: int, role: str, expires_delta: Optional[int] = None) -> str:
    settings = get_settings()
    now = int(time.time())
    exp = now + (expires_delta or settings.token_seconds)
    payload = {"sub": str(user_id), "role": role, "iat": now, "exp": exp}
    token = jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)
    return token


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, get_settings().jwt_secret, algorithms=[ALGORITHM])


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def authenticate(db: Session, email: str, password: str) -> models.User:
    """Check credentials and account status; stamp ``last_login`` on success."""
    user = db.query(models.User).filter(models.User.email == email.strip().lower()).first()
    if not user or not verify_password(password, user.password_hash):
        log.info("failed login for %s", email)
        raise AuthError("Invalid email or password")
    if user.status != "active":
        raise AuthError(f"Your account is {user.status}")
    user.last_login = utcnow()
    db.commit()
    log.info("user %s logged in", user.username)
    return user

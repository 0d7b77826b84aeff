"""Authentication routes for CatchTrack.

Tokens carry the numeric user id as their subject when the login name
matches a known user; writes record that id as the audit trail's
EventTriggeredBy.
"""

from datetime import datetime, timedelta, timezone
import hmac
import logging
import os
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from pydantic import BaseModel

from src.api.middleware.rate_limit import LOGIN_LIMIT, limiter
from src.store.recorder import triggered_by_from_subject

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")

# Without a configured key, tokens are signed with a per-process random key
_env_key = os.getenv("AUTH_SECRET_KEY", "")
if _env_key:
    SECRET_KEY = _env_key
else:
    SECRET_KEY = secrets.token_hex(32)
    logger.warning(
        "AUTH_SECRET_KEY is not set; tokens are signed with a random key and "
        "will not survive a restart."
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("AUTH_TOKEN_EXPIRE_MINUTES", "720"))
AUTH_PASSWORD = os.getenv("AUTH_PASSWORD", "catchtrack")


class Token(BaseModel):
    access_token: str
    token_type: str


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


async def get_current_user(token: str = Depends(oauth2_scheme)) -> str:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        subject: Optional[str] = payload.get("sub")
        if subject is None:
            raise credentials_exception
    except JWTError as exc:
        raise credentials_exception from exc
    return subject


async def get_current_user_id(subject: str = Depends(get_current_user)) -> int:
    """Audit id of the caller (0 for tokens without a numeric subject)."""
    return triggered_by_from_subject(subject)


@router.post("/token", response_model=Token)
@limiter.limit(LOGIN_LIMIT)
async def login(request: Request, form_data: OAuth2PasswordRequestForm = Depends()):
    if not hmac.compare_digest(form_data.password.encode(), AUTH_PASSWORD.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
        )

    subject = form_data.username
    users = await request.app.state.reader.get_users()
    user = next((u for u in users.values() if u.user_name == form_data.username), None)
    if user is not None:
        subject = str(user.user_id)
    else:
        logger.warning("Login for unknown user name %s; audit rows will record 0", form_data.username)

    access_token = create_access_token(data={"sub": subject})
    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/verify")
async def verify_token(subject: str = Depends(get_current_user)):
    """Verify that the current token is valid. Returns 401 if expired/invalid."""
    return {"valid": True, "subject": subject, "user_id": triggered_by_from_subject(subject)}

import logging
import os
import re
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError
from passlib.context import CryptContext

import email_service
from database import JsonStore, get_store
from errors import Conflict, InvalidToken, Unauthorized, ValidationError
from schemas import User, UserResponse, now_iso, parse_documents

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", "dev-refresh-secret-change-me")
JWT_ALG = "HS256"
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", 60))
JWT_REFRESH_EXPIRES_DAYS = int(os.getenv("JWT_REFRESH_EXPIRES_DAYS", 7))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 12))
RESET_TOKEN_TTL = timedelta(hours=1)

USERS = "users"

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# at least 8 chars with a lower-case letter, an upper-case letter and a digit
PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)[a-zA-Z\d@$!%*?&]{8,}$")
NAME_RE = re.compile(r"^[a-zA-Zא-ת\s]{2,50}$")

INVALID_CREDENTIALS = "Invalid email or password"
RESET_REQUESTED = "If the email exists, a password reset link has been sent."

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # stored value is not a recognizable hash
        return False


def _create_token(user_id: str, secret: str, ttl: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {"userId": user_id, "iat": int(now.timestamp()), "exp": now + ttl}
    return jwt.encode(payload, secret, algorithm=JWT_ALG)


def create_access_token(user_id: str) -> str:
    return _create_token(user_id, JWT_SECRET, timedelta(minutes=JWT_EXPIRES_MINUTES))


def create_refresh_token(user_id: str) -> str:
    return _create_token(user_id, JWT_REFRESH_SECRET, timedelta(days=JWT_REFRESH_EXPIRES_DAYS))


def _verify_token(token: str, secret: str) -> Optional[str]:
    try:
        payload = jwt.decode(token, secret, algorithms=[JWT_ALG])
    except JWTError as e:
        logger.debug("Token rejected: %s", e)
        return None
    user_id = payload.get("userId")
    return user_id if isinstance(user_id, str) else None


def verify_access_token(token: str) -> Optional[str]:
    """User id carried by a valid access token, otherwise None."""
    return _verify_token(token, JWT_SECRET)


def verify_refresh_token(token: str) -> Optional[str]:
    return _verify_token(token, JWT_REFRESH_SECRET)


def generate_token() -> str:
    return secrets.token_hex(32)


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email))


def is_valid_password(password: str) -> bool:
    return bool(PASSWORD_RE.match(password))


def is_valid_name(name: str) -> bool:
    return bool(NAME_RE.match(name.strip()))


def to_user_response(user: User) -> Dict:
    return UserResponse.model_validate(user.to_document()).to_document()


def _auth_response(user: User) -> Dict:
    return {
        "user": to_user_response(user),
        "token": create_access_token(user.id),
        "refreshToken": create_refresh_token(user.id),
    }


# -------------------- Users collection --------------------

def load_users(store: JsonStore) -> List[User]:
    return parse_documents(User, store.load(USERS), USERS)


def save_users(store: JsonStore, users: List[User]) -> None:
    store.save(USERS, [u.to_document() for u in users])


def find_user(users: List[User], user_id: str) -> Optional[User]:
    return next((u for u in users if u.id == user_id), None)


def find_user_by_email(users: List[User], email: str) -> Optional[User]:
    email = email.strip().lower()
    return next((u for u in users if u.email.lower() == email), None)


# -------------------- Credential flows --------------------

def register(store: JsonStore, name: str, email: str, password: str) -> Dict:
    if not name or not email or not password:
        raise ValidationError("Name, email and password are required")
    if not is_valid_name(name):
        raise ValidationError("Name must be 2-50 characters, letters and spaces only")
    if not is_valid_email(email.strip()):
        raise ValidationError("Invalid email address")
    if not is_valid_password(password):
        raise ValidationError(
            "Password must be at least 8 characters and contain an upper-case letter, "
            "a lower-case letter and a digit"
        )

    users = load_users(store)
    if find_user_by_email(users, email):
        raise Conflict("A user with this email already exists")

    now = now_iso()
    user = User(
        id=uuid.uuid4().hex,
        name=name.strip(),
        email=email.strip().lower(),
        password=hash_password(password),
        is_email_verified=False,
        email_verification_token=generate_token(),
        created_at=now,
        updated_at=now,
        followers=[],
        following=[],
    )
    users.append(user)
    save_users(store, users)
    logger.info("Registered user %s", user.id)

    email_service.send_verification_email(user.email, user.name, user.email_verification_token)
    return _auth_response(user)


def login(store: JsonStore, email: str, password: str) -> Dict:
    users = load_users(store)
    user = find_user_by_email(users, email or "")
    if user is None:
        pwd_context.dummy_verify()
        raise Unauthorized(INVALID_CREDENTIALS)
    if not verify_password(password or "", user.password):
        raise Unauthorized(INVALID_CREDENTIALS)

    user.last_login_at = now_iso()
    user.updated_at = user.last_login_at
    save_users(store, users)
    return _auth_response(user)


def refresh(store: JsonStore, refresh_token: str) -> Dict:
    user_id = verify_refresh_token(refresh_token or "")
    user = find_user(load_users(store), user_id) if user_id else None
    if user is None:
        raise Unauthorized("Invalid refresh token")
    return _auth_response(user)


def verify_email(store: JsonStore, token: str) -> Dict:
    users = load_users(store)
    user = next((u for u in users if token and u.email_verification_token == token), None)
    if user is None:
        raise InvalidToken("Invalid or expired verification token")

    user.is_email_verified = True
    user.email_verification_token = None
    user.updated_at = now_iso()
    save_users(store, users)

    email_service.send_welcome_email(user.email, user.name)
    return {"message": "Email verified successfully", "user": to_user_response(user)}


def request_password_reset(store: JsonStore, email: str) -> Dict:
    if not email or not email.strip():
        return {"message": RESET_REQUESTED}
    users = load_users(store)
    user = find_user_by_email(users, email)
    if user is not None:
        user.reset_password_token = generate_token()
        user.reset_password_expires = datetime.now(timezone.utc) + RESET_TOKEN_TTL
        user.updated_at = now_iso()
        save_users(store, users)
        email_service.send_password_reset_email(user.email, user.name, user.reset_password_token)
    return {"message": RESET_REQUESTED}


def confirm_password_reset(store: JsonStore, token: str, new_password: str) -> Dict:
    users = load_users(store)
    now = datetime.now(timezone.utc)
    user = next(
        (u for u in users
         if token and u.reset_password_token == token
         and u.reset_password_expires is not None and u.reset_password_expires > now),
        None,
    )
    if user is None:
        raise InvalidToken("Invalid or expired reset token")
    if not is_valid_password(new_password or ""):
        raise ValidationError(
            "Password must be at least 8 characters and contain an upper-case letter, "
            "a lower-case letter and a digit"
        )

    user.password = hash_password(new_password)
    user.reset_password_token = None
    user.reset_password_expires = None
    user.updated_at = now_iso()
    save_users(store, users)
    return {"message": "Password reset successfully"}


# -------------------- FastAPI dependencies --------------------

bearer = HTTPBearer(auto_error=False)


def _user_from_credentials(credentials: Optional[HTTPAuthorizationCredentials], store: JsonStore) -> Optional[User]:
    if credentials is None:
        return None
    user_id = verify_access_token(credentials.credentials)
    if not user_id:
        return None
    return find_user(load_users(store), user_id)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    store: JsonStore = Depends(get_store),
) -> User:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Access token required")
    user_id = verify_access_token(credentials.credentials)
    if not user_id:
        raise HTTPException(status_code=403, detail="Invalid token")
    user = find_user(load_users(store), user_id)
    if user is None:
        raise HTTPException(status_code=403, detail="User not found")
    return user


def optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    store: JsonStore = Depends(get_store),
) -> Optional[User]:
    return _user_from_credentials(credentials, store)

from passlib.context import CryptContext
import jwt
from bson import ObjectId
from bson.errors import InvalidId
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Dict, Any
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import AnyUrl, BaseModel
from pydantic_core import Url
from dataBase import get_db
import os

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-ghazal-library-development-secret")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7  # 7 days
PASSWORD_RESET_EXPIRE_MINUTES = 30

bearer_scheme = HTTPBearer(auto_error=False)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form MongoDB hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()

    if expires_delta:
        expire = utcnow() + expires_delta
    else:
        expire = utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire, "iat": utcnow()})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode and verify JWT access token"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.PyJWTError:
        return None


def verify_token(token: str) -> Optional[str]:
    """Verify token and return user_id if valid"""
    payload = decode_access_token(token)
    if payload is None:
        return None
    return payload.get("user_id")


def _password_fingerprint(hashed_password: str) -> str:
    return hashed_password[-12:]


def create_password_reset_token(user: dict) -> str:
    """Short-lived token that stops working once the password changes."""
    return create_access_token(
        {
            "reset_user_id": str(user["_id"]),
            "purpose": "password_reset",
            "pwd": _password_fingerprint(user["password"]),
        },
        expires_delta=timedelta(minutes=PASSWORD_RESET_EXPIRE_MINUTES),
    )


def verify_password_reset_token(token: str, user: Optional[dict]) -> bool:
    payload = decode_access_token(token)
    return bool(
        payload
        and user
        and payload.get("purpose") == "password_reset"
        and payload.get("reset_user_id") == str(user["_id"])
        and payload.get("pwd") == _password_fingerprint(user["password"])
    )


def password_reset_user_id(token: str) -> Optional[str]:
    payload = decode_access_token(token)
    if payload is None or payload.get("purpose") != "password_reset":
        return None
    return payload.get("reset_user_id")


def to_object_id(value: str, label: str = "Document") -> ObjectId:
    """Parse a path id; malformed ids are reported as missing documents."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=404, detail=f"{label} not found")


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    """Replace Mongo's ``_id`` with a string ``id`` and stringify ObjectIds."""
    if doc is None:
        return None
    result = {}
    for key, value in doc.items():
        if key == "_id":
            result["id"] = str(value)
        elif key == "password":
            continue
        elif isinstance(value, ObjectId):
            result[key] = str(value)
        else:
            result[key] = value
    return result


def _bson_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (AnyUrl, Url)):
        return str(value)
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    if isinstance(value, date) and not isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, list):
        return [_bson_value(item) for item in value]
    return value


def to_document(model: BaseModel, **dump_kwargs) -> dict:
    """Dump a request model into values MongoDB can store."""
    return {k: _bson_value(v) for k, v in model.model_dump(**dump_kwargs).items()}


def short_id(value: str) -> str:
    """First eight characters of an id, as shown to customers."""
    return str(value)[:8]


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db=Depends(get_db),
) -> dict:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user_id = verify_token(credentials.credentials)
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    try:
        user = await db.users.find_one({"_id": ObjectId(user_id)})
    except InvalidId:
        user = None
    if not user:
        raise HTTPException(status_code=401, detail="User no longer exists")

    user["id"] = str(user["_id"])
    return user


async def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    if current_user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user

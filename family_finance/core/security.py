import os
from datetime import datetime, timedelta, timezone
from passlib.context import CryptContext
from jose import jwt, JWTError

PWD_CONTEXT = CryptContext(schemes=["bcrypt"], deprecated="auto")

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALG = "HS256"
JWT_EXPIRE_MIN = int(os.getenv("JWT_EXPIRE_MIN", "10080"))  # 7 days


class TokenError(ValueError):
    pass


def hash_password(pw: str) -> str:
    return PWD_CONTEXT.hash(pw)

def verify_password(pw: str, pw_hash: str) -> bool:
    return PWD_CONTEXT.verify(pw, pw_hash)

def token_max_age() -> int:
    """Cookie lifetime in seconds, aligned with token expiry."""
    return JWT_EXPIRE_MIN * 60

def create_token(member_id: int) -> str:
    issued = datetime.now(timezone.utc)
    payload = {
        "sub": str(member_id),
        "iat": issued,
        "exp": issued + timedelta(minutes=JWT_EXPIRE_MIN),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)

def decode_token(token: str) -> int:
    try:
        claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
        return int(claims["sub"])
    except (JWTError, KeyError, ValueError) as exc:
        raise TokenError("Invalid authentication token") from exc

import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from volunteer_media.config import config

TOKEN_LOOKUP_PREFIX_LENGTH = 16


class InvalidTokenError(Exception):
    """Raised when a bearer token cannot be decoded or has expired."""


class JWTHandler:
    def __init__(
        self,
        secret_key: Optional[str] = None,
        expire_hours: Optional[int] = None,
        bcrypt_rounds: Optional[int] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else config.jwt_secret
        self.algorithm = "HS256"
        self.expire_hours = expire_hours or config.jwt_expire_hours
        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=bcrypt_rounds or config.bcrypt_rounds,
        )

    def _require_secret(self) -> str:
        # FAIL FAST - never sign or accept tokens without a secret
        if not self.secret_key:
            raise ValueError("JWT_SECRET must be set before tokens can be issued or verified")
        return self.secret_key

    def create_access_token(self, user_id: int, is_admin: bool, expires_delta: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(hours=self.expire_hours))
        to_encode = {
            "user_id": user_id,
            "is_admin": is_admin,
            "iat": int(now.timestamp()),
            "exp": expire,
        }
        return jwt.encode(to_encode, self._require_secret(), algorithm=self.algorithm)

    def verify_token(self, token: str) -> Dict:
        try:
            payload = jwt.decode(token, self._require_secret(), algorithms=[self.algorithm])
        except JWTError as e:
            raise InvalidTokenError(f"Invalid token: {e}")
        if not isinstance(payload.get("user_id"), int):
            raise InvalidTokenError("Invalid token: missing user_id claim")
        return payload

    def hash_password(self, password: str) -> str:
        return self.pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        if not hashed_password:
            return False
        try:
            return self.pwd_context.verify(plain_password, hashed_password)
        except ValueError:
            # Unrecognised or corrupted hash
            return False

    @staticmethod
    def generate_token() -> str:
        """Random 64-hex-character token for reset and invite links."""
        return secrets.token_hex(32)

    @staticmethod
    def token_lookup(token: str) -> str:
        return token[:TOKEN_LOOKUP_PREFIX_LENGTH]


jwt_handler = JWTHandler()

"""Authentication service - JWT issuing and decoding."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from config import get_settings

settings = get_settings()

ACCESS_TOKEN_EXPIRE_MINUTES = 60


class TokenData(BaseModel):
    """Data extracted from JWT token."""
    user_id: str
    email: Optional[str] = None
    token_type: Optional[str] = None


class AuthService:
    """Signs and verifies the bearer tokens the API accepts."""

    @staticmethod
    def create_access_token(
        user_id: str,
        email: Optional[str] = None,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        payload = {"sub": user_id, "type": "access", "exp": expire}
        if email:
            payload["email"] = email
        return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    @staticmethod
    def decode_token(token: str) -> Optional[TokenData]:
        """Decode and validate a JWT token. Returns None when invalid or expired."""
        try:
            payload = jwt.decode(
                token,
                settings.jwt_secret,
                algorithms=[settings.jwt_algorithm]
            )
        except JWTError:
            return None

        user_id = payload.get("sub")
        if user_id is None:
            return None

        return TokenData(
            user_id=user_id,
            email=payload.get("email"),
            token_type=payload.get("type"),
        )

    @staticmethod
    def verify_access_token(token: str) -> Optional[TokenData]:
        token_data = AuthService.decode_token(token)
        if token_data is None:
            return None
        if token_data.token_type not in ("access", None):
            return None
        return token_data

# core/security.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from jose import JWTError, jwt

from app.core.config import settings

logger = logging.getLogger(__name__)

PREVIEW_TOKEN_TYPE = "preview"


class JWTManager:
    """
    Identity and preview tokens.

    Identity tokens are issued by the external identity provider; their
    ``sub`` claim is the external user id. Preview tokens are issued here
    and carry the slug of a lesson an anonymous visitor previewed.
    """

    def __init__(self):
        self.secret_key = settings.jwt_secret
        self.algorithm = settings.jwt_algorithm
        self.issuer = settings.jwt_issuer
        self.audience = settings.jwt_audience
        self.preview_secret_key = settings.preview_token_secret or settings.jwt_secret
        self.preview_token_expire = timedelta(
            minutes=settings.preview_token_expiration_minutes
        )

    # ==================== Identity ====================

    def verify_identity_token(self, token: str) -> str:
        """
        Verify an identity provider token and return its external user id.
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_exp": True, "verify_aud": self.audience is not None},
            )
        except JWTError as e:
            logger.warning(f"JWT verification failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired token",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if payload.get("type") == PREVIEW_TOKEN_TYPE:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token type",
                headers={"WWW-Authenticate": "Bearer"},
            )

        external_id = payload.get("sub")
        if not external_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token: missing subject",
                headers={"WWW-Authenticate": "Bearer"},
            )

        return str(external_id)

    def create_identity_token(
        self, external_id: str, expires_in: timedelta = timedelta(hours=1)
    ) -> str:
        """
        Mint an identity token the way the provider would.
        Used by local development tooling and the test suite.
        """
        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "sub": external_id,
            "iat": int(now.timestamp()),
            "exp": int((now + expires_in).timestamp()),
        }
        if self.issuer:
            payload["iss"] = self.issuer
        if self.audience:
            payload["aud"] = self.audience

        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    # ==================== Preview funnel ====================

    def create_preview_token(
        self, lesson_slug: str, custom_expiration: Optional[timedelta] = None
    ) -> str:
        """
        Sign the slug of a previewed lesson so profile completion can unlock
        it after sign-up.
        """
        now = datetime.now(timezone.utc)
        expire = now + (custom_expiration or self.preview_token_expire)

        payload = {
            "lesson_slug": lesson_slug,
            "type": PREVIEW_TOKEN_TYPE,
            "iat": int(now.timestamp()),
            "exp": int(expire.timestamp()),
        }

        return jwt.encode(payload, self.preview_secret_key, algorithm=self.algorithm)

    def verify_preview_token(self, token: str) -> Optional[str]:
        """
        Return the lesson slug of a valid preview token, or None.

        An expired or tampered token only means no lesson gets unlocked, so
        it is not an error for the caller.
        """
        try:
            payload = jwt.decode(
                token,
                self.preview_secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": True},
            )
        except JWTError as e:
            logger.warning(f"Preview token rejected: {e}")
            return None

        if payload.get("type") != PREVIEW_TOKEN_TYPE:
            logger.warning("Preview token rejected: wrong token type")
            return None

        lesson_slug = payload.get("lesson_slug")
        if not isinstance(lesson_slug, str) or not lesson_slug:
            return None

        return lesson_slug


# Global instance
jwt_manager = JWTManager()

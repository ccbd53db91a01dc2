"""
JWT access token issuance and validation.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError

from userportal.config import MIN_SECRET_KEY_BYTES, get_settings
from userportal.kernel.models import Account
from userportal.logging_config import get_logger

logger = get_logger(__name__)

# The only algorithm tokens are signed with or accepted in
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"


class IssuedAccessToken(BaseModel):
    """A freshly minted access token and its absolute expiry."""

    model_config = ConfigDict(frozen=True)

    token: str
    expires_at: datetime
    token_id: str


class VerifiedIdentity(BaseModel):
    """
    Identity carried by an access token that passed full validation.

    Only ``TokenIssuer.validate`` produces these; there is no way to read
    claims from a token without validating it first.
    """

    model_config = ConfigDict(frozen=True)

    account_id: uuid.UUID
    username: str
    email: str
    role: str
    expires_at: datetime
    token_id: str


class TokenIssuer:
    """
    Signs and validates short-lived access tokens.

    The key, issuer and audience are fixed at construction; nothing read from
    a token influences how it is verified.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        lifetime: Optional[timedelta] = None,
    ):
        settings = get_settings()
        self._secret_key = secret_key or settings.secret_key
        if len(self._secret_key.encode("utf-8")) < MIN_SECRET_KEY_BYTES:
            raise ValueError(
                f"Signing key must be at least {MIN_SECRET_KEY_BYTES} bytes"
            )
        self.issuer = issuer or settings.token_issuer
        self.audience = audience or settings.token_audience
        self.lifetime = (
            lifetime
            if lifetime is not None
            else timedelta(minutes=settings.access_token_expire_minutes)
        )

    def issue(self, account: Account) -> IssuedAccessToken:
        """
        Create a signed access token for an account.

        Claims: sub (account id), username, email, role, iss, aud, iat, nbf,
        exp, jti and type.
        """
        now = datetime.now(timezone.utc)
        expire = now + self.lifetime
        jti = str(uuid.uuid4())

        payload = {
            "sub": str(account.id),
            "username": account.username,
            "email": account.email,
            "role": account.role_name,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "nbf": now,
            "exp": expire,
            "jti": jti,
            "type": ACCESS_TOKEN_TYPE,
        }

        token = jwt.encode(payload, self._secret_key, algorithm=JWT_ALGORITHM)
        return IssuedAccessToken(token=token, expires_at=expire, token_id=jti)

    def validate(self, token: str) -> Optional[VerifiedIdentity]:
        """
        Verify signature, algorithm, issuer, audience and expiry.

        Returns:
            VerifiedIdentity if every check passes, None otherwise
        """
        if not token or not isinstance(token, str):
            return None
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[JWT_ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                options={
                    "require_exp": True,
                    "require_iat": True,
                    "require_sub": True,
                    "require_jti": True,
                    "require_aud": True,
                    "require_iss": True,
                    "leeway": 0,
                },
            )
        except JWTError as exc:
            logger.debug("Access token rejected: %s", type(exc).__name__)
            return None

        if payload.get("type") != ACCESS_TOKEN_TYPE:
            return None

        try:
            return VerifiedIdentity(
                account_id=payload["sub"],
                username=payload["username"],
                email=payload["email"],
                role=payload["role"],
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                token_id=payload["jti"],
            )
        except (KeyError, TypeError, ValueError, PydanticValidationError):
            return None


# Default issuer instance
_token_issuer: Optional[TokenIssuer] = None


def get_token_issuer() -> TokenIssuer:
    """Get or create the default token issuer."""
    global _token_issuer
    if _token_issuer is None:
        _token_issuer = TokenIssuer()
    return _token_issuer

"""Signed access-token claims."""
from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
import time
from typing import Literal

from jose import jws, jwt
from jose.exceptions import JWSError
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from auth_service.config import Settings
from auth_service.errors import InvalidSignature, MalformedClaims, TokenExpired


class Claims(BaseModel):
    """Fixed claim set carried by an access token."""

    model_config = ConfigDict(frozen=True, strict=True)

    session_id: str = Field(alias="jti", min_length=1)
    identity: str = Field(alias="sub", min_length=1)
    origin_address: str = Field(alias="ip", min_length=1)
    issued_at: int = Field(alias="iat")
    expires_at: int = Field(alias="exp")
    token_type: Literal["access"] = Field(alias="type")


class ClaimsCodec:
    """Issue and verify HMAC-signed access tokens.

    The signing key is the single server-held ``secret_key``; only the
    configured algorithm is accepted on verification.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS512",
        default_ttl: timedelta = timedelta(minutes=15),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.default_ttl = default_ttl
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClaimsCodec":
        return cls(
            settings.secret_key,
            algorithm=settings.algorithm,
            default_ttl=timedelta(minutes=settings.access_token_expire_minutes),
        )

    def issue(
        self,
        session_id: str,
        identity: str,
        origin_address: str,
        ttl: timedelta | None = None,
    ) -> str:
        """Create a signed access token bound to the session and origin."""
        now = int(self._clock())
        claims = Claims.model_validate(
            {
                "jti": session_id,
                "sub": identity,
                "ip": origin_address,
                "iat": now,
                "exp": now + int((ttl or self.default_ttl).total_seconds()),
                "type": "access",
            }
        )
        return jwt.encode(claims.model_dump(by_alias=True), self._secret_key, algorithm=self.algorithm)

    def verify(self, token: str, allow_expired: bool = False) -> Claims:
        """Check signature, structure and (unless ``allow_expired``) expiry."""
        try:
            header = jws.get_unverified_header(token)
        except JWSError as exc:
            raise MalformedClaims("token is not a signed JWS") from exc

        if header.get("alg") != self.algorithm:
            raise MalformedClaims("unexpected signing algorithm")

        try:
            payload = jws.verify(token, self._secret_key, algorithms=[self.algorithm])
        except JWSError as exc:
            raise InvalidSignature("signature verification failed") from exc

        try:
            claims = Claims.model_validate_json(payload)
        except ValidationError as exc:
            raise MalformedClaims("token claims are missing or mistyped") from exc

        if not allow_expired and claims.expires_at <= int(self._clock()):
            raise TokenExpired("access token expired")
        return claims

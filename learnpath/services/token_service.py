"""Bearer token verification (ES256).

Learners sign in with the marketplace's identity provider; this service
never issues tokens in production, it only checks them.  The provider's
public key comes from JWT_PUBLIC_KEY.

Without JWT_PUBLIC_KEY (dev, tests) an ephemeral key pair is generated
at import and create_access_token can mint tokens against it.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from learnpath.core.config import SETTINGS

ALGORITHM = "ES256"
ISSUER = "learnpath-identity"
AUDIENCE = "learnpath"
ACCESS_TOKEN_TTL_MIN = 15
# Identity provider and API clocks drift; a few seconds is not an attack.
CLOCK_SKEW_SECONDS = 10

if SETTINGS.jwt_public_key:
    _private_key: ec.EllipticCurvePrivateKey | None = None
    _public_key = serialization.load_pem_public_key(
        SETTINGS.jwt_public_key.encode()
    )
else:
    _private_key = ec.generate_private_key(ec.SECP256R1())
    _public_key = _private_key.public_key()


def can_mint() -> bool:
    return _private_key is not None


def create_access_token(
    *,
    sub: str,
    roles: list[str] | None = None,
    ttl: timedelta = timedelta(minutes=ACCESS_TOKEN_TTL_MIN),
) -> str:
    """Mint a token the way the identity provider does. Dev and tests only."""
    if _private_key is None:
        raise RuntimeError(
            "JWT_PUBLIC_KEY is set; tokens come from the identity provider"
        )
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + ttl,
        "iat": now,
        "jti": str(uuid.uuid4()),
        "roles": roles or ["user"],
    }
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature, issuer, audience and expiry; return the claims.

    The algorithm is pinned so a token cannot pick `none` or HS256.
    Raises jwt.ExpiredSignatureError or jwt.InvalidTokenError.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        leeway=CLOCK_SKEW_SECONDS,
        options={"require": ["sub", "exp", "iat"]},
    )

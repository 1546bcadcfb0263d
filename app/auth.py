from fastapi import Request
from jose import JWTError, jwt

from app.config import Settings


def decode_user_id(token: str, settings: Settings) -> str | None:
    """Subject of a valid access token, or None when the token does not verify."""
    if not settings.jwt_secret_key:
        return None
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"verify_aud": False},
        )
    except JWTError:
        return None
    sub = payload.get("sub")
    return sub if isinstance(sub, str) and sub else None


def client_address(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def resolve_client_identity(request: Request, settings: Settings) -> str:
    """
    Identity used for rate limiting: the authenticated user when a valid bearer token is sent,
    otherwise the network origin. A bad token is not rejected here, it just falls back to the address.
    """
    authorization = request.headers.get("authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        user_id = decode_user_id(token.strip(), settings)
        if user_id:
            return f"user:{user_id}"
    return f"ip:{client_address(request)}"

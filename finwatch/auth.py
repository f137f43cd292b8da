import hmac

from fastapi import Request, HTTPException, status
from jose import jwt, JWTError

from finwatch import config


def verify_token(token: str) -> dict | None:
    """Decode and verify a Supabase access token. Returns the payload or None on failure."""
    try:
        return jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            audience=config.JWT_AUDIENCE,
        )
    except JWTError:
        return None


def _bearer(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return auth_header.split(" ", 1)[1]


async def get_current_user(request: Request) -> str:
    """
    FastAPI dependency - extracts the Bearer token from the Authorization
    header, verifies it, and returns the user id (the token's subject).
    Raises HTTP 401 if the token is missing or invalid.
    """
    payload = verify_token(_bearer(request))
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token payload missing required claims",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return str(user_id)


async def require_cron(request: Request) -> None:
    """FastAPI dependency for scheduler-only endpoints."""
    token = _bearer(request)
    if not config.CRON_SECRET or not hmac.compare_digest(token, config.CRON_SECRET):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

from fastapi import Request
from jose import jwt, JWTError

from core.config import settings
from core.errors import UnauthorizedError
from core.logger import logger


def decode_token(token: str) -> dict:
    if not settings.JWT_SECRET:
        logger.error("JWT_SECRET is not configured, rejecting bearer token")
        raise UnauthorizedError("Unauthorized")
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except JWTError as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise UnauthorizedError("Unauthorized") from e


async def get_user_id(request: Request) -> str:
    header = request.headers.get("authorization")
    if not header:
        raise UnauthorizedError("Missing authorization header")

    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthorizedError("Unauthorized")

    user_id = decode_token(token.strip()).get("sub")
    if not user_id:
        raise UnauthorizedError("Unauthorized")
    return user_id

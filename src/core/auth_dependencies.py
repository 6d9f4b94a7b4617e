"""
FastAPI dependencies for bearer token authentication.
Tokens are issued by the external identity provider; this service only verifies them.
"""
from typing import Optional
import jwt
from fastapi import Header, HTTPException, status
from src.core import config


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"}
    )


def verify_token(authorization: Optional[str] = Header(None)) -> str:
    """
    Verify the operator's bearer token.

    Returns:
        Subject (operator username) from the token

    Raises:
        HTTPException: 401 if the token is missing, malformed, expired or has no subject
    """
    if not authorization:
        raise _unauthorized("Missing authorization header")

    scheme, _, token = authorization.partition(' ')
    if scheme != 'Bearer' or not token:
        raise _unauthorized("Invalid authorization header format")

    try:
        payload = jwt.decode(token, config.settings.jwt_secret, algorithms=[config.settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid token")

    username = payload.get('sub')
    if not username:
        raise _unauthorized("Invalid token payload")
    return username

import os
from typing import Any, Callable, Dict

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from booking_engine.service import ADMIN_ROLE, Caller

# Tokens are issued by the identity provider; this service only verifies them
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "resource-allocator-dev-secret")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

security = HTTPBearer()


async def get_current_user_claims(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Dict[str, Any]:
    """
    Decode a JWT bearer token and extract user claims.

    The token is expected in the Authorization header as a Bearer token.

    Parameters
    ----------
    credentials : HTTPAuthorizationCredentials
        Authorization header parsed by FastAPI's HTTPBearer.

    Returns
    -------
    Dict[str, Any]
        A dictionary containing:
        - 'username' : str
        - 'user_id' : str
        - 'role' : str

    Raises
    ------
    HTTPException
        If the token is missing, invalid, or lacks an identity.
    """
    token = credentials.credentials

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        username = payload.get("sub")
        user_id = payload.get("user_id")
        role = payload.get("role")
        if username is None or user_id is None or role is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    return {"username": username, "user_id": str(user_id), "role": role}


async def get_current_caller(claims: Dict[str, Any] = Depends(get_current_user_claims)) -> Caller:
    return Caller(user_id=claims["user_id"], role=claims["role"])


def require_roles(*allowed_roles: str) -> Callable:
    """
    Build a dependency that enforces a set of allowed roles.

    Parameters
    ----------
    allowed_roles : str
        One or more role names that are permitted to access a route.

    Returns
    -------
    Callable
        A FastAPI dependency resolving to the ``Caller`` and raising
        HTTP 403 if the role is not allowed.
    """

    async def dependency(caller: Caller = Depends(get_current_caller)) -> Caller:
        if caller.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions",
            )
        return caller

    return dependency


admin_only = require_roles(ADMIN_ROLE)

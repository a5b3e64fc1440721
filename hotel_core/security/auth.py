"""
Bearer token authentication

Tokens are issued by the external auth service. The core only reads the
operator id (sub) and the property the operator works for (property_id).
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from hotel_core.config import settings

logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRE_HOURS = 24

security = HTTPBearer()


@dataclass
class Operator:
    """Authenticated caller"""
    id: str
    property_id: int


def create_access_token(operator_id: str, property_id: int,
                        expire_hours: int = ACCESS_TOKEN_EXPIRE_HOURS) -> str:
    """Issue a token; used by tests and local tooling"""
    expire = datetime.now(UTC) + timedelta(hours=expire_hours)
    to_encode = {
        "sub": str(operator_id),
        "property_id": property_id,
        "exp": expire
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials"
        )


async def get_current_operator(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Operator:
    """Operator identity and property scope from the bearer token"""
    payload = decode_token(credentials.credentials)

    operator_id = payload.get("sub")
    property_id = payload.get("property_id")
    if not operator_id or property_id is None:
        logger.warning("Token without sub or property_id rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token is missing operator or property"
        )
    try:
        property_id = int(property_id)
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token property is invalid"
        )
    return Operator(id=str(operator_id), property_id=property_id)

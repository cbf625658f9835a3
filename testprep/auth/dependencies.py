import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from testprep.database import get_db
from testprep.models import User, ADMIN_ROLES
from testprep.auth.jwt import verify_token
from testprep.services.attempt_service import Caller

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        raise credentials_exception

    payload = verify_token(token)
    if payload is None:
        logger.warning("Token verification failed")
        raise credentials_exception

    user_id = payload.get("sub")
    if user_id is None:
        logger.warning("Token payload missing 'sub'")
        raise credentials_exception

    try:
        user_id = int(user_id)
    except (ValueError, TypeError):
        logger.warning(f"Token subject is not a user id: {user_id!r}")
        raise credentials_exception

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        logger.warning(f"User not found in database for id: {user_id}")
        raise credentials_exception

    return user


def get_caller(current_user: User = Depends(get_current_user)) -> Caller:
    """Resolved (user id, role) pair handed to the attempt engine."""
    return Caller(user_id=current_user.id, role=current_user.role)


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user

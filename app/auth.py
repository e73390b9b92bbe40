from datetime import datetime, timedelta
from typing import Iterable, Optional

from fastapi import HTTPException, Depends
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.access_gate import ANONYMOUS, ViewerContext
from app.database import get_db
from app.models.user import User


# Tokens are minted by the identity provider integration; this service
# only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


# ============================================================
# TOKEN CREATION
# ============================================================

def create_access_token(
    user_id: str,
    role_ids: Iterable[str] = (),
    is_author: bool = False,
    expires_minutes: Optional[int] = None,
) -> str:
    minutes = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.utcnow() + timedelta(minutes=minutes)

    to_encode = {
        "sub": user_id,
        "roles": list(role_ids),
        "author": bool(is_author),
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_viewer(token: str) -> ViewerContext:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    roles = payload.get("roles") or []
    if not isinstance(roles, list):
        raise HTTPException(status_code=401, detail="Invalid token")

    return ViewerContext(
        id=str(user_id),
        is_author=bool(payload.get("author", False)),
        role_ids=frozenset(str(r) for r in roles),
    )


# ============================================================
# DEPENDENCIES
# ============================================================

def get_viewer(token: Optional[str] = Depends(oauth2_scheme)) -> ViewerContext:
    """Viewer for read endpoints; no token means an anonymous viewer."""
    if not token:
        return ANONYMOUS
    return decode_viewer(token)


def require_viewer(viewer: ViewerContext = Depends(get_viewer)) -> ViewerContext:
    if viewer.id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return viewer


def require_author(
    viewer: ViewerContext = Depends(require_viewer),
    db: Session = Depends(get_db),
) -> ViewerContext:
    if not viewer.is_author:
        raise HTTPException(status_code=403, detail="Authors only")

    # Double-check against DB, the claim may predate a demotion
    user = db.query(User).filter(User.id == viewer.id).first()
    if not user or not user.is_author:
        raise HTTPException(status_code=403, detail="Authors only")

    return viewer

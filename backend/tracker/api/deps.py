from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.core.config import settings
from tracker.core.exceptions import NotFoundError
from tracker.db.session import get_session, get_session_factory
from tracker.services.notifications import NotificationDispatcher
from tracker.services.permissions import Subject, resolve_subject

SessionDep = Annotated[AsyncSession, Depends(get_session)]
SessionFactoryDep = Annotated[sessionmaker, Depends(get_session_factory)]

# Tokens are issued elsewhere; this service only decodes them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/token")


def _subject_id_from_token(token: str) -> int:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials") from exc

    sub = payload.get("sub")
    try:
        return int(sub)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload") from exc


async def get_current_subject(
    token: Annotated[str, Depends(oauth2_scheme)],
    session: SessionDep,
) -> Subject:
    """Resolve the caller's capabilities fresh for this request."""
    user_id = _subject_id_from_token(token)
    try:
        return await resolve_subject(session, user_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found") from exc


CurrentSubject = Annotated[Subject, Depends(get_current_subject)]


def require_capabilities(*capabilities: str) -> Callable:
    """Allow the request when the subject holds any of ``capabilities``."""

    async def dependency(subject: CurrentSubject) -> Subject:
        if capabilities and not subject.has_any(*capabilities):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return subject

    return dependency


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


DispatcherDep = Annotated[NotificationDispatcher, Depends(get_dispatcher)]

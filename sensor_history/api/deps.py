from __future__ import annotations

from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import OAuth2PasswordBearer, SecurityScopes

from sensor_history.core.config import Settings
from sensor_history.core.security import (
    ADMIN_SCOPE,
    READ_SCOPE,
    SCOPES,
    WRITE_SCOPE,
    decode_access_token,
    verify_password,
)
from sensor_history.repositories.base import ReadingRepository
from sensor_history.schemas.auth import User
from sensor_history.services.readings import ReadingService
from sensor_history.services.retention import RetentionService, SweepLimiter

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", scopes=SCOPES)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_reading_repository(request: Request) -> ReadingRepository:
    return request.app.state.store


def get_sweep_limiter(request: Request) -> SweepLimiter | None:
    limiter = getattr(request.app.state, "sweep_limiter", None)
    if not isinstance(limiter, SweepLimiter):
        return None
    return limiter


def get_reading_service(
    repo: Annotated[ReadingRepository, Depends(get_reading_repository)],
) -> ReadingService:
    return ReadingService(repo)


def get_retention_service(
    repo: Annotated[ReadingRepository, Depends(get_reading_repository)],
    settings: Annotated[Settings, Depends(get_settings)],
    limiter: Annotated[SweepLimiter | None, Depends(get_sweep_limiter)],
) -> RetentionService:
    return RetentionService(
        repo=repo,
        retention_days=settings.retention_days,
        batch_size=settings.sweep_batch_size,
        limiter=limiter,
    )


def authenticate_user(*, username: str, password: str, settings: Settings) -> User | None:
    if username != settings.admin_username:
        return None
    if not verify_password(password, settings.admin_password_hash):
        return None
    return User(username=username, scopes=[READ_SCOPE, WRITE_SCOPE, ADMIN_SCOPE])


def get_current_user(
    security_scopes: SecurityScopes,
    token: Annotated[str, Depends(oauth2_scheme)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> User:
    authenticate_value = "Bearer"
    if security_scopes.scopes:
        authenticate_value = f'Bearer scope="{security_scopes.scope_str}"'

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": authenticate_value},
    )

    try:
        subject, token_scopes = decode_access_token(token, settings=settings)
    except (jwt.PyJWTError, ValueError) as e:
        raise credentials_exception from e

    user = User(username=subject, scopes=token_scopes)
    for scope in security_scopes.scopes:
        if scope not in user.scopes:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions",
                headers={"WWW-Authenticate": authenticate_value},
            )
    return user


ReadUser = Annotated[User, Security(get_current_user, scopes=[READ_SCOPE])]
WriteUser = Annotated[User, Security(get_current_user, scopes=[WRITE_SCOPE])]
AdminUser = Annotated[User, Security(get_current_user, scopes=[ADMIN_SCOPE])]

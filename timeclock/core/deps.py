"""
Dependencies and guards for FastAPI endpoints
"""
from dataclasses import dataclass
from typing import Generator, Optional, Tuple
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from timeclock.core.config import settings
from timeclock.core.security import decode_token
from timeclock.db.session import SessionLocal
from timeclock.services.idempotency import IdempotencyCoordinator
from timeclock.services.punch_pipeline import PunchSubmissionPipeline


security = HTTPBearer()

MANAGER_ROLES = ("Manager", "Admin", "TenantAdmin")


@dataclass(frozen=True)
class RequestContext:
    """Caller identity for one request, built from the bearer token claims."""
    user_id: Optional[str]
    tenant_id: str
    roles: Tuple[str, ...] = ()

    def has_any_role(self, *roles: str) -> bool:
        return any(role in self.roles for role in roles)


def get_db() -> Generator:
    """Dependency for getting database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def get_request_context(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> RequestContext:
    """
    Build the per-request caller context from the JWT

    Claims used: sub (user id), tenant_id, roles (list of role names)
    """
    try:
        payload = decode_token(credentials.credentials)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    tenant_id = payload.get("tenant_id")
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tenant scope required"
        )

    roles = payload.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    sub = payload.get("sub")
    return RequestContext(
        user_id=str(sub) if sub is not None else None,
        tenant_id=str(tenant_id),
        roles=tuple(str(r) for r in roles),
    )


def require_roles(*allowed_roles: str):
    """
    Dependency factory for role-based access control

    Usage:
        @router.put("/resolve")
        async def resolve(ctx: RequestContext = Depends(require_roles("Manager", "Admin"))):
            ...
    """
    def role_checker(context: RequestContext = Depends(get_request_context)) -> RequestContext:
        if not context.has_any_role(*allowed_roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {list(allowed_roles)}"
            )
        return context
    return role_checker


def get_idempotency_coordinator(request: Request) -> IdempotencyCoordinator:
    """Process-wide coordinator created at startup (holds the per-key lock registry)."""
    return request.app.state.idempotency


def get_punch_pipeline(
    db: Session = Depends(get_db),
    coordinator: IdempotencyCoordinator = Depends(get_idempotency_coordinator),
) -> PunchSubmissionPipeline:
    return PunchSubmissionPipeline.from_settings(db, coordinator, settings)

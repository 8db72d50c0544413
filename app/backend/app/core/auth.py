"""Authentication context extraction and admin guard utilities."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status

from app.core.config import get_settings


@dataclass(frozen=True)
class RequestUserContext:
    """Request actor resolved from trusted proxy headers."""

    email: str
    display_name: str
    is_admin: bool


def _require_identity_headers(
    x_user_email: str | None,
    x_user_name: str | None,
) -> tuple[str, str]:
    if not x_user_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing identity headers. Expected X-USER-EMAIL or enable development principal fallback.",
        )

    email = x_user_email.strip().lower()
    display_name = (x_user_name or "").strip() or email
    return email, display_name


def get_current_user_context(
    x_user_email: str | None = Header(default=None, alias="X-USER-EMAIL"),
    x_user_name: str | None = Header(default=None, alias="X-USER-NAME"),
) -> RequestUserContext:
    """Resolve current request user.

    Header strategy:
    - Identity headers are set by the authenticating proxy (or test clients).
    - Without headers the development principal is used when allowed; it is
      always an admin.
    """

    settings = get_settings()
    if not x_user_email and settings.auth_allow_dev_principal:
        return RequestUserContext(
            email=settings.auth_dev_email.strip().lower(),
            display_name=settings.auth_dev_display_name.strip(),
            is_admin=True,
        )

    email, display_name = _require_identity_headers(x_user_email, x_user_name)
    return RequestUserContext(
        email=email,
        display_name=display_name,
        is_admin=email in settings.admin_emails,
    )


def require_admin(context: RequestUserContext = Depends(get_current_user_context)) -> RequestUserContext:
    """Dependency requiring an admin principal."""

    if not context.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: admin privileges required.",
        )
    return context

"""Auth server actions (form posts).

Endpoints:
- POST /auth/sign-in: Password sign-in, sets session cookies
- POST /auth/sign-up: Registration with investment-firm profile data
- POST /auth/sign-out: Revoke session and clear cookies
- POST /auth/forgot-password: Send password reset email
- POST /auth/reset-password: Set new password (recovery session)

Every action answers with a 303 redirect to ``<path>?error=<msg>`` or
``<path>?success=<msg>``; nothing here renders HTML.

SECURITY:
- Email redirect targets are built from APP_URL only (no user-controlled redirects)
- Passwords never logged
"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from research_api.auth import identity
from research_api.auth.identity import IdentityError, is_already_registered
from research_api.auth.session_auth import (
    clear_session_cookies,
    extract_tokens,
    set_session_cookies,
)
from research_api.config.env import get_app_url
from research_api.db.profiles import create_profile_if_absent
from research_api.db.session import get_db
from research_api.schemas import ForgotPasswordForm, ResetPasswordForm, SignInForm, SignUpForm
from research_api.utils.forms import parse_form
from research_api.utils.redirect import encoded_redirect

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

INVALID_FORM_MESSAGE = "Invalid form submission"


@router.post("/sign-in")
async def sign_in(request: Request) -> RedirectResponse:
    try:
        form = await parse_form(request, SignInForm)
    except ValidationError:
        return encoded_redirect("error", "/sign-in", INVALID_FORM_MESSAGE)

    try:
        result = identity.sign_in(form.email, form.password)
    except IdentityError as e:
        logger.info("auth.sign_in.failed", extra={"error": e.message})
        return encoded_redirect("error", "/sign-in", e.message)

    response = RedirectResponse("/protected", status_code=303)
    if result.session is not None:
        set_session_cookies(response, result.session)

    logger.info("auth.sign_in.success", extra={"user_id": result.user.id if result.user else None})
    return response


def _profile_values(form: SignUpForm) -> dict[str, Any]:
    metadata = form.to_user_metadata()
    return {
        "email": form.email,
        "full_name": metadata["full_name"],
        "organization_name": metadata["organization_name"],
        "organization_type": metadata["organization_type"],
        "role_title": metadata["role_title"],
        "aum_range": metadata["aum_range"],
        "phone_number": metadata["phone_number"],
        "investment_focus": metadata["investment_focus"],
        "primary_asset_classes": metadata["primary_asset_classes"],
        "current_research_providers": metadata["current_research_providers"],
        "referral_source": metadata["referral_source"],
        "referral_code": metadata["referral_code"],
        "marketing_consent": metadata["marketing_consent"],
        "marketing_consent_date": datetime.now(timezone.utc) if metadata["marketing_consent"] else None,
        "communication_preferences": metadata["communication_preferences"],
        "entitlements": {},
    }


@router.post("/sign-up")
async def sign_up(request: Request, db: Session = Depends(get_db)) -> RedirectResponse:
    """Register new user with email/password and firm profile.

    Flow:
    1. Validate form (required fields, no unknown fields); nothing is created on failure
    2. Supabase creates the user with profile metadata
    3. Profile row inserted unless a DB trigger already created it
    4. Unconfirmed email → success message; confirmed → session cookies + /protected
    """
    try:
        form = await parse_form(request, SignUpForm)
    except ValidationError:
        return encoded_redirect("error", "/sign-up", INVALID_FORM_MESSAGE)

    missing = form.missing_required()
    if missing:
        logger.info("auth.sign_up.validation_failed", extra={"missing_fields": missing})
        return encoded_redirect(
            "error",
            "/sign-up",
            f"Please fill in all required fields (marked with *): {', '.join(missing)}",
        )

    redirect_to = f"{get_app_url()}/protected"

    logger.info(
        "auth.sign_up.attempt",
        extra={"email": form.email, "redirect_to": redirect_to},
    )

    try:
        result = identity.sign_up(
            form.email,
            form.password,
            redirect_to=redirect_to,
            metadata=form.to_user_metadata(),
        )
    except IdentityError as e:
        if is_already_registered(e):
            try:
                identity.resend_signup_confirmation(form.email, redirect_to=redirect_to)
            except IdentityError as resend_error:
                logger.warning("auth.sign_up.resend_failed", extra={"error": resend_error.message})
                return encoded_redirect(
                    "success",
                    "/sign-up",
                    "Please check your email for the confirmation link. "
                    "If you don't see it, check your spam folder",
                )
            logger.info("auth.sign_up.confirmation_resent")
            return encoded_redirect(
                "success",
                "/sign-up",
                "A new confirmation email has been sent. Please check your email to confirm your account",
            )

        logger.warning("auth.sign_up.failed", extra={"error": e.message})
        return encoded_redirect("error", "/sign-up", e.message)

    user = result.user
    if user is None:
        logger.error("auth.sign_up.no_user")
        return encoded_redirect("error", "/sign-up", "Sign-up failed. Please try again.")

    try:
        created = create_profile_if_absent(db, user.id, _profile_values(form))
        db.commit()
        if created:
            logger.info("auth.sign_up.profile_created", extra={"user_id": user.id})
    except Exception as profile_error:
        # Identity exists already; the profile can be backfilled later
        db.rollback()
        logger.error(
            "auth.sign_up.profile_creation_failed",
            extra={
                "user_id": user.id,
                "error_type": type(profile_error).__name__,
            },
        )

    logger.info(
        "auth.sign_up.success",
        extra={"user_id": user.id, "email_confirmed": user.is_confirmed},
    )

    if not user.is_confirmed or result.session is None:
        return encoded_redirect("success", "/sign-up", "Please check your email to confirm your account")

    response = RedirectResponse("/protected", status_code=303)
    set_session_cookies(response, result.session)
    return response


@router.post("/sign-out")
async def sign_out(request: Request) -> RedirectResponse:
    access_token, _ = extract_tokens(request)
    if access_token:
        try:
            identity.sign_out(access_token)
        except IdentityError as e:
            # Cookies are cleared regardless; the token simply expires
            logger.warning("auth.sign_out.revoke_failed", extra={"error": e.message})

    response = RedirectResponse("/sign-in", status_code=303)
    clear_session_cookies(response)
    logger.info("auth.sign_out.success")
    return response


@router.post("/forgot-password")
async def forgot_password(request: Request) -> RedirectResponse:
    try:
        form = await parse_form(request, ForgotPasswordForm)
    except ValidationError:
        return encoded_redirect("error", "/forgot-password", INVALID_FORM_MESSAGE)

    if not form.email:
        return encoded_redirect("error", "/forgot-password", "Email is required")

    try:
        identity.send_password_reset(form.email, redirect_to=f"{get_app_url()}/reset-password")
    except IdentityError as e:
        logger.error("auth.password_reset.failed", extra={"error": e.message})
        return encoded_redirect(
            "error", "/forgot-password", "Failed to send reset email. Please try again."
        )

    logger.info("auth.password_reset.sent")
    return encoded_redirect(
        "success", "/forgot-password", "Check your email for a password reset link"
    )


@router.post("/reset-password")
async def reset_password(request: Request) -> RedirectResponse:
    try:
        form = await parse_form(request, ResetPasswordForm)
    except ValidationError:
        return encoded_redirect("error", "/reset-password", INVALID_FORM_MESSAGE)

    if not form.password or not form.confirm_password:
        return encoded_redirect("error", "/reset-password", "Both password fields are required")
    if form.password != form.confirm_password:
        return encoded_redirect("error", "/reset-password", "Passwords do not match")
    if len(form.password) < 6:
        return encoded_redirect("error", "/reset-password", "Password must be at least 6 characters")

    access_token, refresh_token = extract_tokens(request)
    try:
        if not access_token or not refresh_token:
            raise IdentityError("Auth session missing")
        identity.update_password(access_token, refresh_token, form.password)
    except IdentityError as e:
        logger.error("auth.password_update.failed", extra={"error": e.message})
        return encoded_redirect(
            "error", "/reset-password", "Failed to update password. Please try again."
        )

    logger.info("auth.password_update.success")
    return encoded_redirect(
        "success",
        "/sign-in",
        "Password updated successfully. Please sign in with your new password.",
    )

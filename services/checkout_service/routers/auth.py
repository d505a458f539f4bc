"""Sign-in with retry and magic-link fallback."""

from fastapi import APIRouter, Depends, Request, Response, status
from libs.auth.models import SignInRequest, SignInResponse
from libs.auth.recovery import robust_sign_in
from libs.auth.supabase import SupabaseAuthClient
from libs.common.rate_limit import auth_limit
from libs.common.resilience import ResilientExecutor
from services.checkout_service.dependencies import get_auth_client, get_executor

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/sign-in", response_model=SignInResponse)
@auth_limit
async def sign_in(
    request: Request,
    payload: SignInRequest,
    response: Response,
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
    executor: ResilientExecutor = Depends(get_executor),
):
    """
    Password sign-in.

    Answers 202 when the backend was unreachable and a sign-in link was
    emailed instead.
    """
    outcome = await robust_sign_in(
        auth_client, executor, payload.email, payload.password
    )
    if outcome.magic_link_sent:
        response.status_code = status.HTTP_202_ACCEPTED
        return SignInResponse(status="magic_link_sent", message=outcome.message)

    session = outcome.session
    return SignInResponse(
        status="signed_in",
        message=outcome.message,
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=session.expires_in,
    )

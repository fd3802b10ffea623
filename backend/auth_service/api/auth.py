"""Authentication API endpoints."""
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from auth_service.api.deps import (
    get_current_claims,
    get_origin_address,
    get_token_manager,
    run_cancellable,
    translate_errors,
)
from auth_service.config import Settings, get_settings
from auth_service.schemas.auth import RefreshRequest, SessionResponse, Token, TokenRequest
from auth_service.services.claims import Claims
from auth_service.services.tokens import TokenLifecycleManager, TokenPair

router = APIRouter(prefix="/auth", tags=["auth"])


def set_refresh_cookie(response: Response, refresh_secret: str, settings: Settings) -> None:
    """Issue secure HttpOnly refresh-token cookie."""
    response.set_cookie(
        key=settings.refresh_cookie_name,
        value=refresh_secret,
        httponly=True,
        secure=settings.refresh_cookie_secure,
        samesite=settings.refresh_cookie_samesite,
        path=settings.refresh_cookie_path,
    )


def _token_response(response: Response, pair: TokenPair, settings: Settings) -> Token:
    set_refresh_cookie(response, pair.refresh_secret, settings)
    return Token(access_token=pair.access_token, refresh_token=pair.refresh_secret)


@router.post("/token", response_model=Token)
async def issue_tokens(
    payload: TokenRequest,
    request: Request,
    response: Response,
    origin_address: str = Depends(get_origin_address),
    manager: TokenLifecycleManager = Depends(get_token_manager),
    settings: Settings = Depends(get_settings),
):
    """Issue a token pair bound to the caller's address."""
    with translate_errors():
        pair = await run_cancellable(request, manager.authenticate, payload.identity, origin_address)
    return _token_response(response, pair, settings)


@router.post("/refresh", response_model=Token)
async def refresh_tokens(
    payload: RefreshRequest,
    request: Request,
    response: Response,
    origin_address: str = Depends(get_origin_address),
    manager: TokenLifecycleManager = Depends(get_token_manager),
    settings: Settings = Depends(get_settings),
):
    """Rotate the token pair; the old pair stops working."""
    refresh_secret = payload.refresh_token or request.cookies.get(settings.refresh_cookie_name)
    if not refresh_secret:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    with translate_errors():
        pair = await run_cancellable(
            request, manager.refresh, payload.access_token, refresh_secret, origin_address
        )
    return _token_response(response, pair, settings)


@router.get("/session", response_model=SessionResponse)
def current_session(claims: Claims = Depends(get_current_claims)):
    """Describe the session of the presented access token."""
    return SessionResponse(
        session_id=claims.session_id,
        identity=claims.identity,
        origin_address=claims.origin_address,
        expires_at=claims.expires_at,
    )

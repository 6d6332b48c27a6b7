from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer  # For JWT extraction
from pydantic import ValidationError
import logging

from ..models.auth_models import (
    AuthenticateRequest,
    AuthenticateResponse,
    IdentityResponse,
    LogoutResponse,
    RefreshRequest,
    RefreshResponse,
    TokenData,
)
from ..models.data_models import ErrorResponse
from ..services.auth_service import AuthService, get_auth_service
from ..services.errors import ConfigError, ServiceError, UnauthorizedError

# Bearer extraction only, tokens are issued by /auth/authenticate
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/authenticate")

router = APIRouter(
    prefix="/auth",
    tags=["Authentication (wallet signature)"],
)

logger = logging.getLogger(__name__)


def to_http_exception(exc: ServiceError) -> HTTPException:
    """Map a service error to an HTTPException without leaking internals."""
    if isinstance(exc, ConfigError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server configuration error.")
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    if exc.retryable:
        headers = {"Retry-After": "1"}
    return HTTPException(status_code=exc.status_code, detail=exc.message, headers=headers)


def internal_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"Unexpected error during {action}: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"An internal error occurred during {action}.",
    )


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


# --- API Endpoints ---
@router.post(
    "/authenticate",
    response_model=AuthenticateResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
)
def authenticate(
    body: AuthenticateRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
):
    """
    Verifies a signature over the identity's current nonce and returns a token pair.

    - **publicAddress**: the wallet address (any letter case).
    - **signature**: personal_sign signature of
      "Sign this message to confirm your identity: <nonce>".

    The nonce is rotated after every attempt, successful or not.
    """
    logger.info("Authentication request received")
    try:
        session = service.authenticate(
            body.public_address,
            body.signature,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except ServiceError as e:
        logger.warning(f"Authentication failed ({e.error_code}): {e.message}")
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("authentication", e)

    return AuthenticateResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=session.expires_in,
        user=IdentityResponse(
            public_address=session.identity.address,
            last_login=session.identity.last_login,
            login_count=session.identity.login_count,
        ),
    )


@router.post(
    "/refresh-token",
    response_model=RefreshResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
    },
)
def refresh_token(
    body: RefreshRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service),
):
    """Mints a new access token from a live refresh token. The refresh token itself is unchanged."""
    logger.info("Token refresh request received")
    try:
        result = service.refresh(body.refresh_token, ip_address=client_ip(request))
    except ServiceError as e:
        logger.warning(f"Token refresh failed ({e.error_code}): {e.message}")
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("token refresh", e)
    return RefreshResponse(access_token=result.access_token, expires_in=result.expires_in)


@router.post(
    "/logout",
    response_model=LogoutResponse,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}},
)
def logout(body: RefreshRequest, service: AuthService = Depends(get_auth_service)):
    """Revokes the refresh token. Succeeds whether or not the token existed."""
    logger.info("Logout request received")
    try:
        service.logout(body.refresh_token)
    except ServiceError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("logout", e)
    return LogoutResponse()


# --- Secure Dependency for Authenticated User ---
def get_current_active_user(
    token: str = Depends(oauth2_scheme),
    service: AuthService = Depends(get_auth_service),
) -> str:
    """
    Dependency that verifies the JWT from the Authorization header
    and returns the user's address (subject of the token).
    Raises HTTPException 401 if the token is invalid or expired.
    """
    try:
        payload = service.tokens.decode_access_token(token)
        token_data = TokenData(sub=payload["sub"])
    except ServiceError as e:
        raise to_http_exception(e)
    except ValidationError as e:
        logger.warning(f"JWT payload validation error: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token_data.sub

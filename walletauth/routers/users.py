from fastapi import APIRouter, Depends, Query, status
import logging

from ..models.auth_models import IdentityResponse, NonceRequest, NonceResponse
from ..models.data_models import ErrorResponse
from ..routers.auth import get_current_active_user, internal_error, to_http_exception
from ..services.auth_service import AuthService, get_auth_service
from ..services.errors import ServiceError

router = APIRouter(
    prefix="/users",
    tags=["Users (nonce requests)"],
)

logger = logging.getLogger(__name__)


@router.post(
    "",
    response_model=NonceResponse,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}},
)
def find_or_create_user(body: NonceRequest, service: AuthService = Depends(get_auth_service)):
    """Finds the identity for an address, creating it on first use, and returns its current nonce."""
    try:
        identity = service.find_or_create(body.public_address)
    except ServiceError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("user lookup", e)
    return NonceResponse(public_address=identity.address, nonce=identity.nonce)


@router.get(
    "",
    response_model=NonceResponse,
    response_model_exclude_none=True,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}},
)
def get_nonce(
    public_address: str = Query(..., alias="publicAddress"),
    service: AuthService = Depends(get_auth_service),
):
    """Same as POST /users, for clients that pass the address as a query parameter."""
    try:
        identity = service.find_or_create(public_address)
    except ServiceError as e:
        raise to_http_exception(e)
    except Exception as e:
        raise internal_error("nonce request", e)
    return NonceResponse(nonce=identity.nonce)


@router.get(
    "/me",
    response_model=IdentityResponse,
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    },
)
def read_current_user(
    current_user_address: str = Depends(get_current_active_user),
    service: AuthService = Depends(get_auth_service),
):
    """Returns the public fields of the identity behind the bearer token."""
    try:
        identity = service.current_identity(current_user_address)
    except ServiceError as e:
        raise to_http_exception(e)
    return IdentityResponse(
        public_address=identity.address,
        last_login=identity.last_login,
        login_count=identity.login_count,
    )

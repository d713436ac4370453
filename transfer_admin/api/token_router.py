"""
API Router for transfer token management
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from typing import NoReturn, Optional
import structlog

from ..config import Settings, get_settings
from ..metrics import Metrics
from ..services.transfer import (
    AccessKeyHasher,
    ConfigurationError,
    NotFoundError,
    PermissionReconciler,
    PermissionRegistry,
    TokenCreatePayload,
    TokenUpdatePayload,
    TransferTokenError,
    TransferTokenService,
    ValidationError,
)
from .schemas import SanitizedTokenResponse, TokenListResponse, TokenResponse

log = structlog.get_logger()

router = APIRouter(prefix="/transfer/tokens", tags=["transfer-tokens"])


def build_token_service(settings: Settings) -> TransferTokenService:
    """Wire a token service from configuration"""
    return TransferTokenService(
        hasher=AccessKeyHasher(settings.TRANSFER_TOKEN_SALT),
        reconciler=PermissionReconciler(
            PermissionRegistry.from_setting(settings.TRANSFER_ACTIONS)
        ),
        disabled=settings.TRANSFER_DISABLED,
    )


# Global token service instance
_token_service: TransferTokenService = build_token_service(get_settings())


def get_token_service() -> TransferTokenService:
    """Get the global token service instance"""
    return _token_service


def get_metrics(request: Request) -> Optional[Metrics]:
    return getattr(request.app.state, "metrics", None)


ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConfigurationError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _raise_http(operation: str, exc: TransferTokenError, metrics: Optional[Metrics]) -> NoReturn:
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    log.warning(
        "transfer_token.request_failed",
        operation=operation,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    if metrics:
        metrics.record_token_operation(operation, outcome="error")
    raise HTTPException(status_code=status_code, detail=str(exc))


def _record(operation: str, metrics: Optional[Metrics], service: TransferTokenService) -> None:
    if metrics:
        metrics.record_token_operation(operation)
        metrics.set_active_tokens(len(service.store.tokens.find_many(select=("id",))))


@router.get(
    "",
    response_model=TokenListResponse,
    summary="List transfer tokens",
    description="List all transfer tokens ordered by name, without access keys"
)
async def list_tokens(
    service: TransferTokenService = Depends(get_token_service),
) -> TokenListResponse:
    return TokenListResponse(data=service.list())


@router.get(
    "/{token_id}",
    response_model=SanitizedTokenResponse,
    summary="Get transfer token"
)
async def get_token(
    token_id: int,
    service: TransferTokenService = Depends(get_token_service),
) -> SanitizedTokenResponse:
    """
    Get a token by id

    Returns 404 if the token does not exist.
    """
    token = service.get_by_id(token_id)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Token not found"
        )
    return SanitizedTokenResponse(data=token)


@router.post(
    "",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create transfer token",
    description="Create a token; the plaintext access key is only returned here"
)
async def create_token(
    payload: TokenCreatePayload,
    service: TransferTokenService = Depends(get_token_service),
    metrics: Optional[Metrics] = Depends(get_metrics),
) -> TokenResponse:
    """
    Create a transfer token

    - **name**: Token label
    - **description**: Optional free text
    - **access_key**: Optional caller supplied key (15+ characters)
    - **permissions**: Actions to grant, e.g. ["push", "pull"]
    - **lifespan**: Lifespan in milliseconds, or null for no expiration
    """
    try:
        token = service.create(payload)
    except TransferTokenError as e:
        _raise_http("create", e, metrics)

    _record("create", metrics, service)
    return TokenResponse(data=token)


@router.put(
    "/{token_id}",
    response_model=SanitizedTokenResponse,
    summary="Update transfer token"
)
async def update_token(
    token_id: int,
    payload: TokenUpdatePayload,
    service: TransferTokenService = Depends(get_token_service),
    metrics: Optional[Metrics] = Depends(get_metrics),
) -> SanitizedTokenResponse:
    """
    Update a token's name, description, lifespan and permissions

    Omitted permissions are left unchanged.
    """
    try:
        token = service.update(token_id, payload)
    except TransferTokenError as e:
        _raise_http("update", e, metrics)

    _record("update", metrics, service)
    return SanitizedTokenResponse(data=token)


@router.delete(
    "/{token_id}",
    response_model=SanitizedTokenResponse,
    summary="Revoke transfer token",
    description="Revoke (delete) a token and its permissions"
)
async def revoke_token(
    token_id: int,
    service: TransferTokenService = Depends(get_token_service),
    metrics: Optional[Metrics] = Depends(get_metrics),
) -> SanitizedTokenResponse:
    """
    Revoke a token

    Returns the deleted token, 404 if nothing was deleted.
    """
    token = service.revoke(token_id)
    if token is None:
        if metrics:
            metrics.record_token_operation("revoke", outcome="error")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Token not found"
        )

    _record("revoke", metrics, service)
    return SanitizedTokenResponse(data=token)


@router.post(
    "/{token_id}/regenerate",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Regenerate access key",
    description="Replace a token's access key; the new key is only returned here"
)
async def regenerate_token(
    token_id: int,
    service: TransferTokenService = Depends(get_token_service),
    metrics: Optional[Metrics] = Depends(get_metrics),
) -> TokenResponse:
    try:
        token = service.regenerate(token_id)
    except TransferTokenError as e:
        _raise_http("regenerate", e, metrics)

    _record("regenerate", metrics, service)
    return TokenResponse(data=token)

"""
Transfer Token Services Module

Provides the lifecycle of long-lived data transfer tokens:
- Access key generation and salted hashing
- Lifespan validation and expiration
- Permission registry and reconciliation
- Token creation, update, revocation and regeneration
"""

from .crypto_service import AccessKeyGenerator, AccessKeyHasher, hash_access_key
from .errors import (
    ConfigurationError,
    MissingSaltWarning,
    NotFoundError,
    TransferTokenError,
    ValidationError,
)
from .lifespan import Expiration, LifespanPolicy
from .permissions import PermissionDiff, PermissionReconciler, PermissionRegistry, diff
from .token_models import (
    SanitizedTransferToken,
    TokenCreatePayload,
    TokenUpdatePayload,
    TransferToken,
    TransferTokenPermission,
)
from .token_service import TransferTokenService
from .token_store import EntityRepository, InMemoryTransferTokenStore, TransferTokenStore

__all__ = [
    "AccessKeyGenerator",
    "AccessKeyHasher",
    "hash_access_key",
    "ConfigurationError",
    "MissingSaltWarning",
    "NotFoundError",
    "TransferTokenError",
    "ValidationError",
    "Expiration",
    "LifespanPolicy",
    "PermissionDiff",
    "PermissionReconciler",
    "PermissionRegistry",
    "diff",
    "SanitizedTransferToken",
    "TokenCreatePayload",
    "TokenUpdatePayload",
    "TransferToken",
    "TransferTokenPermission",
    "TransferTokenService",
    "EntityRepository",
    "InMemoryTransferTokenStore",
    "TransferTokenStore",
]

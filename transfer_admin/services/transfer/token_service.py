"""
TransferTokenService: lifecycle of long-lived data transfer tokens
"""

import warnings
from typing import Any, Mapping, Optional

import structlog

from .constants import LOOKUP_FIELDS, POPULATE_FIELDS, SELECT_FIELDS
from .crypto_service import AccessKeyGenerator, AccessKeyHasher
from .errors import MissingSaltWarning, NotFoundError, ValidationError
from .lifespan import LifespanPolicy
from .permissions import PermissionReconciler, PermissionRegistry, unique
from .token_models import (
    SanitizedTransferToken,
    TokenCreatePayload,
    TokenUpdatePayload,
    TransferToken,
    flatten_permissions,
)
from .token_store import TOKENS, InMemoryTransferTokenStore, TransferTokenStore

log = structlog.get_logger()

MISSING_SALT_MESSAGE = (
    "Missing TRANSFER_TOKEN_SALT: data transfer features have been disabled. "
    "Set TRANSFER_TOKEN_SALT in the environment (for example the output of "
    "`python -c \"import secrets; print(secrets.token_urlsafe(16))\"`)."
)


class TransferTokenService:
    """
    Service for managing transfer tokens

    Provides:
    - Token creation with generated or caller supplied access keys
    - Listing and lookup of sanitized tokens
    - Updates with permission reconciliation
    - Revocation and access key regeneration

    Plaintext access keys are returned by create and regenerate only; the
    store holds their HMAC.
    """

    def __init__(
        self,
        hasher: Optional[AccessKeyHasher] = None,
        store: Optional[TransferTokenStore] = None,
        generator: Optional[AccessKeyGenerator] = None,
        lifespan_policy: Optional[LifespanPolicy] = None,
        reconciler: Optional[PermissionReconciler] = None,
        disabled: bool = False
    ):
        """
        Initialize TransferTokenService

        Args:
            hasher: Hasher keyed by the token salt
            store: Token store (creates an in-memory one if not provided)
            generator: Access key generator
            lifespan_policy: Lifespan validation and expiration
            reconciler: Permission validation and diffing
            disabled: True when data transfer is turned off by configuration
        """
        self._hasher = hasher or AccessKeyHasher()
        self._store = store or InMemoryTransferTokenStore()
        self._generator = generator or AccessKeyGenerator()
        self._lifespan = lifespan_policy or LifespanPolicy()
        self._reconciler = reconciler or PermissionReconciler(PermissionRegistry())
        self._disabled = disabled

    @property
    def store(self) -> TransferTokenStore:
        return self._store

    @property
    def disabled(self) -> bool:
        return self._disabled

    def list(self) -> list[SanitizedTransferToken]:
        """
        Return all tokens and their permissions, ordered by name
        """
        rows = self._store.tokens.find_many(
            select=SELECT_FIELDS,
            populate=POPULATE_FIELDS,
            order_by={"name": "asc"}
        )
        return [SanitizedTransferToken.from_row(row) for row in rows]

    def create(self, attributes: TokenCreatePayload) -> TransferToken:
        """
        Create a token and its permissions

        Args:
            attributes: Token attributes; access_key is generated when omitted

        Returns:
            The created token, including its plaintext access key

        Raises:
            ValidationError: Invalid access key, permissions or lifespan
            ConfigurationError: No token salt configured
        """
        if attributes.has_access_key():
            access_key = self._generator.validate(attributes.access_key)
        else:
            access_key = self._generator.generate()

        # The plaintext key must not be picked up from the attributes below
        data = attributes.model_dump(exclude={"access_key", "permissions"})

        self._reconciler.assert_valid(attributes.permissions)
        self._lifespan.assert_valid_lifespan(attributes.lifespan)
        expiration = self._lifespan.resolve_expiration(attributes.lifespan)
        hashed = self._hasher.hash(access_key)

        with self._store.transaction():
            row = self._store.tokens.create(
                {**data, **expiration.model_dump(), "last_used_at": None, "access_key": hashed},
                select=SELECT_FIELDS
            )

            for action in unique(attributes.permissions or []):
                self._store.permissions.create({"action": action, "token": row["id"]})

            row["permissions"] = self._store.load_relation(TOKENS, row, "permissions")

        token = SanitizedTransferToken.from_row(row)
        log.info(
            "transfer_token.created",
            token_id=token.id,
            name=token.name,
            permissions=token.permissions,
            lifespan=token.lifespan,
        )
        return TransferToken(**token.model_dump(), access_key=access_key)

    def update(self, token_id: int, attributes: TokenUpdatePayload) -> SanitizedTransferToken:
        """
        Update a token and reconcile its permissions

        Permissions are left untouched when omitted. expires_at is not
        recomputed when lifespan changes.

        Raises:
            NotFoundError: If the token does not exist
            ValidationError: Invalid permissions or lifespan
        """
        original = self._store.tokens.find_one({"id": token_id})
        if original is None:
            raise NotFoundError("Token not found")

        self._reconciler.assert_valid(attributes.permissions)
        self._lifespan.assert_valid_lifespan(attributes.lifespan)

        with self._store.transaction():
            row = self._store.tokens.update(
                {"id": token_id},
                attributes.scalar_changes(),
                select=SELECT_FIELDS
            )
            if row is None:
                raise NotFoundError("Token not found")

            if attributes.has_permissions():
                current = flatten_permissions(
                    self._store.load_relation(TOKENS, row, "permissions")
                )
                changes = self._reconciler.reconcile(current, attributes.permissions)

                for action in sorted(changes.to_remove):
                    self._store.permissions.delete({"action": action, "token": token_id})

                for action in sorted(changes.to_add):
                    self._store.permissions.create({"action": action, "token": token_id})

                log.info(
                    "transfer_token.permissions_reconciled",
                    token_id=token_id,
                    added=sorted(changes.to_add),
                    removed=sorted(changes.to_remove),
                )

            row["permissions"] = self._store.load_relation(TOKENS, row, "permissions")

        log.info("transfer_token.updated", token_id=token_id)
        return SanitizedTransferToken.from_row(row)

    def revoke(self, token_id: int) -> Optional[SanitizedTransferToken]:
        """
        Revoke (delete) a token and its permissions

        Returns:
            Snapshot of the deleted token, or None if the store deleted nothing
        """
        with self._store.transaction():
            row = self._store.tokens.delete(
                {"id": token_id},
                select=SELECT_FIELDS,
                populate=POPULATE_FIELDS
            )

        if row is None:
            log.debug("transfer_token.revoke_missing", token_id=token_id)
            return None

        log.info("transfer_token.revoked", token_id=token_id)
        return SanitizedTransferToken.from_row(row)

    def regenerate(self, token_id: int) -> TransferToken:
        """
        Replace a token's access key

        Lifespan, expiration and permissions are left as they are.

        Raises:
            NotFoundError: If the token does not exist
        """
        access_key = self._generator.generate()
        hashed = self._hasher.hash(access_key)

        with self._store.transaction():
            row = self._store.tokens.update(
                {"id": token_id},
                {"access_key": hashed},
                select=SELECT_FIELDS,
                populate=POPULATE_FIELDS
            )

        if row is None:
            raise NotFoundError("The provided token id does not exist")

        log.info("transfer_token.regenerated", token_id=token_id)
        token = SanitizedTransferToken.from_row(row)
        return TransferToken(**token.model_dump(), access_key=access_key)

    def get_by(self, where: Optional[Mapping[str, Any]] = None) -> Optional[SanitizedTransferToken]:
        """
        Get a single token

        Args:
            where: Any combination of id, name, last_used_at, description
                   and access_key (the hash)

        Returns:
            The sanitized token, or None for an empty filter or no match

        Raises:
            ValidationError: Filter on a column tokens cannot be looked up by
        """
        if not where:
            return None

        unknown = [key for key in where if key not in LOOKUP_FIELDS]
        if unknown:
            raise ValidationError(f"Unknown token filter fields: {', '.join(unknown)}")

        row = self._store.tokens.find_one(
            dict(where),
            select=SELECT_FIELDS,
            populate=POPULATE_FIELDS
        )
        if row is None:
            return None

        return SanitizedTransferToken.from_row(row)

    def get_by_id(self, token_id: int) -> Optional[SanitizedTransferToken]:
        return self.get_by({"id": token_id})

    def get_by_name(self, name: str) -> Optional[SanitizedTransferToken]:
        return self.get_by({"name": name})

    def exists(self, where: Optional[Mapping[str, Any]] = None) -> bool:
        """Check if a token matching where exists"""
        return self.get_by(where) is not None

    def has_valid_salt(self) -> bool:
        return self._hasher.has_valid_salt()

    def hash(self, access_key: str) -> str:
        """Hash an access key with the configured salt"""
        return self._hasher.hash(access_key)

    def check_salt_configured(self) -> bool:
        """
        Startup probe for the token salt

        Warns (never raises) when the salt is missing, unless data
        transfer is disabled by configuration.

        Returns:
            True if access keys can be hashed
        """
        configured = self._hasher.has_valid_salt()

        if self._disabled:
            return configured

        if not configured:
            log.warning("transfer_token.salt_missing")
            warnings.warn(MISSING_SALT_MESSAGE, MissingSaltWarning, stacklevel=2)

        return configured

"""
Transfer token models and payload schemas
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class TransferTokenPermission(BaseModel):
    """
    A single action granted to a token
    """
    id: int
    action: str
    token: int = Field(..., description="Parent token id")


class SanitizedTransferToken(BaseModel):
    """
    Transfer token as returned on reads; never carries the access key
    """
    id: int
    name: str
    description: str = ""
    last_used_at: Optional[datetime] = None
    lifespan: Optional[int] = Field(default=None, description="Lifespan in milliseconds")
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    permissions: list[str] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SanitizedTransferToken":
        """Build a sanitized token from a store row, flattening permissions"""
        data = {key: value for key, value in row.items() if key != "access_key"}
        data["permissions"] = flatten_permissions(row.get("permissions"))
        return cls(**data)


class TransferToken(SanitizedTransferToken):
    """
    Transfer token together with its plaintext access key.

    Only returned by create and regenerate.
    """
    access_key: str


class TokenCreatePayload(BaseModel):
    """
    Attributes accepted when creating a token
    """
    name: str = Field(..., min_length=1)
    description: str = ""
    access_key: Optional[str] = Field(
        default=None,
        description="Caller supplied access key; generated when omitted"
    )
    permissions: Optional[list[str]] = None
    lifespan: Optional[int] = None

    def has_access_key(self) -> bool:
        """True when the caller explicitly supplied an access key"""
        return "access_key" in self.model_fields_set


class TokenUpdatePayload(BaseModel):
    """
    Attributes accepted when updating a token; unset fields stay unchanged
    """
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    permissions: Optional[list[str]] = None
    lifespan: Optional[int] = None

    def scalar_changes(self) -> dict[str, Any]:
        """Explicitly provided scalar fields, permissions excluded"""
        changes = self.model_dump(exclude_unset=True, exclude={"permissions"})
        # name and description are not nullable; only lifespan may be cleared
        for key in ("name", "description"):
            if key in changes and changes[key] is None:
                del changes[key]
        return changes

    def has_permissions(self) -> bool:
        return "permissions" in self.model_fields_set and self.permissions is not None


def flatten_permissions(permissions: Any) -> list[str]:
    """
    Flatten permission rows (or models) to their action names.

    Already-flat lists of strings pass through unchanged.
    """
    if not permissions:
        return []

    actions = []
    for permission in permissions:
        if isinstance(permission, str):
            actions.append(permission)
        elif isinstance(permission, TransferTokenPermission):
            actions.append(permission.action)
        else:
            actions.append(permission["action"])
    return actions

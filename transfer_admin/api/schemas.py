from pydantic import BaseModel
from typing import List
from ..services.transfer import SanitizedTransferToken, TransferToken


class TokenListResponse(BaseModel):
    data: List[SanitizedTransferToken]


class TokenResponse(BaseModel):
    """Token including its plaintext access key (create and regenerate only)"""
    data: TransferToken


class SanitizedTokenResponse(BaseModel):
    data: SanitizedTransferToken

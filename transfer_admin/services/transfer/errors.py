"""
Exceptions raised by the transfer token services
"""


class TransferTokenError(Exception):
    """Base exception for transfer token errors"""
    pass


class ValidationError(TransferTokenError):
    """Raised when token attributes are rejected before any write"""
    pass


class NotFoundError(TransferTokenError):
    """Raised when the targeted token does not exist"""
    pass


class ConfigurationError(TransferTokenError):
    """Raised when the token salt is missing or invalid at hash time"""
    pass


class MissingSaltWarning(UserWarning):
    """Emitted at startup when transfer tokens cannot be hashed"""
    pass

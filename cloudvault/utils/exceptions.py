class CloudVaultException(Exception):
    """Base exception for the application"""
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class AuthenticationError(CloudVaultException):
    """Authentication failed"""
    status_code = 401
    code = "UNAUTHORIZED"


class ForbiddenError(CloudVaultException):
    """Access to the item is not permitted"""
    status_code = 403
    code = "FORBIDDEN"


class ValidationError(CloudVaultException):
    """Malformed or out-of-range input"""
    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidMoveError(ValidationError):
    """Cannot move a folder into itself or one of its descendants"""
    code = "INVALID_MOVE"


class InvalidShareError(ValidationError):
    """Cannot share an item with yourself or its owner"""
    code = "INVALID_SHARE"


class NotFoundError(CloudVaultException):
    """Resource not found"""
    status_code = 404
    code = "NOT_FOUND"


class UserNotFoundError(NotFoundError):
    """User not found"""
    code = "USER_NOT_FOUND"


class LinkNotFoundError(NotFoundError):
    """Share link not found"""
    code = "LINK_NOT_FOUND"


class ConflictError(CloudVaultException):
    """Resource conflict"""
    status_code = 409
    code = "CONFLICT"


class InvalidStatusError(ConflictError):
    """File is not in uploading status"""
    code = "INVALID_STATUS"


class GoneError(CloudVaultException):
    """Resource is no longer available"""
    status_code = 410
    code = "GONE"


class LinkExpiredError(GoneError):
    """Share link has expired"""
    code = "LINK_EXPIRED"


class LinkLimitReachedError(GoneError):
    """Share link access limit reached"""
    code = "LINK_LIMIT_REACHED"


class PasswordRequiredError(CloudVaultException):
    """Password required for this share link"""
    status_code = 401
    code = "PASSWORD_REQUIRED"


class InvalidPasswordError(CloudVaultException):
    """Invalid password"""
    status_code = 401
    code = "INVALID_PASSWORD"


class StorageError(CloudVaultException):
    """Storage backend operation failed"""
    code = "STORAGE_ERROR"


class NotConfiguredError(CloudVaultException):
    """Storage service not configured"""
    code = "STORAGE_NOT_CONFIGURED"


class DataIntegrityError(CloudVaultException):
    """Folder tree is corrupted"""
    code = "DATA_INTEGRITY_ERROR"


class ThumbnailError(CloudVaultException):
    """Thumbnail could not be generated"""
    code = "THUMBNAIL_ERROR"

class TenantAuthException(Exception):
    """Base exception for the tenant auth service"""

    pass


class UnauthorizedException(TenantAuthException):
    """Raised when credentials, tokens or sessions fail validation"""

    pass


class ForbiddenException(TenantAuthException):
    """Raised when the caller lacks a permission or touches another tenant's data"""

    pass


class NotFoundException(TenantAuthException):
    """Raised when resource not found"""

    pass


class ValidationException(TenantAuthException):
    """Raised for business logic validation errors"""

    pass


class ConflictException(TenantAuthException):
    """Raised when a unique resource already exists (email, slug, role name)"""

    pass


class RateLimitException(TenantAuthException):
    """Raised when too many attempts were made inside the rate-limit window"""

    pass

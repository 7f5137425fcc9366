from starlette import status


class AssetNotFoundError(LookupError):
    pass


class VersionNotFoundError(LookupError):
    pass


class ProductNotFoundError(LookupError):
    pass


class StorageObjectNotFound(LookupError):
    """A locator was supplied but the backend has no object for it."""


class MissingLocatorError(ValueError):
    """No locator was supplied at all."""


class AssetRuleViolation(ValueError):
    pass


class WorkflowDispatchError(RuntimeError):
    pass


class AccessDenied(PermissionError):
    pass


_STATUS_CODES = (
    (StorageObjectNotFound, status.HTTP_404_NOT_FOUND),
    (LookupError, status.HTTP_404_NOT_FOUND),
    (MissingLocatorError, status.HTTP_400_BAD_REQUEST),
    (AssetRuleViolation, status.HTTP_409_CONFLICT),
    (WorkflowDispatchError, status.HTTP_502_BAD_GATEWAY),
    (AccessDenied, status.HTTP_403_FORBIDDEN),
)

DOMAIN_ERRORS = (
    AssetNotFoundError,
    VersionNotFoundError,
    ProductNotFoundError,
    StorageObjectNotFound,
    MissingLocatorError,
    AssetRuleViolation,
    WorkflowDispatchError,
    AccessDenied,
)


def status_code_for(exc: Exception) -> int:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR

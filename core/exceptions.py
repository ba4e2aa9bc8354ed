"""
API error types and the DRF exception handler that wraps every error in the
``{success: false, message, error}`` envelope the billing frontend expects.
"""
import logging

from rest_framework import exceptions, status
from rest_framework.response import Response

logger = logging.getLogger(__name__)


class IdentityError(exceptions.APIException):
    """Authentication failure with a provider-specific status and code."""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Authentication failed'
    default_code = 'AUTH_FAILED'

    def __init__(self, detail=None, code=None, status_code=None):
        if status_code is not None:
            self.status_code = status_code
        super().__init__(detail, code)


class UserNotFound(exceptions.APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'User account not found'
    default_code = 'USER_NOT_FOUND'


class AccountDeactivated(exceptions.APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Account is deactivated'
    default_code = 'ACCOUNT_DEACTIVATED'


def error_envelope(message: str, error=None, code: str = None) -> dict:
    body = {'success': False, 'message': message, 'error': error if error is not None else message}
    if code:
        body['code'] = code
    return body


def _first_code(codes):
    if isinstance(codes, str):
        return codes
    if isinstance(codes, dict):
        return None
    if isinstance(codes, list) and codes:
        return _first_code(codes[0])
    return None


def api_exception_handler(exc, context):
    """
    Envelope DRF errors; turn anything unhandled into a logged 500.
    """
    # Imported lazily: rest_framework.views resolves DEFAULT_AUTHENTICATION_CLASSES
    # at import time, which would circularly import core.authentication.
    from rest_framework.views import exception_handler

    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        logger.exception(f"Unhandled error in {view.__class__.__name__ if view else 'view'}: {exc}")
        return Response(
            error_envelope('An unexpected error occurred', str(exc)),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, exceptions.ValidationError):
        response.data = error_envelope('Validation failed', response.data, 'VALIDATION_ERROR')
        return response

    if isinstance(exc, exceptions.NotAuthenticated):
        code = 'MISSING_TOKEN'
    else:
        code = _first_code(exc.get_codes())
        if code:
            code = code.upper()

    detail = response.data.get('detail', str(exc)) if isinstance(response.data, dict) else str(exc)
    response.data = error_envelope(str(detail), str(detail), code)
    return response

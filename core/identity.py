"""
Identity provider client (Firebase Authentication via the Admin SDK).

Bearer tokens are issued by the identity provider to the frontend; this module
only verifies them and returns the decoded claims.
"""
import logging

import firebase_admin
from django.conf import settings
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from firebase_admin import exceptions as firebase_exceptions

logger = logging.getLogger(__name__)

_firebase_app = None


class TokenVerificationError(Exception):
    """Raised when a bearer token cannot be verified."""
    def __init__(self, message: str, code: str = 'AUTH_FAILED', status_code: int = 401):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


def _build_credential():
    if settings.FIREBASE_CREDENTIALS_FILE:
        return credentials.Certificate(settings.FIREBASE_CREDENTIALS_FILE)
    if settings.FIREBASE_PRIVATE_KEY and settings.FIREBASE_CLIENT_EMAIL:
        return credentials.Certificate({
            'type': 'service_account',
            'project_id': settings.FIREBASE_PROJECT_ID,
            'client_email': settings.FIREBASE_CLIENT_EMAIL,
            'private_key': settings.FIREBASE_PRIVATE_KEY,
            'token_uri': 'https://oauth2.googleapis.com/token',
        })
    return None


def get_firebase_app():
    """Initialize the Admin SDK app once per process."""
    global _firebase_app
    if _firebase_app is not None:
        return _firebase_app

    try:
        _firebase_app = firebase_admin.get_app()
    except ValueError:
        options = {'projectId': settings.FIREBASE_PROJECT_ID} if settings.FIREBASE_PROJECT_ID else None
        _firebase_app = firebase_admin.initialize_app(_build_credential(), options)
        logger.info("Firebase Admin SDK initialized")
    return _firebase_app


def verify_token(token: str) -> dict:
    """
    Verify an ID token and return its decoded claims.

    Raises:
        TokenVerificationError: With an error code and HTTP status describing
            why verification failed
    """
    try:
        return firebase_auth.verify_id_token(token, app=get_firebase_app())
    except firebase_auth.ExpiredIdTokenError:
        raise TokenVerificationError('Session expired', 'TOKEN_EXPIRED', 401)
    except firebase_auth.RevokedIdTokenError:
        raise TokenVerificationError('Session revoked', 'TOKEN_REVOKED', 401)
    except firebase_auth.UserNotFoundError:
        raise TokenVerificationError('User not found', 'USER_NOT_FOUND', 404)
    except (firebase_auth.InvalidIdTokenError, ValueError) as e:
        logger.warning(f"Invalid token: {e}")
        raise TokenVerificationError('Invalid token', 'INVALID_TOKEN', 401)
    except firebase_exceptions.ResourceExhaustedError:
        raise TokenVerificationError(
            'Identity provider quota exceeded. Please try again later.',
            'QUOTA_EXCEEDED',
            429,
        )
    except firebase_exceptions.FirebaseError as e:
        logger.error(f"Identity provider error: {e}")
        raise TokenVerificationError('Authentication service unavailable', 'AUTH_UNAVAILABLE', 503)

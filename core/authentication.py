"""
Bearer token authentication for DRF views.

Flow:
1. Read ``Authorization: Bearer <token>``
2. Verify the token with the identity provider
3. Load the user's profile document from the ``users`` collection
4. Reject deactivated accounts, otherwise attach an AuthenticatedUser
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from rest_framework import exceptions
from rest_framework.authentication import BaseAuthentication

from documents.store import DocumentStoreError, get_document_store
from .exceptions import AccountDeactivated, IdentityError, UserNotFound
from .identity import TokenVerificationError, verify_token

logger = logging.getLogger(__name__)

USERS_COLLECTION = 'users'

SUPER_ADMIN_ROLES = {'super_admin', 'superadmin'}


@dataclass
class AuthenticatedUser:
    """The caller of a request, built from token claims and the profile document."""
    uid: str
    email: str = ''
    name: str = ''
    role: str = 'staff'
    department: Optional[str] = None
    company: Optional[str] = None
    accessible_sections: List[str] = field(default_factory=list)

    is_authenticated = True
    is_anonymous = False

    @property
    def is_super_admin(self) -> bool:
        return self.role in SUPER_ADMIN_ROLES

    @classmethod
    def from_claims(cls, claims: Dict[str, Any], profile: Dict[str, Any]) -> 'AuthenticatedUser':
        """Claims win over profile fields; role and department are lower-cased."""
        role = claims.get('role') or profile.get('role') or 'staff'
        department = claims.get('department') or profile.get('department')
        return cls(
            uid=claims.get('uid') or claims.get('user_id') or profile.get('id', ''),
            email=claims.get('email') or profile.get('email') or '',
            name=profile.get('name') or claims.get('name') or '',
            role=str(role).lower(),
            department=str(department).lower() if department else None,
            company=profile.get('company'),
            accessible_sections=list(profile.get('accessibleSections') or []),
        )


class BearerTokenAuthentication(BaseAuthentication):
    """
    Authenticate requests against the external identity provider.

    Returns None when no Authorization header is present so that
    IsAuthenticated produces a 401 with code MISSING_TOKEN.
    """
    keyword = 'Bearer'

    def authenticate(self, request):
        header = request.META.get('HTTP_AUTHORIZATION', '')
        if not header:
            return None

        parts = header.split()
        if len(parts) != 2 or parts[0].lower() != self.keyword.lower():
            raise exceptions.AuthenticationFailed(
                'Authorization token required', code='MISSING_TOKEN'
            )
        token = parts[1]

        try:
            claims = verify_token(token)
        except TokenVerificationError as e:
            logger.warning(f"Authentication error: {e.code}")
            raise IdentityError(e.message, e.code, e.status_code)

        uid = claims.get('uid') or claims.get('user_id')
        if not uid:
            raise IdentityError('Invalid token', 'INVALID_TOKEN')

        try:
            profile = get_document_store().get_by_id(USERS_COLLECTION, uid)
        except DocumentStoreError as e:
            logger.error(f"Failed to load profile for {uid}: {e}")
            raise IdentityError('Authentication service unavailable', 'AUTH_UNAVAILABLE', 503)

        if profile is None:
            raise UserNotFound()
        if profile.get('isActive') is False:
            raise AccountDeactivated()

        user = AuthenticatedUser.from_claims({**claims, 'uid': uid}, profile)
        return user, token

    def authenticate_header(self, request):
        return f'{self.keyword} realm="api"'

"""
Redis-based rate limiting for API endpoints.
Implements a fixed window counter keyed by caller identity.

Inventory analysis scans every product and sales collection, so those views
are rate limited per authenticated user (falling back to client IP).
"""
import logging
from functools import wraps

import redis
from django.conf import settings
from rest_framework import exceptions, status
from rest_framework.response import Response

from .exceptions import error_envelope
from .redis_client import get_redis_client

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Extract client IP address from request."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR', 'unknown')
    return ip


def get_rate_limit_identity(request):
    """Authenticated uid when available, otherwise the client IP."""
    uid = getattr(getattr(request, 'user', None), 'uid', None)
    if uid:
        return f"user:{uid}"
    return f"ip:{get_client_ip(request)}"


def _rate_limited_response(max_requests, window_seconds, ttl):
    message = f'Maximum {max_requests} requests per {window_seconds} seconds allowed.'
    body = error_envelope('Rate limit exceeded', message, 'RATE_LIMITED')
    body['retry_after'] = ttl
    return Response(
        body,
        status=status.HTTP_429_TOO_MANY_REQUESTS,
        headers={
            'X-RateLimit-Limit': str(max_requests),
            'X-RateLimit-Remaining': '0',
            'X-RateLimit-Reset': str(ttl),
            'Retry-After': str(ttl)
        }
    )


def _count_request(key, window_seconds):
    """Increment the window counter; returns (count, ttl)."""
    client = get_redis_client()
    current_count = client.incr(key)
    if current_count == 1:
        client.expire(key, window_seconds)
    return current_count, client.ttl(key)


def _add_headers(response, max_requests, current_count, ttl):
    response['X-RateLimit-Limit'] = str(max_requests)
    response['X-RateLimit-Remaining'] = str(max(0, max_requests - current_count))
    response['X-RateLimit-Reset'] = str(ttl)
    return response


def _enabled():
    return getattr(settings, 'RATE_LIMIT_ENABLED', True) and get_redis_client() is not None


def rate_limit(max_requests: int = 20, window_seconds: int = 60):
    """
    Rate limiting decorator for DRF view methods.

    Args:
        max_requests: Maximum number of requests allowed in the window
        window_seconds: Time window in seconds

    Usage:
        @rate_limit(20, 60)  # 20 requests per minute
        def get(self, request):
            ...
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(self, request, *args, **kwargs):
            if not _enabled():
                return view_func(self, request, *args, **kwargs)

            try:
                key = f"rate_limit:{view_func.__qualname__}:{get_rate_limit_identity(request)}"
                current_count, ttl = _count_request(key, window_seconds)
            except redis.RedisError as e:
                logger.error(f"Redis error in rate limiting: {e}")
                # Fail open
                return view_func(self, request, *args, **kwargs)

            if current_count > max_requests:
                return _rate_limited_response(max_requests, window_seconds, ttl)

            response = view_func(self, request, *args, **kwargs)
            return _add_headers(response, max_requests, current_count, ttl)

        return wrapper
    return decorator


class RateLimitMixin:
    """
    Mixin class for class-based views to add rate limiting.

    The counter runs in ``initial`` (after authentication) so the key can use
    the caller's uid.

    Usage:
        class MyView(RateLimitMixin, APIView):
            rate_limit_max_requests = 20
            rate_limit_window_seconds = 60
    """
    rate_limit_max_requests = 20
    rate_limit_window_seconds = 60

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        self._rate_limit_state = None

        if not _enabled():
            return

        try:
            key = f"rate_limit:{self.__class__.__name__}:{get_rate_limit_identity(request)}"
            self._rate_limit_state = _count_request(key, self.rate_limit_window_seconds)
        except redis.RedisError as e:
            logger.error(f"Redis error in rate limiting: {e}")
            return

        current_count, ttl = self._rate_limit_state
        if current_count > self.rate_limit_max_requests:
            raise exceptions.Throttled(
                wait=ttl,
                detail=(
                    f'Maximum {self.rate_limit_max_requests} requests per '
                    f'{self.rate_limit_window_seconds} seconds allowed.'
                ),
            )

    def finalize_response(self, request, response, *args, **kwargs):
        state = getattr(self, '_rate_limit_state', None)
        if state:
            _add_headers(response, self.rate_limit_max_requests, state[0], state[1])
        return super().finalize_response(request, response, *args, **kwargs)

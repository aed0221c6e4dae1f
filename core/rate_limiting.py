"""
Redis-based rate limiting for API endpoints.

A fixed window counter per view and client IP. When Redis is unreachable the
limiter fails open and the request is served.
"""
import logging
import time
from functools import wraps

import redis
from django.conf import settings
from rest_framework import status
from rest_framework.response import Response

logger = logging.getLogger(__name__)

_redis_client = None
_redis_retry_at = 0.0

# Seconds to wait before reconnecting after a failed connection attempt
REDIS_RETRY_SECONDS = 30


def get_redis_client():
    """
    Return a shared Redis client, or None when Redis cannot be reached.

    A failed connection is remembered for ``REDIS_RETRY_SECONDS`` so requests
    do not each wait for the connect timeout while Redis is down.
    """
    global _redis_client, _redis_retry_at
    if _redis_client is not None:
        return _redis_client
    if time.monotonic() < _redis_retry_at:
        return None

    try:
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5
        )
        client.ping()
    except (redis.ConnectionError, redis.TimeoutError) as e:
        _redis_retry_at = time.monotonic() + REDIS_RETRY_SECONDS
        logger.warning(
            f"Redis connection failed: {e}. Rate limiting is skipped "
            f"for the next {REDIS_RETRY_SECONDS} seconds."
        )
        return None
    _redis_client = client
    return _redis_client


def get_client_ip(request):
    """Extract client IP address from request."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', 'unknown')


def rate_limit(max_requests: int = 10, window_seconds: int = 60):
    """
    Rate limiting decorator for DRF view methods.

    Usage:
        @rate_limit(10, 60)  # 10 requests per minute
        def post(self, request):
            ...
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(self, request, *args, **kwargs):
            if not getattr(settings, 'RATE_LIMIT_ENABLED', True):
                return view_func(self, request, *args, **kwargs)

            client = get_redis_client()
            if client is None:
                return view_func(self, request, *args, **kwargs)

            try:
                key = f"rate_limit:{self.__class__.__name__}:{get_client_ip(request)}"
                current_count = client.incr(key)
                if current_count == 1:
                    client.expire(key, window_seconds)
                ttl = client.ttl(key)
            except redis.RedisError as e:
                logger.error(f"Redis error in rate limiting: {e}")
                return view_func(self, request, *args, **kwargs)

            if current_count > max_requests:
                logger.warning(f"Rate limit exceeded for {key}")
                return Response(
                    {
                        'error': 'Rate limit exceeded',
                        'detail': f'Maximum {max_requests} requests per {window_seconds} seconds allowed.',
                        'retry_after': ttl
                    },
                    status=status.HTTP_429_TOO_MANY_REQUESTS,
                    headers={
                        'X-RateLimit-Limit': str(max_requests),
                        'X-RateLimit-Remaining': '0',
                        'X-RateLimit-Reset': str(ttl),
                        'Retry-After': str(ttl)
                    }
                )

            response = view_func(self, request, *args, **kwargs)
            response['X-RateLimit-Limit'] = str(max_requests)
            response['X-RateLimit-Remaining'] = str(max(0, max_requests - current_count))
            response['X-RateLimit-Reset'] = str(ttl)
            return response

        return wrapper
    return decorator

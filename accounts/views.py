"""
Session Authentication Views.

Implements:
- GET /auth/login/ - Login hint (signed-in users are redirected by the session gate)
- POST /auth/login/ - Credential login starting a Django session
- POST /auth/logout/ - End the session
- GET /auth/me/ - Current user
"""
import logging

from django.conf import settings
from django.contrib.auth import login, logout
from django.utils.http import url_has_allowed_host_and_scheme
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from core.rate_limiting import rate_limit
from .serializers import LoginSerializer, UserSerializer

logger = logging.getLogger(__name__)


def safe_next_url(request, candidate: str) -> str:
    """Return ``candidate`` when it points into this site, else the default landing page."""
    if candidate and url_has_allowed_host_and_scheme(
        candidate,
        allowed_hosts={request.get_host()},
        require_https=request.is_secure()
    ):
        return candidate
    return settings.LOGIN_REDIRECT_URL


class LoginView(APIView):
    """
    GET: Tell anonymous clients how to sign in
    POST: Validate username/password and start a session

    Rate limited per client IP (LOGIN_RATE_LIMIT requests per minute).
    """
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({
            'detail': 'Authentication required. POST username and password to this URL.',
            'next': safe_next_url(request, request.query_params.get('next', '')),
        }, status=status.HTTP_200_OK)

    @rate_limit(max_requests=settings.LOGIN_RATE_LIMIT, window_seconds=60)
    def post(self, request):
        serializer = LoginSerializer(data=request.data, context={'request': request})
        if not serializer.is_valid():
            if 'non_field_errors' not in serializer.errors:
                return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
            logger.warning(f"Failed login for '{request.data.get('username', '')}'")
            return Response(
                {'error': 'Invalid credentials', 'detail': 'Invalid username or password.'},
                status=status.HTTP_401_UNAUTHORIZED
            )

        user = serializer.validated_data['user']
        login(request, user)
        logger.info(f"User {user.username} signed in")

        next_url = serializer.validated_data['next'] or request.query_params.get('next', '')
        return Response({
            'user': UserSerializer(user).data,
            'next': safe_next_url(request, next_url),
        })


class LogoutView(APIView):
    """POST: End the current session."""

    def post(self, request):
        username = request.user.username
        logout(request)
        logger.info(f"User {username} signed out")
        return Response({'ok': True})


class MeView(APIView):
    """GET: The signed-in user."""

    def get(self, request):
        return Response(UserSerializer(request.user).data)

"""
Session gate for every route except login, health, admin and static assets.
"""
import logging

from django.conf import settings
from django.contrib.auth.views import redirect_to_login
from django.shortcuts import redirect

logger = logging.getLogger(__name__)


class SessionGateMiddleware:
    """
    Redirect anonymous requests to ``LOGIN_URL`` keeping the requested path
    in ``next``. Signed-in users opening the login page are sent to
    ``LOGIN_REDIRECT_URL``.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        path = request.path_info

        if path == settings.LOGIN_URL:
            if request.method == 'GET' and request.user.is_authenticated:
                return redirect(settings.LOGIN_REDIRECT_URL)
            return self.get_response(request)

        if self.is_public(path) or request.user.is_authenticated:
            return self.get_response(request)

        logger.debug(f"Anonymous request to {path} redirected to login")
        return redirect_to_login(request.get_full_path(), settings.LOGIN_URL)

    @staticmethod
    def is_public(path: str) -> bool:
        if settings.STATIC_URL and path.startswith(settings.STATIC_URL):
            return True
        return any(
            path.startswith(public_path)
            for public_path in getattr(settings, 'SESSION_GATE_PUBLIC_PATHS', ())
        )

from typing import Optional, TypeVar

from django.contrib.auth.models import AbstractBaseUser
from rest_framework import HTTP_HEADER_ENCODING
from rest_framework.request import Request

from rest_framework_simplejwt.models import TokenUser
from rest_framework_simplejwt.tokens import Token
from rest_framework_simplejwt.authentication import JWTAuthentication as original_auth

AuthUser = TypeVar("AuthUser", AbstractBaseUser, TokenUser)

ACCESS_TOKEN_COOKIE = "access_token"


class JWTAuthentication(original_auth):
    """
    JWT authentication for the dashboard API. The ``Authorization: Bearer``
    header wins; browsers without it fall back to the ``access_token`` cookie.
    """

    www_authenticate_realm = "api"
    media_type = "application/json"

    def authenticate(self, request: Request) -> Optional[tuple[AuthUser, Token]]:
        header = self.get_header(request)
        if header is not None:
            raw_token = self.get_raw_token(header)
        else:
            cookie = request.COOKIES.get(ACCESS_TOKEN_COOKIE) or None
            raw_token = cookie.encode(HTTP_HEADER_ENCODING) if cookie else None

        if raw_token is None:
            return None

        validated_token = self.get_validated_token(raw_token)

        return self.get_user(validated_token), validated_token

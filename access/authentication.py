"""
Token authentication for the API.

A thin subclass of Django REST framework's ``TokenAuthentication`` kept
in its own module so settings can reference a stable import path without
pulling in any view code.
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    """Header format: ``Authorization: Token <key>``."""

    keyword = 'Token'

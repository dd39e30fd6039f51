"""HTTP session infrastructure package."""

from .http_session import AuthenticationModel, HttpSession

__all__ = ["AuthenticationModel", "HttpSession"]

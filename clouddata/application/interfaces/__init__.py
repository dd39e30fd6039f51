from .session import DataSession, ServiceResponse, SessionStatus

__all__ = [
    "DataSession",
    "ServiceResponse",
    "SessionStatus",
]

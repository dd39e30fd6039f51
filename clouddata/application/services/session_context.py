"""Default-session holder.

Cloud data objects constructed without an explicit session fall back to the
session registered here. The holder is a ``ContextVar`` so concurrent tasks
and tests can each work with their own default.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from clouddata.application.interfaces.session import DataSession
from clouddata.domain.exceptions import NoSessionError

logger = logging.getLogger(__name__)

_default_session: ContextVar[DataSession | None] = ContextVar(
    "clouddata_default_session", default=None
)


def init_default_session(session: DataSession) -> None:
    """Register ``session`` as the default for this context."""
    _default_session.set(session)
    logger.debug("Default session set to %s", session.service_uri)


def get_default_session() -> DataSession:
    session = _default_session.get()
    if session is None:
        raise NoSessionError("No session supplied and no default session initialised")
    return session


def has_default_session() -> bool:
    return _default_session.get() is not None


def reset_default_session() -> None:
    _default_session.set(None)


@contextmanager
def default_session(session: DataSession) -> Iterator[DataSession]:
    """Use ``session`` as the default inside a ``with`` block.

    Usage:
        with default_session(session):
            customers = CloudDataObject("Customer")
    """
    token = _default_session.set(session)
    try:
        yield session
    finally:
        _default_session.reset(token)

"""Wires settings to the HTTP session and the default-session holder."""

import logging

from clouddata.application.interfaces.session import SessionStatus
from clouddata.application.services.session_context import init_default_session
from clouddata.config import Settings, get_settings
from clouddata.domain.exceptions import AuthenticationError
from clouddata.infrastructure.logging.log_config import setup_logging
from clouddata.infrastructure.session import HttpSession

logger = logging.getLogger(__name__)


def build_session(settings: Settings | None = None, **kwargs) -> HttpSession:
    """Provides an HttpSession configured from settings (extra kwargs go to the session)."""
    settings = settings or get_settings()
    return HttpSession(
        settings.service_uri,
        authentication_model=settings.authentication_model,
        username=settings.client_id,
        password=settings.client_secret,
        access_token=settings.access_token,
        login_path=settings.login_path,
        timeout=settings.request_timeout,
        **kwargs,
    )


async def connect(settings: Settings | None = None, **kwargs) -> HttpSession:
    """Log in, load the configured catalogs and register the session as the default.

    Raises AuthenticationError when the service rejects the credentials.
    """
    settings = settings or get_settings()
    setup_logging(settings)

    session = build_session(settings, **kwargs)
    status = await session.login()
    if status is not SessionStatus.AUTHENTICATION_SUCCESS:
        raise AuthenticationError(status.value)

    if settings.catalog_uris:
        await session.add_catalog(*settings.catalog_uris)
    init_default_session(session)
    logger.info("Connected to %s (%d service(s))", session.service_uri, len(session.services))
    return session

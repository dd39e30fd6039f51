"""HTTP session: implements the DataSession port.

Holds the service URI, the authentication model and the catalogs loaded for
the service, and sends every request through httpx with the
authentication headers applied.
"""

import base64
import logging
from enum import Enum
from typing import Any

import httpx

from clouddata.application.interfaces.session import (
    DataSession,
    ServiceResponse,
    SessionStatus,
)
from clouddata.application.schemas.catalog import CatalogDefinition, ServiceDefinition
from clouddata.domain.exceptions import TransportError

logger = logging.getLogger(__name__)


class AuthenticationModel(str, Enum):
    ANONYMOUS = "anonymous"
    BASIC = "basic"
    BEARER = "bearer"


class HttpSession(DataSession):
    """Infrastructure adapter: talks to a data service over HTTP.

    Uses an injected ``httpx.AsyncClient`` when given (tests pass one with a
    ``MockTransport``); otherwise a client is created per request and closed
    afterwards.
    """

    def __init__(
        self,
        service_uri: str,
        *,
        authentication_model: AuthenticationModel | str = AuthenticationModel.ANONYMOUS,
        username: str = "",
        password: str = "",
        access_token: str = "",
        login_path: str = "/static/home.html",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._service_uri = service_uri.rstrip("/")
        self._authentication_model = AuthenticationModel(authentication_model)
        self._username = username
        self._password = password
        self._access_token = access_token
        self._login_path = login_path
        self._timeout = timeout
        self._http_client = http_client
        self._catalogs: list[CatalogDefinition] = []
        self._login_result: SessionStatus | None = None
        self._login_http_status: int | None = None

    # ── DataSession port ────────────────────────────────────────────

    @property
    def service_uri(self) -> str:
        return self._service_uri

    @property
    def authentication_model(self) -> AuthenticationModel:
        return self._authentication_model

    @property
    def services(self) -> list[ServiceDefinition]:
        return [service for catalog in self._catalogs for service in catalog.services]

    @property
    def catalogs(self) -> list[CatalogDefinition]:
        return list(self._catalogs)

    @property
    def login_result(self) -> SessionStatus | None:
        return self._login_result

    @property
    def login_http_status(self) -> int | None:
        return self._login_http_status

    @property
    def is_logged_in(self) -> bool:
        if self._authentication_model is AuthenticationModel.ANONYMOUS:
            return self._login_result is not SessionStatus.AUTHENTICATION_FAILURE
        return self._login_result is SessionStatus.AUTHENTICATION_SUCCESS

    async def send(
        self, method: str, url: str, json_body: dict[str, Any] | None = None
    ) -> ServiceResponse:
        """Send an authenticated request and parse its JSON body."""
        client = await self._get_client()
        should_close = self._http_client is None

        try:
            response = await client.request(
                method, url, headers=self._get_headers(), json=json_body
            )
        except httpx.HTTPError as exc:
            raise TransportError(method, url, message=str(exc)) from exc
        finally:
            if should_close:
                await client.aclose()

        logger.debug("%s %s → %d", method, url, response.status_code)
        return ServiceResponse(
            status_code=response.status_code,
            url=str(response.url),
            body=_parse_json(response),
        )

    # ── Login / logout ──────────────────────────────────────────────

    async def login(self) -> SessionStatus:
        """Verify the credentials against the service's login page."""
        url = f"{self._service_uri}{self._login_path}"
        try:
            response = await self.send("GET", url)
        except TransportError as exc:
            logger.warning("Login to %s failed: %s", self._service_uri, exc)
            self._login_http_status = None
            self._login_result = SessionStatus.GENERAL_FAILURE
            return self._login_result

        self._login_http_status = response.status_code
        if response.status_code == 200:
            self._login_result = SessionStatus.AUTHENTICATION_SUCCESS
        elif response.status_code == 401:
            self._login_result = SessionStatus.AUTHENTICATION_FAILURE
        else:
            self._login_result = SessionStatus.GENERAL_FAILURE
        logger.info(
            "Login to %s: %s (HTTP %d)",
            self._service_uri,
            self._login_result.value,
            response.status_code,
        )
        return self._login_result

    async def logout(self) -> None:
        self._login_result = None
        self._login_http_status = None
        self._catalogs.clear()
        logger.info("Logged out of %s", self._service_uri)

    # ── Catalogs ────────────────────────────────────────────────────

    async def add_catalog(self, *uris: str) -> list[CatalogDefinition]:
        """Fetch and register one or more catalogs.

        Relative URIs are resolved against the service URI.
        """
        loaded: list[CatalogDefinition] = []
        for uri in uris:
            url = uri if "://" in uri else f"{self._service_uri}/{uri.lstrip('/')}"
            response = await self.send("GET", url)
            if not response.is_success or not isinstance(response.body, dict):
                raise TransportError(
                    "GET", url, status_code=response.status_code, message="catalog not available"
                )
            loaded.append(self.load_catalog(response.body))
        return loaded

    def load_catalog(self, data: dict[str, Any]) -> CatalogDefinition:
        """Register a catalog that is already in memory."""
        catalog = CatalogDefinition.model_validate(data)
        self._catalogs.append(catalog)
        logger.info(
            "Loaded catalog with %d service(s): %s",
            len(catalog.services),
            ", ".join(s.name for s in catalog.services),
        )
        return catalog

    # ── Internals ───────────────────────────────────────────────────

    async def _get_client(self) -> httpx.AsyncClient:
        """Return the injected client or create a new one."""
        if self._http_client is not None:
            return self._http_client
        return httpx.AsyncClient(timeout=self._timeout)

    def _get_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Cache-Control": "no-cache",
        }
        if self._authentication_model is AuthenticationModel.BASIC:
            token = base64.b64encode(f"{self._username}:{self._password}".encode()).decode()
            headers["Authorization"] = f"Basic {token}"
        elif self._authentication_model is AuthenticationModel.BEARER:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()

    async def __aenter__(self) -> "HttpSession":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def _parse_json(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        logger.debug("Response from %s is not JSON", response.url)
        return None

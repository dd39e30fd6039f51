"""Abstract interface (port) for the authenticated session a cloud data object talks through."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from clouddata.application.schemas.catalog import ResourceDefinition, ServiceDefinition
from clouddata.domain.exceptions import InvalidOperationError


class SessionStatus(str, Enum):
    """Outcome of the most recent login attempt."""

    AUTHENTICATION_SUCCESS = "authentication_success"
    AUTHENTICATION_FAILURE = "authentication_failure"
    GENERAL_FAILURE = "general_failure"


@dataclass
class ServiceResponse:
    """Transport-neutral view of an HTTP response."""

    status_code: int
    url: str
    body: Any = None  # parsed JSON, or None when the response had no JSON body

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


class DataSession(ABC):
    """Port for session/transport, implemented in the infrastructure layer."""

    @property
    @abstractmethod
    def service_uri(self) -> str:
        """Base URI every service address is resolved against."""
        ...

    @property
    @abstractmethod
    def services(self) -> list[ServiceDefinition]:
        """All services from the catalogs loaded into this session."""
        ...

    @property
    @abstractmethod
    def login_result(self) -> SessionStatus | None:
        ...

    @property
    @abstractmethod
    def is_logged_in(self) -> bool:
        ...

    @abstractmethod
    async def send(
        self, method: str, url: str, json_body: dict[str, Any] | None = None
    ) -> ServiceResponse:
        """Send an authenticated request. Raises TransportError on network failure."""
        ...

    def verify_resource(self, resource_name: str) -> tuple[ServiceDefinition, ResourceDefinition]:
        """Find the service and resource definition for a resource name."""
        for service in self.services:
            for resource in service.resources:
                if resource.name == resource_name:
                    return service, resource
        raise InvalidOperationError(resource_name, "resource")

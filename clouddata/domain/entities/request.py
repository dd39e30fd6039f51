"""Domain entity: one network operation and its outcome, returned to callers."""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from clouddata.domain.exceptions import ServerError, TransportError


class OperationType(str, Enum):
    """Operation kinds a resource may declare in its catalog."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    INVOKE = "invoke"
    SUBMIT = "submit"


@dataclass
class DataRequest:
    """A request issued by a cloud data object.

    ``success`` and ``response`` are filled once the response has been
    processed; callers always receive the request back so they can inspect
    the raw response body.
    """

    operation_type: OperationType
    method: str
    url: str
    fn_name: str | None = None
    obj_param: dict[str, Any] | None = None
    table_name: str | None = None
    response: Any = None  # parsed JSON body, unwrapped from "response" for named operations
    success: bool | None = None
    status_code: int | None = None

    def raise_for_error(self) -> None:
        """Raise for a service error envelope, then for a non-success status."""
        if isinstance(self.response, dict):
            _raise_for_error_envelope(self.response)
        if self.success is False:
            raise TransportError(
                self.method,
                self.url,
                status_code=self.status_code,
                request=self,
            )


def _raise_for_error_envelope(body: dict[str, Any]) -> None:
    # OAuth-style envelope
    if "error" in body:
        raise ServerError(
            code=str(body.get("error")),
            message=str(body.get("error_description") or ""),
            scope=body.get("scope"),
        )

    # Application server envelope
    if "_errors" in body:
        code = ""
        message = body.get("_retVal") or ""
        errors = body.get("_errors") or []
        if errors:
            first = errors[0]
            code = str(first.get("_errorNum", ""))
            if not message:
                message = first.get("_errorMsg", "")
        raise ServerError(code=code, message=str(message))

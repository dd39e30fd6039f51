"""Unit tests for the CloudDataObject, served through httpx.MockTransport."""

import asyncio
import json

import httpx
import pytest

from clouddata.application.services import (
    CloudDataEvent,
    CloudDataObject,
    default_session,
)
from clouddata.domain.entities import MergeMode, QueryRequest
from clouddata.domain.exceptions import (
    AuthenticationError,
    DuplicateIdentityError,
    InvalidOperationError,
    NoSessionError,
    OperationCancelledError,
    ServerError,
    TransportError,
)
from clouddata.infrastructure.session import HttpSession

SERVICE_URI = "http://testserver/CustomerApp"
RESOURCE_URL = f"{SERVICE_URI}/rest/CustomerService/Customer"


class FakeCustomerService:
    """In-memory Customer resource answering the calls a CDO makes."""

    def __init__(self, rows: list[dict] | None = None):
        self.rows: dict[str, dict] = {str(r["CustNum"]): dict(r) for r in rows or []}
        self.calls: list[tuple[str, httpx.URL, dict | None]] = []
        self.fail_method: str | None = None
        self.error_body: dict | None = None
        self.read_started = asyncio.Event()
        self._next_id = 100

    @property
    def methods(self) -> list[str]:
        return [method for method, _, _ in self.calls]

    def _dataset(self, rows) -> dict:
        return {"dsCustomer": {"ttCustomer": list(rows)}}

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, request.url, body))
        if request.method == self.fail_method:
            return httpx.Response(500, json=self.error_body or {})
        if self.error_body is not None:
            return httpx.Response(200, json=self.error_body)

        path = request.url.path
        if request.method == "GET":
            self.read_started.set()
            return httpx.Response(200, json=self._dataset(self.rows.values()))

        if request.method == "POST":
            created = []
            for row in body["ttCustomer"]:
                values = {k: v for k, v in row.items() if not k.startswith("prods:")}
                values["CustNum"] = self._next_id
                self._next_id += 1
                self.rows[str(values["CustNum"])] = values
                created.append({**values, "prods:clientId": row["prods:clientId"]})
            return httpx.Response(200, json=self._dataset(created))

        if request.method == "PUT" and path.endswith("/count"):
            return httpx.Response(200, json={"response": {"numRecs": len(self.rows)}})

        if request.method == "PUT" and path.endswith("/refresh"):
            return httpx.Response(200, json={"response": self._dataset(self.rows.values())})

        if request.method == "PUT":
            for row in body["ttCustomer"]:
                values = {k: v for k, v in row.items() if not k.startswith("prods:")}
                self.rows.pop(row["prods:id"], None)
                self.rows[str(values["CustNum"])] = values
            return httpx.Response(200, json=body)

        if request.method == "DELETE":
            for row in body["ttCustomer"]:
                self.rows.pop(str(row["CustNum"]), None)
            return httpx.Response(200, json={})

        return httpx.Response(405)


@pytest.fixture
def service() -> FakeCustomerService:
    return FakeCustomerService(
        [
            {"CustNum": 1, "Name": "Lift Tours", "Country": "USA"},
            {"CustNum": 2, "Name": "Urpon Frisbee", "Country": "Finland"},
        ]
    )


@pytest.fixture
def session(service: FakeCustomerService, catalog: dict) -> HttpSession:
    s = HttpSession(
        SERVICE_URI,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(service.handler)),
    )
    s.load_catalog(catalog)
    return s


@pytest.fixture
def cdo(session: HttpSession) -> CloudDataObject:
    return CloudDataObject("Customer", session, auto_apply_changes=True)


# ── Construction ──


def test_resolves_resource_main_table_and_key(cdo: CloudDataObject):
    assert cdo.main_table == "ttCustomer"
    assert cdo.primary_key == "CustNum"
    assert cdo.table.name == "ttCustomer"
    assert not cdo.has_data()
    assert cdo.get_schema().dataset_name == "dsCustomer"


def test_unknown_resource_raises(session: HttpSession):
    with pytest.raises(InvalidOperationError):
        CloudDataObject("Nope", session, auto_apply_changes=True)


def test_falls_back_to_default_session(session: HttpSession):
    with default_session(session):
        cdo = CloudDataObject("Customer", auto_apply_changes=True)
    assert cdo.session is session


def test_no_session_raises():
    with pytest.raises(NoSessionError):
        CloudDataObject("Customer", auto_apply_changes=True)


# ── Reads ──


@pytest.mark.asyncio
async def test_read_fills_memory(cdo: CloudDataObject, service: FakeCustomerService):
    request = await cdo.read()

    assert request.success is True
    assert request.status_code == 200
    assert str(service.calls[0][1]) == RESOURCE_URL
    assert cdo.has_data()
    assert cdo.table.get("2")["Name"] == "Urpon Frisbee"
    assert not cdo.has_changes()
    assert cdo.memory.name == "dsCustomer"


@pytest.mark.asyncio
async def test_read_substitutes_filter(cdo: CloudDataObject, service: FakeCustomerService):
    await cdo.fill("Country = 'USA'")
    url = service.calls[0][1]
    assert url.path == "/CustomerApp/rest/CustomerService/Customer"
    assert url.params["filter"] == "Country = 'USA'"


@pytest.mark.asyncio
async def test_read_serialises_query_request_against_capabilities(
    cdo: CloudDataObject, service: FakeCustomerService
):
    await cdo.read(QueryRequest(filter="Name > 'L'", top=5, sort="Name"))
    sent = json.loads(service.calls[0][1].params["filter"])
    assert sent == {"filter": "Name > 'L'", "top": 5}


@pytest.mark.asyncio
async def test_read_with_merge_keeps_local_rows(cdo: CloudDataObject):
    cdo.add_records([{"CustNum": 50, "Name": "Local"}], MergeMode.APPEND)
    await cdo.read(merge_mode=MergeMode.MERGE)
    assert {"1", "2", "50"} <= set(cdo.table.rows)


@pytest.mark.asyncio
async def test_get_returns_fresh_dataset(cdo: CloudDataObject):
    dataset = await cdo.get("CustNum = 1")
    assert len(dataset.main) == 2
    assert not cdo.has_data()


@pytest.mark.asyncio
async def test_find_and_find_by_id(cdo: CloudDataObject, service: FakeCustomerService):
    assert await cdo.find_by_id("2") is None
    assert service.calls == []

    record = await cdo.find_by_id("2", auto_fetch=True)
    assert record["Name"] == "Urpon Frisbee"
    assert service.calls[0][1].params["filter"] == "CustNum = '2'"

    found = await cdo.find(lambda r: r["Country"] == "USA")
    assert found.identity == "1"
    assert len(service.calls) == 1


@pytest.mark.asyncio
async def test_find_auto_fetch_filter(cdo: CloudDataObject, service: FakeCustomerService):
    found = await cdo.find(lambda r: r["Name"] == "Lift Tours", "Name = 'Lift Tours'")
    assert found is not None
    assert len(service.calls) == 1


# ── Saves ──


@pytest.mark.asyncio
async def test_create_scenario_single_batch(cdo: CloudDataObject, service: FakeCustomerService):
    await cdo.read()
    record = cdo.add({"Name": "Hoops"})
    token = record.identity

    requests = await cdo.save_changes()

    assert service.methods == ["GET", "POST"]
    method, url, body = service.calls[1]
    assert str(url) == RESOURCE_URL
    (row,) = body["ttCustomer"]
    assert row["prods:rowState"] == "created"
    assert row["prods:clientId"] == token
    assert row["CustNum"] == "0"
    assert row["Country"] == "USA"
    assert len(requests) == 1
    assert record.identity == "100"
    assert cdo.table.get("100") is record
    assert not cdo.has_changes()


@pytest.mark.asyncio
async def test_save_orders_delete_create_update(cdo: CloudDataObject, service: FakeCustomerService):
    await cdo.read()
    cdo.remove(cdo.table.get("2"))
    cdo.table.get("1")["Name"] = "Lift Line"
    cdo.create({"Name": "New"})

    await cdo.save_changes()

    assert service.methods == ["GET", "DELETE", "POST", "PUT"]
    assert service.calls[3][2]["ttCustomer"][0]["prods:id"] == "1"
    assert "2" not in service.rows
    assert service.rows["1"]["Name"] == "Lift Line"


@pytest.mark.asyncio
async def test_add_then_remove_makes_no_network_call(
    cdo: CloudDataObject, service: FakeCustomerService
):
    first = cdo.add({"Name": "a"})
    second = cdo.add({"Name": "b"})
    cdo.remove(first)
    cdo.remove(second)

    assert await cdo.save_changes() == []
    assert service.calls == []


@pytest.mark.asyncio
async def test_reject_before_save_reverts_edit(cdo: CloudDataObject):
    await cdo.read()
    row = cdo.table.get("1")
    row["Name"] = "Changed"
    cdo.reject_changes()

    assert row["Name"] == "Lift Tours"
    assert not cdo.has_changes()


@pytest.mark.asyncio
async def test_missing_operation_fails_before_any_call(
    catalog: dict, service: FakeCustomerService
):
    operations = catalog["services"][0]["resources"][0]["operations"]
    operations[:] = [op for op in operations if op["type"] != "delete"]
    session = HttpSession(
        SERVICE_URI,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(service.handler)),
    )
    session.load_catalog(catalog)
    cdo = CloudDataObject("Customer", session, auto_apply_changes=True)
    await cdo.read()
    cdo.create({"Name": "x"})
    cdo.remove("1")

    with pytest.raises(InvalidOperationError):
        await cdo.save_changes()
    assert service.methods == ["GET"]


@pytest.mark.asyncio
async def test_duplicate_add_fails_fast(cdo: CloudDataObject):
    await cdo.read()
    with pytest.raises(DuplicateIdentityError):
        cdo.add({"CustNum": 1, "Name": "Clash"})


@pytest.mark.asyncio
async def test_transport_failure_raises_with_request(
    cdo: CloudDataObject, service: FakeCustomerService
):
    await cdo.read()
    cdo.table.get("1")["Name"] = "x"
    service.fail_method = "PUT"

    with pytest.raises(TransportError) as exc_info:
        await cdo.save_changes()

    assert exc_info.value.status_code == 500
    assert exc_info.value.request.success is False
    assert cdo.has_changes()
    assert not cdo.gate.save_in_progress
    assert not cdo.gate.request_in_flight


@pytest.mark.asyncio
async def test_server_error_envelope(cdo: CloudDataObject, service: FakeCustomerService):
    service.error_body = {"_retVal": "Customer locked", "_errors": [{"_errorNum": 42, "_errorMsg": "locked"}]}
    with pytest.raises(ServerError) as exc_info:
        await cdo.read()
    assert exc_info.value.code == "42"
    assert exc_info.value.message == "Customer locked"


@pytest.mark.asyncio
async def test_auth_error_envelope(cdo: CloudDataObject, service: FakeCustomerService):
    service.fail_method = "GET"
    service.error_body = {"error": "invalid_token", "error_description": "expired", "scope": "read"}
    with pytest.raises(ServerError) as exc_info:
        await cdo.read()
    assert exc_info.value.code == "invalid_token"
    assert exc_info.value.scope == "read"


@pytest.mark.asyncio
async def test_failed_login_blocks_requests(catalog: dict):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401)

    session = HttpSession(
        SERVICE_URI,
        authentication_model="basic",
        username="u",
        password="wrong",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    session.load_catalog(catalog)
    await session.login()
    cdo = CloudDataObject("Customer", session, auto_apply_changes=True)

    with pytest.raises(AuthenticationError):
        await cdo.read()


# ── Concurrency / cancellation ──


@pytest.mark.asyncio
async def test_read_waits_for_in_flight_save(cdo: CloudDataObject, service: FakeCustomerService):
    await cdo.read()
    cdo.remove("2")
    cdo.table.get("1")["Name"] = "Edited"
    release_delete = asyncio.Event()

    async def slow_delete(obj, request):
        await release_delete.wait()

    cdo.subscribe(CloudDataEvent.BEFORE_DELETE, slow_delete)
    save_task = asyncio.create_task(cdo.save_changes())
    await asyncio.sleep(0)
    assert cdo.gate.save_in_progress

    service.read_started.clear()
    read_task = asyncio.create_task(cdo.read())
    await asyncio.sleep(0.01)
    assert not service.read_started.is_set()

    release_delete.set()
    await asyncio.gather(save_task, read_task)
    assert service.methods == ["GET", "DELETE", "PUT", "GET"]


@pytest.mark.asyncio
async def test_queued_save_checks_change_sets_after_previous_save(
    cdo: CloudDataObject, service: FakeCustomerService
):
    await cdo.read()
    cdo.remove("2")
    cdo.table.get("1")["Name"] = "Edited"
    release_delete = asyncio.Event()
    pending_at_start: list[bool] = []

    async def slow_delete(obj, request):
        await release_delete.wait()

    cdo.subscribe(CloudDataEvent.BEFORE_DELETE, slow_delete)
    cdo.subscribe(
        CloudDataEvent.BEFORE_SAVE_CHANGES,
        lambda obj, request: pending_at_start.append(obj.has_changes()),
    )
    first = asyncio.create_task(cdo.save_changes())
    await asyncio.sleep(0)
    second = asyncio.create_task(cdo.save_changes())
    await asyncio.sleep(0.01)
    assert pending_at_start == [True]

    release_delete.set()
    first_requests, second_requests = await asyncio.gather(first, second)

    assert len(first_requests) == 2
    assert second_requests == []
    assert pending_at_start == [True, False]
    assert service.methods == ["GET", "DELETE", "PUT"]


@pytest.mark.asyncio
async def test_cancelled_operation_never_sends(cdo: CloudDataObject, service: FakeCustomerService):
    cancel = asyncio.Event()
    cancel.set()

    with pytest.raises(OperationCancelledError):
        await cdo.read(cancel=cancel)
    with pytest.raises(OperationCancelledError):
        await cdo.invoke("count", cancel=cancel)
    with pytest.raises(OperationCancelledError):
        await cdo.save_changes(cancel=cancel)
    assert service.calls == []


# ── Invoke ──


@pytest.mark.asyncio
async def test_invoke_wraps_params_and_unwraps_response(
    cdo: CloudDataObject, service: FakeCustomerService
):
    request = await cdo.invoke("count", {"filter": "Country = 'USA'"})

    method, url, body = service.calls[0]
    assert method == "PUT"
    assert str(url) == f"{RESOURCE_URL}/count"
    assert body == {"request": {"filter": "Country = 'USA'"}}
    assert request.response == {"numRecs": 2}
    assert not cdo.has_data()


@pytest.mark.asyncio
async def test_invoke_with_merge_mode_merges_response(cdo: CloudDataObject):
    await cdo.invoke("refresh")
    assert len(cdo.table) == 2


@pytest.mark.asyncio
async def test_invoke_unknown_operation(cdo: CloudDataObject):
    with pytest.raises(InvalidOperationError):
        await cdo.invoke("missing")


# ── Events / local operations ──


@pytest.mark.asyncio
async def test_event_hook_order(cdo: CloudDataObject):
    fired: list[str] = []
    for event in CloudDataEvent:
        cdo.subscribe(event, lambda obj, request, e=event: fired.append(e.value))

    await cdo.read()
    cdo.remove("1")
    cdo.table.get("2")["Name"] = "x"
    cdo.add({"Name": "new"})
    await cdo.save_changes()

    assert fired == [
        "before_fill",
        "before_read",
        "after_fill",
        "after_read",
        "before_save_changes",
        "before_delete",
        "after_delete",
        "before_create",
        "after_create",
        "before_update",
        "after_update",
        "after_save_changes",
    ]


@pytest.mark.asyncio
async def test_assign_accept_and_reset(cdo: CloudDataObject):
    await cdo.read()
    cdo.assign({"CustNum": 1, "City": "Boston"})
    assert cdo.table.get("1")["City"] == "Boston"
    assert cdo.has_changes()

    cdo.accept_changes()
    assert not cdo.has_changes()
    assert [r.identity for r in cdo.get_data()] == ["1", "2"]

    old_table = cdo.table
    cdo.reset()
    assert cdo.table is not old_table
    assert not cdo.has_data()

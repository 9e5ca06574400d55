"""
Test configuration.

The accounting backend is replaced by ``FakeBackend``: an httpx
MockTransport handler with a small route table that records every request,
so tests can assert both on what the app rendered and on which calls
(if any) went out.
"""

import json
from datetime import date

import httpx
import pytest
from jose import jwt

from haulpay import create_app
from haulpay.backend import BackendClient

API = "http://backend.test/api"
PERIOD = (date(2026, 10, 5), date(2026, 10, 11))


class FakeBackend:
    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, method, path, status=200, json_body=None, text=None, handler=None):
        self.routes[(method.upper(), path)] = (status, json_body, text, handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/api"):
            path = path[len("/api"):]
        self.calls.append(request)
        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, text=f"no route {request.method} {path}")
        status, body, text, fn = route
        if fn is not None:
            return fn(request)
        if text is not None:
            return httpx.Response(status, text=text)
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)

    # --- inspection helpers ---
    def paths(self, method=None):
        out = []
        for r in self.calls:
            if method and r.method != method:
                continue
            out.append(r.url.path[len("/api"):] if r.url.path.startswith("/api") else r.url.path)
        return out

    def body(self, method, path):
        for r in self.calls:
            p = r.url.path[len("/api"):]
            if r.method == method and p == path:
                return json.loads(r.content or b"null")
        raise AssertionError(f"no {method} {path} call recorded")


def make_token(perm=("payroll.view", "clients.update_rates"), sub="alice"):
    return jwt.encode({"sub": sub, "perm": list(perm)}, "test-secret", algorithm="HS256")


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def fake():
    return FakeBackend()


@pytest.fixture
def api_client(fake):
    """Bare backend client bound to a token, for service-level tests."""
    client = BackendClient(API, token="t0ken", transport=httpx.MockTransport(fake.handler))
    yield client
    client.close()


@pytest.fixture
def app(fake):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test",
        "API_BASE_URL": API,
        "BACKEND_TRANSPORT": httpx.MockTransport(fake.handler),
        "LOG_LEVEL": "DEBUG",
    })
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def _login(client, fake, role, perm=None):
    fake.add("POST", "/account/login", json_body={
        "token": make_token() if perm is None else make_token(perm),
        "role": role,
        "firstName": "Alice",
        "lastName": "Reyes",
    })
    resp = client.post("/login", data={"username": "alice", "password": "pw"})
    assert resp.status_code == 302
    fake.calls.clear()
    return client


@pytest.fixture
def admin(client, fake):
    return _login(client, fake, "Admin")


@pytest.fixture
def driver(client, fake):
    return _login(client, fake, "Driver")


@pytest.fixture
def clerk(client, fake):
    """Accounting operator whose token lacks the rate-management permission."""
    return _login(client, fake, "Accounting", perm=("payroll.view",))


# --- backend payload builders ---
def overview_row(driver_id=7, name="Juan Dela Cruz", status="PREVIEW", payroll_id=None, **extra):
    row = {
        "DriverId": driver_id,
        "DriverName": name,
        "TripCount": 3,
        "PayrollId": payroll_id,
        "ComputedTotalWeightKg": 170,
        "ComputedRatePerKg": 5.35,
        "ComputedPayableAmount": 910,
        "TotalWeightKg": 170,
        "PayableAmount": 910,
        "PaidAmount": 0,
        "Status": status,
        "GeneratedAt": "2026-10-12T08:00:00" if payroll_id else None,
        "DiscrepancyNote": "",
    }
    row.update(extra)
    return row


def preview_trips():
    return [
        {"Id": 101, "ClientName": "Acme", "ClientRatePerKg": 5, "WasteType": "Residual",
         "TimeDone": "2026-10-06T10:00:00", "WeightHauledKg": 100, "ReceiptNumber": "R-1", "Status": "Done"},
        {"Id": 102, "ClientName": "Acme", "ClientRatePerKg": 5, "WasteType": "Residual",
         "TimeDone": "2026-10-07T10:00:00", "WeightHauledKg": 50, "ReceiptNumber": "R-2", "Status": "Done"},
        {"Id": 103, "ClientName": "Bravo Foods", "ClientRatePerKg": 8, "WasteType": "Food",
         "TimeDone": "2026-10-08T10:00:00", "WeightHauledKg": 20, "ReceiptNumber": None, "Status": "Done"},
    ]


def payroll_trips():
    return [
        {"haulingTripId": 101, "clientName": "Acme", "clientRatePerKg": 5, "wasteType": "Residual",
         "timeDone": "2026-10-06T10:00:00", "originalWeightKg": 100, "editedWeightKg": None,
         "effectiveWeightKg": 100, "receiptNumber": "R-1", "status": "Done"},
        {"haulingTripId": 102, "clientName": "Acme", "clientRatePerKg": 5, "wasteType": "Residual",
         "timeDone": "2026-10-07T10:00:00", "originalWeightKg": 50, "editedWeightKg": None,
         "effectiveWeightKg": 50, "receiptNumber": "R-2", "status": "Done"},
        {"haulingTripId": 103, "clientName": "Bravo Foods", "clientRatePerKg": 8, "wasteType": "Food",
         "timeDone": "2026-10-08T10:00:00", "originalWeightKg": 20, "editedWeightKg": None,
         "effectiveWeightKg": 20, "receiptNumber": None, "status": "Done"},
    ]

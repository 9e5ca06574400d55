"""Pages and form actions, driven through the Flask test client."""

import io

import pytest

from conftest import overview_row, payroll_trips, preview_trips
from haulpay.modules.rates import AUDIT_CHANNEL, audit_sequences

BASE = "/Accounting/payroll"
URL = "/accounting/driverpayroll"
PERIOD_ARGS = {"from": "2026-10-05", "to": "2026-10-11"}


def text(resp):
    return resp.get_data(as_text=True)


# =============================================================================
# SESSION AND ROUTE GUARD
# =============================================================================

class TestSession:
    def test_anonymous_is_sent_to_login(self, client, fake):
        resp = client.get(f"{URL}/", query_string=PERIOD_ARGS)
        assert resp.status_code == 302
        assert "/login" in resp.headers["Location"]
        assert fake.calls == []

    def test_login_requires_both_fields(self, client, fake):
        resp = client.post("/login", data={"username": "alice", "password": ""})
        assert "Username and password are required" in text(resp)
        assert fake.calls == []

    def test_bad_credentials(self, client, fake):
        fake.add("POST", "/account/login", status=401, json_body={"message": "Invalid credentials"})
        resp = client.post("/login", data={"username": "alice", "password": "x"})
        assert resp.status_code == 200
        assert "Invalid credentials" in text(resp)

    def test_admin_lands_on_payroll(self, admin):
        resp = admin.get("/")
        assert resp.headers["Location"].endswith(f"{URL}/")

    def test_driver_is_fenced(self, driver, fake):
        resp = driver.get(f"{URL}/")
        assert resp.status_code == 302
        assert "/driver/app-required" in resp.headers["Location"]
        assert driver.get("/driver/app-required").status_code == 200
        assert fake.calls == []

    def test_logout_clears_session(self, admin):
        admin.get("/logout")
        resp = admin.get(f"{URL}/")
        assert "/login" in resp.headers["Location"]

    def test_backend_401_ends_session(self, admin, fake):
        fake.add("GET", f"{BASE}/overview", status=401)
        resp = admin.get(f"{URL}/", query_string=PERIOD_ARGS)
        assert resp.status_code == 302
        assert "/login" in resp.headers["Location"]

        again = admin.get(f"{URL}/")
        assert "/login" in again.headers["Location"]

    def test_bearer_token_sent(self, admin, fake):
        fake.add("GET", f"{BASE}/overview", json_body=[])
        admin.get(f"{URL}/", query_string=PERIOD_ARGS)
        assert fake.calls[0].headers["Authorization"].startswith("Bearer ")


# =============================================================================
# LIST, EXPORT, GENERATE
# =============================================================================

@pytest.fixture
def overview(fake):
    fake.add("GET", f"{BASE}/overview", json_body=[
        overview_row(7, "Juan Dela Cruz"),
        overview_row(8, "Ana Santos", status="GENERATED", payroll_id=12),
    ])
    return fake


class TestList:
    def test_index(self, admin, overview):
        resp = admin.get(f"{URL}/", query_string=PERIOD_ARGS)
        body = text(resp)
        assert resp.status_code == 200
        assert "Juan Dela Cruz" in body
        assert "Ana Santos" in body
        assert "₱1,820.00" in body
        assert body.count("disabled>Generate</button>") == 1

    def test_status_filter(self, admin, overview):
        body = text(admin.get(f"{URL}/", query_string={**PERIOD_ARGS, "status": "GENERATED"}))
        assert "Ana Santos" in body
        assert "Juan Dela Cruz" not in body
        assert "Clear Filters" in body

    def test_backend_failure_flashes(self, admin, fake):
        fake.add("GET", f"{BASE}/overview", status=500, json_body={"message": "db down"})
        resp = admin.get(f"{URL}/", query_string=PERIOD_ARGS)
        assert resp.status_code == 200
        assert "db down" in text(resp)
        assert "No results found" in text(resp)

    def test_export_csv(self, admin, overview):
        resp = admin.get(f"{URL}/export.csv", query_string=PERIOD_ARGS)
        assert resp.mimetype == "text/csv"
        assert "driver-payroll-2026-10-05-to-2026-10-11.csv" in resp.headers["Content-Disposition"]
        lines = text(resp).split("\n")
        assert lines[1].startswith("Juan Dela Cruz,7,2026-10-05,2026-10-11,3,170,910,PREVIEW")

    def test_export_nothing(self, admin, fake):
        fake.add("GET", f"{BASE}/overview", json_body=[])
        resp = admin.get(f"{URL}/export.csv", query_string=PERIOD_ARGS, follow_redirects=True)
        assert "No data to export" in text(resp)


class TestGenerate:
    def test_generate_then_reload(self, admin, overview):
        overview.add("POST", f"{BASE}/generate", json_body={"payrollId": 30})
        resp = admin.post(f"{URL}/generate/7", data=PERIOD_ARGS, follow_redirects=True)
        assert "Payroll generated successfully." in text(resp)
        assert overview.paths("GET").count(f"{BASE}/overview") == 2

    def test_conflict_is_a_notice_and_reloads(self, admin, overview):
        overview.add("POST", f"{BASE}/generate", status=409, text="exists")
        resp = admin.post(f"{URL}/generate/7", data=PERIOD_ARGS, follow_redirects=True)
        body = text(resp)
        assert "toast-info" in body
        assert "Payroll already generated for this driver and period." in body
        assert overview.paths("GET").count(f"{BASE}/overview") == 2

    def test_generate_on_generated_row_sends_nothing(self, admin, overview):
        admin.post(f"{URL}/generate/8", data=PERIOD_ARGS)
        assert overview.paths("POST") == []

    def test_batch(self, admin, overview):
        overview.add("POST", f"{BASE}/generate/batch",
                     json_body={"Generated": 1, "SkippedExisting": 1, "Failed": ["driver 9: no trips"]})
        resp = admin.post(f"{URL}/generate/batch", data=PERIOD_ARGS, follow_redirects=True)
        assert "Generated: 1; Skipped existing: 1; Notes/Failures: driver 9: no trips" in text(resp)


# =============================================================================
# DETAIL, SAVE, APPROVE, PAY
# =============================================================================

@pytest.fixture
def generated(overview):
    overview.add("GET", f"{BASE}/12/trips", json_body=payroll_trips())
    return overview


class TestDetail:
    def test_preview_detail(self, admin, overview):
        overview.add("GET", "/Accounting/reports/payroll/drivers/details", json_body=preview_trips())
        body = text(admin.get(f"{URL}/7", query_string=PERIOD_ARGS))
        assert "₱750.00" in body
        assert "₱160.00" in body
        assert "₱910.00" in body
        assert "Generate payroll" in body
        assert 'name="weight_101"' not in body

    def test_generated_detail_is_editable(self, admin, generated):
        body = text(admin.get(f"{URL}/8", query_string=PERIOD_ARGS))
        assert 'name="weight_101"' in body
        assert "Approve" in body
        assert "Record payment" in body

    def test_unknown_driver(self, admin, overview):
        resp = admin.get(f"{URL}/99", query_string=PERIOD_ARGS, follow_redirects=True)
        assert "No payroll row for driver #99" in text(resp)

    def test_recalc_uses_unsaved_weights(self, admin, generated):
        resp = admin.post(f"{URL}/8/recalc", data={**PERIOD_ARGS, "weight_103": "25", "note": "draft"})
        body = text(resp)
        assert "₱950.00" in body
        assert "draft" in body
        assert generated.paths("PUT") == []

    def test_save(self, admin, generated):
        generated.add("PUT", f"{BASE}/12", status=204)
        generated.add("PUT", f"{BASE}/12/trips", status=204)
        resp = admin.post(f"{URL}/8/save", data={**PERIOD_ARGS, "weight_103": "25", "note": "scale"})
        assert resp.status_code == 302
        assert f"{URL}/8" in resp.headers["Location"]
        assert generated.body("PUT", f"{BASE}/12") == {"discrepancyNote": "scale"}
        weights = {t["haulingTripId"]: t["weightKg"] for t in generated.body("PUT", f"{BASE}/12/trips")["trips"]}
        assert weights == {101: 100, 102: 50, 103: 25}

    def test_save_failure_keeps_edits(self, admin, generated):
        generated.add("PUT", f"{BASE}/12", status=400, json_body={"message": "Note too long"})
        resp = admin.post(f"{URL}/8/save", data={**PERIOD_ARGS, "weight_103": "25", "note": "scale"})
        assert resp.status_code == 502
        body = text(resp)
        assert "Note too long" in body
        assert "₱950.00" in body

    def test_approve(self, admin, generated):
        generated.add("POST", f"{BASE}/12/approve", status=204)
        resp = admin.post(f"{URL}/8/approve", data=PERIOD_ARGS)
        assert resp.status_code == 302
        assert generated.paths("POST") == [f"{BASE}/12/approve"]

    def test_approve_preview_sends_nothing(self, admin, overview):
        resp = admin.post(f"{URL}/7/approve", data=PERIOD_ARGS)
        assert resp.status_code == 302
        assert overview.paths("POST") == []

    def test_pay(self, admin, generated):
        generated.add("POST", f"{BASE}/12/pay", json_body={"status": "PARTIAL", "paidAmount": 400})
        resp = admin.post(
            f"{URL}/8/pay",
            data={**PERIOD_ARGS, "amount": "400", "reference_no": "GC-1",
                  "proof": (io.BytesIO(b"img"), "proof.png", "image/png")},
            content_type="multipart/form-data",
            follow_redirects=True,
        )
        assert "Payment recorded. Status: PARTIAL." in text(resp)
        body = generated.body("POST", f"{BASE}/12/pay")
        assert body["amount"] == 400
        assert body["base64Image"].startswith("data:image/png;base64,")

    def test_pay_zero_sends_nothing(self, admin, generated):
        resp = admin.post(
            f"{URL}/8/pay",
            data={**PERIOD_ARGS, "amount": "0", "reference_no": "GC-1",
                  "proof": (io.BytesIO(b"img"), "proof.png", "image/png")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
        assert "Amount must be &gt; 0." in text(resp)
        assert 'value="GC-1"' in text(resp)
        assert generated.paths("POST") == []

    def test_pay_without_proof(self, admin, generated):
        resp = admin.post(f"{URL}/8/pay", data={**PERIOD_ARGS, "amount": "10"})
        assert resp.status_code == 400
        assert "Proof image is required." in text(resp)
        assert generated.paths("POST") == []


# =============================================================================
# RATES
# =============================================================================

class TestRates:
    @pytest.fixture
    def rates(self, fake):
        fake.add("GET", "/Accounting/rates", json_body=[
            {"id": 1, "clientId": 3, "clientName": "Acme", "serviceType": "Residual", "ratePerKg": "5", "paymentTerms": "Net 30"},
        ])
        fake.add("GET", "/Admin/client", json_body=[{"id": 3, "registeredCompanyName": "Acme"}])
        fake.add("GET", "/Accounting/rates/audit", json_body=[])
        return fake

    def test_index(self, admin, rates):
        resp = admin.get("/accounting/rates/")
        assert resp.status_code == 200
        assert "Residual" in text(resp)
        assert dict(rates.calls[0].url.params) == {"activeOnly": "true"}

    def test_save(self, admin, rates):
        rates.add("POST", "/Accounting/rates", status=201)
        resp = admin.post("/accounting/rates/", data={
            "client_id": "3", "service_type": "Residual", "rate_per_kg": "5.5", "payment_terms": "Net 30",
        }, follow_redirects=True)
        assert "Rate saved successfully!" in text(resp)

    def test_save_rejects_bad_rate(self, admin, rates):
        resp = admin.post("/accounting/rates/", data={
            "client_id": "3", "service_type": "Residual", "rate_per_kg": "0",
        }, follow_redirects=True)
        assert "Rate must be a valid number greater than 0." in text(resp)
        assert rates.paths("POST") == []

    def test_deactivate(self, admin, rates):
        rates.add("DELETE", "/Accounting/rates/1", status=204)
        resp = admin.post("/accounting/rates/1/deactivate", data={"client_id": "3"}, follow_redirects=True)
        assert "Rate deactivated." in text(resp)

    def test_logout_drops_audit_sequence(self, admin, rates):
        key = ("alice", AUDIT_CHANNEL)
        audit_sequences.forget(key)
        admin.get("/accounting/rates/")
        assert audit_sequences.get(key).latest == 1

        admin.get("/logout")
        assert audit_sequences.get(key).latest == 0


class TestRatesPermission:
    def test_page_needs_rate_permission(self, clerk, fake):
        resp = clerk.get("/accounting/rates/", follow_redirects=False)
        assert resp.status_code == 302
        assert resp.headers["Location"].endswith(f"{URL}/")
        assert fake.calls == []

    def test_post_needs_rate_permission(self, clerk, fake):
        fake.add("POST", "/Accounting/rates", status=201)
        clerk.post("/accounting/rates/", data={
            "client_id": "3", "service_type": "Residual", "rate_per_kg": "5",
        })
        clerk.post("/accounting/rates/1/deactivate", data={"client_id": "3"})
        assert fake.calls == []

    def test_nav_link_hidden(self, clerk, fake):
        fake.add("GET", f"{BASE}/overview", json_body=[])
        body = text(clerk.get(f"{URL}/", query_string=PERIOD_ARGS))
        assert "Service Rates" not in body

    def test_nav_link_shown_with_permission(self, admin, fake):
        fake.add("GET", f"{BASE}/overview", json_body=[])
        body = text(admin.get(f"{URL}/", query_string=PERIOD_ARGS))
        assert "Service Rates" in body


# =============================================================================
# INVERTED PERIOD
# =============================================================================

INVERTED = {"from": "2026-10-11", "to": "2026-10-05"}


class TestInvertedPeriod:
    def test_page_view_collapses_with_one_warning(self, admin, overview):
        overview.add("GET", "/Accounting/reports/payroll/drivers/details", json_body=preview_trips())
        body = text(admin.get(f"{URL}/7", query_string=INVERTED))
        assert body.count("Period end is before period start") == 1
        params = overview.calls[0].url.params
        assert (params["from"], params["to"]) == ("2026-10-11", "2026-10-11")

    @pytest.mark.parametrize("path", ["/generate/7", "/generate/batch", "/8/save", "/8/approve", "/8/pay"])
    def test_mutation_refused(self, admin, generated, path):
        resp = admin.post(f"{URL}{path}", data={**INVERTED, "amount": "10"}, follow_redirects=True)
        assert text(resp).count("Period end is before period start") == 1
        assert generated.paths("POST") == []
        assert generated.paths("PUT") == []

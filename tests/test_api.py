# Test the HTTP endpoints over in-memory backends
from fastapi.testclient import TestClient

from auth import UnconfiguredIdentityProvider
from core.data import ErrorKind
from core.storage import MemoryStorage
from cosmos_backend import UnconfiguredRecordStore
from main import build_portal, create_app
from tests.fakes import FakeIdentityProvider, FakeRecordStore, medicine_record


SHIPPING = {
    "full_name": "Pat Doe",
    "email": "pat@wanterio.com",
    "phone": "+1 555 0100",
    "address": "1 Main Street",
    "city": "Springfield",
    "postal_code": "12345",
}


class TestPortalApi:

    def setup_method(self):
        self.store = FakeRecordStore({
            "medicines": [
                medicine_record("A", "Paracetamol 500mg", "12.50", 100),
                medicine_record("B", "Amoxicillin 250mg", "25.00", 2),
            ],
            "user_roles": [
                {"id": "u1:patient", "user_id": "u1", "role": "patient"},
                {"id": "u9:admin", "user_id": "u9", "role": "admin"},
            ],
        })
        self.identity = FakeIdentityProvider()
        self.identity.add_account("pat@wanterio.com", "secret1", user_id="u1", full_name="Pat Doe")
        self.identity.add_account("ops@wanterio.com", "secret1", user_id="u9", full_name="Ops")
        self.app = create_app(lambda: build_portal(self.store, self.identity, MemoryStorage()))

    def login(self, client, email="pat@wanterio.com", password="secret1"):
        return client.post("/api/auth/login", json={"email": email, "password": password})

    def sign_in(self, client, email="pat@wanterio.com"):
        token = self.login(client, email=email).json()["token"]
        return {"Authorization": f"Bearer {token}"}

    def test_health(self):
        with TestClient(self.app) as client:
            body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["session"] == "unauthenticated"

    def test_medicines(self):
        with TestClient(self.app) as client:
            body = client.get("/api/medicines", params={"search": "amox"}).json()
        assert body["available"] is True
        assert [m["id"] for m in body["medicines"]] == ["B"]
        assert body["medicines"][0]["price"] == "25.00"

    def test_cart_flow(self):
        with TestClient(self.app) as client:
            added = client.post("/api/cart/items", json={"medicine_id": "A", "quantity": 2}).json()
            assert added["success"] is True
            assert added["cart"]["total"] == "25.00"

            over = client.post("/api/cart/items", json={"medicine_id": "B", "quantity": 3}).json()
            assert over["success"] is False
            assert over["cart"]["item_count"] == 2

            updated = client.patch("/api/cart/items/A", json={"quantity": 5}).json()
            assert updated["cart"]["item_count"] == 5

            removed = client.delete("/api/cart/items/A").json()
            assert removed["cart"]["items"] == []

    def test_unknown_medicine(self):
        with TestClient(self.app) as client:
            response = client.post("/api/cart/items", json={"medicine_id": "nope"})
        assert response.status_code == 404

    def test_validate_cart(self):
        with TestClient(self.app) as client:
            client.post("/api/cart/items", json={"medicine_id": "B", "quantity": 2})
            assert client.post("/api/cart/validate").json() == {"valid": True, "errors": []}

    def test_login_resolves_roles(self):
        with TestClient(self.app) as client:
            response = self.login(client)
            token = response.json()["token"]
            session = client.get("/api/session", headers={"Authorization": f"Bearer {token}"}).json()

        assert response.status_code == 200
        body = response.json()
        assert body["token"] == "token-pat@wanterio.com"
        assert body["user"]["roles"] == ["patient"]
        assert body["user"]["landing_route"] == "/dashboard/patient"
        assert session["state"] == "authenticated"
        assert session["route"] == "/dashboard/patient"

    def test_login_rejected(self):
        with TestClient(self.app) as client:
            response = self.login(client, password="wrong")
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid login credentials"

    def test_login_blocked_when_roles_unavailable(self):
        self.store.fail("user_roles", "select", ErrorKind.PERMISSION, "permission denied")
        with TestClient(self.app) as client:
            response = self.login(client)
            session = client.get("/api/session").json()
        assert response.status_code == 403
        assert session["state"] == "unauthenticated"

    def test_checkout_requires_sign_in(self):
        with TestClient(self.app) as client:
            client.post("/api/cart/items", json={"medicine_id": "A"})
            response = client.post("/api/checkout", json={"shipping_info": SHIPPING})
        assert response.status_code == 401

    def test_checkout(self):
        with TestClient(self.app) as client:
            headers = self.sign_in(client)
            client.post("/api/cart/items", json={"medicine_id": "A", "quantity": 2})
            response = client.post("/api/checkout", json={"shipping_info": SHIPPING}, headers=headers)
            cart = client.get("/api/cart").json()

        assert response.status_code == 200
        order = response.json()["order"]
        assert order["totals"]["total"] == "36.99"
        assert order["status"] == "pending"
        assert cart["items"] == []
        assert self.store.rows("orders")[0]["user_id"] == "u1"

    def test_checkout_validation_error(self):
        with TestClient(self.app) as client:
            headers = self.sign_in(client)
            client.post("/api/cart/items", json={"medicine_id": "A"})
            response = client.post("/api/checkout", json={"shipping_info": {}}, headers=headers)
        assert response.status_code == 400
        assert response.json()["error"].startswith("Please fill in:")

    def test_appointment_and_ambulance(self):
        with TestClient(self.app) as client:
            headers = self.sign_in(client)
            appointment = client.post("/api/appointments", json={"doctor_id": "d1"}, headers=headers)
            missing = client.post("/api/ambulance-requests", json={"pickup_location": ""}, headers=headers)
            ambulance = client.post(
                "/api/ambulance-requests", json={"pickup_location": "12 Elm Street"}, headers=headers
            )

        assert appointment.json()["appointment"]["appointment_time"] == "10:00"
        assert missing.status_code == 400
        assert missing.json()["error"] == "Please provide pickup location"
        assert ambulance.json()["request"]["status"] == "pending"

    def test_logout(self):
        with TestClient(self.app) as client:
            headers = self.sign_in(client)
            assert client.post("/api/auth/logout", headers=headers).json()["success"] is True
            session = client.get("/api/session", headers=headers).json()
        assert session["state"] == "unauthenticated"
        assert session["route"] == "/"

    def test_admin_stats_requires_admin(self):
        with TestClient(self.app) as client:
            headers = self.sign_in(client)
            forbidden = client.get("/api/admin/stats", headers=headers)
            client.post("/api/auth/logout", headers=headers)
            admin_headers = self.sign_in(client, email="ops@wanterio.com")
            allowed = client.get("/api/admin/stats", headers=admin_headers)

        assert forbidden.status_code == 403
        assert allowed.status_code == 200
        assert allowed.json()["total_orders"] == 0

    def test_requests_without_the_session_token_are_rejected(self):
        with TestClient(self.app) as client:
            self.sign_in(client, email="ops@wanterio.com")
            client.post("/api/cart/items", json={"medicine_id": "A"})
            stats = client.get("/api/admin/stats")
            checkout = client.post("/api/checkout", json={"shipping_info": SHIPPING})
            forged = client.get("/api/admin/stats", headers={"Authorization": "Bearer token-guess"})
            session = client.get("/api/session").json()
            logout = client.post("/api/auth/logout").json()
            still_signed_in = client.get("/health").json()

        assert stats.status_code == 401
        assert checkout.status_code == 401
        assert forged.status_code == 401
        assert forged.json()["error"] == "Invalid or expired session"
        assert session["state"] == "unauthenticated"
        assert session["user"] is None
        assert logout["message"] == "No active session"
        assert still_signed_in["session"] == "authenticated"
        assert self.store.rows("orders") == []

    def test_previous_token_stops_working_after_another_sign_in(self):
        with TestClient(self.app) as client:
            patient = self.sign_in(client)
            self.sign_in(client, email="ops@wanterio.com")
            response = client.post("/api/appointments", json={"doctor_id": "d1"}, headers=patient)
        assert response.status_code == 401

    def test_token_accepted_from_header_or_cookie(self):
        with TestClient(self.app) as client:
            token = self.login(client, email="ops@wanterio.com").json()["token"]
            by_header = client.get("/api/admin/stats", headers={"X-Auth-Token": token})
            client.cookies.set("auth_token", token)
            by_cookie = client.get("/api/admin/stats")
        assert by_header.status_code == 200
        assert by_cookie.status_code == 200


class TestUnconfiguredPortal:

    def setup_method(self):
        self.app = create_app(
            lambda: build_portal(UnconfiguredRecordStore(), UnconfiguredIdentityProvider(), MemoryStorage())
        )

    def test_catalog_reports_unavailable(self):
        with TestClient(self.app) as client:
            body = client.get("/api/medicines").json()
            health = client.get("/health").json()
        assert body == {"medicines": [], "available": False}
        assert health["backend_configured"] is False

    def test_login_reports_service_unavailable(self):
        with TestClient(self.app) as client:
            response = client.post("/api/auth/login", json={"email": "pat@wanterio.com", "password": "secret1"})
        assert response.status_code == 503

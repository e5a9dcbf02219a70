from types import SimpleNamespace

from fastapi.testclient import TestClient

from hostpanel.api.deps import get_orchestrator
from hostpanel.api.events import WebSocketHub
from hostpanel.main import app
from hostpanel.models.operation import OperationResult
from hostpanel.services.system_state import SystemState

client = TestClient(app)


class DummyOrchestrator:
    """Returns canned OperationResults and records what the routes passed in."""

    def __init__(self):
        self.calls = []

    def list_sites(self):
        return OperationResult(success=True, data=[{"name": "example.com", "enabled": True}])

    def create_site(self, domain, directory=None, php=False, ssl=False):
        self.calls.append(("create_site", domain, directory, php, ssl))
        if domain == "taken.example.com":
            return OperationResult(success=False, error="Site taken.example.com already exists", error_type="ConflictError")
        if domain == "bad":
            return OperationResult(success=False, error="nginx exited with code 1", error_type="ExternalCommandError")
        return OperationResult(success=True, message=f"Site {domain} created successfully", data={"site": {"name": domain}})

    def toggle_site(self, name, enabled):
        self.calls.append(("toggle_site", name, enabled))
        if name == "missing.example.com":
            return OperationResult(success=False, error="Site missing.example.com does not exist", error_type="NotFoundError")
        return OperationResult(success=True, data={"name": name, "enabled": enabled})

    def delete_site(self, name):
        self.calls.append(("delete_site", name))
        return OperationResult(success=True, data={"name": name, "removed": True})

    def obtain_certificate(self, domain, email):
        self.calls.append(("obtain_certificate", domain, email))
        return OperationResult(success=False, error="Domain and email are required", error_type="ValidationError")

    def list_certificates(self):
        return OperationResult(success=True, data=[])

    def get_stats(self):
        return OperationResult(success=True, data={"cpu_percent": 12.0, "disk_usage_percent": 40.0})

    def list_files(self, path=None):
        self.calls.append(("list_files", path))
        if path == "/etc":
            return OperationResult(success=False, error="Access to /etc is not allowed", error_type="AccessDeniedError")
        return OperationResult(success=True, data={"path": "/var/www", "files": []})

    def list_jobs(self):
        return OperationResult(success=True, data=[{"name": "backup", "running": False}])


def _override():
    orchestrator = DummyOrchestrator()
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    return orchestrator


def teardown_function():
    app.dependency_overrides.clear()


def test_health_endpoint():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_list_sites_endpoint():
    _override()

    response = client.get("/sites")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"][0]["name"] == "example.com"


def test_create_site_endpoint_passes_fields():
    orchestrator = _override()

    response = client.post("/sites", json={"domain": "example.com", "php": True})

    assert response.status_code == 200
    assert response.json()["message"] == "Site example.com created successfully"
    assert orchestrator.calls == [("create_site", "example.com", None, True, False)]


def test_create_site_requires_domain_field():
    _override()

    response = client.post("/sites", json={"php": True})

    assert response.status_code == 422


def test_conflict_maps_to_409():
    _override()

    response = client.post("/sites", json={"domain": "taken.example.com"})

    assert response.status_code == 409
    assert "already exists" in response.json()["detail"]


def test_external_command_error_maps_to_502():
    _override()

    response = client.post("/sites", json={"domain": "bad"})

    assert response.status_code == 502


def test_toggle_and_delete_endpoints():
    orchestrator = _override()

    toggled = client.post("/sites/example.com/toggle", json={"enabled": False})
    missing = client.post("/sites/missing.example.com/toggle", json={"enabled": True})
    deleted = client.delete("/sites/example.com")

    assert toggled.status_code == 200
    assert toggled.json()["data"]["enabled"] is False
    assert missing.status_code == 404
    assert deleted.status_code == 200
    assert ("delete_site", "example.com") in orchestrator.calls


def test_obtain_certificate_validation_error_maps_to_400():
    _override()

    response = client.post("/ssl/obtain", json={"domain": "example.com", "email": ""})

    assert response.status_code == 400
    assert response.json()["detail"] == "Domain and email are required"


def test_stats_and_jobs_endpoints():
    _override()

    stats = client.get("/system/stats")
    jobs = client.get("/system/jobs")

    assert stats.status_code == 200
    assert stats.json()["data"]["disk_usage_percent"] == 40.0
    assert jobs.json()["data"][0]["name"] == "backup"


def test_events_websocket_sends_initial_snapshot():
    app.state.hub = WebSocketHub()
    app.state.panel = SimpleNamespace(state=SystemState(history_capacity=4))

    with client.websocket_connect("/events") as websocket:
        message = websocket.receive_json()

    assert message["type"] == "initial"
    assert message["data"]["cpu"] == []
    assert message["data"]["services"] == {}


def test_hub_publish_without_loop_is_a_no_op():
    hub = WebSocketHub()
    hub.publish({"type": "stats", "data": {}})


def test_files_endpoint_lists_and_denies():
    orchestrator = _override()

    listed = client.get("/files")
    denied = client.get("/files", params={"path": "/etc"})

    assert listed.status_code == 200
    assert listed.json()["data"]["path"] == "/var/www"
    assert denied.status_code == 403
    assert orchestrator.calls == [("list_files", None), ("list_files", "/etc")]

class TestAppEndpoints:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_metrics(self, client):
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")

    def test_missing_identity(self, client):
        resp = client.get("/files")
        assert resp.status_code == 401
        assert resp.json() == {
            "code": "unauthorized",
            "message": "Missing X-User-Id header",
            "details": None,
        }

    def test_malformed_identity(self, client):
        resp = client.get("/files", headers={"X-User-Id": "abc"})
        assert resp.status_code == 401

    def test_missing_permission(self, client):
        resp = client.post(
            "/departments", json={"name": "Ops"}, headers={"X-User-Id": "5"}
        )
        assert resp.status_code == 403
        assert resp.json()["code"] == "forbidden"
        assert resp.json()["message"] == "Missing permission: department.add"

    def test_request_validation_envelope(self, client, admin_headers):
        resp = client.post("/departments", json={}, headers=admin_headers)
        assert resp.status_code == 422
        body = resp.json()
        assert body["code"] == "validation_error"
        assert isinstance(body["details"], list)

    def test_versioned_prefix(self, client, admin_headers):
        resp = client.get("/api/v1/sections", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["items"] == []

import pytest

from tests.mocks import headers_for, make_actor


@pytest.fixture()
def submitter_headers(department):
    return headers_for(
        make_actor(user_id=7, department_id=department.id, permissions=["file.submit"])
    )


def _submit(client, headers, section_id, title="Report", **overrides):
    body = {
        "section_id": section_id,
        "translations": [{"lang": "ru", "title": title}],
    }
    body.update(overrides)
    resp = client.post("/file-requests", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _stage(client, headers, request_id, lang="ru", data=b"0123456789"):
    return client.post(
        f"/file-requests/{request_id}/assets",
        data={"lang": lang},
        files={"upload": ("report.pdf", data, "application/pdf")},
        headers=headers,
    )


class TestSubmitterEndpoints:
    def test_submit_and_stage(self, client, submitter_headers, section, department):
        request = _submit(client, submitter_headers, section.id, access_type="restricted")
        assert request["status"] == "pending"
        assert request["access_department_ids"] == [department.id]

        resp = _stage(client, submitter_headers, request["id"])
        assert resp.status_code == 201
        assert resp.json()["size"] == 10

        resp = _stage(client, submitter_headers, request["id"], data=b"again")
        assert resp.status_code == 409

        assets = client.get(
            f"/file-requests/{request['id']}/assets", headers=submitter_headers
        ).json()
        assert [a["lang"] for a in assets] == ["ru"]

    def test_submit_requires_permission(self, client, section):
        resp = client.post(
            "/file-requests",
            json={"section_id": section.id, "translations": [{"lang": "ru", "title": "X"}]},
            headers={"X-User-Id": "7"},
        )
        assert resp.status_code == 403

    def test_access_options(self, client, submitter_headers, department):
        resp = client.get("/file-requests/access-options", headers=submitter_headers)
        assert resp.status_code == 200
        assert [d["id"] for d in resp.json()["departments"]] == [department.id]

    def test_mine_and_cancel(self, client, submitter_headers, section):
        request = _submit(client, submitter_headers, section.id)
        resp = client.post(
            f"/file-requests/{request['id']}/cancel", headers={"X-User-Id": "8"}
        )
        assert resp.status_code == 403

        resp = client.post(
            f"/file-requests/{request['id']}/cancel", headers=submitter_headers
        )
        assert resp.json()["status"] == "canceled"

        history = client.get(
            "/file-requests/mine?scope=history", headers=submitter_headers
        ).json()
        assert [r["id"] for r in history["items"]] == [request["id"]]

    def test_other_users_cannot_read(self, client, submitter_headers, section):
        request = _submit(client, submitter_headers, section.id)
        resp = client.get(f"/file-requests/{request['id']}", headers={"X-User-Id": "8"})
        assert resp.status_code == 403


class TestModerationEndpoints:
    def test_approve_publishes_file(self, client, submitter_headers, admin_headers, section):
        request = _submit(client, submitter_headers, section.id)
        _stage(client, submitter_headers, request["id"])

        pending = client.get("/file-requests/pending", headers=admin_headers).json()
        assert [r["id"] for r in pending["items"]] == [request["id"]]

        resp = client.post(
            f"/file-requests/{request['id']}/approve", headers=admin_headers
        )
        assert resp.status_code == 200
        approved = resp.json()
        assert approved["status"] == "approved"
        assert approved["resolved_at"] is not None
        assert approved["assets"] == []

        file_data = client.get(
            f"/files/{approved['file_item_id']}", headers=admin_headers
        ).json()
        versions = client.get(
            f"/files/{approved['file_item_id']}/versions", headers=admin_headers
        ).json()["items"]
        assert file_data["current_version_id"] == versions[0]["id"]
        assert [(a["lang"], a["size"]) for a in versions[0]["assets"]] == [("ru", 10)]

        resp = client.post(
            f"/file-requests/{request['id']}/approve", headers=admin_headers
        )
        assert resp.status_code == 409
        assert resp.json()["code"] == "invalid_state"

    def test_reject(self, client, submitter_headers, admin_headers, section):
        request = _submit(client, submitter_headers, section.id)
        resp = client.post(
            f"/file-requests/{request['id']}/reject",
            json={"reason": " duplicate "},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["rejection_reason"] == "duplicate"

        listed = client.get(
            "/file-requests?status=rejected", headers=admin_headers
        ).json()
        assert listed["count"] == 1

    def test_review_requires_permission(self, client, submitter_headers, section):
        request = _submit(client, submitter_headers, section.id)
        resp = client.post(
            f"/file-requests/{request['id']}/approve", headers=submitter_headers
        )
        assert resp.status_code == 403
        assert client.get("/file-requests/pending", headers=submitter_headers).status_code == 403

from doclib.models import AccessType


class TestFavoriteEndpoints:
    def test_add_list_remove(self, client, make_file):
        item = make_file()
        headers = {"X-User-Id": "9"}
        resp = client.put(f"/favorites/{item.id}", headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"file_item_id": item.id, "user_id": 9}
        client.put(f"/favorites/{item.id}", headers=headers)

        listed = client.get("/favorites", headers=headers).json()
        assert listed["count"] == 1
        assert listed["items"][0]["id"] == item.id

        assert client.delete(f"/favorites/{item.id}", headers=headers).status_code == 204
        assert client.delete(f"/favorites/{item.id}", headers=headers).status_code == 204
        assert client.get("/favorites", headers=headers).json()["count"] == 0

    def test_hidden_file(self, client, make_file):
        item = make_file(AccessType.restricted, user_ids=[3])
        resp = client.put(f"/favorites/{item.id}", headers={"X-User-Id": "9"})
        assert resp.status_code == 403

import requests

from conftest import auth_header
from magicaltsutsunlist import config, seasonal

PREFIX = "/magicaltsutsunlist/v1"


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


def test_collections_require_authentication(client):
    assert client.get(f"{PREFIX}/collections/animes").status_code == 403


def test_collections_list_catalog(client, catalog, user):
    catalog_id = catalog.add_item("anime", {"title": "Ojamajo Doremi", "genres": ["Comedy"]})

    response = client.get(f"{PREFIX}/collections/animes", headers=auth_header(user))

    assert response.status_code == 200
    assert response.json() == [{"_id": catalog_id, "title": "Ojamajo Doremi", "genres": ["Comedy"]}]
    assert client.get(f"{PREFIX}/collections/mangas", headers=auth_header(user)).json() == []


def test_new_catalog_item_is_admin_only(client, catalog, user, admin):
    body = {"title": "Yotsuba&!", "synopsis": "...", "genres": ["Comedy"]}

    assert client.post(f"{PREFIX}/admin/new-manga/upload", json=body).status_code == 403
    forbidden = client.post(f"{PREFIX}/admin/new-manga/upload", json=body, headers=auth_header(user))
    assert forbidden.status_code == 403

    response = client.post(f"{PREFIX}/admin/new-manga/upload", json=body, headers=auth_header(admin))
    assert response.status_code == 201
    assert catalog.get_item("manga", response.json()["id"])["title"] == "Yotsuba&!"


def test_new_catalog_item_needs_title(client, admin):
    response = client.post(
        f"{PREFIX}/admin/new-anime/upload", json={"synopsis": "..."}, headers=auth_header(admin)
    )

    assert response.status_code == 400


def test_image_upload(client, admin, tmp_path, monkeypatch):
    monkeypatch.setattr(config, "UPLOAD_DIR", str(tmp_path))
    files = {"image": ("../doremi.jpg", b"fake-jpeg", "image/jpeg")}

    response = client.post(f"{PREFIX}/admin/anime-image/upload", files=files, headers=auth_header(admin))

    assert response.status_code == 200
    assert response.json()["filePath"] == "/uploads/animes/doremi.jpg"
    assert (tmp_path / "uploads" / "animes" / "doremi.jpg").read_bytes() == b"fake-jpeg"


def test_sync_endpoint_reports_counts(client, catalog):
    catalog.add_item("anime", {"title": "Ojamajo Doremi"})
    catalog.add_item("anime", {"title": "Cardcaptor Sakura"})

    first = client.get(f"{PREFIX}/sync-and-insert-anime").json()
    second = client.get(f"{PREFIX}/sync-and-insert-anime").json()

    assert first == {"kind": "anime", "total": 2, "inserted": 2, "existing": 0, "failed": 0}
    assert second["inserted"] == 0
    assert second["existing"] == 2


def test_seasonal_feed_is_mapped(client, monkeypatch):
    payload = {
        "data": [
            {
                "title": "Dandadan",
                "images": {"jpg": {"image_url": "https://cdn.example/dandadan.jpg"}},
                "genres": [{"name": "Action"}, {"name": "Comedy"}],
                "score": 8.6,
            }
        ]
    }
    monkeypatch.setattr(seasonal.requests, "get", lambda *args, **kwargs: FakeResponse(payload))

    response = client.get(f"{PREFIX}/seasonal-anime")

    assert response.status_code == 200
    assert response.json() == [
        {
            "title": "Dandadan",
            "image_url": "https://cdn.example/dandadan.jpg",
            "genres": ["Action", "Comedy"],
        }
    ]


def test_seasonal_feed_failure(client, monkeypatch):
    monkeypatch.setattr(seasonal.requests, "get", lambda *args, **kwargs: FakeResponse({}, 503))

    response = client.get(f"{PREFIX}/seasonal-anime")

    assert response.status_code == 500
    assert response.json()["detail"] == "Error retrieving the seasonal animes"


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_seasonal_feed_with_unexpected_payload(client, monkeypatch):
    monkeypatch.setattr(seasonal.requests, "get", lambda *args, **kwargs: FakeResponse([]))

    response = client.get(f"{PREFIX}/seasonal-anime")

    assert response.status_code == 500
    assert response.json()["detail"] == "Error retrieving the seasonal animes"

"""Tests for the JSON API."""

import pytest
from datetime import date
from fastapi.testclient import TestClient

from src.utils.config import DatabaseConfig, Settings
from src.web.app import create_app


@pytest.fixture
def client():
    """API client over a fresh in-memory database."""
    settings = Settings(database=DatabaseConfig(path=":memory:"))
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def add(client, rank, title, artist="Artist", **extra):
    response = client.post(
        "/api/favorites",
        json={"rank": rank, "title": title, "artist": artist, **extra},
    )
    assert response.status_code == 201, response.text
    return response.json()


def titles(client, sort="rank"):
    return [f["title"] for f in client.get("/api/favorites", params={"sort": sort}).json()]


class TestListing:
    """Tests for reading favorites."""

    def test_empty(self, client):
        assert client.get("/api/favorites").json() == []
        assert client.get("/api/favorites/max-rank").json() == {"max_rank": 0}

    def test_create_and_get(self, client):
        """Test creating a favorite and reading it back."""
        created = add(client, 1, "Blue", "Joni Mitchell", year=1971)

        response = client.get(f"/api/favorites/{created['id']}")

        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Blue"
        assert body["rank"] == 1
        assert body["year"] == 1971
        assert body["last_played"] is None

    def test_get_missing(self, client):
        response = client.get("/api/favorites/123")

        assert response.status_code == 404
        assert response.json()["status"] == "error"

    def test_sort_recent(self, client):
        """Test ordering by last played date."""
        add(client, 1, "A")
        add(client, 2, "B", last_played="2026-01-01")
        add(client, 3, "C", last_played="2026-05-01")

        assert titles(client, "recent") == ["C", "B", "A"]
        assert titles(client) == ["A", "B", "C"]

    def test_bad_sort(self, client):
        assert client.get("/api/favorites", params={"sort": "alphabetical"}).status_code == 422


class TestMutations:
    """Tests for insert, update, move and delete over HTTP."""

    def test_insert_in_middle(self, client):
        add(client, 1, "A")
        add(client, 2, "B")
        add(client, 3, "C")

        add(client, 2, "D")

        assert titles(client) == ["A", "D", "B", "C"]
        assert client.get("/api/favorites/max-rank").json() == {"max_rank": 4}

    def test_insert_out_of_range(self, client):
        add(client, 1, "A")

        response = client.post("/api/favorites", json={"rank": 3, "title": "X", "artist": "Y"})

        assert response.status_code == 400
        assert titles(client) == ["A"]

    def test_insert_blank_title(self, client):
        response = client.post("/api/favorites", json={"rank": 1, "title": " ", "artist": "Y"})

        assert response.status_code == 422

    def test_move(self, client):
        """Test moving C to the front."""
        add(client, 1, "A")
        add(client, 2, "B")
        c = add(client, 3, "C")

        response = client.put(f"/api/favorites/{c['id']}", json={"rank": 1})

        assert response.status_code == 200
        assert response.json()["rank"] == 1
        assert titles(client) == ["C", "A", "B"]

    def test_update_fields(self, client):
        a = add(client, 1, "A", year=1999)

        response = client.put(f"/api/favorites/{a['id']}", json={"title": "A2", "year": None})

        assert response.json()["title"] == "A2"
        assert response.json()["year"] is None

    def test_update_missing(self, client):
        response = client.put("/api/favorites/77", json={"title": "X"})

        assert response.status_code == 404

    def test_delete(self, client):
        """Test deleting B closes the gap."""
        add(client, 1, "A")
        b = add(client, 2, "B")
        add(client, 3, "C")
        add(client, 4, "D")

        response = client.delete(f"/api/favorites/{b['id']}")

        assert response.json() == {"status": "success"}
        ranks = [(f["rank"], f["title"]) for f in client.get("/api/favorites").json()]
        assert ranks == [(1, "A"), (2, "C"), (3, "D")]

    def test_delete_missing(self, client):
        assert client.delete("/api/favorites/5").status_code == 404

    def test_mark_played(self, client):
        a = add(client, 1, "A")
        add(client, 2, "B")

        response = client.post(f"/api/favorites/{a['id']}/played")

        assert response.status_code == 200
        assert response.json()["last_played"] == date.today().isoformat()
        assert titles(client, "recent") == ["A", "B"]


class TestStatus:
    def test_status(self, client):
        add(client, 1, "A")
        add(client, 2, "B")

        body = client.get("/api/status").json()

        assert body["count"] == 2
        assert body["max_rank"] == 2
        assert body["integrity"] == {"ok": True, "missing_ranks": [], "unexpected_ranks": []}

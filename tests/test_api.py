"""HTTP tests for the FastAPI app, store overridden with a temp database."""

from fastapi.testclient import TestClient

from config import Settings, get_settings
from main import app, get_store
from repository import ContactStore


def _identify(client, **body):
    response = client.post("/identify", json=body)
    assert response.status_code == 200, response.text
    return response.json()["contact"]


def test_root(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json()["endpoint"] == "POST /identify"


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy"}


def test_new_customer_then_new_email(client):
    first = _identify(client, email="lorraine@hillvalley.edu", phoneNumber="123456")
    assert first["emails"] == ["lorraine@hillvalley.edu"]
    assert first["secondaryContactIds"] == []

    second = _identify(client, email="mcfly@hillvalley.edu", phoneNumber="123456")
    assert second == {
        "primaryContactId": first["primaryContactId"],
        "emails": ["lorraine@hillvalley.edu", "mcfly@hillvalley.edu"],
        "phoneNumbers": ["123456"],
        "secondaryContactIds": [first["primaryContactId"] + 1],
    }

    for body in (
        {"email": None, "phoneNumber": "123456"},
        {"email": "lorraine@hillvalley.edu"},
        {"email": "mcfly@hillvalley.edu", "phoneNumber": None},
    ):
        assert _identify(client, **body) == second


def test_request_linking_two_primaries_merges_them(client):
    george = _identify(client, email="george@hillvalley.edu", phoneNumber="919191")
    biff = _identify(client, email="biffsucks@hillvalley.edu", phoneNumber="717171")

    merged = _identify(client, email="george@hillvalley.edu", phoneNumber="717171")

    assert merged["primaryContactId"] == george["primaryContactId"]
    assert merged["emails"] == ["george@hillvalley.edu", "biffsucks@hillvalley.edu"]
    assert merged["phoneNumbers"] == ["919191", "717171"]
    assert merged["secondaryContactIds"][0] == biff["primaryContactId"]
    assert _identify(client, email="george@hillvalley.edu", phoneNumber="717171") == merged
    assert _identify(client, email="biffsucks@hillvalley.edu") == merged


def test_numeric_phone_number_is_accepted(client):
    first = _identify(client, email="doc@hillvalley.edu", phoneNumber=88)
    assert first["phoneNumbers"] == ["88"]
    assert _identify(client, phoneNumber="88") == first


def test_empty_request_creates_empty_primary(client):
    contact = _identify(client)
    assert contact["emails"] == []
    assert contact["phoneNumbers"] == []
    assert contact["secondaryContactIds"] == []


def test_empty_request_rejected_when_disabled(client, store):
    app.dependency_overrides[get_settings] = lambda: Settings(
        database_path=store.db_path, allow_empty_identify=False
    )

    r = client.post("/identify", json={"email": "", "phoneNumber": None})

    assert r.status_code == 400
    assert r.json() == {"detail": "Either email or phoneNumber must be provided"}


def test_add_contact_seeds_elder_primary(client):
    r = client.post("/add-contact", json={
        "email": "late@x.com",
        "phoneNumber": "111",
        "createdAt": "2024-05-01T00:00:00Z",
    })
    assert r.status_code == 200
    late = r.json()["contact_id"]
    r = client.post("/add-contact", json={
        "email": "early@x.com",
        "phoneNumber": "222",
        "createdAt": "2024-01-01T00:00:00Z",
    })
    early = r.json()["contact_id"]

    merged = _identify(client, email="late@x.com", phoneNumber="222")

    assert merged["primaryContactId"] == early
    assert merged["emails"][0] == "early@x.com"
    assert late in merged["secondaryContactIds"]


def test_add_contact_validation(client):
    r = client.post("/add-contact", json={"email": "a@x.com", "linkPrecedence": "secondary"})
    assert r.status_code == 422

    r = client.post("/add-contact", json={"email": "a@x.com", "linkedId": 1})
    assert r.status_code == 422

    assert client.post("/add-contact", json={"id": 10, "email": "a@x.com"}).status_code == 200
    r = client.post("/add-contact", json={"id": 10, "email": "b@x.com"})
    assert r.status_code == 409


def test_deleted_contact_no_longer_matches(client):
    first = _identify(client, email="gone@x.com", phoneNumber="404")

    r = client.delete(f"/contacts/{first['primaryContactId']}")
    assert r.status_code == 200
    assert client.delete(f"/contacts/{first['primaryContactId']}").status_code == 404

    again = _identify(client, email="gone@x.com", phoneNumber="404")
    assert again["primaryContactId"] != first["primaryContactId"]


def test_dangling_link_returns_500(client):
    r = client.post("/add-contact", json={
        "email": "orphan@x.com",
        "linkPrecedence": "secondary",
        "linkedId": 999,
    })
    assert r.status_code == 200

    r = client.post("/identify", json={"email": "orphan@x.com"})

    assert r.status_code == 500
    assert r.json() == {"error": "Internal server error"}


def test_unavailable_store_returns_503(tmp_path):
    missing = ContactStore(str(tmp_path / "missing" / "contacts.db"), timeout=0.1)
    app.dependency_overrides[get_store] = lambda: missing
    app.dependency_overrides[get_settings] = lambda: Settings(database_path=missing.db_path)
    try:
        client = TestClient(app)
        assert client.post("/identify", json={"email": "a@x.com"}).status_code == 503
        assert client.get("/health").status_code == 503
    finally:
        app.dependency_overrides.clear()

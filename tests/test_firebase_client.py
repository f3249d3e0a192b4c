import pytest

from goalcoach import firebase_client
from goalcoach.config import Settings
from goalcoach.errors import StorageError


@pytest.fixture()
def firebase(monkeypatch):
    """Record what the connection code asks of firebase_admin."""
    calls = {"initialize_app": [], "client": []}

    def no_app():
        raise ValueError("The default Firebase app does not exist.")

    def initialize_app(cred, options=None):
        calls["initialize_app"].append((cred, options))
        return "app"

    def client(app):
        calls["client"].append(app)
        return "db"

    monkeypatch.setattr(firebase_client, "_db", None)
    monkeypatch.setattr(firebase_client.firebase_admin, "get_app", no_app)
    monkeypatch.setattr(firebase_client.firebase_admin, "initialize_app", initialize_app)
    monkeypatch.setattr(firebase_client.firestore, "client", client)
    monkeypatch.setattr(firebase_client.credentials, "Certificate", lambda path: ("certificate", path))
    monkeypatch.setattr(firebase_client.credentials, "ApplicationDefault", lambda: ("adc",))
    return calls


def test_connects_once_with_service_account_file(firebase, tmp_path):
    key = tmp_path / "service-account.json"
    key.write_text("{}")
    settings = Settings(firebase_credentials=str(key), firebase_project_id="goal-coach")

    assert firebase_client.get_firestore_client(settings) == "db"
    assert firebase_client.get_firestore_client(settings) == "db"

    assert firebase["initialize_app"] == [(("certificate", str(key)), {"projectId": "goal-coach"})]
    assert firebase["client"] == ["app"]


def test_missing_credentials_file_uses_application_default(firebase, tmp_path):
    settings = Settings(firebase_credentials=str(tmp_path / "absent.json"))
    firebase_client.get_firestore_client(settings)
    assert firebase["initialize_app"] == [(("adc",), None)]


def test_existing_app_is_reused(firebase, monkeypatch):
    monkeypatch.setattr(firebase_client.firebase_admin, "get_app", lambda: "shared-app")
    firebase_client.get_firestore_client(Settings())
    assert firebase["initialize_app"] == []
    assert firebase["client"] == ["shared-app"]


def test_connection_failure_raises_storage_error(firebase, monkeypatch):
    def refuse(app):
        raise RuntimeError("no credentials")

    monkeypatch.setattr(firebase_client.firestore, "client", refuse)
    with pytest.raises(StorageError):
        firebase_client.get_firestore_client(Settings())
    assert firebase_client._db is None

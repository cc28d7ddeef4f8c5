import time
from uuid import uuid4

from cryptography.fernet import Fernet

from artchat.config import get_settings
from artchat.core.tokens import issue_access_token, verify_access_token


def test_issue_and_verify_token():
    user_id = uuid4()
    assert verify_access_token(issue_access_token(user_id)) == user_id


def test_verify_rejects_garbage():
    assert verify_access_token("garbage") is None


def test_verify_rejects_empty_token():
    assert verify_access_token("") is None
    assert verify_access_token(None) is None


def test_verify_rejects_token_from_other_key():
    token = Fernet(Fernet.generate_key()).encrypt(str(uuid4()).encode()).decode()
    assert verify_access_token(token) is None


def test_verify_rejects_expired_token(monkeypatch):
    monkeypatch.setenv("ACCESS_TOKEN_TTL_SECONDS", "60")
    fernet = Fernet(get_settings().token_secret_key.encode())
    token = fernet.encrypt_at_time(str(uuid4()).encode(), int(time.time()) - 3600).decode()
    assert verify_access_token(token) is None


def test_verify_rejects_non_uuid_payload():
    fernet = Fernet(get_settings().token_secret_key.encode())
    assert verify_access_token(fernet.encrypt(b"not-a-uuid").decode()) is None

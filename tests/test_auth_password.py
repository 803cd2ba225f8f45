import time

import jwt
import pytest

from backoffice import auth
from backoffice.config import get_settings


def test_hash_and_verify():
    hashed = auth.hash_password("secret123")
    assert hashed != "secret123"
    assert auth.verify_password("secret123", hashed)
    assert not auth.verify_password("secret124", hashed)


def test_token_round_trip():
    token = auth.create_access_token(7, "manager")
    payload = auth.decode_access_token(token)
    assert payload["sub"] == "7"
    assert payload["role"] == "manager"


def test_expired_token_is_rejected():
    token = auth.create_access_token(7, "user", expires_delta=-10)
    with pytest.raises(jwt.ExpiredSignatureError):
        auth.decode_access_token(token)


def test_token_signed_with_other_secret_is_rejected():
    forged = jwt.encode({"sub": "1", "role": "admin", "exp": int(time.time()) + 60}, "not-" + get_settings().jwt_secret)
    with pytest.raises(jwt.InvalidSignatureError):
        auth.decode_access_token(forged)


def test_authenticate(db_session, customer):
    with pytest.raises(auth.AuthError):
        auth.authenticate(db_session, customer.email, "wrong123")
    user = auth.authenticate(db_session, "  " + customer.email.upper(), "secret123")
    assert user.id == customer.id
    assert user.last_login is not None


def test_forged_cookie_is_ignored(client, customer):
    forged = jwt.encode({"sub": str(customer.id), "role": "admin"}, "guess", algorithm="HS256")
    client.cookies.set("access_token", forged)
    r = client.get("/dashboard", follow_redirects=False)
    assert r.status_code == 303

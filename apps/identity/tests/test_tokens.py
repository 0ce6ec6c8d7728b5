import datetime as dt
import uuid

import jwt
import pytest

from app.errors import InvalidToken
from app.utils.tokens import issue_token, validate_token


SECRET = "unit-test-secret-0123456789abcdefghijkl"
PHONE = "+15551234567"


def _flip(ch: str) -> str:
    return "A" if ch != "A" else "B"


def test_issue_and_validate_roundtrip():
    uid = uuid.uuid4()
    token = issue_token(uid, PHONE, SECRET)
    claims = validate_token(token, SECRET)
    assert claims.user_id == uid
    assert claims.phone_number == PHONE
    assert claims.expires_at - claims.issued_at == dt.timedelta(hours=24)


def test_claims_shape():
    uid = uuid.uuid4()
    payload = jwt.decode(issue_token(uid, PHONE, SECRET), SECRET, algorithms=["HS256"])
    assert payload["sub"] == str(uid)
    assert payload["phone_number"] == PHONE
    assert payload["exp"] > payload["iat"]


def test_wrong_secret_rejected():
    token = issue_token(uuid.uuid4(), PHONE, SECRET)
    with pytest.raises(InvalidToken):
        validate_token(token, "some-other-secret-abcdefghijklmnopqrstuvw")


def test_expired_token_rejected():
    issued = dt.datetime.now(dt.timezone.utc) - dt.timedelta(hours=2)
    token = issue_token(uuid.uuid4(), PHONE, SECRET, expires_in=dt.timedelta(hours=1), now=issued)
    with pytest.raises(InvalidToken) as exc_info:
        validate_token(token, SECRET)
    assert exc_info.value.details == "token expired"


def test_tampered_signature_rejected():
    token = issue_token(uuid.uuid4(), PHONE, SECRET)
    header, payload, sig = token.split(".")
    mid = len(sig) // 2
    bad = f"{header}.{payload}.{sig[:mid]}{_flip(sig[mid])}{sig[mid + 1:]}"
    with pytest.raises(InvalidToken):
        validate_token(bad, SECRET)


def test_tampered_payload_rejected():
    token = issue_token(uuid.uuid4(), PHONE, SECRET)
    other = issue_token(uuid.uuid4(), "+15550000000", SECRET)
    header, _, sig = token.split(".")
    forged = f"{header}.{other.split('.')[1]}.{sig}"
    with pytest.raises(InvalidToken):
        validate_token(forged, SECRET)


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
def test_malformed_tokens_rejected(token):
    with pytest.raises(InvalidToken):
        validate_token(token, SECRET)


def test_missing_claims_rejected():
    now = int(dt.datetime.now(dt.timezone.utc).timestamp())
    no_phone = jwt.encode({"sub": str(uuid.uuid4()), "iat": now, "exp": now + 60}, SECRET, algorithm="HS256")
    no_exp = jwt.encode({"sub": str(uuid.uuid4()), "phone_number": PHONE, "iat": now}, SECRET, algorithm="HS256")
    bad_sub = jwt.encode({"sub": "user-1", "phone_number": PHONE, "iat": now, "exp": now + 60}, SECRET, algorithm="HS256")
    for token in (no_phone, no_exp, bad_sub):
        with pytest.raises(InvalidToken):
            validate_token(token, SECRET)


def test_none_algorithm_rejected():
    now = int(dt.datetime.now(dt.timezone.utc).timestamp())
    token = jwt.encode(
        {"sub": str(uuid.uuid4()), "phone_number": PHONE, "iat": now, "exp": now + 60},
        None,
        algorithm="none",
    )
    with pytest.raises(InvalidToken):
        validate_token(token, SECRET)

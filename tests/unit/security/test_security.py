"""Tests for hashing and token helpers."""

from jose import jwt

from penwise.security import (
    create_access_token,
    decode_access_token,
    generate_otp,
    generate_refresh_token,
    hash_secret,
    verify_secret,
)


class TestSecrets:
    def test_hash_and_verify(self):
        digest = hash_secret("123456")
        assert digest != "123456"
        assert verify_secret(digest, "123456")
        assert not verify_secret(digest, "654321")

    def test_missing_or_malformed_digest_never_matches(self):
        assert not verify_secret(None, "123456")
        assert not verify_secret("not-a-bcrypt-digest", "123456")

    def test_otp_is_six_digits(self):
        for _ in range(50):
            otp = generate_otp()
            assert len(otp) == 6
            assert otp.isdigit()

    def test_refresh_tokens_are_unique(self):
        assert generate_refresh_token() != generate_refresh_token()


class TestAccessTokens:
    def test_round_trip(self):
        token = create_access_token("user-1", "USER", "secret", "HS256", 60)
        payload = decode_access_token(token, "secret", "HS256")
        assert payload["userId"] == "user-1"
        assert payload["role"] == "USER"
        assert payload["type"] == "access"
        assert payload["exp"] - payload["iat"] == 3600

    def test_wrong_secret(self):
        token = create_access_token("user-1", "USER", "secret", "HS256", 60)
        assert decode_access_token(token, "other", "HS256") is None

    def test_expired(self):
        token = create_access_token("user-1", "USER", "secret", "HS256", -1)
        assert decode_access_token(token, "secret", "HS256") is None

    def test_other_token_type_rejected(self):
        token = jwt.encode({"userId": "user-1", "type": "refresh"}, "secret", algorithm="HS256")
        assert decode_access_token(token, "secret", "HS256") is None

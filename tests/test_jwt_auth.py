"""
Tests — bearer token verification and viewer resolution.
"""

import jwt as pyjwt
import pytest

from montage_app.middleware.jwt_auth import viewer_from_payload
from montage_app.services.jwt_service import decode_access_token, decode_token, generate_access_token


class TestTokens:
    def test_round_trip(self):
        payload = decode_access_token(generate_access_token(5, ["installer"]))
        assert payload["sub"] == "5"
        assert payload["roles"] == ["installer"]

    def test_expired(self):
        token = generate_access_token(5, [], expires_in=-10)
        with pytest.raises(pyjwt.ExpiredSignatureError):
            decode_access_token(token)

    def test_wrong_type(self):
        token = generate_access_token(5, [])
        with pytest.raises(pyjwt.InvalidTokenError):
            decode_token(token, expected_type="refresh")

    def test_wrong_secret(self):
        token = pyjwt.encode({"sub": "1", "type": "access"}, "another-secret-with-enough-bytes!!", algorithm="HS256")
        with pytest.raises(pyjwt.InvalidTokenError):
            decode_access_token(token)


class TestViewerFromPayload:
    def test_viewer(self):
        viewer = viewer_from_payload({"sub": "12", "roles": ["admin", "installer"]})
        assert viewer.user_id == 12
        assert viewer.roles == ("admin", "installer")
        assert viewer.is_admin

    def test_missing_roles_means_unrestricted(self):
        viewer = viewer_from_payload({"sub": "3"})
        assert viewer.roles == ()
        assert viewer.scope.tier.value == "unrestricted"

    @pytest.mark.parametrize("payload", [
        {"sub": "abc"},
        {},
        {"sub": "1", "roles": "admin"},
    ])
    def test_rejects_malformed(self, payload):
        with pytest.raises(pyjwt.InvalidTokenError):
            viewer_from_payload(payload)

    def test_expired_token_rejected_over_http(self, client, auth_required):
        token = generate_access_token(1, ["admin"], expires_in=-10)
        res = client.get("/api/v1/montages", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Token expired"

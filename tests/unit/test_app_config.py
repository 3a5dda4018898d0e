from datetime import UTC, datetime, timedelta

import pytest

from emgurus.api.auth_utils import create_access_token, decode_access_token
from emgurus.app_shell.config import ConfigurationError, cors_origins, validate_ops_rules


class TestOpsRules:
    def test_creates_data_dir(self, rules, tmp_path):
        data_dir = tmp_path / "data"
        validate_ops_rules(rules, data_dir)
        assert data_dir.is_dir()

    def test_missing_required_env(self, rules, tmp_path, monkeypatch):
        monkeypatch.delenv("EMG_TEST_REQUIRED", raising=False)
        ops = rules.ops.model_copy(update={"required_env": ["EMG_TEST_REQUIRED"]})
        strict = rules.model_copy(update={"ops": ops})

        with pytest.raises(ConfigurationError, match="EMG_TEST_REQUIRED"):
            validate_ops_rules(strict, tmp_path)

        monkeypatch.setenv("EMG_TEST_REQUIRED", "1")
        validate_ops_rules(strict, tmp_path)


class TestCors:
    def test_rules_list_by_default(self, rules):
        assert cors_origins(rules) == rules.cors.allowed_origins

    def test_env_override(self, rules):
        assert cors_origins(rules, "https://a.test, https://b.test ,") == [
            "https://a.test",
            "https://b.test",
        ]


class TestTokens:
    def test_round_trip(self):
        token = create_access_token({"sub": "abc"}, "s3cret")
        assert decode_access_token(token, "s3cret")["sub"] == "abc"

    def test_wrong_secret(self):
        token = create_access_token({"sub": "abc"}, "s3cret")
        assert decode_access_token(token, "other") is None

    def test_expired(self):
        past = datetime.now(UTC) - timedelta(days=2)
        token = create_access_token(
            {"sub": "abc"}, "s3cret", expires_delta=timedelta(minutes=1), now_utc=past
        )
        assert decode_access_token(token, "s3cret") is None

    def test_garbage(self):
        assert decode_access_token("not-a-jwt", "s3cret") is None

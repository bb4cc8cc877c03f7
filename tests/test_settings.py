from __future__ import annotations

import pytest
from pydantic import SecretStr, ValidationError

from apps.api.core.config import DEFAULT_QR_SIGNING_KEY, Settings


def test_default_signing_key_is_accepted_in_development():
    settings = Settings(_env_file=None, environment="development")

    assert settings.qr_signing_key.get_secret_value() == DEFAULT_QR_SIGNING_KEY


def test_default_signing_key_is_rejected_in_production():
    with pytest.raises(ValidationError, match="QR_SIGNING_KEY"):
        Settings(_env_file=None, environment="production")


def test_custom_signing_key_is_accepted_in_production():
    settings = Settings(_env_file=None, environment="production", qr_signing_key=SecretStr("s3cret-gate-key"))

    assert settings.environment == "production"

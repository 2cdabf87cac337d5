"""Tests for the ProfileEncryptor (Fernet-sealed demographics)."""

from __future__ import annotations

from datetime import date

import pytest
from cryptography.fernet import Fernet

from nutriplan.core.storage.encryption import EncryptionError, ProfileEncryptor
from nutriplan.domains.nutrition.domain_logic.plan_models import Gender, HealthProfile


@pytest.fixture
def encryptor() -> ProfileEncryptor:
    return ProfileEncryptor(Fernet.generate_key().decode())


class TestProfileSealing:
    def test_profile_survives_seal_and_open(self, encryptor, make_profile):
        profile = make_profile(target_weight_kg=72.5, gender=Gender.FEMALE)
        assert encryptor.open_profile(encryptor.seal_profile(profile)) == profile

    def test_token_does_not_contain_plaintext(self, encryptor, make_profile):
        token = encryptor.seal_profile(make_profile(weight_kg=83.4))
        assert "weight_kg" not in token
        assert "date_of_birth" not in token

    def test_missing_target_weight_stays_none(self, encryptor, make_profile):
        opened = encryptor.open_profile(encryptor.seal_profile(make_profile()))
        assert opened.target_weight_kg is None
        assert opened.date_of_birth == date(1990, 1, 1)

    def test_malformed_payload_raises(self, encryptor):
        token = encryptor.seal({"weight_kg": 80})
        with pytest.raises(EncryptionError, match="malformed"):
            encryptor.open_profile(token)

    def test_non_object_payload_raises(self, encryptor):
        raw = encryptor._fernet.encrypt(b"[1, 2, 3]").decode()
        with pytest.raises(EncryptionError, match="not an object"):
            encryptor.open(raw)


class TestKeyValidation:
    def test_empty_key_raises(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            ProfileEncryptor("")

    def test_whitespace_key_raises(self):
        with pytest.raises(EncryptionError, match="must not be empty"):
            ProfileEncryptor("   ")

    def test_invalid_key_raises(self):
        with pytest.raises(EncryptionError, match="Invalid encryption key"):
            ProfileEncryptor("not-a-valid-fernet-key")

    def test_generate_key_is_usable(self):
        ProfileEncryptor(ProfileEncryptor.generate_key())


class TestCorruptData:
    def test_wrong_key_cannot_open(self, encryptor, make_profile):
        token = encryptor.seal_profile(make_profile())
        other = ProfileEncryptor(Fernet.generate_key().decode())
        with pytest.raises(EncryptionError, match="invalid token"):
            other.open_profile(token)

    def test_tampered_token_raises(self, encryptor):
        token = encryptor.seal({"data": 1})
        with pytest.raises(EncryptionError):
            encryptor.open(token[:-5] + "XXXXX")


def test_profile_dict_shape(make_profile):
    data = make_profile(target_weight_kg=70.0).to_private_dict()
    assert data == {
        "weight_kg": 80.0,
        "height_cm": 175.0,
        "date_of_birth": "1990-01-01",
        "gender": "male",
        "target_weight_kg": 70.0,
    }
    assert HealthProfile.from_private_dict(data).target_weight_kg == 70.0

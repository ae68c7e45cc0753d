import pytest

from connectivity.encryption import CredentialCipher


def test_encrypt_and_decrypt_credentials(cipher):
    encrypted = cipher.encrypt_credentials({"api_key": "k", "region": "eu"})
    assert "api_key" not in encrypted
    assert cipher.verify_encryption(encrypted)
    assert cipher.decrypt_credentials(encrypted) == {"api_key": "k", "region": "eu"}


def test_decrypt_is_tolerant_of_plaintext(cipher):
    assert cipher.decrypt("plain-text") == "plain-text"
    assert cipher.decrypt(None) is None
    assert cipher.try_decrypt("plain-text") is None


def test_decrypt_credentials_rejects_bad_input(cipher):
    with pytest.raises(ValueError):
        cipher.decrypt_credentials("")
    with pytest.raises(ValueError):
        cipher.decrypt_credentials("not-a-token")
    with pytest.raises(ValueError):
        cipher.decrypt_credentials(cipher.encrypt("just a string"))


def test_other_key_cannot_decrypt(cipher):
    other = CredentialCipher("another-passphrase")
    token = cipher.encrypt("s3cret")
    assert not other.verify_encryption(token)
    assert other.decrypt(token) == token


def test_fernet_keys_are_used_directly():
    key = CredentialCipher.generate_key()
    assert CredentialCipher(key).decrypt(CredentialCipher(key).encrypt("x")) == "x"


def test_default_key_logs_warning(monkeypatch, caplog):
    monkeypatch.delenv("ENCRYPTION_KEY", raising=False)
    CredentialCipher()
    assert "ENCRYPTION_KEY" in caplog.text


def test_hash_is_stable():
    assert CredentialCipher.hash("abc") == CredentialCipher.hash("abc")
    assert len(CredentialCipher.hash("abc")) == 64

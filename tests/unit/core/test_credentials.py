"""Unit tests for the credential store."""

import stat
from pathlib import Path

import pytest
from portalctl.core.credentials import (
    SIGNING_API_TOKEN,
    CredentialStore,
    certificate_passphrase_key,
    source_token_key,
)
from portalctl.core.errors import CredentialNotFoundError, PersistenceError


@pytest.fixture
def store(tmp_path: Path) -> CredentialStore:
    """Create a credential store in a temporary directory."""
    return CredentialStore(path=tmp_path / "config" / "credentials.toml")


class TestCredentialStore:
    """Tests for CredentialStore."""

    def test_save_and_retrieve(self, store: CredentialStore) -> None:
        """A saved secret can be read back."""
        store.save(SIGNING_API_TOKEN, "tok-123")

        assert store.retrieve(SIGNING_API_TOKEN) == "tok-123"
        assert store.exists(SIGNING_API_TOKEN)

    def test_save_replaces_value(self, store: CredentialStore) -> None:
        """Saving under an existing key replaces the value."""
        store.save("key", "one")
        store.save("key", "two")

        assert store.retrieve("key") == "two"

    def test_retrieve_missing_raises(self, store: CredentialStore) -> None:
        """Reading an absent key raises CredentialNotFoundError."""
        with pytest.raises(CredentialNotFoundError):
            store.retrieve("absent")

    def test_get_missing_returns_none(self, store: CredentialStore) -> None:
        """get returns None for absent keys."""
        assert store.get("absent") is None

    def test_delete(self, store: CredentialStore) -> None:
        """Deleted secrets are gone; deleting twice is fine."""
        store.save("key", "value")

        store.delete("key")
        store.delete("key")

        assert not store.exists("key")

    def test_empty_key_rejected(self, store: CredentialStore) -> None:
        """An empty key raises ValueError."""
        with pytest.raises(ValueError):
            store.save("", "value")

    def test_file_is_owner_only(self, store: CredentialStore) -> None:
        """The credentials file is readable by the owner only."""
        store.save("key", "value")

        mode = stat.S_IMODE(store.path.stat().st_mode)
        assert mode == 0o600

    def test_corrupt_file_holds_nothing(self, store: CredentialStore) -> None:
        """An unparseable file is treated as empty."""
        store.path.parent.mkdir(parents=True)
        store.path.write_text("not = [valid")

        assert store.get("key") is None

    def test_write_refuses_unparseable_file(self, store: CredentialStore) -> None:
        """Saving or deleting over an unparseable file keeps its contents."""
        store.path.parent.mkdir(parents=True)
        original = '[credentials]\n"certificate_passphrase:abc" = "hunter2"\nbroken = [\n'
        store.path.write_text(original)

        with pytest.raises(PersistenceError):
            store.save(SIGNING_API_TOKEN, "t")
        with pytest.raises(PersistenceError):
            store.delete("certificate_passphrase:abc")

        assert store.path.read_text() == original


class TestKeys:
    """Tests for well-known credential keys."""

    def test_source_token_key_lowercases_host(self) -> None:
        """Host names are case-insensitive."""
        assert source_token_key("Repo.Example.COM") == "source_token:repo.example.com"

    def test_certificate_passphrase_key(self) -> None:
        """Passphrase keys embed the certificate ID."""
        assert certificate_passphrase_key("abc") == "certificate_passphrase:abc"

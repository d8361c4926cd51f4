"""
Unit tests for vault sessions.
"""

import pytest

from mnemo.core.exceptions import AuthenticationError, VaultLockedError
from mnemo.core.utils import compute_content_hash
from mnemo.crypto.vault import VaultRecord, VaultSession


PASSPHRASE = "correct horse battery"


@pytest.fixture
def vault(fast_kdf):
    return VaultSession.create(PASSPHRASE, fast_kdf)


class TestVaultSession:
    """Tests for creating, unlocking and locking vaults."""

    def test_create_and_unlock(self, vault):
        """Content sealed at creation opens after a fresh unlock."""
        record, session = vault
        sealed = session.seal_entry("Dear diary", entry_id="e-1")

        reopened = VaultSession.unlock(record, PASSPHRASE)
        assert reopened.open_entry(sealed.blob, entry_id="e-1") == "Dear diary"

    def test_content_hash(self, vault):
        """The sealed entry carries the hash of its plaintext."""
        _, session = vault
        sealed = session.seal_entry("Dear diary")
        assert sealed.content_hash == compute_content_hash("Dear diary")

    def test_wrong_passphrase(self, vault):
        """A wrong passphrase raises AuthenticationError."""
        record, _ = vault
        with pytest.raises(AuthenticationError, match="Incorrect passphrase"):
            VaultSession.unlock(record, "not the passphrase")

    def test_entry_id_is_bound(self, vault):
        """Ciphertext sealed for one entry cannot be opened as another."""
        _, session = vault
        sealed = session.seal_entry("Dear diary", entry_id="e-1")
        with pytest.raises(AuthenticationError):
            session.open_entry(sealed.blob, entry_id="e-2")

    def test_lock_wipes_key(self, vault):
        """A locked session refuses to seal or open."""
        _, session = vault
        sealed = session.seal_entry("Dear diary")
        session.lock()

        assert not session.is_unlocked
        with pytest.raises(VaultLockedError):
            session.seal_entry("more")
        with pytest.raises(VaultLockedError):
            session.open_entry(sealed.blob)

    def test_context_manager_locks(self, vault):
        record, _ = vault
        with VaultSession.unlock(record, PASSPHRASE) as session:
            assert session.is_unlocked
        assert not session.is_unlocked


class TestVaultRecord:
    """Tests for record persistence and passphrase changes."""

    def test_dict_round_trip(self, vault):
        """A record survives to_dict/from_dict and still unlocks."""
        record, session = vault
        sealed = session.seal_entry("Dear diary")

        restored = VaultRecord.from_dict(record.to_dict())
        assert restored.salt == record.salt
        assert restored.kdf == record.kdf
        assert VaultSession.unlock(restored, PASSPHRASE).open_entry(sealed.blob) == "Dear diary"

    def test_change_passphrase(self, vault):
        """After a change only the new passphrase unlocks; old ciphertext still opens."""
        record, session = vault
        sealed = session.seal_entry("Dear diary")

        new_record = VaultSession.change_passphrase(record, PASSPHRASE, "a brand new phrase")

        assert new_record.salt != record.salt
        with pytest.raises(AuthenticationError):
            VaultSession.unlock(new_record, PASSPHRASE)
        reopened = VaultSession.unlock(new_record, "a brand new phrase")
        assert reopened.open_entry(sealed.blob) == "Dear diary"

    def test_change_passphrase_requires_old(self, vault):
        record, _ = vault
        with pytest.raises(AuthenticationError):
            VaultSession.change_passphrase(record, "wrong passphrase", "a brand new phrase")

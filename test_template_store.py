# test_template_store.py

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from sentinelmind.services.biometric_verifier import BiometricVerifier
from sentinelmind.services.errors import LengthMismatch, NoTemplateRegistered
from sentinelmind.services.template_store import (
    BiometricTemplate,
    InMemoryTemplateStore,
    SqliteTemplateStore,
)

REGISTERED_AT = datetime(2025, 3, 14, 9, 26, 53, tzinfo=timezone.utc)


def template(owner_id="alice", signature="1010" * 64, registered_at=REGISTERED_AT):
    return BiometricTemplate(owner_id=owner_id, signature=signature, registered_at=registered_at)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryTemplateStore()
    else:
        sqlite_store = SqliteTemplateStore(str(tmp_path / "templates.db"))
        yield sqlite_store
        sqlite_store.close()


class TestTemplateStores:

    def test_missing_owner(self, store):
        assert store.get("nobody") is None

    def test_round_trip(self, store):
        store.set("alice", template())
        assert store.get("alice") == template()

    def test_reenrollment_overwrites(self, store):
        store.set("alice", template(signature="0" * 256))
        later = REGISTERED_AT + timedelta(days=1)
        store.set("alice", template(signature="1" * 256, registered_at=later))

        stored = store.get("alice")
        assert stored.signature == "1" * 256
        assert stored.registered_at == later

    def test_owners_are_independent(self, store):
        store.set("alice", template("alice", "0" * 256))
        store.set("bob", template("bob", "1" * 256))
        assert store.get("alice").signature == "0" * 256
        assert store.get("bob").signature == "1" * 256

    def test_delete(self, store):
        store.set("alice", template())
        store.set("bob", template("bob"))

        assert store.delete("alice") is True
        assert store.get("alice") is None
        assert store.get("bob") == template("bob")

    def test_delete_missing_owner(self, store):
        assert store.delete("nobody") is False


class TestSqliteTemplateStore:

    def test_single_row_per_owner(self, tmp_path):
        store = SqliteTemplateStore(str(tmp_path / "templates.db"))
        store.set("alice", template())
        store.set("alice", template(signature="1" * 256))
        assert store.count() == 1
        store.close()

    def test_persists_across_instances(self, tmp_path):
        db_path = str(tmp_path / "nested" / "templates.db")
        first = SqliteTemplateStore(db_path)
        first.set("alice", template())
        first.close()

        second = SqliteTemplateStore(db_path)
        stored = second.get("alice")
        second.close()

        assert stored == template()
        assert stored.registered_at.tzinfo is not None


class TestBiometricTemplate:

    def test_dict_round_trip(self):
        data = template().to_dict()
        assert data["registered_at"] == "2025-03-14T09:26:53+00:00"
        assert BiometricTemplate.from_dict(data) == template()


class TestBiometricVerifier:

    @pytest.fixture
    def verifier(self):
        return BiometricVerifier(InMemoryTemplateStore())

    def test_verify_without_enrollment(self, verifier):
        with pytest.raises(NoTemplateRegistered):
            verifier.verify("alice", np.zeros((32, 32, 3), dtype=np.uint8))

    def test_enroll_then_verify_same_frame(self, verifier):
        frame = np.full((32, 32, 3), 200, dtype=np.uint8)
        enrolled = verifier.enroll("alice", frame)
        assert verifier.has_template("alice")
        assert len(enrolled.signature) == 256

        result = verifier.verify("alice", frame)
        assert result.success is True
        assert result.score == 1.0
        assert result.threshold == 0.6

    def test_different_frame_is_rejected(self, verifier):
        verifier.enroll("alice", np.full((32, 32, 3), 200, dtype=np.uint8))
        result = verifier.verify("alice", np.full((32, 32, 3), 10, dtype=np.uint8))
        assert result.success is False
        assert result.score == 0.0

    def test_score_at_threshold_is_accepted(self):
        store = InMemoryTemplateStore()
        verifier = BiometricVerifier(store, acceptance_threshold=0.5)
        # first half bright, second half dark: half the bits differ from all-ones
        frame = np.full((32, 32, 3), 10, dtype=np.uint8)
        frame[:16] = 200
        store.set("alice", template(signature="1" * 256))
        result = verifier.verify("alice", frame)
        assert result.score == 0.5
        assert result.success is True

    def test_remove_then_verify(self, verifier):
        frame = np.full((32, 32, 3), 200, dtype=np.uint8)
        verifier.enroll("alice", frame)
        verifier.remove("alice")

        assert verifier.has_template("alice") is False
        with pytest.raises(NoTemplateRegistered):
            verifier.verify("alice", frame)

    def test_remove_without_enrollment(self, verifier):
        with pytest.raises(NoTemplateRegistered):
            verifier.remove("alice")

    def test_incompatible_template(self, verifier):
        verifier.store.set("alice", template(signature="1010"))
        with pytest.raises(LengthMismatch):
            verifier.verify("alice", np.zeros((32, 32, 3), dtype=np.uint8))

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            BiometricVerifier(InMemoryTemplateStore(), acceptance_threshold=1.5)

"""
Tests for storage.py and env.py - keyed store, authorizers, atomic scopes

Tests:
- InMemoryStorage get/set/remove/has, retention hints, prefix scans
- Snapshot / restore
- SignerSet (per-thread signatures) and AllowAll
- Env.atomic(): commit, rollback, nesting
- EventLog: delivery after commit, subscriber failures recorded
"""

import threading

import pytest

from share_vault import (
    Env, EventLog, SignerSet, AllowAll, InMemoryStorage, Storage,
    Authorizer, Unauthorized, VaultError,
)


class TestInMemoryStorage:

    def test_absent_key_reads_default(self):
        storage = InMemoryStorage()
        assert storage.get(("t", "Balance", "alice"), 0) == 0
        assert storage.get(("t", "Admin")) is None
        assert not storage.has(("t", "Admin"))

    def test_set_and_remove(self):
        storage = InMemoryStorage()
        storage.set(("t", "Admin"), "admin")
        assert storage.has(("t", "Admin"))
        assert storage.get(("t", "Admin")) == "admin"

        storage.remove(("t", "Admin"))
        assert not storage.has(("t", "Admin"))

    def test_remove_absent_is_noop(self):
        storage = InMemoryStorage()
        storage.remove(("t", "missing"))
        assert len(storage) == 0

    def test_retention_hint_recorded(self):
        storage = InMemoryStorage()
        key = ("t", "Allowance", "alice", "bob")
        storage.set(key, 100, retention=5_000)
        assert storage.retention_of(key) == 5_000

        # Overwriting without a hint clears it
        storage.set(key, 50)
        assert storage.retention_of(key) is None

    def test_keys_by_prefix(self):
        storage = InMemoryStorage()
        storage.set(("t", "Balance", "bob"), 1)
        storage.set(("t", "Balance", "alice"), 2)
        storage.set(("t", "TotalSupply"), 3)
        storage.set(("u", "Balance", "carol"), 4)

        assert storage.keys(("t", "Balance")) == [
            ("t", "Balance", "alice"),
            ("t", "Balance", "bob"),
        ]
        assert len(storage.keys()) == 4

    def test_snapshot_restore(self):
        storage = InMemoryStorage()
        storage.set(("t", "x"), 1)
        snap = storage.snapshot()

        storage.set(("t", "x"), 2)
        storage.set(("t", "y"), 3, retention=9)
        storage.restore(snap)

        assert storage.get(("t", "x")) == 1
        assert not storage.has(("t", "y"))
        assert storage.retention_of(("t", "y")) is None

    def test_snapshot_is_independent(self):
        storage = InMemoryStorage()
        storage.set(("t", "x"), 1)
        snap = storage.snapshot()
        storage.restore(snap)
        storage.set(("t", "x"), 7)
        storage.restore(snap)
        assert storage.get(("t", "x")) == 1

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryStorage(), Storage)


class TestAuthorizers:

    def test_signer_set_rejects_unsigned(self):
        auth = SignerSet()
        with pytest.raises(Unauthorized, match="alice"):
            auth.require_auth("alice")

    def test_signer_set_accepts_inside_scope(self):
        auth = SignerSet()
        with auth.signed("alice"):
            auth.require_auth("alice")
            assert auth.is_signing("alice")
            with pytest.raises(Unauthorized):
                auth.require_auth("bob")
        assert not auth.is_signing("alice")

    def test_signer_set_nested_scopes(self):
        auth = SignerSet()
        with auth.signed("alice"):
            with auth.signed("alice", "bob"):
                auth.require_auth("bob")
            # Outer signature survives the inner scope
            auth.require_auth("alice")
            assert not auth.is_signing("bob")

    def test_signer_set_released_on_error(self):
        auth = SignerSet()
        with pytest.raises(RuntimeError):
            with auth.signed("alice"):
                raise RuntimeError("boom")
        assert not auth.is_signing("alice")

    def test_signer_set_signatures_are_per_thread(self):
        auth = SignerSet()
        signed = threading.Event()
        release = threading.Event()

        def hold_signature():
            with auth.signed("alice"):
                signed.set()
                release.wait(timeout=5)

        worker = threading.Thread(target=hold_signature)
        worker.start()
        try:
            assert signed.wait(timeout=5)
            assert not auth.is_signing("alice")
            with pytest.raises(Unauthorized):
                auth.require_auth("alice")
        finally:
            release.set()
            worker.join()
        assert not auth.is_signing("alice")

    def test_allow_all(self):
        auth = AllowAll()
        auth.require_auth("anyone")
        with auth.signed("x"):
            auth.require_auth("y")

    def test_authorizer_protocol(self):
        assert isinstance(SignerSet(), Authorizer)
        assert isinstance(AllowAll(), Authorizer)

    def test_env_defaults_to_signer_set(self):
        env = Env()
        with pytest.raises(Unauthorized):
            env.require_auth("alice")


class TestAtomic:

    def test_commit_keeps_writes(self):
        env = Env(auth=AllowAll())
        with env.atomic():
            env.storage.set(("t", "x"), 1)
        assert env.storage.get(("t", "x")) == 1

    def test_exception_restores_storage(self):
        env = Env(auth=AllowAll())
        env.storage.set(("t", "x"), 1)
        with pytest.raises(VaultError):
            with env.atomic():
                env.storage.set(("t", "x"), 2)
                env.storage.set(("t", "y"), 3)
                raise VaultError("fail")
        assert env.storage.get(("t", "x")) == 1
        assert not env.storage.has(("t", "y"))

    def test_exception_drops_events(self):
        env = Env(auth=AllowAll())
        with pytest.raises(VaultError):
            with env.atomic():
                env.events.emit("transfer", "t", "alice", 5)
                raise VaultError("fail")
        assert len(env.events) == 0

    def test_non_vault_exception_also_rolls_back(self):
        env = Env(auth=AllowAll())
        with pytest.raises(RuntimeError):
            with env.atomic():
                env.storage.set(("t", "x"), 1)
                raise RuntimeError("collaborator failed")
        assert not env.storage.has(("t", "x"))

    def test_inner_failure_caught_by_outer(self):
        env = Env(auth=AllowAll())
        with env.atomic():
            env.storage.set(("t", "outer"), 1)
            try:
                with env.atomic():
                    env.storage.set(("t", "inner"), 2)
                    raise VaultError("inner")
            except VaultError:
                pass
        assert env.storage.get(("t", "outer")) == 1
        assert not env.storage.has(("t", "inner"))

    def test_outer_failure_undoes_committed_inner(self):
        env = Env(auth=AllowAll())
        with pytest.raises(VaultError):
            with env.atomic():
                with env.atomic():
                    env.storage.set(("t", "inner"), 2)
                raise VaultError("outer")
        assert not env.storage.has(("t", "inner"))

    def test_in_call_flag(self):
        env = Env(auth=AllowAll())
        assert not env.in_call
        with env.atomic():
            assert env.in_call
            with env.atomic():
                assert env.in_call
            assert env.in_call
        assert not env.in_call

    def test_in_call_reset_after_failure(self):
        env = Env(auth=AllowAll())
        with pytest.raises(VaultError):
            with env.atomic():
                raise VaultError("x")
        assert not env.in_call

    def test_verbose_prints_rejection(self, capsys):
        env = Env(auth=AllowAll(), verbose=True)
        with pytest.raises(VaultError):
            with env.atomic():
                raise VaultError("nope")
        assert "REJECTED" in capsys.readouterr().out


class TestEventLog:

    def test_emit_sequences(self):
        log = EventLog()
        first = log.emit("mint", "t", "alice", 10)
        second = log.emit("burn", "t", "alice", 4)
        assert (first.sequence, second.sequence) == (0, 1)
        assert log.last() is second
        assert log.of_kind("mint") == [first]

    def test_params_sorted(self):
        log = EventLog()
        event = log.emit("deposit", "vault", "alice", 10, shares=5, rate=2)
        assert event.params == (("rate", 2), ("shares", 5))

    def test_subscribers_see_only_committed(self):
        env = Env(auth=AllowAll())
        seen = []
        env.events.subscribe(seen.append)

        with env.atomic():
            env.events.emit("mint", "t", "alice", 10)
            # Not delivered before the scope commits
            assert seen == []
        assert [e.kind for e in seen] == ["mint"]

        with pytest.raises(VaultError):
            with env.atomic():
                env.events.emit("burn", "t", "alice", 10)
                raise VaultError("fail")
        assert [e.kind for e in seen] == ["mint"]

    def test_nested_scope_delivers_once(self):
        env = Env(auth=AllowAll())
        seen = []
        env.events.subscribe(seen.append)
        with env.atomic():
            with env.atomic():
                env.events.emit("a", "t", None)
            assert seen == []
            env.events.emit("b", "t", None)
        assert [e.kind for e in seen] == ["a", "b"]

    def test_subscriber_failure_recorded(self):
        env = Env(auth=AllowAll())

        def broken(event):
            raise ValueError("indexer down")

        seen = []
        env.events.subscribe(broken)
        env.events.subscribe(seen.append)

        with env.atomic():
            env.storage.set(("t", "x"), 1)
            env.events.emit("mint", "t", "alice", 1)

        # State committed and later subscribers still notified
        assert env.storage.get(("t", "x")) == 1
        assert len(seen) == 1
        assert len(env.events.delivery_errors) == 1
        event, exc = env.events.delivery_errors[0]
        assert event.kind == "mint"
        assert isinstance(exc, ValueError)

"""
env.py - Execution context shared by the ledger and the vault

Env replaces process-wide singletons with one explicit object:
    - storage: where every counter lives
    - auth: who has authorized the current call
    - events: the append-only audit trail
    - a commit lock and the atomic() scope

Every mutating entry point runs inside Env.atomic(): either all of its
writes commit, or the storage snapshot is restored and the call's
events are discarded. Queries run under Env.reading() so they observe
the state before or after a mutation, never a mix.
"""

from __future__ import annotations
from collections import Counter
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional, Tuple
import threading

from .core import (
    Address, VaultEvent, Unauthorized,
)
from .storage import InMemoryStorage, Storage


# ============================================================================
# AUTHORIZERS
# ============================================================================

class SignerSet:
    """
    Authorizer that only accepts principals currently signing.

    Signatures belong to the thread that opened the signed() scope; a
    principal signing on one thread authorizes nothing on another.

    Example:
        auth = SignerSet()
        with auth.signed("alice"):
            token.transfer("alice", "bob", 100)   # ok
        token.transfer("alice", "bob", 100)       # Unauthorized
    """

    def __init__(self):
        self._local = threading.local()

    @property
    def _signers(self) -> Counter:
        signers = getattr(self._local, "signers", None)
        if signers is None:
            signers = self._local.signers = Counter()
        return signers

    def require_auth(self, principal: Address) -> None:
        if self._signers[principal] <= 0:
            raise Unauthorized(f"{principal} has not authorized this call")

    @contextmanager
    def signed(self, *principals: Address) -> Iterator[None]:
        signers = self._signers
        for p in principals:
            signers[p] += 1
        try:
            yield
        finally:
            for p in principals:
                signers[p] -= 1
                if signers[p] <= 0:
                    del signers[p]

    def is_signing(self, principal: Address) -> bool:
        return self._signers[principal] > 0


class AllowAll:
    """Authorizer that accepts every principal. For tests and simulations."""

    def require_auth(self, principal: Address) -> None:
        return None

    @contextmanager
    def signed(self, *principals: Address) -> Iterator[None]:
        yield


# ============================================================================
# EVENT LOG
# ============================================================================

EventSubscriber = Callable[[VaultEvent], Any]


class EventLog:
    """
    Append-only audit trail of committed state changes.

    Events are appended while a call runs and delivered to subscribers
    only once the outermost atomic scope commits. A failing subscriber
    never affects accounting: its error is kept in delivery_errors.
    """

    def __init__(self, verbose: bool = False):
        self.records: List[VaultEvent] = []
        self.delivery_errors: List[Tuple[VaultEvent, Exception]] = []
        self._subscribers: List[EventSubscriber] = []
        self.verbose = verbose

    def subscribe(self, callback: EventSubscriber) -> None:
        self._subscribers.append(callback)

    def emit(
        self,
        kind: str,
        contract: Address,
        principal: Optional[Address],
        amount: int = 0,
        before: Optional[int] = None,
        after: Optional[int] = None,
        counterparty: Optional[Address] = None,
        **params: Any,
    ) -> VaultEvent:
        """Append an event for the call in progress and return it."""
        event = VaultEvent(
            sequence=len(self.records),
            kind=kind,
            contract=contract,
            principal=principal,
            amount=amount,
            before=before,
            after=after,
            counterparty=counterparty,
            params=tuple(sorted(params.items())),
        )
        self.records.append(event)
        return event

    def mark(self) -> int:
        return len(self.records)

    def truncate(self, mark: int) -> None:
        del self.records[mark:]

    def deliver(self, start: int) -> None:
        """Hand every event from position start onward to the subscribers."""
        for event in self.records[start:]:
            if self.verbose:
                print(f"✓ {event!r}")
            for callback in self._subscribers:
                try:
                    callback(event)
                except Exception as exc:
                    self.delivery_errors.append((event, exc))
                    if self.verbose:
                        print(f"⚠️  subscriber failed on #{event.sequence}: {exc!r}")

    def of_kind(self, kind: str) -> List[VaultEvent]:
        return [e for e in self.records if e.kind == kind]

    def last(self) -> Optional[VaultEvent]:
        return self.records[-1] if self.records else None

    def __len__(self) -> int:
        return len(self.records)


# ============================================================================
# ENV
# ============================================================================

class Env:
    """
    Explicit execution context for one vault deployment.

    Components built on the same Env share storage, so a single atomic
    scope covers the vault, its share ledger and (when it is a
    TokenLedger on the same Env) the principal asset.

    Every atomic() entry, nested ledger scopes included, takes a full
    storage snapshot, so the cost of a call grows with the number of
    stored keys (holders and allowances).

    Args:
        storage: Storage backend (default: InMemoryStorage)
        auth: Authorizer (default: SignerSet, nothing authorized)
        verbose: Print committed events and rejected calls
    """

    def __init__(
        self,
        storage: Optional[Storage] = None,
        auth: Optional[Any] = None,
        verbose: bool = False,
    ):
        self.storage = storage if storage is not None else InMemoryStorage()
        self.auth = auth if auth is not None else SignerSet()
        self.verbose = verbose
        self.events = EventLog(verbose=verbose)
        self._lock = threading.RLock()
        self._depth = 0

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        All-or-nothing scope for a mutating call.

        On any exception the storage snapshot taken at entry is restored,
        events appended inside the scope are dropped, and the exception
        propagates unchanged. Scopes nest; only the outermost one
        delivers events.
        """
        with self._lock:
            snapshot = self.storage.snapshot()
            mark = self.events.mark()
            self._depth += 1
            try:
                yield
            except BaseException as exc:
                self.storage.restore(snapshot)
                self.events.truncate(mark)
                self._depth -= 1
                if self.verbose and self._depth == 0:
                    print(f"✗ REJECTED: {type(exc).__name__}: {exc}")
                raise
            self._depth -= 1
            if self._depth == 0:
                self.events.deliver(mark)

    @contextmanager
    def reading(self) -> Iterator[None]:
        """Hold the commit lock for a multi-key read."""
        with self._lock:
            yield

    @property
    def in_call(self) -> bool:
        """True while an atomic scope is open."""
        return self._depth > 0

    def require_auth(self, principal: Address) -> None:
        self.auth.require_auth(principal)

    def __repr__(self) -> str:
        return f"Env({self.storage!r}, {len(self.events)} events)"

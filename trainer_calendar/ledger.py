"""
Package Ledger and the client directory derived from it.

Selection rule for the *active* package of a client:

1. candidates are the client's solo packages, unless the client appears in a
   shared package; then the candidates are every package owned by exactly
   that group (the group of the earliest such shared package);
2. candidates are ordered by purchase date, then creation time, then
   insertion order;
3. the first candidate with ``used < size`` is active.

Only the booking engine should call ``consume_session``/``release_session``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Iterable

from trainer_calendar.config import Settings
from trainer_calendar.errors import (
    CapacityExceeded,
    ClientHasActivePackages,
    IncompletePackageExists,
    NotFound,
    PackageIncomplete,
    ValidationError,
)
from trainer_calendar.models import PACKAGES, Package, parse_owner_names
from trainer_calendar.store import Store, Transaction, new_id

logger = logging.getLogger(__name__)


def fifo_order(packages: Iterable[Package]) -> list[Package]:
    # sorted() is stable, so equal keys keep store (insertion) order
    return sorted(packages, key=lambda p: (p.added_iso, p.created_at))


def candidates_for(client: str, packages: Iterable[Package]) -> list[Package]:
    ordered = fifo_order(packages)
    own = [p for p in ordered if p.belongs_to(client)]
    shared = [p for p in own if p.is_shared]
    if shared:
        group = shared[0].owners
        return [p for p in ordered if p.owners == group]
    return own


def select_active(client: str, packages: Iterable[Package]) -> Package | None:
    for p in candidates_for(client, packages):
        if not p.is_complete:
            return p
    return None


@dataclass(frozen=True)
class ClientSummary:
    name: str
    packages: tuple[Package, ...]
    active: Package | None
    shared_with: tuple[str, ...]
    is_primary: bool

    @property
    def status(self) -> str:
        return self.active.progress if self.active else "complete"


class PackageLedger:
    def __init__(
        self,
        store: Store,
        settings: Settings,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._sizes = settings.package_sizes
        self._allow_concurrent = settings.allow_concurrent_packages
        self._clock = clock

    # --- reads ---------------------------------------------------------

    def packages(self) -> list[Package]:
        return fifo_order(Package.from_doc(d) for d in self._store.list(PACKAGES))

    def get(self, package_id: str) -> Package:
        doc = self._store.get(PACKAGES, package_id)
        if doc is None:
            raise NotFound("package", package_id)
        return Package.from_doc(doc)

    def active_package_for(self, client: str) -> Package | None:
        return select_active(client.strip(), self.packages())

    # --- purchase / delete ---------------------------------------------

    def purchase_package(self, owner: str | Iterable[str], size: int) -> Package:
        names = parse_owner_names(owner)
        if not names:
            raise ValidationError("Client name is empty")
        if size not in self._sizes:
            raise ValidationError(f"Package size {size} is not one of {list(self._sizes)}")

        if not self._allow_concurrent:
            packages = self.packages()
            for name in names:
                # any unfinished package counts, not only the one bookings draw from
                current = next((p for p in packages if p.belongs_to(name) and not p.is_complete), None)
                if current is not None:
                    logger.info("Purchase rejected: %s has package %s at %s", name, current.id, current.progress)
                    raise IncompletePackageExists(name, current.used, current.size)

        now = self._clock()
        package = Package(
            id=new_id(),
            client_names=names,
            size=size,
            used=0,
            added_iso=now.date().isoformat(),
            created_at=now.isoformat(timespec="microseconds"),
        )
        self._store.add(PACKAGES, package.to_doc(), doc_id=package.id)
        logger.info("Package %s purchased: %s x%d", package.id, ", ".join(names), size)
        return package

    def delete_package(self, package_id: str) -> None:
        def body(txn: Transaction) -> None:
            doc = txn.get(PACKAGES, package_id)
            if doc is None:
                raise NotFound("package", package_id)
            package = Package.from_doc(doc)
            if not package.is_complete:
                raise PackageIncomplete(package_id, package.used, package.size)
            txn.delete(PACKAGES, package_id)

        self._store.run_transaction(body)
        logger.info("Package %s deleted", package_id)

    def remove_client(self, client_name: str) -> None:
        """
        Drop every package of ``client_name``; bookings stay as history.

        Solo packages are deleted.  Finished shared packages only lose this
        client's name so the co-owners keep their records.
        """
        name = client_name.strip()
        if not name:
            raise ValidationError("Client name is empty")

        def body(txn: Transaction) -> int:
            owned = []
            for p in self.packages():
                if not p.belongs_to(name):
                    continue
                doc = txn.get(PACKAGES, p.id)
                if doc is not None:
                    owned.append(Package.from_doc(doc))
            if not owned:
                raise NotFound("client", name)
            if any(not p.is_complete for p in owned):
                raise ClientHasActivePackages(name)

            for p in owned:
                rest = tuple(n for n in p.client_names if n != name)
                if rest:
                    txn.set(PACKAGES, p.id, replace(p, client_names=rest).to_doc())
                else:
                    txn.delete(PACKAGES, p.id)
            return len(owned)

        count = self._store.run_transaction(body)
        logger.info("Client %s removed (%d packages)", name, count)

    # --- session counters ----------------------------------------------

    def consume_session(self, package_id: str, txn: Transaction | None = None) -> Package:
        """Increment ``used``; returns the package as it is after the increment."""
        if txn is None:
            return self._store.run_transaction(lambda t: self.consume_session(package_id, t))

        doc = txn.get(PACKAGES, package_id)
        if doc is None:
            raise NotFound("package", package_id)
        package = Package.from_doc(doc)
        if package.is_complete:
            raise CapacityExceeded(package_id, package.size)
        txn.update(PACKAGES, package_id, {"used": package.used + 1})
        return replace(package, used=package.used + 1)

    def release_session(self, package_id: str, txn: Transaction | None = None) -> Package | None:
        """Decrement ``used`` (floored at 0); a missing package is ignored."""
        if txn is None:
            return self._store.run_transaction(lambda t: self.release_session(package_id, t))

        doc = txn.get(PACKAGES, package_id)
        if doc is None:
            return None
        package = Package.from_doc(doc)
        used = max(0, package.used - 1)
        txn.update(PACKAGES, package_id, {"used": used})
        return replace(package, used=used)

    # --- client directory ----------------------------------------------

    def client_names(self) -> list[str]:
        names: list[str] = []
        for p in self.packages():
            names.extend(n for n in p.client_names if n not in names)
        return names

    def active_clients(self) -> list[str]:
        packages = self.packages()
        return [n for n in self.client_names() if select_active(n, packages) is not None]

    def client_summary(self, client: str) -> ClientSummary:
        packages = self.packages()
        own = tuple(p for p in packages if p.belongs_to(client))
        if not own:
            raise NotFound("client", client)

        shared = next((p for p in own if p.is_shared), None)
        return ClientSummary(
            name=client,
            packages=own,
            active=select_active(client, packages),
            shared_with=tuple(n for n in shared.client_names if n != client) if shared else (),
            is_primary=shared is None or shared.client_names[0] == client,
        )

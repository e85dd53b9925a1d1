"""Local machine identity resolution.

Decides whether a target name or address refers to the machine running
the batch, so that alternate credentials are only attached for remote
hosts. Names are resolved once per resolver instance; create one resolver
per batch.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
import threading
from typing import Callable, FrozenSet, Iterable, List, Optional, Set, Tuple

logger = logging.getLogger("policyscan.runtime.identity")

# Names that always denote the local machine
LOOPBACK_NAMES: FrozenSet[str] = frozenset({"", ".", "localhost", "::1", "127.0.0.1"})


def _normalize(name: Optional[str]) -> str:
    return (name or "").strip().lower()


def _with_short_name(name: str) -> Set[str]:
    """Return the name plus its first DNS label, addresses untouched."""
    try:
        ipaddress.ip_address(name)
        return {name}
    except ValueError:
        return {name, name.split(".", 1)[0]}


def _local_addresses(hostname: str) -> List[str]:
    """Return the addresses the local hostname resolves to."""
    addresses: List[str] = []
    for info in socket.getaddrinfo(hostname, None):
        address = info[4][0]
        if address not in addresses:
            addresses.append(address)
    return addresses


class LocalIdentityResolver:
    """Matches targets against the local machine's names and addresses.

    The resolved set is the union of ``LOOPBACK_NAMES``, the hostname, its
    FQDN and short form, every local address, and the reverse-DNS name and
    aliases of each address. Lookup failures for a single address are
    ignored; that address just contributes no alias.

    Attributes:
        hostname: Local hostname used as the starting point.
    """

    def __init__(
        self,
        hostname: Optional[str] = None,
        address_lookup: Callable[[str], Iterable[str]] = _local_addresses,
        reverse_lookup: Callable[[str], Tuple[str, List[str], List[str]]] = socket.gethostbyaddr,
        fqdn_lookup: Callable[[str], str] = socket.getfqdn,
    ) -> None:
        """Initialize the resolver.

        Args:
            hostname: Local hostname. Defaults to ``socket.gethostname()``.
            address_lookup: Returns the addresses for a hostname.
            reverse_lookup: ``gethostbyaddr``-compatible reverse resolver.
            fqdn_lookup: ``getfqdn``-compatible resolver.
        """
        self.hostname = hostname if hostname is not None else socket.gethostname()
        self._address_lookup = address_lookup
        self._reverse_lookup = reverse_lookup
        self._fqdn_lookup = fqdn_lookup
        self._names: Optional[FrozenSet[str]] = None
        self._lock = threading.Lock()

    def local_names(self) -> FrozenSet[str]:
        """Return the cached set of lower-cased local names and addresses."""
        if self._names is None:
            with self._lock:
                if self._names is None:
                    self._names = self._resolve()
        return self._names

    def is_local(self, target: Optional[str]) -> bool:
        """Check whether ``target`` refers to this machine.

        Args:
            target: Hostname or address, matched case-insensitively.

        Returns:
            bool: True for loopback synonyms and any resolved local name.
        """
        normalized = _normalize(target)
        if normalized in LOOPBACK_NAMES:
            return True
        return normalized in self.local_names()

    def _resolve(self) -> FrozenSet[str]:
        names: Set[str] = set(LOOPBACK_NAMES)
        hostname = _normalize(self.hostname)
        if hostname:
            names |= _with_short_name(hostname)

        try:
            fqdn = _normalize(self._fqdn_lookup(self.hostname))
            if fqdn:
                names.add(fqdn)
        except OSError as e:
            logger.debug("FQDN lookup for %s failed: %s", self.hostname, e)

        try:
            addresses = list(self._address_lookup(self.hostname))
        except OSError as e:
            logger.debug("Address lookup for %s failed: %s", self.hostname, e)
            addresses = []

        for address in addresses:
            names.add(_normalize(address))
            try:
                primary, aliases, _ = self._reverse_lookup(address)
            except OSError as e:
                logger.debug("Reverse lookup for %s failed: %s", address, e)
                continue
            for alias in [primary, *aliases]:
                alias = _normalize(alias)
                if alias:
                    names |= _with_short_name(alias)

        logger.debug("Resolved %d local names for %s", len(names), self.hostname)
        return frozenset(names)

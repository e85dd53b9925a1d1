"""Tests for local identity resolution."""

from __future__ import annotations

import socket

import pytest

from policyscan.runtime.identity import LOOPBACK_NAMES, LocalIdentityResolver


def make_resolver(**overrides) -> LocalIdentityResolver:
    """Resolver with fake lookups for host 'ws01.corp.example'."""

    def reverse(address):
        if address == "10.0.0.5":
            return ("ws01.corp.example", ["ws01-alias.corp.example"], [address])
        raise socket.herror(1, "Unknown host")

    options = {
        "hostname": "WS01",
        "address_lookup": lambda hostname: ["10.0.0.5", "fe80::1"],
        "reverse_lookup": reverse,
        "fqdn_lookup": lambda hostname: "ws01.corp.example",
    }
    options.update(overrides)
    return LocalIdentityResolver(**options)


@pytest.mark.parametrize("target", ["", ".", "localhost", "LOCALHOST", "127.0.0.1", "::1", None])
def test_loopback_synonyms_are_local(target) -> None:
    """Loopback names match without any lookup."""

    def fail(*args):
        raise AssertionError("lookup should not run")

    resolver = LocalIdentityResolver(
        hostname="ws01", address_lookup=fail, reverse_lookup=fail, fqdn_lookup=fail
    )
    assert resolver.is_local(target)


def test_hostname_fqdn_and_addresses_are_local() -> None:
    """Hostname, FQDN, short names, addresses and aliases all match."""

    resolver = make_resolver()

    for target in (
        "ws01",
        "WS01",
        "ws01.corp.example",
        "10.0.0.5",
        "fe80::1",
        "ws01-alias",
        "WS01-ALIAS.corp.example",
        " ws01 ",
    ):
        assert resolver.is_local(target), target


def test_other_hosts_are_remote() -> None:
    """Names outside the resolved set are remote."""

    resolver = make_resolver()

    assert not resolver.is_local("some-other-host")
    assert not resolver.is_local("10.0.0.6")
    assert not resolver.is_local("corp.example")


def test_addresses_are_not_shortened() -> None:
    """An IPv4 address never contributes its first octet as a name."""

    resolver = make_resolver()

    assert "10" not in resolver.local_names()
    assert not resolver.is_local("10")


def test_failed_reverse_lookup_is_ignored() -> None:
    """A reverse-DNS failure leaves the address itself in the set."""

    resolver = make_resolver()

    names = resolver.local_names()
    assert "fe80::1" in names
    assert LOOPBACK_NAMES <= names


def test_failed_address_lookup_keeps_hostname() -> None:
    """When the hostname cannot be resolved the name itself still matches."""

    def no_addresses(hostname):
        raise socket.gaierror(-2, "Name or service not known")

    resolver = make_resolver(address_lookup=no_addresses)

    assert resolver.is_local("ws01")
    assert not resolver.is_local("10.0.0.5")


def test_names_are_resolved_once() -> None:
    """The name set is cached per resolver."""

    calls = []

    def lookup(hostname):
        calls.append(hostname)
        return ["10.0.0.5"]

    resolver = make_resolver(address_lookup=lookup)
    resolver.is_local("a")
    resolver.is_local("b")
    resolver.local_names()

    assert calls == ["WS01"]


def test_real_machine_identity() -> None:
    """The default resolver recognises this machine's hostname."""

    resolver = LocalIdentityResolver()

    assert resolver.is_local("localhost")
    assert resolver.is_local(socket.gethostname())
    assert not resolver.is_local("some-other-host.invalid")

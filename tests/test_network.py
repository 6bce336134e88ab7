import ipaddress
import random

import pytest

from banalytiq.network import ip_in_range, ip_to_int, is_resolvable


def test_ip_to_int():
    assert ip_to_int("0.0.0.0") == 0
    assert ip_to_int("255.255.255.255") == 0xFFFFFFFF
    assert ip_to_int("1.2.3.4") == 0x01020304
    assert ip_to_int("::1") is None
    assert ip_to_int("1.2.3") is None
    assert ip_to_int("garbage") is None
    assert ip_to_int(None) is None


@pytest.mark.parametrize(
    "ip, cidr, expected",
    [
        ("86.104.252.0", "86.104.252.0/23", True),
        ("86.104.253.255", "86.104.252.0/23", True),
        ("86.104.254.0", "86.104.252.0/23", False),
        ("86.104.251.255", "86.104.252.0/23", False),
        ("98.149.170.0", "98.149.168.0/21", True),
        ("98.149.176.0", "98.149.168.0/21", False),
        ("10.0.0.1", "10.0.0.1/32", True),
        ("10.0.0.2", "10.0.0.1/32", False),
        ("1.2.3.4", "0.0.0.0/0", True),
        ("255.255.255.255", "9.9.9.9/0", True),
    ],
)
def test_ip_in_range(ip, cidr, expected):
    assert ip_in_range(ip, cidr) is expected


@pytest.mark.parametrize(
    "ip, cidr",
    [
        ("", "1.2.3.0/24"),
        ("1.2.3.4", ""),
        ("1.2.3.4", "1.2.3.0"),
        ("1.2.3.4", "1.2.3.0/24/1"),
        ("1.2.3.4", "1.2.3.0/33"),
        ("1.2.3.4", "1.2.3.0/-1"),
        ("1.2.3.4", "1.2.3.0/abc"),
        ("1.2.3.4", "1.2.3.0/"),
        ("1.2.3.4", "garbage/24"),
        ("::1", "1.2.3.0/24"),
        ("2001:db8::1", "2001:db8::/32"),
        ("not-an-ip", "0.0.0.0/0"),
        (None, "0.0.0.0/0"),
        ("1.2.3.4", None),
    ],
)
def test_ip_in_range_rejects_malformed_input(ip, cidr):
    assert ip_in_range(ip, cidr) is False


def test_ip_in_range_matches_stdlib_networks():
    rng = random.Random(1234)
    for _ in range(500):
        prefix = rng.randint(0, 32)
        subnet = ipaddress.IPv4Address(rng.getrandbits(32))
        ip = ipaddress.IPv4Address(rng.getrandbits(32))
        cidr = f"{subnet}/{prefix}"
        expected = ip in ipaddress.ip_network(cidr, strict=False)
        assert ip_in_range(str(ip), cidr) is expected


@pytest.mark.parametrize("prefix", range(0, 33))
def test_boundary_addresses(prefix):
    net = ipaddress.ip_network(f"86.104.252.0/{prefix}", strict=False)
    cidr = f"{net.network_address}/{prefix}"
    assert ip_in_range(str(net.network_address), cidr)
    assert ip_in_range(str(net.broadcast_address), cidr)
    if int(net.broadcast_address) < 0xFFFFFFFF:
        assert not ip_in_range(str(net.broadcast_address + 1), cidr)


@pytest.mark.parametrize(
    "ip, expected",
    [
        ("98.149.170.0", True),
        ("86.104.252.0", True),
        ("10.1.2.0", False),
        ("172.16.5.0", False),
        ("192.168.1.0", False),
        ("127.0.0.0", False),
        ("169.254.1.0", False),
        ("0.0.0.0", False),
        ("224.0.0.0", False),
        ("240.1.2.0", False),
        ("::1", False),
        ("", False),
        ("1.2.3", False),
    ],
)
def test_is_resolvable(ip, expected):
    assert is_resolvable(ip) is expected

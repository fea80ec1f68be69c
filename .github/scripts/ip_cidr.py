#!/usr/bin/env python3
"""
IP/CIDR normalisation and validation for firewall whitelist requests.

Input arrives from humans and CI variables, so it is first normalised
(whitespace and semicolons removed, ``/32`` appended when no prefix is
given) and then validated into an :class:`IpCidr`.  Validation is strict:
octets must be 0–255 and the prefix 0–32.  Nothing is truncated or
silently corrected.

Usage:
  python3 ip_cidr.py "192.168.1.1"
"""

import re
import sys
from dataclasses import dataclass
from typing import Tuple

from whitelist_errors import (
    InvalidFormat,
    IpValidationError,
    OctetOutOfRange,
    PrefixOutOfRange,
)

DEFAULT_PREFIX = 32

# Four dot-separated decimal groups with an optional "/NN" suffix.  A leading
# minus is accepted in the shape so negative values are reported as range
# errors rather than format errors.
IP_CIDR_PATTERN = re.compile(
    r"^(-?[0-9]{1,3})\.(-?[0-9]{1,3})\.(-?[0-9]{1,3})\.(-?[0-9]{1,3})(?:/(-?[0-9]{1,2})?)?$"
)


@dataclass(frozen=True)
class IpCidr:
    """IPv4 address plus prefix length; invalid values are rejected on construction."""

    octets: Tuple[int, int, int, int]
    prefix_len: int = DEFAULT_PREFIX

    def __post_init__(self):
        object.__setattr__(self, "octets", tuple(self.octets))
        if len(self.octets) != 4:
            raise InvalidFormat(f"An IPv4 address has 4 octets. Found: {len(self.octets)}")
        if not all(isinstance(v, int) for v in (*self.octets, self.prefix_len)):
            raise InvalidFormat(f"Octets and prefix must be integers. Found: {self.octets}/{self.prefix_len}")
        for octet in self.octets:
            if octet < 0 or octet > 255:
                raise OctetOutOfRange(
                    f"Invalid IP address '{'.'.join(str(o) for o in self.octets)}'. Octets must be 0-255."
                )
        if self.prefix_len < 0 or self.prefix_len > 32:
            raise PrefixOutOfRange(f"Invalid CIDR '/{self.prefix_len}'. Must be /0 to /32.")

    @property
    def address(self) -> str:
        return ".".join(str(o) for o in self.octets)

    def __str__(self) -> str:
        return f"{self.address}/{self.prefix_len}"


def normalize_ip_cidr(raw: str) -> str:
    """Strip whitespace and semicolons and default the prefix to /32."""
    candidate = re.sub(r"[\s;]+", "", raw or "")
    if "/" not in candidate:
        candidate = f"{candidate}/{DEFAULT_PREFIX}"
    return candidate


def validate_ip_cidr(text: str) -> IpCidr:
    """
    Parse a normalised ``a.b.c.d[/p]`` string into an :class:`IpCidr`.

    Raises:
        InvalidFormat: the string is not four dotted groups with an optional prefix
        OctetOutOfRange: an octet is outside 0–255
        PrefixOutOfRange: the prefix is outside 0–32
    """
    m = IP_CIDR_PATTERN.fullmatch(text or "")
    if not m:
        raise InvalidFormat(
            f"Invalid IP address format '{text}'. Use a valid IP with optional CIDR "
            "(e.g., 192.168.1.1 or 192.168.1.0/24)."
        )
    octets = tuple(int(g) for g in m.group(1, 2, 3, 4))
    prefix = int(m.group(5)) if m.group(5) else DEFAULT_PREFIX
    return IpCidr(octets=octets, prefix_len=prefix)


def sanitize_ip_cidr(raw: str) -> IpCidr:
    return validate_ip_cidr(normalize_ip_cidr(raw))


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: ip_cidr.py <ip[/cidr]>")
        sys.exit(1)
    try:
        ip = sanitize_ip_cidr(sys.argv[1])
    except IpValidationError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        sys.exit(1)
    print(ip)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Duplicate detection for firewall whitelist requests.

A request is a duplicate when an existing rule has exactly the same start
and end address.  The comparison is literal: a /24 request is not treated
as covered by, or covering, a /32 rule inside that range.  Azure SQL rules
carry no prefix, so ``10.0.0.0/24`` and ``10.0.0.0/32`` both compare as
``10.0.0.0``-``10.0.0.0``.
"""

from typing import Iterable, Optional, Tuple

from az_firewall import FirewallRule
from ip_cidr import IpCidr


def rule_range(candidate: IpCidr) -> Tuple[str, str]:
    """Start and end address for a rule created from ``candidate``.

    CIDR ranges are not expanded; start and end are both the network
    address as written.
    """
    return candidate.address, candidate.address


def find_duplicate(candidate: IpCidr, rules: Iterable[FirewallRule]) -> Optional[str]:
    start_ip, end_ip = rule_range(candidate)
    for rule in rules:
        if rule.start_ip == start_ip and rule.end_ip == end_ip:
            return rule.name
    return None

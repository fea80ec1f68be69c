#!/usr/bin/env python3
"""
Azure SQL server firewall rules.

Lists and creates server-level firewall rules through
``az sql server firewall-rule``.  The service keeps no idempotency key, so
callers are expected to check for an existing rule before creating one
(see ``duplicate_check.py``).

Usage:
  python3 az_firewall.py --rg <resource-group> --server <server-name>
"""

import argparse
import sys
from dataclasses import dataclass
from typing import Any, Dict, List

from az_cli import run_az
from whitelist_errors import ServiceUnavailable


@dataclass(frozen=True)
class FirewallRule:
    name: str
    start_ip: str
    end_ip: str

    @classmethod
    def from_az(cls, item: Dict[str, Any]) -> "FirewallRule":
        return cls(
            name=item.get("name") or "",
            start_ip=item.get("startIpAddress") or "",
            end_ip=item.get("endIpAddress") or "",
        )


class AzSqlFirewall:
    """Firewall rules of one or more Azure SQL servers."""

    def list_rules(self, resource_group: str, server_name: str) -> List[FirewallRule]:
        """
        List the server-level firewall rules of an Azure SQL server.

        Args:
            resource_group: Resource group holding the server
            server_name: SQL server name (without ``.database.windows.net``)

        Returns:
            One :class:`FirewallRule` per rule, in the order ``az`` returns them

        Raises:
            ServiceUnavailable: the ``az`` call failed
        """
        data = run_az([
            "sql", "server", "firewall-rule", "list",
            "--resource-group", resource_group,
            "--server", server_name,
        ])
        return [FirewallRule.from_az(item) for item in data or []]

    def create_rule(self, resource_group: str, server_name: str, rule: FirewallRule) -> None:
        """
        Create ``rule`` on the server.

        The service does not reject a second rule with the same range, so
        check for duplicates first.

        Raises:
            ServiceUnavailable: the ``az`` call failed (for example a name clash)
        """
        run_az([
            "sql", "server", "firewall-rule", "create",
            "--resource-group", resource_group,
            "--server", server_name,
            "--name", rule.name,
            "--start-ip-address", rule.start_ip,
            "--end-ip-address", rule.end_ip,
        ])

    def rules_table(self, resource_group: str, server_name: str) -> str:
        return run_az([
            "sql", "server", "firewall-rule", "list",
            "--resource-group", resource_group,
            "--server", server_name,
        ], output="table")


def main() -> None:
    parser = argparse.ArgumentParser(description="List firewall rules of an Azure SQL server")
    parser.add_argument("--rg", required=True, help="Resource group of the SQL server")
    parser.add_argument("--server", required=True, help="SQL server name")
    args = parser.parse_args()
    try:
        rules = AzSqlFirewall().list_rules(args.rg, args.server)
    except ServiceUnavailable as exc:
        print(f"❌ {exc}", file=sys.stderr)
        sys.exit(1)
    for rule in rules:
        print(f"{rule.name}\t{rule.start_ip}\t{rule.end_ip}")


if __name__ == "__main__":
    main()

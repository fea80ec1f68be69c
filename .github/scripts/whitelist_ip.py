#!/usr/bin/env python3
"""
Whitelist a developer IP on an Azure SQL server firewall.

The request is normalised and validated, checked against the server's
existing rules, and a new rule is created only when no rule with the same
start/end address exists.  Every outcome (including rejected input and
failed ``az`` calls) is appended to the audit log for the environment, and
the log file can optionally be uploaded to blob storage.

Usage:
  python3 whitelist_ip.py --env dev --rg <resource-group> --server <server> \\
      --ip 203.0.113.7 --dev alice [--upload] [--no-show-rules]
  python3 whitelist_ip.py upload-manual [--env dev]

Resource group, server and developer fall back to the RESOURCE_GROUP,
SERVER_NAME and DEVELOPER_NAME variables, then to ``whitelist.yml``.

Exit status is 0 when a rule was created or already existed, 1 otherwise.
"""

import argparse
import os
import re
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence

from audit_log import AuditLogger, LogRecord, Status
from az_cli import ensure_az_available
from az_firewall import AzSqlFirewall, FirewallRule
from blob_upload import BlobUploader
from duplicate_check import find_duplicate, rule_range
from ip_cidr import normalize_ip_cidr, validate_ip_cidr
from whitelist_config import ENVIRONMENTS, WhitelistConfig, load_config
from whitelist_errors import IpValidationError, MissingArgument, ServiceUnavailable, WhitelistError

UPLOAD_COMMAND = "upload-manual"

# Azure SQL rule names accept letters, digits, '-', '_' and '.'.
RULE_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class RuleRepository(Protocol):
    def list_rules(self, resource_group: str, server_name: str) -> List[FirewallRule]: ...

    def create_rule(self, resource_group: str, server_name: str, rule: FirewallRule) -> None: ...


@dataclass
class ProvisionResult:
    status: Status
    ip: str
    rule_name: str = ""
    message: str = ""
    log_path: Optional[Path] = None
    log_error: str = ""

    @property
    def exit_code(self) -> int:
        return 1 if self.status is Status.FAILED or self.log_error else 0


def make_rule_name(developer: str, when: datetime) -> str:
    return f"{RULE_NAME_UNSAFE.sub('_', developer)}_Access_{when:%Y%m%d_%H%M%S}"


def provision_ip(
    raw_ip: str,
    developer: str,
    environment: str,
    resource_group: str,
    server_name: str,
    firewall: RuleRepository,
    audit: AuditLogger,
    now: Optional[datetime] = None,
) -> ProvisionResult:
    """
    Validate ``raw_ip`` and create a firewall rule for it unless one exists.

    ``firewall`` is anything with ``list_rules`` and ``create_rule`` like
    :class:`AzSqlFirewall`.  One audit record is written per call.  If that
    write fails the outcome is still returned, with ``log_error`` set and no
    ``log_path``, so the caller can report whether a rule was created.
    """
    now = now or datetime.now()

    def finish(status: Status, ip: str, rule_name: str, message: str) -> ProvisionResult:
        record = LogRecord(
            timestamp=now,
            server_name=server_name,
            validated_ip=ip,
            rule_name=rule_name,
            developer=developer,
            environment=environment,
            status=status,
        )
        try:
            path = audit.append(record)
        except OSError as exc:
            return ProvisionResult(status, ip, rule_name, message, log_error=f"Could not write audit log: {exc}")
        return ProvisionResult(status, ip, rule_name, message, path)

    ip_text = normalize_ip_cidr(raw_ip)
    try:
        candidate = validate_ip_cidr(ip_text)
    except IpValidationError as exc:
        return finish(Status.FAILED, ip_text, "", str(exc))
    ip_text = str(candidate)

    try:
        existing = firewall.list_rules(resource_group, server_name)
    except ServiceUnavailable as exc:
        return finish(Status.FAILED, ip_text, "", str(exc))

    duplicate = find_duplicate(candidate, existing)
    if duplicate:
        return finish(
            Status.ALREADY_EXISTS, ip_text, duplicate,
            f"IP '{ip_text}' already exists in firewall rules as '{duplicate}'. Skipping...",
        )

    start_ip, end_ip = rule_range(candidate)
    rule = FirewallRule(name=make_rule_name(developer, now), start_ip=start_ip, end_ip=end_ip)
    print(f"📝 Adding firewall rule '{rule.name}' for IP '{ip_text}'...")
    try:
        firewall.create_rule(resource_group, server_name, rule)
    except ServiceUnavailable as exc:
        return finish(Status.FAILED, ip_text, rule.name, str(exc))
    return finish(
        Status.SUCCESS, ip_text, rule.name,
        f"Successfully added IP '{ip_text}' to server '{server_name}'",
    )


def upload_manual(
    environments: Sequence[str],
    audit: AuditLogger,
    uploader: BlobUploader,
    verbose: bool = False,
) -> Dict[str, List[str]]:
    """Upload every local log file per environment and return the blobs now stored."""
    stored: Dict[str, List[str]] = {}
    for env in environments:
        files = audit.log_files(env)
        if verbose:
            print(f"[info] {len(files)} log file(s) for {env} in {audit.log_dir}", file=sys.stderr)
        for name in uploader.upload_all(files):
            print(f"⬆️  Uploaded {name}")
        stored[env] = uploader.list_blobs(prefix=f"{env}_")
    return stored


def resolve_environment(flag: Optional[str], config: WhitelistConfig) -> str:
    env = flag or os.getenv("WHITELIST_ENV") or config.default_environment
    if env not in ENVIRONMENTS:
        raise ValueError(f"Environment must be one of {', '.join(ENVIRONMENTS)}. Found: '{env}'")
    return env


def build_uploader(config: WhitelistConfig) -> BlobUploader:
    storage = config.storage
    if not storage.account_name:
        raise MissingArgument(
            "Missing storage account: set storage.account_name in the config or AZURE_STORAGE_ACCOUNT"
        )
    return BlobUploader(storage.account_name, storage.container_name, storage.auth_mode)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Whitelist an IP address on an Azure SQL server firewall.",
        epilog=f"Run '%(prog)s {UPLOAD_COMMAND} --help' to upload audit logs to blob storage.",
    )
    parser.add_argument("--config", default=None, help="Path to whitelist.yml")
    parser.add_argument("--env", choices=ENVIRONMENTS, default=None,
                        help="Target environment (default: WHITELIST_ENV or config default_environment)")
    parser.add_argument("--rg", default=None, help="Resource group of the SQL server (or RESOURCE_GROUP)")
    parser.add_argument("--server", default=None, help="SQL server name (or SERVER_NAME)")
    parser.add_argument("--ip", default=None, help="IP address with optional CIDR, e.g. 203.0.113.7 or 10.0.0.0/24")
    parser.add_argument("--dev", default=None, help="Developer name used in the rule name (or DEVELOPER_NAME)")
    parser.add_argument("--upload", action="store_true", help="Upload the audit log file to blob storage afterwards")
    parser.add_argument("--show-rules", dest="show_rules", action="store_true", default=True,
                        help="Print the server's firewall rules after adding one (default)")
    parser.add_argument("--no-show-rules", dest="show_rules", action="store_false",
                        help="Do not print the server's firewall rules")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging to stderr")
    return parser


def build_upload_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=f"whitelist_ip.py {UPLOAD_COMMAND}",
        description="Upload all local audit log files to blob storage and list the stored files.",
    )
    parser.add_argument("--config", default=None, help="Path to whitelist.yml")
    parser.add_argument("--env", choices=ENVIRONMENTS, default=None,
                        help="Only upload this environment (default: all configured environments)")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging to stderr")
    return parser


def run_upload_manual(argv: List[str]) -> int:
    args = build_upload_parser().parse_args(argv)
    try:
        config = load_config(args.config)
        uploader = build_uploader(config)
        ensure_az_available()
        environments = [args.env] if args.env else (sorted(config.environments) or list(ENVIRONMENTS))
        audit = AuditLogger(config.log_dir, config.period_boundary_day)
        stored = upload_manual(environments, audit, uploader, verbose=args.verbose)
    except (WhitelistError, ValueError) as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1
    for env, blobs in stored.items():
        print(f"📍 Files in '{uploader.container_name}' for {env}:")
        for name in blobs:
            print(f"  {name}")
        if not blobs:
            print("  (none)")
    return 0


def run_provision(argv: List[str]) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args.config)
        environment = resolve_environment(args.env, config)
        env_config = config.environment(environment)
        values = {
            "RESOURCE_GROUP": args.rg or os.getenv("RESOURCE_GROUP") or env_config.resource_group,
            "SERVER_NAME": args.server or os.getenv("SERVER_NAME") or env_config.server_name,
            "DEVELOPER_NAME": args.dev or os.getenv("DEVELOPER_NAME"),
            "USER_IP": args.ip or os.getenv("USER_IP"),
        }
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise MissingArgument(f"Missing arguments: {', '.join(missing)}")
        uploader = build_uploader(config) if args.upload else None
        ensure_az_available()
    except (WhitelistError, ValueError) as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return 1

    resource_group = values["RESOURCE_GROUP"]
    server_name = values["SERVER_NAME"]
    if args.verbose:
        print(f"[info] env={environment} rg={resource_group} server={server_name} log_dir={config.log_dir}",
              file=sys.stderr)

    audit = AuditLogger(config.log_dir, config.period_boundary_day)
    firewall = AzSqlFirewall()
    result = provision_ip(
        values["USER_IP"], values["DEVELOPER_NAME"], environment,
        resource_group, server_name, firewall, audit,
    )
    if result.status is Status.SUCCESS:
        print(f"✅ {result.message}")
    elif result.status is Status.ALREADY_EXISTS:
        print(f"⚠️ {result.message}")
    else:
        print(f"❌ {result.message}", file=sys.stderr)
    if result.log_error:
        created = "was created" if result.status is Status.SUCCESS else "was not created"
        print(f"❌ {result.log_error} (firewall rule {created})", file=sys.stderr)
    elif args.verbose:
        print(f"[info] audit record written to {result.log_path}", file=sys.stderr)

    if result.status is Status.SUCCESS and args.show_rules:
        try:
            table = firewall.rules_table(resource_group, server_name)
        except ServiceUnavailable as exc:
            print(f"⚠️ Could not list current firewall rules: {exc}", file=sys.stderr)
        else:
            print("📍 Current firewall rules:")
            print(table.rstrip())

    if uploader is not None and result.log_path is not None:
        try:
            name = uploader.upload(result.log_path)
        except ServiceUnavailable as exc:
            print(f"❌ Log upload failed: {exc}", file=sys.stderr)
            return 1
        print(f"⬆️  Uploaded {name} to '{uploader.container_name}'")

    return result.exit_code


def run(argv: Optional[List[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if argv and argv[0] == UPLOAD_COMMAND:
        return run_upload_manual(argv[1:])
    return run_provision(argv)


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()

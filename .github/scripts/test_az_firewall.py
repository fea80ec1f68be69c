#!/usr/bin/env python3
"""
Tests for the ``az`` wrapper, the SQL firewall adapter and the blob uploader.

``subprocess.run`` is replaced with a recorder so no Azure CLI is needed.
"""

import json
import subprocess
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

import az_cli
from az_firewall import AzSqlFirewall, FirewallRule
from blob_upload import BlobUploader
from whitelist_errors import ServiceUnavailable


class FakeRun:
    """Records ``az`` invocations and replies with canned stdout."""

    def __init__(self, stdout="", returncode=0, stderr=""):
        self.calls = []
        self.stdout = stdout
        self.returncode = returncode
        self.stderr = stderr

    def __call__(self, cmd, capture_output=False, text=False, check=False):
        self.calls.append(cmd)
        if check and self.returncode != 0:
            raise subprocess.CalledProcessError(self.returncode, cmd, output=self.stdout, stderr=self.stderr)
        return subprocess.CompletedProcess(cmd, self.returncode, stdout=self.stdout, stderr=self.stderr)


@pytest.fixture
def fake_run(monkeypatch):
    fake = FakeRun()
    monkeypatch.setattr(az_cli.subprocess, "run", fake)
    return fake


def test_list_rules_parses_az_json(fake_run):
    fake_run.stdout = json.dumps([
        {"name": "AllowAzure", "startIpAddress": "0.0.0.0", "endIpAddress": "0.0.0.0"},
        {"name": "alice_Access_20261025_101500", "startIpAddress": "203.0.113.7", "endIpAddress": "203.0.113.7"},
    ])
    rules = AzSqlFirewall().list_rules("rg-app-dev", "sql-app-dev")

    assert rules == [
        FirewallRule("AllowAzure", "0.0.0.0", "0.0.0.0"),
        FirewallRule("alice_Access_20261025_101500", "203.0.113.7", "203.0.113.7"),
    ]
    assert fake_run.calls[0] == [
        "az", "sql", "server", "firewall-rule", "list",
        "--resource-group", "rg-app-dev", "--server", "sql-app-dev",
        "--output", "json",
    ]


def test_list_rules_empty_output(fake_run):
    assert AzSqlFirewall().list_rules("rg", "srv") == []


def test_create_rule_arguments(fake_run):
    fake_run.stdout = "{}"
    AzSqlFirewall().create_rule("rg", "srv", FirewallRule("bob_Access_x", "10.0.0.0", "10.0.0.0"))
    cmd = fake_run.calls[0]
    assert cmd[:5] == ["az", "sql", "server", "firewall-rule", "create"]
    assert cmd[cmd.index("--name") + 1] == "bob_Access_x"
    assert cmd[cmd.index("--start-ip-address") + 1] == "10.0.0.0"
    assert cmd[cmd.index("--end-ip-address") + 1] == "10.0.0.0"


def test_rules_table_returns_raw_text(fake_run):
    fake_run.stdout = "Name    StartIpAddress\n------  --------------\n"
    assert AzSqlFirewall().rules_table("rg", "srv").startswith("Name")
    assert fake_run.calls[0][-2:] == ["--output", "table"]


def test_failed_call_raises_service_unavailable(fake_run):
    fake_run.returncode = 1
    fake_run.stderr = "ERROR: (ResourceNotFound) The Resource 'srv' was not found."
    with pytest.raises(ServiceUnavailable, match="ResourceNotFound"):
        AzSqlFirewall().list_rules("rg", "srv")


def test_missing_az_binary(monkeypatch):
    def not_found(*args, **kwargs):
        raise FileNotFoundError("az")

    monkeypatch.setattr(az_cli.subprocess, "run", not_found)
    with pytest.raises(ServiceUnavailable, match="not installed"):
        AzSqlFirewall().create_rule("rg", "srv", FirewallRule("n", "1.2.3.4", "1.2.3.4"))


def test_garbage_json_raises_service_unavailable(fake_run):
    fake_run.stdout = "not json"
    with pytest.raises(ServiceUnavailable, match="Unexpected output"):
        AzSqlFirewall().list_rules("rg", "srv")


def test_ensure_az_available(monkeypatch):
    monkeypatch.setattr(az_cli.shutil, "which", lambda name: None)
    with pytest.raises(ServiceUnavailable):
        az_cli.ensure_az_available()
    monkeypatch.setattr(az_cli.shutil, "which", lambda name: "/usr/bin/az")
    assert az_cli.ensure_az_available() == "/usr/bin/az"


def test_blob_upload_uses_file_name(fake_run, tmp_path):
    log = tmp_path / "dev_2026-10_20-31.log"
    log.write_text("Timestamp\n", encoding="utf-8")
    name = BlobUploader("stlogs", "firewall-logs").upload(log)

    assert name == "dev_2026-10_20-31.log"
    cmd = fake_run.calls[0]
    assert cmd[:4] == ["az", "storage", "blob", "upload"]
    assert cmd[cmd.index("--account-name") + 1] == "stlogs"
    assert cmd[cmd.index("--container-name") + 1] == "firewall-logs"
    assert cmd[cmd.index("--file") + 1] == str(log)
    assert "--overwrite" in cmd
    assert cmd[-2:] == ["--output", "none"]


def test_blob_upload_all(fake_run, tmp_path):
    paths = [tmp_path / "qa_2026-10_01-19.log", tmp_path / "qa_2026-10_20-31.log"]
    assert BlobUploader("stlogs", "c").upload_all(paths) == ["qa_2026-10_01-19.log", "qa_2026-10_20-31.log"]
    assert len(fake_run.calls) == 2


def test_list_blobs_with_prefix(fake_run):
    fake_run.stdout = json.dumps(["dev_2026-10_20-31.log", "dev_2026-10_01-19.log"])
    blobs = BlobUploader("stlogs", "firewall-logs").list_blobs(prefix="dev_")

    assert blobs == ["dev_2026-10_01-19.log", "dev_2026-10_20-31.log"]
    cmd = fake_run.calls[0]
    assert cmd[cmd.index("--prefix") + 1] == "dev_"
    assert cmd[cmd.index("--query") + 1] == "[].name"

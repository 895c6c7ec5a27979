import csv
import json

import pytest
from azure.core.exceptions import HttpResponseError

from conftest import FakeTransport
from tagnormalizer import cli
from tagnormalizer.config import Settings
from tagnormalizer.models import TagSnapshot
from tagnormalizer.providers import azure as azure_provider

SUB = "1111"


def rid(name):
    return f"/subscriptions/{SUB}/resourceGroups/rg-app/providers/Microsoft.Web/sites/{name}"


class FakeAzureProvider:
    transport = None
    unreachable = set()
    visited = []

    def __init__(self):
        self.credential = "cred"

    def authenticate(self):
        pass

    def get_accounts(self):
        return [{"id": SUB, "name": "prod", "state": "Enabled"},
                {"id": "2222", "name": "old", "state": "Disabled"}]

    def enumerate_resources(self, subscription_id, resource_group_filter=None):
        self.visited.append(subscription_id)
        if subscription_id in self.unreachable:
            raise HttpResponseError(message="AuthorizationFailed")
        for resource_id, tags in list(self.transport.store.items()):
            yield TagSnapshot(resource_id, dict(tags), subscription_id=subscription_id,
                              resource_group="rg-app", resource_type="Microsoft.Web/sites")


@pytest.fixture
def fake_azure(monkeypatch):
    transport = FakeTransport({
        rid("app1"): {"ENV": "prod", "Team": "x"},
        rid("app2"): {"environment": "dev"},
    })
    FakeAzureProvider.transport = transport
    FakeAzureProvider.unreachable = set()
    FakeAzureProvider.visited = []
    monkeypatch.setattr(azure_provider, "AzureProvider", FakeAzureProvider)
    monkeypatch.setattr(azure_provider, "AzureTagTransport", lambda credential: transport)
    for name in ("DRY_RUN", "MAX_WORKERS", "RESOURCE_TIMEOUT", "LOG_DIR"):
        monkeypatch.delenv(name, raising=False)
    return transport


@pytest.fixture
def rules_file(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps([{"variations": ["env", "enviornment"], "normalizedKey": "environment"}]))
    return path


def rows(path):
    with open(path, newline="", encoding="utf-8") as fh:
        return list(csv.DictReader(fh))


def test_dry_run_is_default(fake_azure, rules_file, tmp_path):
    out = tmp_path / "results.csv"
    assert cli.main(["--rules", str(rules_file), "--output", str(out)]) == 0

    result = rows(out)
    assert [(r["RemoveStatus"], r["AddStatus"]) for r in result] == [("DryRun", "DryRun"), ("NoChange", "NoChange")]
    assert fake_azure.store[rid("app1")] == {"ENV": "prod", "Team": "x"}
    assert fake_azure.reads() == []


def test_apply_renames_and_writes_report(fake_azure, rules_file, tmp_path):
    out = tmp_path / "results.csv"
    report = tmp_path / "report.json"
    code = cli.main(["--rules", str(rules_file), "--output", str(out), "--report", str(report),
                     "--apply", "--subscription", SUB])
    assert code == 0
    assert fake_azure.store[rid("app1")] == {"Team": "x", "environment": "prod"}
    assert rows(out)[0]["AddStatus"] == "Success"

    data = json.loads(report.read_text())
    assert data["dry_run"] is False
    assert data["summary"]["total"] == 2


def test_resume_skips_recorded_resources(fake_azure, rules_file, tmp_path):
    out = tmp_path / "results.csv"
    assert cli.main(["--rules", str(rules_file), "--output", str(out)]) == 0
    assert cli.main(["--rules", str(rules_file), "--output", str(out), "--resume"]) == 0
    assert len(rows(out)) == 2


def test_exclude_type(fake_azure, rules_file, tmp_path):
    out = tmp_path / "results.csv"
    assert cli.main(["--rules", str(rules_file), "--output", str(out),
                     "--exclude-type", "microsoft.web/sites"]) == 0
    assert rows(out) == []


def test_bad_rule_file_exits_nonzero(fake_azure, tmp_path):
    bad = tmp_path / "rules.json"
    bad.write_text("{oops")
    assert cli.main(["--rules", str(bad), "--output", str(tmp_path / "r.csv")]) == 1


def test_unwritable_output_exits_before_processing(fake_azure, rules_file, tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    assert cli.main(["--rules", str(rules_file), "--output", str(blocker / "r.csv"), "--apply"]) == 1
    assert fake_azure.calls == []


def test_settings_from_args_overrides_environment():
    args = cli.build_parser().parse_args(["--rules", "r.json", "--apply", "--workers", "3", "--timeout", "30"])
    settings = cli.settings_from_args(args, Settings(dry_run=True))
    assert settings.dry_run is False
    assert settings.max_workers == 3
    assert settings.resource_timeout == 30.0


def test_apply_and_dry_run_are_exclusive():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["--rules", "r.json", "--apply", "--dry-run"])


def test_unreachable_subscription_does_not_stop_the_run(fake_azure, rules_file, tmp_path):
    FakeAzureProvider.unreachable = {"bad"}
    out = tmp_path / "results.csv"
    code = cli.main(["--rules", str(rules_file), "--output", str(out),
                     "--subscription", "bad", "--subscription", SUB])
    assert code == 0
    assert FakeAzureProvider.visited == ["bad", SUB]
    assert [r["SubscriptionId"] for r in rows(out)] == [SUB, SUB]


def test_resume_requires_output(fake_azure, rules_file):
    with pytest.raises(SystemExit) as exc:
        cli.main(["--rules", str(rules_file), "--resume"])
    assert exc.value.code == 2
    assert fake_azure.calls == []

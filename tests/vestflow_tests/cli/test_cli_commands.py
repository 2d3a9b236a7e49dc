import json

import pytest
from click.testing import CliRunner

from vestflow.cli.main import cli

POOL_TOTAL = 2_300_000_000


@pytest.fixture
def invoke(tmp_path):
    """Run the CLI against an isolated state file with console logging off."""
    runner = CliRunner()
    state_file = tmp_path / "state.json"

    def _invoke(*args, now=None, caller=None, json_output=True):
        base = ["--state-file", str(state_file)]
        if json_output:
            base.append("--json-output")
        if now is not None:
            base += ["--now", str(now)]
        if caller is not None:
            base += ["--caller", caller]
        return runner.invoke(
            cli,
            base + list(args),
            env={"VESTFLOW_LOGGING_ENABLE_CONSOLE": "false", "VESTFLOW_ENVIRONMENT": "development"},
        )

    return _invoke


@pytest.fixture
def funded(invoke):
    result = invoke("ledger", "fund", str(POOL_TOTAL + 1_000_000))
    assert result.exit_code == 0, result.output
    return invoke


def _payload(result):
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


def _create_schedule(invoke):
    return _payload(invoke(
        "schedule", "create", "alice",
        "--start", "1000", "--cliff", "60", "--duration", "144",
        "--slice-period", "36", "--amount", "10000",
        now=1000,
    ))


def test_ledger_fund_and_balance(funded):
    payload = _payload(funded("ledger", "balance"))
    assert payload["custody_balance"] == POOL_TOTAL + 1_000_000
    assert payload["withdrawable"] == 1_000_000


def test_schedule_lifecycle(funded):
    created = _create_schedule(funded)
    schedule_id = created["schedule_id"]
    assert created["total_amount"] == 10_000

    assert _payload(funded("schedule", "releasable", schedule_id, now=1060))["releasable"] == 2500

    released = _payload(funded("schedule", "release", schedule_id, now=1060, caller="alice"))
    assert released["amount"] == 2500
    assert released["released"] == 2500

    revoked = _payload(funded("schedule", "revoke", schedule_id, now=1080))
    assert revoked["paid_out"] == 2500
    assert revoked["revoked_at"] == 1080

    assert _payload(funded("ledger", "balance", "alice"))["balance"] == 5000

    listing = _payload(funded("schedule", "list", "--beneficiary", "alice", now=5000))
    assert listing["schedules"][0]["revoked"] is True
    assert listing["schedules"][0]["releasable"] == 0


def test_schedule_release_explicit_amount(funded):
    schedule_id = _create_schedule(funded)["schedule_id"]
    result = funded("schedule", "release", schedule_id, "--amount", "100", now=1072, caller="alice")
    assert _payload(result)["released"] == 100


def test_unauthorized_revoke_fails(funded):
    schedule_id = _create_schedule(funded)["schedule_id"]
    result = funded("schedule", "revoke", schedule_id, now=1080, caller="mallory")
    assert result.exit_code == 1
    assert "caller is not the owner" in result.output


def test_create_without_funds_fails(invoke):
    result = invoke(
        "schedule", "create", "alice", "--start", "0", "--duration", "100", "--amount", "10", now=0,
    )
    assert result.exit_code == 1
    assert "not sufficient tokens" in result.output


def test_sale_flow(funded):
    activated = _payload(funded("sale", "activate", "2", "--rate", "250", now=0))
    assert activated["active"] is True

    purchase = _payload(funded("sale", "purchase", "2", "--payment", "4", now=0, caller="carol"))
    assert purchase["total_amount"] == 1000
    assert purchase["tge_amount"] == 250

    month = 30 * 24 * 60 * 60
    claimed = _payload(funded("sale", "claim", "2", now=month, caller="carol"))
    assert claimed["claimed"] == 750 * month // (180 * 24 * 60 * 60)

    status = _payload(funded("sale", "status"))
    assert status["active_stage"] == 2
    assert status["stages"][2]["sold"] == 1000


def test_whitelisted_stage(funded):
    _payload(funded("sale", "activate", "0", "--rate", "1000", now=0))
    rejected = funded("sale", "purchase", "0", "--payment", "1", now=0, caller="bob")
    assert rejected.exit_code == 1

    whitelisted = _payload(funded("sale", "whitelist", "0", "bob"))
    assert whitelisted["whitelisted"] is True
    assert _payload(funded("sale", "purchase", "0", "--payment", "1", now=0, caller="bob"))["tge_amount"] == 100


def test_pool_withdraw_and_status(funded):
    withdrawn = _payload(funded("pool", "withdraw", now=0))
    assert withdrawn["amount"] == POOL_TOTAL // 23

    again = funded("pool", "withdraw", now=10)
    assert again.exit_code == 1
    assert "There is no amount for withdrawal in current phase." in again.output

    status = _payload(funded("pool", "status", now=10))
    assert status["state"] == "active"
    assert status["total_phases"] == 23
    assert status["claimed_amount"] == POOL_TOTAL // 23
    assert status["withdrawable_amount"] == 0


def test_config_show_section(invoke):
    payload = _payload(invoke("config", "show", "--section", "pool"))
    assert payload["section"] == "pool"
    assert payload["config"]["interval"] == 4 * 7 * 24 * 60 * 60


def test_config_show_key(invoke):
    payload = _payload(invoke("config", "show", "--key", "ledger.owner"))
    assert payload["value"] == "owner"


def test_rich_output_without_json(funded):
    result = funded("pool", "status", now=0, json_output=False)
    assert result.exit_code == 0, result.output
    assert "Reward Pool" in result.output

import pytest
import yaml
from solders.keypair import Keypair

from batch_transfer import cli
from batch_transfer.batch_config_parser import BatchConfig
from batch_transfer.confirmation_poller import PollingPolicy
from batch_transfer.ledger_rpc import SignatureStatus
from conftest import FakeRpc


def test_bare_config_means_run():
    args = cli.parse_args(["batch.yaml", "--max-concurrency", "3"])

    assert args.command == "run"
    assert args.config == "batch.yaml"
    assert args.max_concurrency == 3


def test_default_config_path():
    args = cli.parse_args([])

    assert args.command == "run"
    assert args.config == "config.yaml"


def test_import_sheet_args():
    args = cli.parse_args(["import-sheet", "t.xlsx", "--output", "b.yaml"])

    assert args.command == "import-sheet"
    assert args.sheet == "t.xlsx"
    assert args.output == "b.yaml"


@pytest.mark.parametrize("value, expected", [("0", 0), ("2", 2), ("Transfers", "Transfers"), ("Q1 2024", "Q1 2024")])
def test_sheet_name_digits_select_by_position(value, expected):
    args = cli.parse_args(["import-sheet", "t.xlsx", "--sheet-name", value])

    assert args.sheet_name == expected
    assert type(args.sheet_name) is type(expected)


def test_sheet_name_defaults_to_first_sheet():
    assert cli.parse_args(["import-sheet", "t.xlsx"]).sheet_name == 0


def test_missing_config_exits_before_network(tmp_path, monkeypatch):
    def no_network(*a, **kw):
        raise AssertionError("RPC must not be created")

    monkeypatch.setattr(cli, "LedgerRpc", no_network)

    assert cli.main(["run", str(tmp_path / "missing.yaml")]) == cli.EXIT_CONFIG_ERROR


def test_overrides_replace_polling_policy(tmp_path):
    path = tmp_path / "c.yaml"
    path.write_text(yaml.safe_dump({'rpc_url': 'http://x', 'wallets': []}))
    args = cli.parse_args([str(path), "--poll-interval", "0.5"])

    config = cli.apply_overrides(cli.load_batch_config(str(path)), args)

    assert config.polling == PollingPolicy(interval_seconds=0.5, max_attempts=10)


@pytest.mark.asyncio
async def test_run_batch_prints_lines_and_summary(make_request, capsys):
    rpc = FakeRpc(status_script=lambda sig, n: SignatureStatus(finalized=True))
    config = BatchConfig(
        rpc_url="http://localhost:8899",
        wallets=[make_request(), make_request(to_address="bad")],
        polling=PollingPolicy(interval_seconds=0, max_attempts=1)
    )

    not_confirmed = await cli.run_batch(config, rpc=rpc)

    out = capsys.readouterr().out
    assert not_confirmed == 1
    assert out.count("✔ Sent tx:") == 1
    assert out.count("✘ Failed to send tx") == 1
    assert "Checking statuses..." in out
    assert "✅ Successful: 1" in out
    assert rpc.closed


def test_strict_exit_code(tmp_path, monkeypatch):
    path = tmp_path / "c.yaml"
    path.write_text(yaml.safe_dump({
        'rpc_url': 'http://x',
        'wallets': [{'from_keypair': str(tmp_path / 'none.json'), 'to_address': str(Keypair().pubkey()), 'amount_sol': '1'}],
    }))
    rpc = FakeRpc()
    monkeypatch.setattr(cli, "LedgerRpc", lambda url: rpc)

    assert cli.main(["run", str(path), "--strict"]) == 1
    assert cli.main(["run", str(path)]) == 0


@pytest.mark.asyncio
async def test_run_batch_prints_submissions_before_polling(make_request, capsys, monkeypatch):
    rpc = FakeRpc()
    config = BatchConfig(
        rpc_url="http://localhost:8899",
        wallets=[make_request(), make_request()],
        polling=PollingPolicy(interval_seconds=0, max_attempts=1)
    )
    runs = []
    original_run = cli.BatchTransferEngine.run

    async def tracked_run(self, requests, on_submitted=None):
        runs.append(list(requests))
        return await original_run(self, requests, on_submitted=on_submitted)

    printed = []

    def status_script(sig, attempt):
        printed.append(capsys.readouterr().out)
        assert "Checking statuses..." in "".join(printed)
        return SignatureStatus(finalized=True)

    rpc.status_script = status_script
    monkeypatch.setattr(cli.BatchTransferEngine, "run", tracked_run)

    assert await cli.run_batch(config, rpc=rpc) == 0
    assert runs == [config.wallets]
    assert "".join(printed).count("✔ Sent tx:") == 2

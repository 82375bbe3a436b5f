"""Tests for the CredGrain CLI — proves commands dispatch and exit codes are right."""

import json
import uuid
from pathlib import Path

import pytest

from credgrain.cli import build_parser, main
from credgrain.models.distribution import WEEK_MS


A = str(uuid.UUID(int=1))
B = str(uuid.UUID(int=2))


@pytest.fixture
def instance(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.delenv("CREDGRAIN_INSTANCE", raising=False)
    root = tmp_path / "instance"
    (root / "config").mkdir(parents=True)
    (root / "output").mkdir()
    (root / "config" / "grain.json").write_text(json.dumps({
        "immediatePerWeek": 100,
        "balancedPerWeek": 0,
    }))
    (root / "output" / "credResult.json").write_text(json.dumps({
        "intervals": [{"startTimeMs": 0, "endTimeMs": WEEK_MS}],
        "participants": [
            {"id": A, "name": "alice", "cred": [1.0]},
            {"id": B, "name": "bob", "cred": [1.0]},
        ],
    }))
    return root


class TestCLIParsing:
    def test_grain_command(self) -> None:
        args = build_parser().parse_args(["grain"])
        assert args.command == "grain"
        assert args.simulation is False

    def test_simulation_flag(self) -> None:
        args = build_parser().parse_args(["grain", "-s"])
        assert args.simulation is True

    def test_instance_option(self) -> None:
        args = build_parser().parse_args(["--instance", "/tmp/x", "status"])
        assert args.instance == Path("/tmp/x")
        assert args.command == "status"


class TestCLIExecution:
    def test_no_command_shows_help(self, capsys) -> None:
        assert main([]) == 0
        assert "credgrain" in capsys.readouterr().out

    def test_grain_e2e(self, instance: Path, capsys) -> None:
        assert main(["--instance", str(instance), "grain"]) == 0
        out = capsys.readouterr().out
        assert "Distributed 100.00g to 2 identities in 1 distributions" in out
        assert (instance / "data" / "ledger.json").exists()
        assert (instance / "output" / "accounts.json").exists()

    def test_simulation_writes_nothing(self, instance: Path, capsys) -> None:
        assert main(["--instance", str(instance), "grain", "--simulation"]) == 0
        assert "SIMULATED DISTRIBUTION" in capsys.readouterr().out
        assert not (instance / "data").exists()
        assert not (instance / "output" / "accounts.json").exists()

    def test_instance_from_environment(
        self,
        instance: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys,
    ) -> None:
        monkeypatch.setenv("CREDGRAIN_INSTANCE", str(instance))
        assert main(["grain"]) == 0
        assert (instance / "data" / "ledger.json").exists()

    def test_accounts(self, instance: Path, capsys) -> None:
        assert main(["--instance", str(instance), "accounts"]) == 0
        accounts = json.loads((instance / "output" / "accounts.json").read_text())
        assert len(accounts["accounts"]) == 2

    def test_status(self, instance: Path, capsys) -> None:
        main(["--instance", str(instance), "grain"])
        capsys.readouterr()
        assert main(["--instance", str(instance), "status"]) == 0
        status = json.loads(capsys.readouterr().out)
        assert status["distributions"] == 1

    def test_check_ledger(self, instance: Path, capsys) -> None:
        main(["--instance", str(instance), "grain"])
        assert main(["--instance", str(instance), "check-ledger"]) == 0
        assert "Ledger check passed" in capsys.readouterr().out

    def test_missing_config_fails(self, tmp_path: Path, capsys) -> None:
        assert main(["--instance", str(tmp_path), "grain"]) == 1
        assert "fatal: Missing grain config" in capsys.readouterr().err

    def test_missing_cred_result_fails(self, instance: Path, capsys) -> None:
        (instance / "output" / "credResult.json").unlink()
        assert main(["--instance", str(instance), "grain"]) == 1
        assert "fatal:" in capsys.readouterr().err

    def test_non_finite_cred_fails(self, instance: Path, capsys) -> None:
        (instance / "output" / "credResult.json").write_text(json.dumps({
            "intervals": [{"startTimeMs": 0, "endTimeMs": WEEK_MS}],
            "participants": [{"id": A, "name": "alice", "cred": [float("inf")]}],
        }))
        assert main(["--instance", str(instance), "grain"]) == 1
        assert "fatal:" in capsys.readouterr().err
        assert not (instance / "data").exists()

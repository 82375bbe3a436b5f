"""Tests for GrainService — proves the run facade persists exactly what it computed."""

import json
import uuid
from pathlib import Path

import pytest

from credgrain.attribution.personal import PersonalAttribution, PersonalAttributionProportion
from credgrain.ledger.ledger import Ledger
from credgrain.models.distribution import WEEK_MS
from credgrain.models.grain import GrainAmount
from credgrain.persistence.storage import (
    DiskStorage,
    MemoryStorage,
    StorageError,
    StorageKeyNotFoundError,
    to_byte_string,
)
from credgrain.policy.resolver import PolicyResolver
from credgrain.service import ACCOUNTS_KEY, CRED_RESULT_KEY, LEDGER_KEY, GrainService


A = str(uuid.UUID(int=1))
B = str(uuid.UUID(int=2))


def _now() -> int:
    return 2 * WEEK_MS


def _cred_result() -> bytes:
    return to_byte_string(json.dumps({
        "intervals": [
            {"startTimeMs": 0, "endTimeMs": WEEK_MS},
            {"startTimeMs": WEEK_MS, "endTimeMs": 2 * WEEK_MS},
        ],
        "participants": [
            {"id": A, "name": "alice", "cred": [1.0, 1.0]},
            {"id": B, "name": "bob", "cred": [1.0, 3.0]},
        ],
    }))


def _resolver(attributions=None, **grain) -> PolicyResolver:
    config = {"immediatePerWeek": 100, "balancedPerWeek": 0}
    config.update(grain)
    return PolicyResolver(config, {"name": "Grain", "suffix": "g", "decimals": 2}, attributions)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage({CRED_RESULT_KEY: _cred_result()})


class _RecordingStorage(MemoryStorage):
    def __init__(self, initial, fail_on=None) -> None:
        super().__init__(initial)
        self.writes: list[str] = []
        self._fail_on = fail_on

    def set(self, key: str, value: bytes) -> None:
        if key == self._fail_on:
            raise StorageError(f"disk full writing {key}")
        self.writes.append(key)
        super().set(key, value)


class TestDistribute:
    def test_distributes_from_empty_ledger(self, storage: MemoryStorage) -> None:
        service = GrainService(_resolver(), storage, clock=_now)
        result = service.distribute()
        assert result.success
        assert result.data["distribution_count"] == 2
        assert result.data["recipient_count"] == 2
        assert result.data["total_distributed"] == str(GrainAmount.from_integer(200))

        ledger = service.load_ledger()
        assert ledger.balance(A) == GrainAmount.from_integer(75)
        assert ledger.balance(B) == GrainAmount.from_integer(125)

    def test_report_contents(self, storage: MemoryStorage) -> None:
        result = GrainService(_resolver(), storage, clock=_now).distribute()
        report = result.data["report"]
        assert report.startswith("Distributed 200.00g to 2 identities in 2 distributions")
        assert "| bob | 75.00g |" in report

    def test_persists_ledger_before_accounts(self) -> None:
        storage = _RecordingStorage({CRED_RESULT_KEY: _cred_result()})
        GrainService(_resolver(), storage, clock=_now).distribute()
        assert storage.writes == [LEDGER_KEY, ACCOUNTS_KEY]

    def test_ledger_write_failure_skips_accounts(self) -> None:
        storage = _RecordingStorage({CRED_RESULT_KEY: _cred_result()}, fail_on=LEDGER_KEY)
        result = GrainService(_resolver(), storage, clock=_now).distribute()
        assert not result.success
        assert "disk full" in result.errors[0]
        assert storage.writes == []

    def test_second_run_distributes_nothing(self, storage: MemoryStorage) -> None:
        service = GrainService(_resolver(), storage, clock=_now)
        service.distribute()
        ledger_bytes = storage.get(LEDGER_KEY)
        result = service.distribute()
        assert result.success
        assert result.data["distribution_count"] == 0
        assert storage.get(LEDGER_KEY) == ledger_bytes

    def test_accounts_written(self, storage: MemoryStorage) -> None:
        GrainService(_resolver(), storage, clock=_now).distribute()
        accounts = json.loads(storage.get(ACCOUNTS_KEY))
        assert [a["identity"]["id"] for a in accounts["accounts"]] == [A, B]

    def test_cap_limits_one_run(self, storage: MemoryStorage) -> None:
        service = GrainService(_resolver(maxSimultaneousDistributions=1), storage, clock=_now)
        assert service.distribute().data["distribution_count"] == 1
        assert service.distribute().data["distribution_count"] == 1
        assert service.distribute().data["distribution_count"] == 0


class TestSimulation:
    def test_simulation_leaves_storage_untouched(self, storage: MemoryStorage) -> None:
        service = GrainService(_resolver(), storage, clock=_now)
        result = service.distribute(simulation=True)
        assert result.success
        assert result.data["simulation"] is True
        assert result.data["distribution_count"] == 2
        assert storage.keys() == [CRED_RESULT_KEY]

    def test_simulation_does_not_change_existing_ledger(self, storage: MemoryStorage) -> None:
        service = GrainService(_resolver(), storage, clock=lambda: WEEK_MS)
        service.distribute()
        before = storage.get(LEDGER_KEY)

        later = GrainService(_resolver(), storage, clock=_now)
        result = later.distribute(simulation=True)
        assert result.data["distribution_count"] == 1
        assert storage.get(LEDGER_KEY) == before

    def test_simulated_report_is_marked(self, storage: MemoryStorage) -> None:
        result = GrainService(_resolver(), storage, clock=_now).distribute(simulation=True)
        assert result.data["report"].startswith("——SIMULATED DISTRIBUTION——")


class TestFailures:
    def test_missing_cred_result(self) -> None:
        result = GrainService(_resolver(), MemoryStorage(), clock=_now).distribute()
        assert not result.success
        assert CRED_RESULT_KEY in result.errors[0]

    def test_invalid_attributions_abort_before_writing(self, storage: MemoryStorage) -> None:
        over = [
            PersonalAttribution(A, B, (PersonalAttributionProportion(-1, 0.7),)),
            PersonalAttribution(A, str(uuid.UUID(int=3)), (PersonalAttributionProportion(-1, 0.7),)),
        ]
        result = GrainService(_resolver(over), storage, clock=_now).distribute()
        assert not result.success
        assert "greater than 1" in result.errors[0]
        assert storage.keys() == [CRED_RESULT_KEY]

    def test_unwritable_data_directory_reported(self, tmp_path: Path) -> None:
        (tmp_path / "output").mkdir()
        (tmp_path / CRED_RESULT_KEY).write_bytes(_cred_result())
        (tmp_path / "data").write_text("not a directory")
        result = GrainService(_resolver(), DiskStorage(tmp_path), clock=_now).distribute()
        assert not result.success
        assert "Could not write" in result.errors[0]
        assert not (tmp_path / ACCOUNTS_KEY).exists()

    def test_corrupt_ledger_reported(self, storage: MemoryStorage) -> None:
        storage.set(LEDGER_KEY, b"{garbage\n")
        result = GrainService(_resolver(), storage, clock=_now).distribute()
        assert not result.success
        assert "Corrupt ledger" in result.errors[0]

    def test_attribution_redirects_payout(self, storage: MemoryStorage) -> None:
        attributions = [
            PersonalAttribution(B, A, (PersonalAttributionProportion(-1, 0.5),)),
        ]
        service = GrainService(_resolver(attributions), storage, clock=_now)
        assert service.distribute().success
        ledger = service.load_ledger()
        # bob keeps half of each raw share: 25 + 37.5.
        assert ledger.balance(A) + ledger.balance(B) == GrainAmount.from_integer(200)
        assert ledger.balance(B) == GrainAmount(62_500_000_000_000_000_000)


class TestAccountsAndStatus:
    def test_recompute_accounts(self, storage: MemoryStorage) -> None:
        service = GrainService(_resolver(), storage, clock=_now)
        result = service.recompute_accounts()
        assert result.success
        assert result.data["account_count"] == 2
        accounts = json.loads(storage.get(ACCOUNTS_KEY))
        assert all(a["balance"] == "0" for a in accounts["accounts"])

    def test_recompute_accounts_is_byte_stable(self, storage: MemoryStorage) -> None:
        service = GrainService(_resolver(), storage, clock=_now)
        service.distribute()
        first = storage.get(ACCOUNTS_KEY)
        service.recompute_accounts()
        assert storage.get(ACCOUNTS_KEY) == first

    def test_status(self, storage: MemoryStorage) -> None:
        service = GrainService(_resolver(), storage, clock=_now)
        assert service.status()["events"] == 0
        service.distribute()
        status = service.status()
        assert status["identities"] == 2
        assert status["distributions"] == 2
        assert status["total_balance"] == str(GrainAmount.from_integer(200))

    def test_load_ledger_defaults_to_empty(self) -> None:
        service = GrainService(_resolver(), MemoryStorage(), clock=_now)
        assert service.load_ledger().serialize() == Ledger().serialize()
        with pytest.raises(StorageKeyNotFoundError):
            service.load_cred_view()

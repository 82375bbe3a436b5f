"""Tests for CredView — proves Cred input is validated before it drives payouts."""

import json
import uuid

import pytest

from credgrain.cred.view import CredParticipant, CredView, CredViewError
from credgrain.models.distribution import WEEK_MS, Epoch


A = str(uuid.UUID(int=1))
B = str(uuid.UUID(int=2))


def _data(**overrides) -> dict:
    data = {
        "intervals": [
            {"startTimeMs": 0, "endTimeMs": WEEK_MS},
            {"startTimeMs": WEEK_MS, "endTimeMs": 2 * WEEK_MS},
        ],
        "participants": [
            {"id": A, "name": "alice", "cred": [1.0, 2.0]},
            {"id": B, "name": "bob", "cred": [0.5, 0.0], "cumulativeCred": [0.5, 9.0]},
        ],
    }
    data.update(overrides)
    return data


class TestParsing:
    def test_from_json(self) -> None:
        view = CredView.from_json(json.dumps(_data()))
        assert view.epochs() == [Epoch(0, WEEK_MS), Epoch(WEEK_MS, 2 * WEEK_MS)]
        assert view.participant(A).name == "alice"

    def test_cumulative_defaults_to_running_sum(self) -> None:
        view = CredView.from_dict(_data())
        assert view.participant(A).cumulative_cred == (1.0, 3.0)
        assert view.participant(A).total_cred == 3.0

    def test_explicit_cumulative_is_kept(self) -> None:
        view = CredView.from_dict(_data())
        assert view.participant(B).cumulative_cred == (0.5, 9.0)

    def test_invalid_json(self) -> None:
        with pytest.raises(CredViewError, match="Invalid Cred JSON"):
            CredView.from_json("{")

    def test_missing_field(self) -> None:
        with pytest.raises(CredViewError, match="Malformed"):
            CredView.from_dict({"intervals": []})

    def test_invalid_identity_id(self) -> None:
        data = _data(participants=[{"id": "alice", "name": "alice", "cred": [1, 1]}])
        with pytest.raises(CredViewError):
            CredView.from_dict(data)

    def test_round_trip(self) -> None:
        view = CredView.from_dict(_data())
        assert CredView.from_dict(view.to_dict()).to_dict() == view.to_dict()


class TestValidation:
    def test_series_length_mismatch(self) -> None:
        data = _data(participants=[{"id": A, "name": "alice", "cred": [1.0]}])
        with pytest.raises(CredViewError, match="1 Cred values for 2 intervals"):
            CredView.from_dict(data)

    def test_negative_cred(self) -> None:
        data = _data(participants=[{"id": A, "name": "alice", "cred": [1.0, -1.0]}])
        with pytest.raises(CredViewError, match="negative"):
            CredView.from_dict(data)

    def test_nan_cred(self) -> None:
        participant = CredParticipant(A, "alice", (float("nan"),), (0.0,))
        with pytest.raises(CredViewError):
            CredView([Epoch(0, WEEK_MS)], [participant])

    def test_infinite_cred(self) -> None:
        text = json.dumps(_data(participants=[
            {"id": A, "name": "alice", "cred": [1.0, float("inf")]},
        ]))
        assert "Infinity" in text
        with pytest.raises(CredViewError, match="non-finite"):
            CredView.from_json(text)

    def test_duplicate_participant(self) -> None:
        entry = {"id": A, "name": "alice", "cred": [1.0, 1.0]}
        with pytest.raises(CredViewError, match="Duplicate"):
            CredView.from_dict(_data(participants=[entry, entry]))

    def test_overlapping_intervals(self) -> None:
        intervals = [
            {"startTimeMs": 0, "endTimeMs": WEEK_MS},
            {"startTimeMs": WEEK_MS - 1, "endTimeMs": 2 * WEEK_MS},
        ]
        with pytest.raises(CredViewError, match="overlap"):
            CredView.from_dict(_data(intervals=intervals))

    def test_unordered_intervals(self) -> None:
        intervals = [
            {"startTimeMs": WEEK_MS, "endTimeMs": 2 * WEEK_MS},
            {"startTimeMs": 0, "endTimeMs": WEEK_MS},
        ]
        with pytest.raises(CredViewError, match="chronological"):
            CredView.from_dict(_data(intervals=intervals))

    def test_empty_interval_rejected(self) -> None:
        intervals = [{"startTimeMs": 5, "endTimeMs": 5}]
        with pytest.raises(CredViewError):
            CredView.from_dict(_data(intervals=intervals, participants=[]))


class TestWeights:
    def test_epoch_weights(self) -> None:
        view = CredView.from_dict(_data())
        assert view.epoch_weights(WEEK_MS) == {A: 2.0, B: 0.0}

    def test_cumulative_weights(self) -> None:
        view = CredView.from_dict(_data())
        assert view.cumulative_weights(WEEK_MS) == {A: 3.0, B: 9.0}

    def test_unknown_epoch(self) -> None:
        view = CredView.from_dict(_data())
        with pytest.raises(CredViewError, match="No Cred interval"):
            view.epoch_weights(123)

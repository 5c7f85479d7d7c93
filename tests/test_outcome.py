"""Tests for oracle outcome normalization."""

import pytest

from manteia.errors import AmbiguousOutcomeError
from manteia.polymarket.models import MarketReport
from manteia.polymarket.outcome import decide_outcome, map_label
from manteia.polymarket.utils import numeric_market_id, safe_json


def _report(data: dict, source: str = "clob-market") -> MarketReport:
    return MarketReport(market_id="M1", source=source, data=data)


def test_flat_yes_label_maps_to_one():
    decision = decide_outcome(_report({"closed": True, "winning_outcome": "YES"}))

    assert decision.resolvable
    assert decision.outcome == 1
    assert decision.label == "YES"


def test_status_closed_result_no_maps_to_zero():
    decision = decide_outcome(_report({"status": "closed", "result": "NO"}, "simplified"))

    assert decision.outcome == 0
    assert decision.source == "simplified"


def test_clob_tokens_shape():
    data = {
        "closed": True,
        "tokens": [
            {"token_id": "1", "outcome": "Yes", "winner": True},
            {"token_id": "2", "outcome": "No", "winner": False},
        ],
    }
    assert decide_outcome(_report(data)).outcome == 1

    data["tokens"][0]["winner"] = False
    data["tokens"][1] = {"token_id": "2", "outcome": "No", "winning": True}
    assert decide_outcome(_report(data)).outcome == 0


def test_gamma_outcome_prices_shape():
    data = {
        "closed": True,
        "outcomes": '["Yes", "No"]',
        "outcomePrices": '["0", "1"]',
    }

    assert decide_outcome(_report(data, "gamma")).outcome == 0


def test_numeric_outcome_field():
    assert decide_outcome(_report({"resolved": True, "outcome": 1})).outcome == 1


def test_open_market_is_not_resolvable():
    decision = decide_outcome(_report({"closed": False, "winning_outcome": "YES"}))

    assert not decision.closed
    assert decision.outcome is None
    assert not decision.resolvable


@pytest.mark.parametrize(
    "data",
    [
        {"closed": True, "winning_outcome": "MAYBE"},
        {"closed": True, "outcome": 2},
        {"closed": True},
        {"closed": True, "tokens": [{"outcome": "Yes", "winner": False}, {"outcome": "No", "winner": False}]},
        {"closed": True, "tokens": [{"outcome": "Trump", "winner": True}, {"outcome": "Harris"}]},
        {"closed": True, "tokens": [{"outcome": "Yes", "winner": True}, {"outcome": "No", "winner": True}]},
        {"closed": True, "winner": "YES", "resolution": "NO"},
        {"closed": True, "winning_outcome": True},
    ],
)
def test_ambiguous_formats_are_never_guessed(data):
    with pytest.raises(AmbiguousOutcomeError):
        decide_outcome(_report(data))


def test_map_label_is_case_insensitive():
    assert map_label(" yes ") == 1
    assert map_label("No") == 0
    assert map_label("N/A") is None
    assert map_label(False) is None


def test_numeric_market_id():
    condition_id = "0x5f65177b394277fd294cd75650044e32ba009a95022022b4b5f60c9750f7a21c"

    assert numeric_market_id(condition_id) == 0x5F6517 % 1_000_000
    assert numeric_market_id("42") == 42
    with pytest.raises(ValueError):
        numeric_market_id("not-a-market")


def test_safe_json():
    assert safe_json('["Yes", "No"]') == ["Yes", "No"]
    assert safe_json(["a"]) == ["a"]
    assert safe_json("{bad") == []
    assert safe_json('{"a": 1}') == []

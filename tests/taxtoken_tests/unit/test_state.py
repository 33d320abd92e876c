import json

import pytest

from taxtoken.core.exceptions import ConfigurationError
from taxtoken.core.state import Deployment, load_state, save_state

from tests.taxtoken_tests.helpers import OWNER, TRADER


@pytest.fixture
def deployment(funded_token, router, settlement):
    funded_token.transfer(OWNER, TRADER, 10**12)
    funded_token.set_threshold_override(OWNER, 10**15)
    return Deployment(token=funded_token, settlement_ledger=settlement, routers={router.address: router})


def test_save_and_load_round_trip(tmp_path, deployment, metrics):
    path = tmp_path / "state.json"
    save_state(str(path), deployment)

    loaded = load_state(str(path), metrics=metrics)

    token = loaded.token
    assert token.address == deployment.token.address
    assert token.balance_of(TRADER) == 10**12
    assert token.effective_threshold() == 10**15
    assert loaded.router.address == deployment.router.address
    assert loaded.router.get_reserves(token.address, loaded.settlement_ledger.address) == deployment.router.get_reserves(
        token.address, deployment.settlement_ledger.address
    )
    assert token.settlement_ledger is loaded.settlement_ledger

    result = loaded.router.swap_exact_tokens_for_settlement_from(TRADER, token.address, 10**12)
    assert result["tax"] == 5 * 10**10


def test_load_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_state(str(tmp_path / "missing.json"))


def test_load_corrupt_file(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_state(str(path))


def test_load_unknown_version(tmp_path, deployment):
    path = tmp_path / "state.json"
    payload = deployment.to_dict()
    payload["version"] = 99
    path.write_text(json.dumps(payload), encoding="utf-8")
    with pytest.raises(ConfigurationError, match="version"):
        load_state(str(path))

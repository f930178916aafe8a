"""Tests for LedgerService orchestration over fake Etherscan and chain."""

import pytest
import requests

from coffeecoin_ledger.abi import COFFEE_COIN_ABI, SelectorRegistry, MINT_SIGNATURE
from coffeecoin_ledger.exceptions import (
    ChainTransactionError,
    ConfigurationError,
    InvalidInputError,
    UpstreamError,
)
from coffeecoin_ledger.models import ZERO_ADDRESS, TransferType
from coffeecoin_ledger.service import INSUFFICIENT_FAUCET_FUNDS, LedgerService, parse_positive_amount

from conftest import (
    ALICE,
    BOB,
    CAROL,
    CONTRACT,
    SERVER,
    api_error,
    mint_input,
    no_records,
    normal_row,
    ok,
    paged,
    token_row,
)


CREATION = ok([{"contractAddress": CONTRACT, "contractCreator": SERVER, "txHash": "0x" + "99" * 32}])

CONTRACT_CALLS = [
    normal_row("0x01", mint_input(ALICE, 100), block=1),
    normal_row("0x02", mint_input(BOB, 250), block=2),
    normal_row("0x03", mint_input(BOB, 999), is_error="1", block=3),
    normal_row("0x04", "0xa9059cbb" + "00" * 64, sender=ALICE, block=4),
]

TOKEN_EVENTS = [
    token_row("0x01", ZERO_ADDRESS, ALICE, 100, block=1),
    token_row("0x02", ZERO_ADDRESS, BOB, 250, block=2),
    token_row("0x05", ALICE, ZERO_ADDRESS, 40, block=5),
    token_row("0x06", BOB, CAROL, 10, block=6),
]


def serve_history(session):
    session.handlers.update({
        "getcontractcreation": CREATION,
        "txlist": paged(CONTRACT_CALLS),
        "tokentx": paged(TOKEN_EVENTS),
    })


# ----------------------------------------
# Overview
# ----------------------------------------

def test_overview_with_all_sources(service, session):
    serve_history(session)

    data = service.contract_overview().to_dict()

    assert data == {
        "contractAddress": CONTRACT,
        "creatorAddress": SERVER,
        "creationTxHash": "0x" + "99" * 32,
        "totalSupply": "1000",
        "tokenName": "CoffeeCoin",
        "tokenSymbol": "CFC",
        "totalMinted": "350",
        "totalRedeemedToZeroAddress": "40",
        "numberOfHolders": 3,
        "totalContractTransactions": 4,
        "unavailableFields": [],
    }


def test_overview_survives_creator_lookup_failure(service, session):
    serve_history(session)

    def creation_down(params):
        raise requests.Timeout("slow")

    session.handlers["getcontractcreation"] = creation_down

    data = service.contract_overview().to_dict()

    assert data["tokenName"] == "CoffeeCoin"
    assert data["totalSupply"] == "1000"
    assert data["creatorAddress"] is None
    assert data["creationTxHash"] is None
    assert data["totalMinted"] == "350"
    assert data["unavailableFields"] == ["creatorAddress", "creationTxHash"]


def test_overview_without_creation_record_is_not_unavailable(service, session):
    serve_history(session)
    session.handlers["getcontractcreation"] = no_records()

    data = service.contract_overview().to_dict()

    assert data["creatorAddress"] is None
    assert data["unavailableFields"] == []


def test_overview_omits_totals_when_txlist_unreachable(service, session):
    serve_history(session)
    session.handlers["txlist"] = api_error()

    data = service.contract_overview().to_dict()

    assert "totalMinted" not in data
    assert "totalContractTransactions" not in data
    assert data["totalRedeemedToZeroAddress"] == "40"
    assert data["unavailableFields"] == ["totalMinted", "totalContractTransactions"]


def test_overview_degrades_on_malformed_history_payload(service, session):
    serve_history(session)
    session.handlers["txlist"] = ["unexpected", "list"]

    data = service.contract_overview().to_dict()

    assert "totalMinted" not in data
    assert data["numberOfHolders"] == 3
    assert data["unavailableFields"] == ["totalMinted", "totalContractTransactions"]


def test_overview_keeps_partial_totals_after_mid_scan_failure(service, session):
    serve_history(session)

    def flaky(params):
        if int(params["page"]) == 1:
            return ok(CONTRACT_CALLS[:3])
        return api_error()

    session.handlers["txlist"] = flaky

    data = service.contract_overview().to_dict()

    assert data["totalMinted"] == "350"
    assert data["totalContractTransactions"] == 3


def test_overview_emits_zero_totals(service, session):
    session.handlers.update({
        "getcontractcreation": CREATION,
        "txlist": no_records(),
        "tokentx": no_records(),
    })

    data = service.contract_overview().to_dict()

    assert data["totalMinted"] == "0"
    assert data["totalRedeemedToZeroAddress"] == "0"
    assert data["numberOfHolders"] == 0
    assert data["totalContractTransactions"] == 0


def test_overview_without_etherscan_key_makes_no_history_calls(config, service, session):
    config.etherscan_api_key = None

    data = service.contract_overview().to_dict()

    assert session.calls == []
    assert data["tokenSymbol"] == "CFC"
    assert "totalMinted" not in data
    assert len(data["unavailableFields"]) == 6


def test_overview_requires_live_reads(service, session, chain):
    serve_history(session)
    chain.fail_reads = True

    with pytest.raises(UpstreamError):
        service.contract_overview()


def test_overview_without_mint_tracking(config, etherscan, chain, session):
    serve_history(session)
    abi = [item for item in COFFEE_COIN_ABI if item.get("name") != "mint"]
    selectors = SelectorRegistry.from_abi(abi, required=(), optional=(MINT_SIGNATURE,))
    service = LedgerService(config, etherscan, chain, selectors=selectors)

    data = service.contract_overview().to_dict()

    assert "totalMinted" not in data
    assert "totalMinted" not in data["unavailableFields"]
    assert data["totalContractTransactions"] == 4


# ----------------------------------------
# History and interactions
# ----------------------------------------

def test_transaction_history_classifies_from_wallet_view(service, session):
    session.handlers["tokentx"] = ok([
        token_row("0x06", ALICE, ZERO_ADDRESS, 30, block=6),
        token_row("0x05", BOB, ALICE, 20, block=5),
        token_row("0x01", ZERO_ADDRESS, ALICE, 100, block=1),
    ])

    events = service.transaction_history(ALICE)

    assert [event.type for event in events] == [
        TransferType.REDEEMED, TransferType.RECEIVED, TransferType.EARNED]
    [call] = session.calls
    assert call["address"] == ALICE
    assert call["offset"] == 100
    assert call["sort"] == "desc"


def test_transaction_history_rejects_bad_address(service, session):
    with pytest.raises(InvalidInputError):
        service.transaction_history("0xnope")
    assert session.calls == []


def test_transaction_history_needs_etherscan_key(config, service):
    config.etherscan_api_key = None

    with pytest.raises(ConfigurationError):
        service.transaction_history(ALICE)


@pytest.mark.parametrize("page,offset", [(0, 10), (1, 0), (1, 101)])
def test_recent_interactions_validates_paging(service, session, page, offset):
    with pytest.raises(InvalidInputError):
        service.recent_interactions(page=page, offset=offset)
    assert session.calls == []


def test_recent_interactions_labels_calls(service, session):
    session.handlers["txlist"] = ok(CONTRACT_CALLS)

    rows = service.recent_interactions(page=2, offset=4)

    assert [row.function_name for row in rows] == [
        "mint(..., 100)", "mint(..., 250)", "mint(..., 999)", "transfer(...)"]
    assert session.calls[0]["page"] == 2


def test_mint_distribution_uses_successful_mints(service, session):
    session.handlers["txlist"] = ok(CONTRACT_CALLS)

    buckets = service.mint_distribution(count=50, top=7)

    assert [(b.amount, b.count) for b in buckets] == [(250, 1), (100, 1)]


# ----------------------------------------
# Faucet
# ----------------------------------------

def fresh_wallet(session, balance="0", txs=0):
    session.handlers["balance"] = ok(balance)
    session.handlers["txlist"] = ok([normal_row(f"0x{i:02x}", "0x") for i in range(txs)])


def test_fresh_wallet_is_eligible(service, session):
    fresh_wallet(session)

    result = service.check_drip_eligibility(ALICE)

    assert result.should_drip
    assert result.message == "Eligible for ETH drip."
    assert session.calls[-1]["offset"] == 6


def test_funded_busy_wallet_is_not_eligible(service, session):
    fresh_wallet(session, balance=str(10 ** 16), txs=6)

    result = service.check_drip_eligibility(ALICE)

    assert not result.should_drip
    assert result.message == "Not eligible. Has 0.01 ETH. Has 6 TXs."


def test_eligibility_check_never_raises(service, session):
    session.handlers["balance"] = api_error("NOTOK", "rate limited")

    result = service.check_drip_eligibility(ALICE)

    assert not result.should_drip
    assert result.tx_count == -1
    assert result.message.startswith("Eligibility check error:")


def test_eligibility_without_etherscan_key(config, service, session):
    config.etherscan_api_key = None

    result = service.check_drip_eligibility(ALICE)

    assert result.message == "Etherscan API key missing for drip check."
    assert session.calls == []


def test_eligibility_rejects_bad_address(service):
    assert service.check_drip_eligibility("bad").message == "Invalid user address for drip check."


def test_drip_sends_eth(service, session, chain, config):
    fresh_wallet(session)

    result = service.attempt_drip(ALICE)

    assert result.dripped
    assert chain.sent == [(ALICE, config.eth_drip_amount_wei)]
    assert result.message == f"Successfully dripped 0.01 ETH. Tx: {result.tx_hash}"


def test_drip_with_empty_faucet(service, session, chain):
    fresh_wallet(session)
    chain.native_balances[SERVER.lower()] = 0

    result = service.attempt_drip(ALICE)

    assert not result.dripped
    assert result.message == INSUFFICIENT_FAUCET_FUNDS
    assert chain.sent == []


def test_drip_send_failure_is_reported(service, session, chain):
    fresh_wallet(session)
    chain.fail_send = "nonce too low"

    result = service.attempt_drip(ALICE)

    assert not result.dripped
    assert result.message == "Failed to send test ETH: nonce too low"


def test_drip_without_server_wallet(config, service, session):
    config.server_wallet_private_key = None

    result = service.attempt_drip(ALICE)

    assert result.message == "Faucet (server wallet) not configured."
    assert session.calls == []


# ----------------------------------------
# Minting, points and redemptions
# ----------------------------------------

@pytest.mark.parametrize("value,expected", [(5, 5), ("12", 12), (" 7 ", 7), (3.0, 3)])
def test_parse_positive_amount_accepts_whole_numbers(value, expected):
    assert parse_positive_amount(value, "amount") == expected


@pytest.mark.parametrize("value", [None, "", "abc", "1.5", 0, -3, True, 2.5])
def test_parse_positive_amount_rejects(value):
    with pytest.raises(InvalidInputError):
        parse_positive_amount(value, "amount")


def test_earn_points_drips_then_mints(service, session, chain):
    fresh_wallet(session)

    result = service.earn_points(ALICE, "25")

    assert chain.minted == [(ALICE, 25)]
    assert result.new_balance == 25
    assert result.eth_drip_status.startswith("Successfully dripped")


def test_earn_points_survives_drip_failure(service, session, chain):
    session.handlers["balance"] = api_error()

    result = service.earn_points(ALICE, 10)

    assert chain.minted == [(ALICE, 10)]
    assert chain.sent == []
    assert result.eth_drip_status.startswith("Eligibility check error:")


def test_earn_points_validates_before_any_side_effect(service, session, chain):
    with pytest.raises(InvalidInputError):
        service.earn_points(ALICE, "-4")
    assert session.calls == []
    assert chain.sent == [] and chain.minted == []


def test_earn_points_mint_failure_carries_drip_status(service, session, chain):
    fresh_wallet(session, balance=str(10 ** 18), txs=9)
    chain.fail_mint = "execution reverted"

    with pytest.raises(ChainTransactionError) as info:
        service.earn_points(ALICE, 10)

    assert str(info.value).startswith("Failed to mint CoffeeCoins:")
    assert info.value.eth_drip_status.startswith("Not eligible.")


def test_admin_mint_validates_amount(service, chain):
    with pytest.raises(InvalidInputError):
        service.mint(BOB, "lots")
    assert service.mint(BOB, "3") == "0x" + "ab" * 32
    assert chain.minted == [(BOB, 3)]


def test_record_redemption_issues_voucher(service):
    record = service.record_redemption("latte", "120", "0x" + "ee" * 32)

    assert record.points_burned == 120
    assert record.voucher_code.startswith("VOUCHER-LATTE-")
    suffix = record.voucher_code.rsplit("-", 1)[1]
    assert len(suffix) == 5 and suffix.isalnum() and suffix.upper() == suffix


def test_record_redemption_requires_fields(service):
    with pytest.raises(InvalidInputError):
        service.record_redemption("latte", 5, None)

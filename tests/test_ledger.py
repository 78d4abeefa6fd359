"""
Development Ledger Test Suite

Coverage:
  - deployment, calldata dispatch and read-only calls
  - all-or-nothing transactions
  - receipts and confirmations
  - development-only clock control
"""

import os
import sys

import pytest
from eth_utils import to_checksum_address

# ── Path setup ────────────────────────────────────────────────────────
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from govkit.exceptions import (
    ConfigurationError,
    InsufficientBalance,
    UnknownSelector,
)
from govkit.governance.access import Unauthorized
from govkit.governance.targets import Box
from govkit.ledger import Ledger, LedgerError, Receipt, ValueNotAccepted


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

ALICE = to_checksum_address("0x" + "a1" * 20)
BOB = to_checksum_address("0x" + "b2" * 20)
GENESIS = 1_700_000_000


def make_ledger(**kwargs) -> Ledger:
    return Ledger(genesis_timestamp=GENESIS, **kwargs)


def deploy_box(ledger: Ledger, owner: str = ALICE) -> str:
    return ledger.deploy(owner, Box(owner=owner)).contract_address


def retrieve(ledger: Ledger, box: str) -> int:
    return Box.decode_result("retrieve", ledger.call(box, Box.encode_call("retrieve")))


# ══════════════════════════════════════════════════════════════════════
#  TESTS
# ══════════════════════════════════════════════════════════════════════


class TestLedgerBlocks:

    def test_genesis(self):
        ledger = make_ledger()
        assert ledger.latest_block.number == 0
        assert ledger.latest_block.timestamp == GENESIS

    def test_each_transaction_mines_a_block(self):
        ledger = make_ledger()
        box = deploy_box(ledger)
        assert ledger.latest_block.number == 1
        receipt = ledger.transact(ALICE, box, Box.encode_call("store", 7))
        assert receipt.block_number == 2
        assert receipt.block_timestamp == GENESIS + 2
        assert ledger.get_block(2).transactions == [receipt.tx_hash]

    def test_unknown_block(self):
        with pytest.raises(LedgerError):
            make_ledger().get_block(5)

    def test_development_detection(self):
        assert make_ledger().development is True
        assert make_ledger(network_name="sepolia").development is False


class TestLedgerCalls:

    def test_store_and_retrieve(self):
        ledger = make_ledger()
        box = deploy_box(ledger)
        ledger.transact(ALICE, box, Box.encode_call("store", 42))
        assert retrieve(ledger, box) == 42

    def test_events_recorded_in_receipt(self):
        ledger = make_ledger()
        box = deploy_box(ledger)
        receipt = ledger.transact(ALICE, box, Box.encode_call("store", 42))
        events = receipt.events("ValueChanged")
        assert len(events) == 1
        assert events[0].args["newValue"] == 42
        assert events[0].address == box

    def test_read_call_never_mutates(self):
        ledger = make_ledger()
        box = deploy_box(ledger)
        ledger.call(box, Box.encode_call("store", 9), sender=ALICE)
        assert retrieve(ledger, box) == 0
        assert ledger.latest_block.number == 1

    def test_unknown_selector(self):
        ledger = make_ledger()
        box = deploy_box(ledger)
        with pytest.raises(UnknownSelector):
            ledger.transact(ALICE, box, b"\xde\xad\xbe\xef")

    def test_value_to_non_payable_function(self):
        ledger = make_ledger()
        ledger.set_balance(ALICE, 10)
        box = deploy_box(ledger)
        with pytest.raises(ValueNotAccepted):
            ledger.transact(ALICE, box, Box.encode_call("store", 1), value=1)
        assert ledger.balance_of(ALICE) == 10

    def test_plain_transfer_to_account(self):
        ledger = make_ledger()
        ledger.set_balance(ALICE, 10)
        ledger.transact(ALICE, BOB, value=4)
        assert ledger.balance_of(ALICE) == 6
        assert ledger.balance_of(BOB) == 4

    def test_insufficient_balance(self):
        ledger = make_ledger()
        with pytest.raises(InsufficientBalance):
            ledger.transact(ALICE, BOB, value=1)


class TestLedgerAtomicity:

    def test_failed_transaction_reverts_state_and_is_not_mined(self):
        ledger = make_ledger()
        box = deploy_box(ledger)
        ledger.transact(ALICE, box, Box.encode_call("store", 1))
        height = ledger.latest_block.number
        nonce = ledger.nonce_of(BOB)

        with pytest.raises(Unauthorized):
            ledger.transact(BOB, box, Box.encode_call("store", 2))

        assert retrieve(ledger, box) == 1
        assert ledger.latest_block.number == height
        assert ledger.nonce_of(BOB) == nonce

    def test_failed_deployment_leaves_no_code(self):
        ledger = make_ledger()
        with pytest.raises(Exception):
            ledger.deploy(ALICE, Box(owner=ALICE), value=5)
        assert ledger.latest_block.number == 0
        assert ledger.nonce_of(ALICE) == 0

    def test_contract_addresses_follow_nonce(self):
        ledger = make_ledger()
        first = deploy_box(ledger)
        second = deploy_box(ledger)
        assert first != second
        assert ledger.has_code(first) and ledger.has_code(second)
        assert ledger.contract_at(first).address == first


class TestLedgerReceipts:

    def test_confirmations(self):
        ledger = make_ledger()
        box = deploy_box(ledger)
        receipt = ledger.transact(ALICE, box, Box.encode_call("store", 3))
        assert ledger.confirmations(receipt.tx_hash) == 1
        ledger.mine(2)
        assert ledger.confirmations(receipt.tx_hash) == 3

    def test_unknown_receipt(self):
        ledger = make_ledger()
        assert ledger.get_receipt("0x" + "00" * 32) is None
        assert ledger.confirmations("0x" + "00" * 32) == 0

    def test_receipt_dict_round_trip(self):
        ledger = make_ledger()
        box = deploy_box(ledger)
        receipt = ledger.transact(ALICE, box, Box.encode_call("store", 3))
        restored = Receipt.from_dict(receipt.to_dict())
        assert restored.tx_hash == receipt.tx_hash
        assert restored.block_number == receipt.block_number
        assert restored.events("ValueChanged")[0].args["newValue"] == 3


class TestDevelopmentClock:

    def test_mine(self):
        ledger = make_ledger()
        assert ledger.mine(3) == 3
        assert ledger.latest_block.timestamp == GENESIS + 3

    def test_increase_time_applies_to_next_block(self):
        ledger = make_ledger()
        ledger.increase_time(3600)
        assert ledger.latest_block.timestamp == GENESIS
        ledger.mine()
        assert ledger.latest_block.timestamp == GENESIS + 1 + 3600
        ledger.mine()
        assert ledger.latest_block.timestamp == GENESIS + 3602

    def test_clock_control_refused_on_public_networks(self):
        ledger = make_ledger(network_name="sepolia")
        with pytest.raises(ConfigurationError):
            ledger.mine()
        with pytest.raises(ConfigurationError):
            ledger.increase_time(10)
        with pytest.raises(ConfigurationError):
            ledger.set_balance(ALICE, 1)

import sys
from pathlib import Path
import pytest
from mesa import Model

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from defi_exchange.agents.blockchain import ZERO_ADDRESS, BlockchainAgent, Contract, transactional
from defi_exchange.errors import InsufficientBalance, InvalidAmount, InsufficientOutputAmount


def test_blockchain_accounts_and_native_transfer():
    m = Model()
    bc = BlockchainAgent(model=m, block_time=1.0, confirmations=1)

    alice = bc.create_account(initial_balance=100)
    bob = bc.create_account()
    assert alice != bob
    assert ZERO_ADDRESS not in (alice, bob)
    assert alice.startswith("0x") and len(alice) == 42

    bc.transfer_native(alice, bob, 40)
    assert bc.get_native_balance(alice) == 60
    assert bc.get_native_balance(bob) == 40

    with pytest.raises(InsufficientBalance):
        bc.transfer_native(bob, alice, 41)
    with pytest.raises(InvalidAmount):
        bc.transfer_native(bob, alice, -1)
    assert bc.get_native_balance(bob) == 40


def test_atomic_restores_state_on_error():
    bc = BlockchainAgent(model=Model())
    alice = bc.create_account(initial_balance=10)
    bob = bc.create_account()

    with pytest.raises(InsufficientBalance):
        with bc.atomic():
            bc.transfer_native(alice, bob, 4)
            bc.emit(alice, "Something", value=1)
            bc.transfer_native(alice, bob, 100)

    assert bc.get_native_balance(alice) == 10
    assert bc.get_native_balance(bob) == 0
    assert bc.get_events() == []


def test_nested_atomic_only_undoes_inner_when_caught():
    bc = BlockchainAgent(model=Model())
    alice = bc.create_account(initial_balance=10)
    bob = bc.create_account()

    with bc.atomic():
        bc.transfer_native(alice, bob, 3)
        try:
            with bc.atomic():
                bc.transfer_native(alice, bob, 5)
                raise InsufficientOutputAmount("inner failure")
        except InsufficientOutputAmount:
            pass

    assert bc.get_native_balance(alice) == 7
    assert bc.get_native_balance(bob) == 3


def test_transactional_contract_method_rolls_back():
    m = Model()
    bc = BlockchainAgent(model=m)

    class Vault(Contract):
        @transactional
        def deposit_then_fail(self, sender, value):
            self._receive(sender, value)
            self._emit("Deposited", value=value)
            raise InsufficientOutputAmount("always")

    vault = Vault(m, bc)
    alice = bc.create_account(initial_balance=5)
    assert bc.get_contract(vault.address) is vault

    with pytest.raises(InsufficientOutputAmount):
        vault.deposit_then_fail(alice, 5)
    assert bc.get_native_balance(alice) == 5
    assert bc.get_native_balance(vault.address) == 0
    assert bc.get_events(event_name="Deposited") == []


def test_transaction_pipeline_executes_after_confirmation():
    m = Model()
    bc = BlockchainAgent(model=m, block_time=2.0, confirmations=1)
    alice = bc.create_account(initial_balance=100)
    bob = bc.create_account()

    def simple_transfer(sender, receiver, payload, blockchain):
        blockchain.transfer_native(sender, receiver, payload["amount"])
        return {"success": True}

    tx_id = bc.submit_transaction(alice, bob, simple_transfer, payload={"amount": 5})
    assert tx_id == 1
    assert bc.metrics["tx_submitted"] == 1
    assert bc.get_pending_txs() == [1]

    bc.step()
    assert bc.get_pending_txs() == []
    assert bc.get_queued_txs() == [1]
    assert bc.get_current_block() == 1
    assert bc.get_native_balance(bob) == 0

    bc.step()
    assert bc.current_block == 2
    assert bc.timestamp == pytest.approx(4.0)
    assert bc.get_native_balance(bob) == 5
    assert bc.get_queued_txs() == []
    events = bc.get_events(block=2, event_name="TransactionExecuted")
    assert events[0][1]["return_value"] == {"success": True}
    assert bc.get_metrics()["tx_executed"] == 1


def test_reverted_transaction_is_logged_and_undone():
    m = Model()
    bc = BlockchainAgent(model=m, confirmations=0)
    alice = bc.create_account(initial_balance=3)
    bob = bc.create_account()

    def overspend(sender, receiver, payload, blockchain):
        blockchain.transfer_native(sender, receiver, 2)
        blockchain.transfer_native(sender, receiver, 2)

    bc.submit_transaction(alice, bob, overspend)
    bc.step()

    assert bc.get_native_balance(alice) == 3
    assert bc.get_native_balance(bob) == 0
    assert bc.metrics["tx_reverted"] == 1
    (name, payload), = bc.get_events(event_name="TransactionReverted")
    assert payload["error"] == "InsufficientBalance"



def test_unexpected_error_reverts_only_its_transaction():
    m = Model()
    bc = BlockchainAgent(model=m, confirmations=0)
    alice = bc.create_account(initial_balance=10)
    bob = bc.create_account()

    def broken(sender, receiver, payload, blockchain):
        blockchain.transfer_native(sender, receiver, 4)
        raise RuntimeError("bug in call")

    def simple_transfer(sender, receiver, payload, blockchain):
        blockchain.transfer_native(sender, receiver, payload["amount"])

    bc.submit_transaction(alice, bob, broken)
    bc.submit_transaction(alice, bob, simple_transfer, payload={"amount": 3})
    bc.step()

    assert bc.get_native_balance(alice) == 7
    assert bc.get_native_balance(bob) == 3
    assert bc.get_pending_txs() == [] and bc.get_queued_txs() == []
    assert bc.metrics["tx_reverted"] == 1
    assert bc.metrics["tx_executed"] == 1
    (name, payload), = bc.get_events(event_name="TransactionReverted")
    assert payload["tx_id"] == 1
    assert payload["error"] == "RuntimeError"


def test_rollback_keeps_earlier_events():
    m = Model()
    bc = BlockchainAgent(model=m, confirmations=0)
    alice = bc.create_account(initial_balance=10)

    bc.emit(alice, "Genesis")
    bc.step()
    bc.emit(alice, "First")
    with pytest.raises(InsufficientOutputAmount):
        with bc.atomic():
            bc.emit(alice, "Second")
            with bc.atomic():
                bc.emit(alice, "Third")
            raise InsufficientOutputAmount("outer failure")

    assert [name for name, _ in bc.get_events()] == ["Genesis", "First"]
    assert [name for name, _ in bc.get_events(block=1)] == ["First"]

    bc.step()
    with pytest.raises(InsufficientOutputAmount):
        with bc.atomic():
            bc.emit(alice, "Doomed")
            raise InsufficientOutputAmount("fails in a fresh block")
    assert 2 not in bc.event_logs
    assert bc.get_events(block=2) == []

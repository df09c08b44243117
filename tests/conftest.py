"""Shared fixtures: keypair files and an in-memory ledger RPC."""

import asyncio
import json
from collections import Counter
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.transaction import Transaction

from batch_transfer.ledger_rpc import SignatureStatus
from batch_transfer.transfer_models import TransferRequest

FINALIZED = SignatureStatus(finalized=True)


class FakeRpc:
    """
    In-memory stand-in for LedgerRpc

    status_script(signature, attempt) returns a SignatureStatus, None,
    or raises to simulate a transient query failure.
    """

    def __init__(
        self,
        status_script: Optional[Callable[[str, int], Optional[SignatureStatus]]] = None,
        send_delay: float = 0.0,
        blockhash_error: Optional[Exception] = None,
        reject: Optional[Callable[[Transaction], Optional[Exception]]] = None
    ):
        self.status_script = status_script or (lambda sig, attempt: FINALIZED)
        self.send_delay = send_delay
        self.blockhash_error = blockhash_error
        self.reject = reject
        self.sent: List[Transaction] = []
        self.status_calls: Counter = Counter()
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def get_latest_blockhash(self) -> Hash:
        if self.blockhash_error:
            raise self.blockhash_error
        return Hash.default()

    async def send_and_confirm(self, tx: Transaction) -> str:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.send_delay)
            if self.reject:
                error = self.reject(tx)
                if error:
                    raise error
            self.sent.append(tx)
            return str(tx.signatures[0])
        finally:
            self.in_flight -= 1

    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        self.status_calls[signature] += 1
        return self.status_script(signature, self.status_calls[signature])

    async def close(self):
        self.closed = True


class RecordingSleep:
    """Sleep replacement that records requested delays without waiting"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def keypair_file(tmp_path: Path) -> Callable[[], str]:
    """Factory writing a fresh Solana CLI keypair file, returns its path"""
    counter = {'n': 0}

    def make() -> str:
        counter['n'] += 1
        path = tmp_path / f"wallet_{counter['n']}.json"
        path.write_text(json.dumps(list(bytes(Keypair()))))
        return str(path)

    return make


@pytest.fixture
def make_request(keypair_file) -> Callable[..., TransferRequest]:
    def make(amount: str = "0.5", to_address: Optional[str] = None, label: Optional[str] = None) -> TransferRequest:
        return TransferRequest(
            from_keypair=keypair_file(),
            to_address=to_address or str(Keypair().pubkey()),
            amount_sol=amount,
            label=label
        )

    return make


@pytest.fixture
def fake_rpc() -> FakeRpc:
    return FakeRpc()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()

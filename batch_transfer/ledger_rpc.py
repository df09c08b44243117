"""
Ledger RPC

Thin async wrapper around the Solana JSON-RPC client plus the key, address
and transaction helpers the transfer engine needs.

One LedgerRpc instance is shared by every concurrent submitter and poller.
The underlying AsyncClient keeps an httpx connection pool, so concurrent
callers do not need a lock.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional, Union

from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed, Finalized
from solana.rpc.types import TxOpts
from solders.errors import SerdeJSONError, SignerError
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction
from solders.transaction_status import TransactionConfirmationStatus


LAMPORTS_PER_SOL = 10 ** 9
LAMPORT_DECIMALS = 9
MAX_LAMPORTS = 2 ** 64 - 1


class CredentialError(Exception):
    """Keypair file missing or unreadable"""


class AddressError(Exception):
    """Destination address could not be parsed"""


@dataclass(frozen=True)
class SignatureStatus:
    """Status of a signature as reported by the ledger"""
    finalized: bool
    err: Optional[str] = None


def to_decimal(value: Union[str, int, float, Decimal]) -> Decimal:
    """
    Convert a config value into a Decimal without a float intermediate

    Floats are routed through str() so 0.1 becomes Decimal('0.1'),
    not the binary approximation.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e


def sol_to_lamports(amount_sol: Decimal) -> int:
    """
    Convert whole-SOL amount into lamports using exact integer scaling

    Args:
        amount_sol: Amount in SOL

    Returns:
        Amount in lamports

    Raises:
        ValueError: negative, non-finite, finer than one lamport or above u64
    """
    if not amount_sol.is_finite():
        raise ValueError(f"Amount must be finite, got {amount_sol}")
    if amount_sol < 0:
        raise ValueError(f"Amount must be non-negative, got {amount_sol}")

    scaled = amount_sol.scaleb(LAMPORT_DECIMALS)
    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"Amount {amount_sol} has more than {LAMPORT_DECIMALS} decimal places"
        )

    lamports = int(scaled)
    if lamports > MAX_LAMPORTS:
        raise ValueError(f"Amount {amount_sol} exceeds the u64 lamport range")
    return lamports


def load_keypair(path: Union[str, Path]) -> Keypair:
    """
    Load a Solana CLI keypair file (JSON array of 64 bytes)

    Raises:
        CredentialError: file missing, unreadable or not a keypair
    """
    keypair_path = Path(path).expanduser()
    try:
        raw = keypair_path.read_text(encoding='utf-8')
    except FileNotFoundError:
        raise CredentialError(f"Keypair file not found: {keypair_path}")
    except (OSError, UnicodeDecodeError) as e:
        raise CredentialError(f"Cannot read keypair file {keypair_path}: {e}")

    try:
        return Keypair.from_json(raw)
    except (SerdeJSONError, SignerError, ValueError, TypeError) as e:
        raise CredentialError(f"Invalid keypair in {keypair_path}: {e}")


def parse_pubkey(address: str) -> Pubkey:
    """
    Parse a base58 account address

    Raises:
        AddressError: empty or not a valid 32-byte base58 key
    """
    if not address:
        raise AddressError("Address is empty")
    try:
        return Pubkey.from_string(address.strip())
    except (ValueError, TypeError) as e:
        raise AddressError(f"Invalid address {address!r}: {e}")


def build_transfer(
    sender: Keypair,
    recipient: Pubkey,
    lamports: int,
    recent_blockhash: Hash
) -> Transaction:
    """Build and sign a single-instruction system transfer paid by the sender"""
    instruction = transfer(
        TransferParams(
            from_pubkey=sender.pubkey(),
            to_pubkey=recipient,
            lamports=lamports
        )
    )
    return Transaction.new_signed_with_payer(
        [instruction],
        sender.pubkey(),
        [sender],
        recent_blockhash
    )


class LedgerRpc:
    """
    Shared RPC handle used by submitters and pollers

    Features:
    - Latest blockhash lookup
    - Send-and-confirm in one call
    - Signature status lookup at finalized commitment
    """

    def __init__(
        self,
        rpc_url: str,
        send_commitment: Commitment = Confirmed,
        timeout: float = 30.0,
        client: Optional[AsyncClient] = None
    ):
        """
        Initialize RPC handle

        Args:
            rpc_url: JSON-RPC endpoint
            send_commitment: Commitment awaited by send_and_confirm
            timeout: HTTP timeout in seconds
            client: Pre-built AsyncClient (mainly for tests)
        """
        self.rpc_url = rpc_url
        self.send_commitment = send_commitment
        self.client = client or AsyncClient(rpc_url, commitment=send_commitment, timeout=timeout)

        logger.info(f"Ledger RPC initialized: {rpc_url}")

    async def get_latest_blockhash(self) -> Hash:
        resp = await self.client.get_latest_blockhash(commitment=Finalized)
        return resp.value.blockhash

    async def send_and_confirm(self, tx: Transaction) -> str:
        """
        Send a signed transaction and wait until the ledger accepts it

        Returns:
            Transaction signature (base58)
        """
        opts = TxOpts(
            skip_confirmation=False,
            preflight_commitment=self.send_commitment
        )
        resp = await self.client.send_transaction(tx, opts=opts)
        return str(resp.value)

    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        """
        Look up a signature

        Returns:
            SignatureStatus, or None if the ledger does not know it yet
        """
        resp = await self.client.get_signature_statuses([Signature.from_string(signature)])
        status = resp.value[0] if resp.value else None
        if status is None:
            return None

        finalized = status.confirmation_status == TransactionConfirmationStatus.Finalized
        err = str(status.err) if status.err is not None else None
        return SignatureStatus(finalized=finalized, err=err)

    async def close(self):
        """Close the underlying HTTP session"""
        await self.client.close()
        logger.debug("✓ Ledger RPC closed")

    async def __aenter__(self) -> 'LedgerRpc':
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

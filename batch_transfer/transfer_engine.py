"""
Batch Transfer Engine

Two-phase concurrent pipeline:
1. Submit every transfer request concurrently (no short-circuit on errors)
2. Poll every successfully submitted signature concurrently

Phase 2 starts only after all of phase 1 has finished. Each request yields
exactly one SubmissionOutcome and, when submitted, exactly one
ConfirmationOutcome.
"""

import asyncio
import time
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from loguru import logger

from .confirmation_poller import ConfirmationPoller, PollingPolicy
from .ledger_rpc import (
    AddressError,
    CredentialError,
    LedgerRpc,
    build_transfer,
    load_keypair,
    parse_pubkey,
)
from .result_reporter import summarize
from .transfer_models import (
    BatchResult,
    ConfirmationOutcome,
    ConfirmationStatus,
    SubmissionError,
    SubmissionErrorKind,
    SubmissionOutcome,
    TransferRequest,
)

T = TypeVar('T')
R = TypeVar('R')


class TransactionSubmitter:
    """
    Turns one TransferRequest into a signed, accepted transaction

    Steps:
    1. Load keypair
    2. Parse destination address
    3. Fetch latest blockhash
    4. Build + sign single transfer instruction
    5. Send and wait for acceptance

    Failures are never retried: once the ledger has accepted a transfer,
    resubmitting it would move funds twice.
    """

    def __init__(self, rpc: LedgerRpc):
        self.rpc = rpc

    async def submit(self, request: TransferRequest) -> SubmissionOutcome:
        start = time.monotonic()
        try:
            signature = await self._send(request)
        except SubmissionError as e:
            logger.error(f"✗ Failed to send tx to {request.display_name}: {e}")
            return SubmissionOutcome(
                request=request,
                error=e,
                elapsed_seconds=time.monotonic() - start
            )

        logger.info(f"✓ Sent {request.amount_sol} SOL to {request.display_name}: {signature}")
        return SubmissionOutcome(
            request=request,
            signature=signature,
            elapsed_seconds=time.monotonic() - start
        )

    async def _send(self, request: TransferRequest) -> str:
        try:
            sender = await asyncio.to_thread(load_keypair, request.from_keypair)
        except CredentialError as e:
            raise SubmissionError(SubmissionErrorKind.CREDENTIAL, str(e), request)

        try:
            recipient = parse_pubkey(request.to_address)
        except AddressError as e:
            raise SubmissionError(SubmissionErrorKind.ADDRESS, str(e), request)

        try:
            blockhash = await self.rpc.get_latest_blockhash()
        except Exception as e:
            raise SubmissionError(
                SubmissionErrorKind.BLOCKHASH,
                f"Failed to fetch latest blockhash: {e}",
                request
            )

        try:
            tx = build_transfer(sender, recipient, request.lamports, blockhash)
        except (ValueError, TypeError, OverflowError) as e:
            raise SubmissionError(SubmissionErrorKind.BUILD, f"Cannot build transaction: {e}", request)

        try:
            return await self.rpc.send_and_confirm(tx)
        except Exception as e:
            raise SubmissionError(SubmissionErrorKind.REJECTED, str(e) or type(e).__name__, request)


async def run_concurrently(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    max_concurrency: Optional[int] = None
) -> List[R]:
    """
    Run worker over items concurrently, results in input order

    Args:
        items: Inputs
        worker: Coroutine function applied to each item
        max_concurrency: None for one task per item, otherwise size of the
            worker pool draining a shared queue

    Returns:
        One result per item, same order as items
    """
    if not items:
        return []

    if max_concurrency is None or max_concurrency >= len(items):
        return list(await asyncio.gather(*(worker(item) for item in items)))

    if max_concurrency < 1:
        raise ValueError("max_concurrency must be at least 1")

    queue: asyncio.Queue = asyncio.Queue()
    for index, item in enumerate(items):
        queue.put_nowait((index, item))

    results: List[Optional[R]] = [None] * len(items)

    async def drain():
        while True:
            try:
                index, item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            results[index] = await worker(item)

    await asyncio.gather(*(drain() for _ in range(max_concurrency)))
    return results


class BatchTransferEngine:
    """
    Batch orchestrator

    Features:
    - Concurrent submission of independent transfers
    - Barrier between submission and confirmation phases
    - Concurrent bounded-retry confirmation polling
    - Optional worker-pool cap on concurrent RPC work
    """

    def __init__(
        self,
        rpc: LedgerRpc,
        polling_policy: PollingPolicy = PollingPolicy(),
        max_concurrency: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Initialize engine

        Args:
            rpc: Shared RPC handle
            polling_policy: Interval and attempt budget for confirmation polling
            max_concurrency: Cap on concurrent tasks per phase (None = unbounded)
            sleep: Sleep coroutine used between poll attempts
        """
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.rpc = rpc
        self.submitter = TransactionSubmitter(rpc)
        self.poller = ConfirmationPoller(rpc, polling_policy, sleep=sleep)
        self.max_concurrency = max_concurrency

        logger.info("Batch Transfer Engine initialized")
        logger.info(f"  Poll interval: {polling_policy.interval_seconds}s")
        logger.info(f"  Max poll attempts: {polling_policy.max_attempts}")
        logger.info(f"  Max concurrency: {max_concurrency or 'unbounded'}")

    async def _submit_one(self, request: TransferRequest) -> SubmissionOutcome:
        try:
            return await self.submitter.submit(request)
        except Exception as e:
            logger.error(f"✗ Unexpected error submitting to {request.display_name}: {e}")
            return SubmissionOutcome(
                request=request,
                error=SubmissionError(SubmissionErrorKind.REJECTED, str(e), request)
            )

    async def _poll_one(self, signature: str) -> ConfirmationOutcome:
        try:
            return await self.poller.poll(signature)
        except Exception as e:
            logger.error(f"✗ Unexpected error polling {signature}: {e}")
            return ConfirmationOutcome(
                signature=signature,
                status=ConfirmationStatus.TIMED_OUT,
                attempts=0,
                error=str(e)
            )

    async def submit_all(self, requests: Sequence[TransferRequest]) -> List[SubmissionOutcome]:
        """Phase 1: submit every request, wait for all"""
        logger.info(f"Submitting {len(requests)} transfers...")
        return await run_concurrently(requests, self._submit_one, self.max_concurrency)

    async def confirm_all(self, submissions: Sequence[SubmissionOutcome]) -> List[ConfirmationOutcome]:
        """Phase 2: poll only the successfully submitted signatures"""
        signatures = [s.signature for s in submissions if s.success]
        logger.info(f"Checking statuses of {len(signatures)} transactions...")
        return await run_concurrently(signatures, self._poll_one, self.max_concurrency)

    async def run(
        self,
        requests: Sequence[TransferRequest],
        on_submitted: Optional[Callable[[List[SubmissionOutcome]], None]] = None
    ) -> BatchResult:
        """
        Run the full batch

        Args:
            requests: Transfers to execute
            on_submitted: Called once with all submission outcomes (input order)
                after phase 1 and before any polling starts

        Returns:
            BatchResult with every outcome and elapsed time
        """
        started_at = time.monotonic()

        submissions = await self.submit_all(requests)
        if on_submitted:
            on_submitted(submissions)

        confirmations = await self.confirm_all(submissions)

        result = summarize(submissions, confirmations, started_at, time.monotonic())

        logger.info(
            f"Batch complete: {result.confirmed}/{len(requests)} confirmed "
            f"in {result.elapsed_seconds:.2f}s"
        )
        return result

    async def close(self):
        await self.rpc.close()


async def graceful_shutdown(engine: BatchTransferEngine, timeout: float = 10.0):
    """
    Close the engine's RPC handle without letting cleanup errors escape

    Args:
        engine: Engine to shut down
        timeout: Maximum time to wait for the close (seconds)
    """
    try:
        await asyncio.wait_for(engine.close(), timeout=timeout)
        logger.debug("✓ Graceful shutdown complete")
    except asyncio.TimeoutError:
        logger.warning(f"Shutdown timeout after {timeout}s")
    except Exception as e:
        logger.debug(f"Error during graceful shutdown: {e}")

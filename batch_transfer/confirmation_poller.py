"""
Confirmation Poller

Polls a submitted signature until the ledger reports it finalized, or the
attempt budget runs out.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from loguru import logger

from .ledger_rpc import LedgerRpc
from .transfer_models import ConfirmationOutcome, ConfirmationStatus


@dataclass(frozen=True)
class PollingPolicy:
    """Fixed-interval polling budget"""
    interval_seconds: float = 2.0
    max_attempts: int = 10

    def __post_init__(self):
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must be non-negative")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @property
    def timeout_seconds(self) -> float:
        """Total time spent sleeping before a signature times out"""
        return self.interval_seconds * (self.max_attempts - 1)


class ConfirmationPoller:
    """
    Bounded-retry status polling for one signature at a time

    Query errors and unknown or not-yet-finalized statuses count as
    transient: the poller sleeps the fixed interval and tries again.
    """

    def __init__(
        self,
        rpc: LedgerRpc,
        policy: PollingPolicy = PollingPolicy(),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.rpc = rpc
        self.policy = policy
        self._sleep = sleep

    async def poll(self, signature: str) -> ConfirmationOutcome:
        """
        Poll until finalized or out of attempts

        Args:
            signature: Transaction signature returned by the submitter

        Returns:
            ConfirmationOutcome (CONFIRMED, FAILED or TIMED_OUT)
        """
        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                status = await self.rpc.get_signature_status(signature)
            except Exception as e:
                logger.debug(f"Status query {attempt}/{self.policy.max_attempts} for {signature[:16]}... failed: {e}")
                status = None

            if status is not None and status.finalized:
                if status.err is None:
                    logger.info(f"✓ Finalized: {signature}")
                    return ConfirmationOutcome(
                        signature=signature,
                        status=ConfirmationStatus.CONFIRMED,
                        attempts=attempt
                    )

                logger.error(f"✗ Finalized with error: {signature} ({status.err})")
                return ConfirmationOutcome(
                    signature=signature,
                    status=ConfirmationStatus.FAILED,
                    attempts=attempt,
                    error=status.err
                )

            if attempt < self.policy.max_attempts:
                await self._sleep(self.policy.interval_seconds)

        logger.warning(
            f"⚠ Confirmation timeout for {signature} "
            f"after {self.policy.max_attempts} attempts"
        )
        return ConfirmationOutcome(
            signature=signature,
            status=ConfirmationStatus.TIMED_OUT,
            attempts=self.policy.max_attempts
        )

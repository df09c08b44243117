"""
Batch Transfer System

Sends a list of SOL transfers in parallel, then polls every accepted
transaction in parallel until it is finalized or the polling budget runs out.

Components:
- transfer_models: Requests, per-item outcomes and the batch aggregate
- ledger_rpc: Shared Solana RPC handle, keypair/address/transaction helpers
- transfer_engine: Submitter and two-phase batch orchestrator
- confirmation_poller: Fixed-interval, bounded-attempt status polling
- result_reporter: Summary aggregation and console output
- batch_config_parser: Batch YAML loader and spreadsheet importer
- cli: Command-line entrypoint

Per-transfer lifecycle:
Pending -> Submitted -> Confirmed | Failed | TimedOut
Pending -> SubmissionFailed
"""

from .transfer_models import (
    TransferRequest,
    SubmissionError,
    SubmissionErrorKind,
    SubmissionOutcome,
    ConfirmationStatus,
    ConfirmationOutcome,
    BatchResult,
)
from .ledger_rpc import (
    LedgerRpc,
    SignatureStatus,
    LAMPORTS_PER_SOL,
    sol_to_lamports,
)
from .confirmation_poller import (
    ConfirmationPoller,
    PollingPolicy,
)
from .transfer_engine import (
    BatchTransferEngine,
    TransactionSubmitter,
    graceful_shutdown,
)
from .result_reporter import (
    summarize,
    format_summary,
)
from .batch_config_parser import (
    BatchConfig,
    BatchConfigError,
    TransferSheetParser,
    load_batch_config,
)

__all__ = [
    # Models
    'TransferRequest',
    'SubmissionError',
    'SubmissionErrorKind',
    'SubmissionOutcome',
    'ConfirmationStatus',
    'ConfirmationOutcome',
    'BatchResult',

    # Ledger access
    'LedgerRpc',
    'SignatureStatus',
    'LAMPORTS_PER_SOL',
    'sol_to_lamports',

    # Pipeline
    'ConfirmationPoller',
    'PollingPolicy',
    'BatchTransferEngine',
    'TransactionSubmitter',
    'graceful_shutdown',

    # Reporting
    'summarize',
    'format_summary',

    # Configuration
    'BatchConfig',
    'BatchConfigError',
    'TransferSheetParser',
    'load_batch_config',
]

__version__ = '1.0.0'

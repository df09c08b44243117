"""
Result Reporter

Pure aggregation and formatting of batch outcomes. No remote calls.
"""

from typing import Sequence

from .transfer_models import (
    BatchResult,
    ConfirmationOutcome,
    SubmissionOutcome,
)


def summarize(
    submissions: Sequence[SubmissionOutcome],
    confirmations: Sequence[ConfirmationOutcome],
    started_at: float,
    finished_at: float
) -> BatchResult:
    """Build a BatchResult from outcomes and monotonic start/finish timestamps"""
    return BatchResult(
        submissions=list(submissions),
        confirmations=list(confirmations),
        elapsed_seconds=max(0.0, finished_at - started_at)
    )


def format_submission_line(outcome: SubmissionOutcome) -> str:
    if outcome.success:
        return f"✔ Sent tx: {outcome.signature} ({outcome.elapsed_seconds:.2f}s)"
    return f"✘ Failed to send tx to {outcome.request.display_name}: {outcome.error} ({outcome.elapsed_seconds:.2f}s)"


def format_summary(result: BatchResult) -> str:
    lines = [
        "",
        "=" * 60,
        "📦 Transfer complete:",
        "=" * 60,
        f"📤 Submitted: {result.submitted}",
        f"🚫 Failed to submit: {result.submission_failed}",
        f"✅ Successful: {result.confirmed}",
        f"❌ Failed: {result.unconfirmed}",
    ]

    # keep on-chain errors and timeouts apart even though both count as failed
    if result.unconfirmed:
        lines.append(f"   - failed on chain: {result.failed_on_chain}")
        lines.append(f"   - timed out: {result.timed_out}")

    lines.append(f"⏱ Duration: {result.elapsed_seconds:.2f}s")
    lines.append("=" * 60)
    return "\n".join(lines)


def print_summary(result: BatchResult):
    print(format_summary(result))

"""Plan submission and confirmation tracking."""

import asyncio
import logging
import time
from typing import Callable

from web3.exceptions import Web3Exception

from .errors import SubmissionTimeout, SwapError, TransactionReverted
from .types import BatchCall, BatchPlan, PendingSubmission, SubmissionStatus

logger = logging.getLogger(__name__)


class TransactionTracker:
    """Tracks submitted transactions until they succeed, fail or time out.

    A submission that is not confirmed within `timeout` seconds is reported as
    failed even if it later lands on chain. Finished submissions are dropped
    after `display_seconds`.
    """

    def __init__(
        self,
        reader,
        signer=None,
        timeout: float = 60,
        poll_interval: float = 1.0,
        display_seconds: float = 5.0,
        explorer_url: str = "https://basescan.org",
        clock: Callable[[], float] = time.time,
    ):
        self.reader = reader
        self.signer = signer
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.display_seconds = display_seconds
        self.explorer_url = explorer_url
        self.clock = clock
        self.submissions: dict[str, PendingSubmission] = {}

    def add(self, transaction_id: str, label: str, is_batch: bool = False) -> PendingSubmission:
        submission = PendingSubmission(
            transaction_id=transaction_id,
            label=label,
            submitted_at=self.clock(),
            is_batch=is_batch,
        )
        self.submissions[transaction_id] = submission
        logger.info(f"{label}: submitted {transaction_id}")
        return submission

    def finish(self, submission: PendingSubmission, status: SubmissionStatus, error: str | None = None) -> bool:
        """Move a pending submission to its terminal status. Only the first call wins."""
        if submission.status != SubmissionStatus.PENDING:
            return False
        submission.status = status
        submission.error = error
        if status == SubmissionStatus.SUCCESS:
            logger.info(f"{submission.label}: confirmed {submission.transaction_id}")
        else:
            logger.error(f"{submission.label}: failed {submission.transaction_id}: {error}")
        return True

    async def _poll_once(self, submission: PendingSubmission) -> SubmissionStatus | None:
        if submission.is_batch:
            status = await self.signer.get_calls_status(submission.transaction_id)
            if status == "success":
                return SubmissionStatus.SUCCESS
            if status == "failure":
                return SubmissionStatus.FAILED
            return None

        receipt = await self.reader.get_receipt(submission.transaction_id)
        if receipt is None:
            return None
        return SubmissionStatus.SUCCESS if receipt["status"] == 1 else SubmissionStatus.FAILED

    async def _poll_until_final(self, submission: PendingSubmission) -> SubmissionStatus:
        while True:
            try:
                status = await self._poll_once(submission)
            except (Web3Exception, SwapError, ValueError, OSError) as e:
                # Transient read failure; keep polling until the timeout
                logger.warning(f"{submission.label}: status poll failed: {e}")
                status = None
            if status is not None:
                return status
            await asyncio.sleep(self.poll_interval)

    async def wait_for_confirmation(self, submission: PendingSubmission) -> PendingSubmission:
        try:
            status = await asyncio.wait_for(self._poll_until_final(submission), self.timeout)
        except asyncio.TimeoutError:
            if self.finish(submission, SubmissionStatus.FAILED, f"Not confirmed within {self.timeout:g}s"):
                submission.timed_out = True
        else:
            error = None if status == SubmissionStatus.SUCCESS else "Transaction reverted"
            self.finish(submission, status, error)
        finally:
            asyncio.get_running_loop().call_later(
                self.display_seconds, self.submissions.pop, submission.transaction_id, None
            )
        return submission

    def explorer_link(self, transaction_id: str) -> str | None:
        if not transaction_id.startswith("0x") or len(transaction_id) != 66:
            return None
        return f"{self.explorer_url}/tx/{transaction_id}"


class SwapExecutor:
    """Submits planned calls through the signer and tracks them."""

    def __init__(self, signer, tracker: TransactionTracker):
        self.signer = signer
        self.tracker = tracker

    async def submit_call(self, call: BatchCall) -> PendingSubmission:
        tx_hash = await self.signer.send_call(call)
        return self.tracker.add(tx_hash, call.label)

    async def submit_atomic(self, plan: BatchPlan) -> PendingSubmission:
        bundle_id = await self.signer.send_calls(plan.calls)
        label = " + ".join(c.label for c in plan.calls if c.label)
        return self.tracker.add(bundle_id, label, is_batch=True)

    async def confirm_or_raise(self, submission: PendingSubmission) -> PendingSubmission:
        """Wait for a prerequisite step; raise if it did not succeed."""
        await self.tracker.wait_for_confirmation(submission)
        if submission.status != SubmissionStatus.SUCCESS:
            if submission.timed_out:
                raise SubmissionTimeout(f"{submission.label}: {submission.error}")
            raise TransactionReverted(submission.transaction_id, submission.error or "")
        return submission

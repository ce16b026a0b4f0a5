import asyncio
import logging
import socket
from datetime import UTC, datetime, timedelta
from enum import StrEnum

import httpx
from bs4 import BeautifulSoup

from ats_job_aggregator.db import JobStore
from ats_job_aggregator.models import LivenessResult, VerifyAllResult
from ats_job_aggregator.scrapers.base import USER_AGENT

logger = logging.getLogger(__name__)

CHECK_TIMEOUT = 10.0  # seconds
MAX_REDIRECTS = 5
MAX_ATTEMPTS = 3
COOLDOWN_HOURS = 20
BATCH_SIZE = 10
BATCH_DELAY = 1.0  # seconds

CLOSED_PHRASES = [
    "position filled",
    "no longer accepting applications",
    "this job is closed",
    "this position is no longer available",
    "application closed",
    "job closed",
    "posting has closed",
    "applications are closed",
    "opportunity has closed",
]

# Fragments of resolver error messages, for when the gaierror is not chained.
DNS_ERROR_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated with hostname",
)


class VerificationOutcome(StrEnum):
    VERIFIED = "verified"
    FAILED = "failed"
    MARKED_INACTIVE = "marked_inactive"
    SKIPPED = "skipped"


def find_closed_phrase(html: str) -> str | None:
    """Return the first closed-posting phrase found in the page text, if any."""
    page_text = BeautifulSoup(html, "html.parser").get_text(" ").lower()
    page_text = " ".join(page_text.split())
    for phrase in CLOSED_PHRASES:
        if phrase in page_text:
            return phrase
    return None


def _is_dns_failure(exc: BaseException) -> bool:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, socket.gaierror):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    message = str(exc).lower()
    return any(marker in message for marker in DNS_ERROR_MARKERS)


class LivenessChecker:
    """Fetches an apply URL and decides whether the posting behind it is still open."""

    def __init__(self, timeout: float = CHECK_TIMEOUT, max_redirects: int = MAX_REDIRECTS) -> None:
        self.timeout = timeout
        self.max_redirects = max_redirects

    async def check(self, url: str) -> LivenessResult:
        """
        Never raises. A 200 page is still invalid when its text announces
        that the posting is closed.
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                max_redirects=self.max_redirects,
                headers={"User-Agent": USER_AGENT},
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException:
            return LivenessResult(is_valid=False, error="Request timeout")
        except httpx.ConnectError as e:
            if _is_dns_failure(e):
                return LivenessResult(is_valid=False, error="Domain not found")
            return LivenessResult(is_valid=False, error=str(e) or "Connection failed")
        except Exception as e:
            return LivenessResult(is_valid=False, error=str(e) or type(e).__name__)

        status = response.status_code
        if status >= 500:
            return LivenessResult(is_valid=False, error=f"Server error (HTTP {status})")

        if status == 200:
            try:
                phrase = find_closed_phrase(response.text)
            except Exception as e:
                logger.warning(f"Error parsing HTML for closed status of {url}: {e}")
                phrase = None
            if phrase:
                return LivenessResult(
                    is_valid=False, error=f"Job marked as closed on page: {phrase}"
                )
            return LivenessResult(is_valid=True)

        if status == 404:
            return LivenessResult(is_valid=False, error="404 Not Found")
        if status == 410:
            return LivenessResult(is_valid=False, error="410 Gone (Job Removed)")
        return LivenessResult(is_valid=False, error=f"HTTP {status}")


class VerificationEngine:
    """
    Re-checks that active jobs are still live and applies the failure
    counter: a success resets it, the third consecutive failure deactivates
    the job. Verification never reactivates an inactive job.
    """

    def __init__(
        self,
        store: JobStore,
        checker: LivenessChecker | None = None,
        *,
        max_attempts: int = MAX_ATTEMPTS,
        cooldown_hours: int = COOLDOWN_HOURS,
        batch_size: int = BATCH_SIZE,
        batch_delay: float = BATCH_DELAY,
    ) -> None:
        self.store = store
        self.checker = checker or LivenessChecker()
        self.max_attempts = max_attempts
        self.cooldown_hours = cooldown_hours
        self.batch_size = batch_size
        self.batch_delay = batch_delay

    async def verify_one(self, job_id: int, now: datetime | None = None) -> VerificationOutcome:
        job = self.store.find_by_id(job_id)
        if job is None:
            logger.warning(f"Job {job_id} not found")
            return VerificationOutcome.SKIPPED
        if not job.is_active:
            logger.debug(f"Skipping inactive job {job_id}")
            return VerificationOutcome.SKIPPED

        result = await self.checker.check(job.apply_url)
        checked_at = now or datetime.now(tz=UTC)

        if result.is_valid:
            self.store.update_verification(
                job_id,
                last_verified=checked_at,
                verification_attempts=0,
                last_verification_error=None,
                is_active=True,
            )
            logger.debug(f"Job {job_id} verified successfully")
            return VerificationOutcome.VERIFIED

        attempts = job.verification_attempts + 1
        deactivate = attempts >= self.max_attempts
        self.store.update_verification(
            job_id,
            last_verified=checked_at,
            verification_attempts=attempts,
            last_verification_error=result.error,
            is_active=not deactivate,
        )

        if deactivate:
            logger.info(
                f"Job {job_id} marked inactive after {attempts} failed attempts. "
                f"Last error: {result.error}"
            )
            return VerificationOutcome.MARKED_INACTIVE

        logger.debug(
            f"Job {job_id} verification failed (attempt {attempts}/{self.max_attempts}): "
            f"{result.error}"
        )
        return VerificationOutcome.FAILED

    async def _verify_safely(self, job_id: int, now: datetime | None) -> VerificationOutcome | None:
        try:
            return await self.verify_one(job_id, now=now)
        except Exception as e:
            logger.error(f"Error verifying job {job_id}: {e}")
            return None

    async def verify_all(self, now: datetime | None = None) -> VerifyAllResult:
        """
        Verify every active job not checked within the cooldown window.

        Jobs run concurrently within a batch; batches run one after another
        with a pause in between. Outcomes are tallied after each batch joins.
        """
        current = now or datetime.now(tz=UTC)
        cutoff = current - timedelta(hours=self.cooldown_hours)
        job_ids = self.store.list_active_jobs_not_verified_since(cutoff)
        logger.info(f"Starting verification for {len(job_ids)} active jobs")

        result = VerifyAllResult()
        for start in range(0, len(job_ids), self.batch_size):
            batch = job_ids[start : start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self._verify_safely(job_id, now) for job_id in batch)
            )

            for outcome in outcomes:
                if outcome is None:
                    result.errors += 1
                elif outcome is VerificationOutcome.MARKED_INACTIVE:
                    result.marked_inactive += 1
                else:
                    result.verified += 1

            if start + self.batch_size < len(job_ids):
                await asyncio.sleep(self.batch_delay)

        logger.info(
            f"Verification complete: {result.verified} verified, "
            f"{result.marked_inactive} marked inactive, {result.errors} errors"
        )
        return result

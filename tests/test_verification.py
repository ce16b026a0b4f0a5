import socket
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from ats_job_aggregator.fingerprint import fingerprint
from ats_job_aggregator.models import LivenessResult
from ats_job_aggregator.verification import (
    LivenessChecker,
    VerificationEngine,
    VerificationOutcome,
    find_closed_phrase,
)

JOB_URL = "https://boards.greenhouse.io/stripe/jobs/123"

OPEN_PAGE = """
<html><body>
  <h1>Senior Software Engineer</h1>
  <p>We are hiring. Apply below.</p>
</body></html>
"""

CLOSED_PAGE = """
<html><body>
  <h1>Senior Software Engineer</h1>
  <div class="notice">This position is
     NO LONGER ACCEPTING applications.</div>
</body></html>
"""


def _checker(*results):
    checker = MagicMock(spec=LivenessChecker)
    checker.check = AsyncMock(side_effect=list(results))
    return checker


def _seed(db, posting, t0):
    job, _ = db.upsert_by_fingerprint(fingerprint(posting), posting.model_dump(), now=t0)
    return job


# --- find_closed_phrase ---


def test_find_closed_phrase_matches_across_markup():
    assert find_closed_phrase(CLOSED_PAGE) == "no longer accepting applications"


def test_find_closed_phrase_open_page():
    assert find_closed_phrase(OPEN_PAGE) is None


# --- LivenessChecker ---


@pytest.mark.asyncio
async def test_check_open_page(httpx_mock):
    httpx_mock.add_response(url=JOB_URL, text=OPEN_PAGE)

    result = await LivenessChecker().check(JOB_URL)

    assert result == LivenessResult(is_valid=True)


@pytest.mark.asyncio
async def test_check_closed_page_is_distinct_from_404(httpx_mock):
    """Test that a 200 page announcing closure fails with its own reason."""
    httpx_mock.add_response(url=JOB_URL, text=CLOSED_PAGE)

    result = await LivenessChecker().check(JOB_URL)

    assert result.is_valid is False
    assert result.error == "Job marked as closed on page: no longer accepting applications"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, error",
    [
        (404, "404 Not Found"),
        (410, "410 Gone (Job Removed)"),
        (403, "HTTP 403"),
        (500, "Server error (HTTP 500)"),
        (503, "Server error (HTTP 503)"),
    ],
)
async def test_check_status_codes(httpx_mock, status, error):
    httpx_mock.add_response(url=JOB_URL, status_code=status)

    result = await LivenessChecker().check(JOB_URL)

    assert result.is_valid is False
    assert result.error == error


@pytest.mark.asyncio
async def test_check_follows_redirects(httpx_mock):
    httpx_mock.add_response(
        url=JOB_URL, status_code=301, headers={"Location": "https://stripe.com/jobs/123"}
    )
    httpx_mock.add_response(url="https://stripe.com/jobs/123", text=OPEN_PAGE)

    result = await LivenessChecker().check(JOB_URL)

    assert result.is_valid is True


@pytest.mark.asyncio
async def test_check_redirect_loop_is_bounded(httpx_mock):
    """Test that a redirect loop stops at max_redirects and is reported as invalid."""
    httpx_mock.add_response(
        url=JOB_URL, status_code=302, headers={"Location": JOB_URL}, is_reusable=True
    )

    result = await LivenessChecker(max_redirects=2).check(JOB_URL)

    assert result.is_valid is False
    assert result.error == "Exceeded maximum allowed redirects."


@pytest.mark.asyncio
async def test_check_timeout(httpx_mock):
    httpx_mock.add_exception(httpx.ReadTimeout("timed out"), url=JOB_URL)

    result = await LivenessChecker().check(JOB_URL)

    assert result.error == "Request timeout"


@pytest.mark.asyncio
async def test_check_dns_failure_from_message(httpx_mock):
    httpx_mock.add_exception(
        httpx.ConnectError("[Errno -2] Name or service not known"), url=JOB_URL
    )

    result = await LivenessChecker().check(JOB_URL)

    assert result.error == "Domain not found"


@pytest.mark.asyncio
async def test_check_dns_failure_from_chained_gaierror(httpx_mock):
    try:
        try:
            raise socket.gaierror(-3, "lookup failed")
        except socket.gaierror as e:
            raise httpx.ConnectError("connection failed") from e
    except httpx.ConnectError as chained:
        error = chained

    httpx_mock.add_exception(error, url=JOB_URL)

    result = await LivenessChecker().check(JOB_URL)

    assert result.error == "Domain not found"


@pytest.mark.asyncio
async def test_check_connection_refused(httpx_mock):
    httpx_mock.add_exception(httpx.ConnectError("[Errno 111] Connection refused"), url=JOB_URL)

    result = await LivenessChecker().check(JOB_URL)

    assert result.is_valid is False
    assert result.error == "[Errno 111] Connection refused"


# --- VerificationEngine.verify_one ---


@pytest.mark.asyncio
async def test_verify_one_success_resets_failures(db, sample_posting, t0):
    job = _seed(db, sample_posting, t0)
    db.update_verification(
        job.id,
        last_verified=t0,
        verification_attempts=2,
        last_verification_error="Request timeout",
        is_active=True,
    )
    engine = VerificationEngine(db, _checker(LivenessResult(is_valid=True)))

    checked = t0 + timedelta(hours=21)
    outcome = await engine.verify_one(job.id, now=checked)

    assert outcome is VerificationOutcome.VERIFIED
    stored = db.find_by_id(job.id)
    assert stored.verification_attempts == 0
    assert stored.last_verification_error is None
    assert stored.last_verified == checked
    assert stored.is_active is True


@pytest.mark.asyncio
async def test_three_failures_deactivate_job(db, sample_posting, t0):
    """Test the failure counter: two failures keep the job, the third removes it."""
    job = _seed(db, sample_posting, t0)
    failure = LivenessResult(is_valid=False, error="404 Not Found")
    engine = VerificationEngine(db, _checker(failure, failure, failure))

    first = await engine.verify_one(job.id, now=t0 + timedelta(hours=1))
    second = await engine.verify_one(job.id, now=t0 + timedelta(hours=2))
    after_two = db.find_by_id(job.id)
    third = await engine.verify_one(job.id, now=t0 + timedelta(hours=3))

    assert (first, second, third) == (
        VerificationOutcome.FAILED,
        VerificationOutcome.FAILED,
        VerificationOutcome.MARKED_INACTIVE,
    )
    assert after_two.is_active is True
    assert after_two.verification_attempts == 2
    stored = db.find_by_id(job.id)
    assert stored.is_active is False
    assert stored.verification_attempts == 3
    assert stored.last_verification_error == "404 Not Found"

    assert await engine.verify_one(job.id, now=t0 + timedelta(hours=4)) is (
        VerificationOutcome.SKIPPED
    )
    assert db.find_by_id(job.id).is_active is False


@pytest.mark.asyncio
async def test_failure_then_success_starts_over(db, sample_posting, t0):
    job = _seed(db, sample_posting, t0)
    failure = LivenessResult(is_valid=False, error="Request timeout")
    engine = VerificationEngine(
        db, _checker(failure, failure, LivenessResult(is_valid=True), failure)
    )

    for hours in range(1, 5):
        await engine.verify_one(job.id, now=t0 + timedelta(hours=hours))

    stored = db.find_by_id(job.id)
    assert stored.is_active is True
    assert stored.verification_attempts == 1


@pytest.mark.asyncio
async def test_verify_one_skips_inactive_and_missing_jobs(db, sample_posting, t0):
    job = _seed(db, sample_posting, t0)
    db.update_verification(
        job.id,
        last_verified=t0,
        verification_attempts=3,
        last_verification_error="410 Gone (Job Removed)",
        is_active=False,
    )
    checker = _checker()
    engine = VerificationEngine(db, checker)

    assert await engine.verify_one(job.id) is VerificationOutcome.SKIPPED
    assert await engine.verify_one(999) is VerificationOutcome.SKIPPED
    checker.check.assert_not_called()
    assert db.find_by_id(job.id).is_active is False


# --- VerificationEngine.verify_all ---


@pytest.mark.asyncio
async def test_verify_all_respects_cooldown(db, make_posting, t0):
    """Test that only jobs not verified within the cooldown are checked."""
    due = _seed(db, make_posting("Due Job"), t0)
    recent = _seed(db, make_posting("Recent Job"), t0 + timedelta(hours=10))
    checker = _checker(LivenessResult(is_valid=True))
    engine = VerificationEngine(db, checker, batch_delay=0)

    result = await engine.verify_all(now=t0 + timedelta(hours=21))

    assert result.verified == 1
    checker.check.assert_awaited_once_with(str(due.apply_url))
    assert db.find_by_id(recent.id).last_verified == t0 + timedelta(hours=10)


@pytest.mark.asyncio
async def test_verify_all_tallies_outcomes(db, make_posting, t0):
    ok = _seed(db, make_posting("Ok Job"), t0)
    dying = _seed(db, make_posting("Dying Job"), t0)
    flaky = _seed(db, make_posting("Flaky Job"), t0)
    db.update_verification(
        dying.id,
        last_verified=t0,
        verification_attempts=2,
        last_verification_error="404 Not Found",
        is_active=True,
    )

    results = {
        ok.apply_url: LivenessResult(is_valid=True),
        dying.apply_url: LivenessResult(is_valid=False, error="404 Not Found"),
        flaky.apply_url: LivenessResult(is_valid=False, error="Request timeout"),
    }
    checker = MagicMock(spec=LivenessChecker)
    checker.check = AsyncMock(side_effect=lambda url: results[url])
    engine = VerificationEngine(db, checker, batch_delay=0)

    result = await engine.verify_all(now=t0 + timedelta(hours=21))

    # A failed-but-still-active job counts as verified
    assert result.model_dump() == {"verified": 2, "marked_inactive": 1, "errors": 0}
    assert db.find_by_id(dying.id).is_active is False
    assert db.find_by_id(flaky.id).verification_attempts == 1


@pytest.mark.asyncio
async def test_verify_all_counts_errors_without_stopping(db, make_posting, t0):
    jobs = [_seed(db, make_posting(f"Job {i}"), t0) for i in range(3)]
    checker = _checker(
        LivenessResult(is_valid=True),
        RuntimeError("boom"),
        LivenessResult(is_valid=True),
    )
    engine = VerificationEngine(db, checker, batch_size=1, batch_delay=0)

    result = await engine.verify_all(now=t0 + timedelta(hours=21))

    assert result.verified == 2
    assert result.errors == 1
    assert db.find_by_id(jobs[2].id).last_verified == t0 + timedelta(hours=21)


@pytest.mark.asyncio
async def test_verify_all_batches_with_delay(db, make_posting, t0):
    """Test that a pause happens between batches but not after the last one."""
    for i in range(5):
        _seed(db, make_posting(f"Job {i}"), t0)
    checker = MagicMock(spec=LivenessChecker)
    checker.check = AsyncMock(return_value=LivenessResult(is_valid=True))
    engine = VerificationEngine(db, checker, batch_size=2, batch_delay=1.5)

    with patch(
        "ats_job_aggregator.verification.asyncio.sleep", new_callable=AsyncMock
    ) as mock_sleep:
        result = await engine.verify_all(now=t0 + timedelta(hours=21))

    assert result.verified == 5
    assert checker.check.await_count == 5
    assert mock_sleep.await_count == 2
    mock_sleep.assert_awaited_with(1.5)


@pytest.mark.asyncio
async def test_verify_all_with_nothing_due(db):
    checker = _checker()
    engine = VerificationEngine(db, checker)

    result = await engine.verify_all()

    assert result.model_dump() == {"verified": 0, "marked_inactive": 0, "errors": 0}
    checker.check.assert_not_called()

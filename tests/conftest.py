import os
from datetime import UTC, datetime

import pytest

# Set environment variables for tests before any imports happen
os.environ["GEMINI_API_KEY"] = ""
os.environ["DB_PATH"] = ":memory:"
os.environ["TARGET_COMPANIES"] = "greenhouse:stripe,lever:netlify"

from ats_job_aggregator.config import AppConfig  # noqa: E402
from ats_job_aggregator.db import Database  # noqa: E402
from ats_job_aggregator.models import NormalizedPosting  # noqa: E402

T0 = datetime(2026, 1, 10, 2, 0, tzinfo=UTC)


@pytest.fixture
def db():
    """An in-memory store, closed after the test."""
    with Database(db_path=":memory:") as test_db:
        yield test_db


@pytest.fixture
def app_config():
    """Config with AI classification disabled."""
    return AppConfig(target_companies=(("greenhouse", "stripe"), ("lever", "netlify")))


@pytest.fixture
def sample_posting():
    """A reusable scraped posting."""
    return NormalizedPosting(
        title="Senior Software Engineer",
        company="Stripe",
        location="San Francisco, CA",
        job_type="full-time",
        experience_level="5+",
        degree_required="any",
        description="Build payment infrastructure with Python and Go.",
        apply_url="https://boards.greenhouse.io/stripe/jobs/123",
        source="greenhouse",
        source_id="123",
        posted_date=T0,
    )


def _make_posting(title: str, **overrides) -> NormalizedPosting:
    fields = {
        "title": title,
        "company": "Acme",
        "location": "Remote",
        "apply_url": f"https://jobs.example.com/{title.lower().replace(' ', '-')}",
        "source": "lever",
        "posted_date": T0,
    }
    fields.update(overrides)
    return NormalizedPosting(**fields)


@pytest.fixture
def make_posting():
    """Factory for postings that differ only by title unless overridden."""
    return _make_posting


@pytest.fixture
def t0():
    """A fixed reference time for store and verification tests."""
    return T0

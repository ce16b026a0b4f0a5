import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

import httpx
from pydantic import ValidationError

from ats_job_aggregator.models import NormalizedPosting

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
INITIAL_BACKOFF = 2  # seconds
HTTP_TIMEOUT = 15.0  # seconds
USER_AGENT = "ATSJobAggregator/0.1 (+mailto:jobs@ats-job-aggregator.dev)"


def display_company(company_id: str) -> str:
    """Turn a board slug into a display name ("stripe" -> "Stripe")."""
    return company_id[:1].upper() + company_id[1:]


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse an ISO-8601 string or an epoch-milliseconds number into an
    aware UTC datetime. Returns None for anything else.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        try:
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is None:
            return dt.replace(tzinfo=UTC)
        return dt.astimezone(UTC)
    return None


class BaseScraper(ABC):
    """
    Abstract base class for all ATS scrapers.

    Subclasses describe how to request a company's board and how to turn
    each raw item into a NormalizedPosting; the retry loop and the
    fail-soft behaviour live here. scrape() never raises: any network or
    parse failure is logged and yields an empty list.
    """

    SOURCE_NAME: str = ""

    async def scrape(
        self,
        company_id: str,
        max_retries: int = MAX_RETRIES,
        initial_backoff: float = INITIAL_BACKOFF,
    ) -> list[NormalizedPosting]:
        """Fetch and normalize every posting on the company's board."""
        for attempt in range(1, max_retries + 1):
            try:
                async with httpx.AsyncClient(
                    timeout=HTTP_TIMEOUT,
                    headers={"User-Agent": USER_AGENT},
                    follow_redirects=True,
                ) as client:
                    response = await self._request(client, company_id)
                    response.raise_for_status()

                payload = response.json()
                return self._parse_items(self._extract_items(payload), company_id)

            except httpx.HTTPError as e:
                if attempt == max_retries:
                    logger.error(
                        f"{self.SOURCE_NAME} scrape failed for {company_id} "
                        f"after {max_retries} attempts: {e}"
                    )
                else:
                    backoff = initial_backoff * (2 ** (attempt - 1))
                    logger.warning(
                        f"{self.SOURCE_NAME} attempt {attempt}/{max_retries} failed for "
                        f"{company_id}: {e}. Retrying in {backoff}s..."
                    )
                    await asyncio.sleep(backoff)
            except Exception as e:
                logger.error(f"{self.SOURCE_NAME} scrape failed for {company_id}: {e}")
                break

        return []

    def _parse_items(self, items: list[Any], company_id: str) -> list[NormalizedPosting]:
        """Normalize raw items, skipping the ones that do not validate."""
        postings: list[NormalizedPosting] = []
        for item in items:
            try:
                postings.append(self._parse_job(item, company_id))
            except (ValidationError, KeyError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed {self.SOURCE_NAME} posting for {company_id}: {e}")
        return postings

    @abstractmethod
    async def _request(self, client: httpx.AsyncClient, company_id: str) -> httpx.Response:
        """Issue the board request for a company."""

    @abstractmethod
    def _extract_items(self, payload: Any) -> list[Any]:
        """Pull the list of raw postings out of the decoded response body."""

    @abstractmethod
    def _parse_job(self, item: Any, company_id: str) -> NormalizedPosting:
        """Convert one raw posting into a NormalizedPosting."""

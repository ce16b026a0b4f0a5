from datetime import UTC, datetime
from typing import Any

import httpx

from ats_job_aggregator.heuristics import infer_experience_level, infer_job_type
from ats_job_aggregator.models import NormalizedPosting
from ats_job_aggregator.scrapers.base import BaseScraper, display_company, parse_timestamp


class LeverScraper(BaseScraper):
    """
    Scrapes the public Lever postings endpoint
    (https://api.lever.co/v0/postings/<company>?mode=json).
    The "commitment" category is used as a job type hint.
    """

    BASE_URL = "https://api.lever.co/v0/postings"
    SOURCE_NAME = "lever"

    async def _request(self, client: httpx.AsyncClient, company_id: str) -> httpx.Response:
        return await client.get(f"{self.BASE_URL}/{company_id}", params={"mode": "json"})

    def _extract_items(self, payload: Any) -> list[Any]:
        if not isinstance(payload, list):
            return []
        return payload

    def _parse_job(self, item: Any, company_id: str) -> NormalizedPosting:
        title = item["text"]
        categories = item.get("categories") or {}
        return NormalizedPosting(
            title=title,
            company=display_company(company_id),
            location=categories.get("location") or "Remote",
            job_type=infer_job_type(title, categories.get("commitment")),
            experience_level=infer_experience_level(title),
            degree_required="any",
            description=item.get("descriptionPlain") or "",
            apply_url=item["hostedUrl"],
            source=self.SOURCE_NAME,
            source_id=item.get("id"),
            posted_date=parse_timestamp(item.get("createdAt")) or datetime.now(tz=UTC),
        )

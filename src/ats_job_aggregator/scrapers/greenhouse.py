import html
from datetime import UTC, datetime
from typing import Any

import httpx
from bs4 import BeautifulSoup

from ats_job_aggregator.heuristics import infer_experience_level, infer_job_type
from ats_job_aggregator.models import MAX_DESCRIPTION_LENGTH, NormalizedPosting
from ats_job_aggregator.scrapers.base import BaseScraper, display_company, parse_timestamp


class GreenhouseScraper(BaseScraper):
    """
    Scrapes a company board through the public Greenhouse Job Board API
    (https://boards-api.greenhouse.io/v1/boards/<company>/jobs).
    """

    BASE_URL = "https://boards-api.greenhouse.io/v1/boards"
    SOURCE_NAME = "greenhouse"

    async def _request(self, client: httpx.AsyncClient, company_id: str) -> httpx.Response:
        return await client.get(
            f"{self.BASE_URL}/{company_id}/jobs", params={"content": "true"}
        )

    def _extract_items(self, payload: Any) -> list[Any]:
        return payload.get("jobs") or []

    def _parse_job(self, item: Any, company_id: str) -> NormalizedPosting:
        title = item["title"]
        location = (item.get("location") or {}).get("name")
        return NormalizedPosting(
            title=title,
            company=display_company(company_id),
            location=location or "Remote",
            job_type=infer_job_type(title),
            experience_level=infer_experience_level(title),
            degree_required="any",
            description=self.clean_html(item.get("content") or ""),
            apply_url=item["absolute_url"],
            source=self.SOURCE_NAME,
            source_id=str(item["id"]),
            posted_date=parse_timestamp(item.get("updated_at")) or datetime.now(tz=UTC),
        )

    @staticmethod
    def clean_html(content: str) -> str:
        """
        Greenhouse returns the job body as entity-escaped HTML
        ("&lt;p&gt;..."), so unescape before stripping tags.
        """
        if not content:
            return ""
        soup = BeautifulSoup(html.unescape(content), "html.parser")
        return soup.get_text(" ", strip=True)[:MAX_DESCRIPTION_LENGTH]

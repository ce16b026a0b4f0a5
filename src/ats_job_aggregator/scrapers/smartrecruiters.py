from datetime import UTC, datetime
from typing import Any

import httpx

from ats_job_aggregator.heuristics import infer_experience_level, infer_job_type
from ats_job_aggregator.models import NormalizedPosting
from ats_job_aggregator.scrapers.base import BaseScraper, parse_timestamp

PAGE_LIMIT = 100


class SmartRecruitersScraper(BaseScraper):
    """
    Scrapes the public SmartRecruiters Posting API
    (https://api.smartrecruiters.com/v1/companies/<company>/postings).
    Only the first page of up to 100 postings is read.
    """

    BASE_URL = "https://api.smartrecruiters.com/v1/companies"
    JOBS_URL = "https://jobs.smartrecruiters.com"
    SOURCE_NAME = "smartrecruiters"

    async def _request(self, client: httpx.AsyncClient, company_id: str) -> httpx.Response:
        return await client.get(
            f"{self.BASE_URL}/{company_id}/postings", params={"limit": PAGE_LIMIT}
        )

    def _extract_items(self, payload: Any) -> list[Any]:
        return (payload or {}).get("content") or []

    def _parse_job(self, item: Any, company_id: str) -> NormalizedPosting:
        title = item["name"]
        posting_id = item["id"]

        location_data = item.get("location") or {}
        if location_data.get("city"):
            parts = [location_data["city"], location_data.get("country")]
            location = ", ".join(part for part in parts if part)
        else:
            location = "Remote"

        employment = (item.get("typeOfEmployment") or {}).get("label")
        level = (item.get("experienceLevel") or {}).get("label")
        sections = (item.get("jobAd") or {}).get("sections") or {}
        description = (sections.get("jobDescription") or {}).get("text") or ""

        return NormalizedPosting(
            title=title,
            company=(item.get("company") or {}).get("name") or company_id,
            location=location,
            job_type=infer_job_type(title, employment),
            experience_level=infer_experience_level(title, level),
            degree_required="any",
            description=description,
            apply_url=item.get("applyUrl") or f"{self.JOBS_URL}/{company_id}/{posting_id}",
            source=self.SOURCE_NAME,
            source_id=posting_id,
            posted_date=parse_timestamp(item.get("releasedDate")) or datetime.now(tz=UTC),
        )

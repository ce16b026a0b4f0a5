from datetime import UTC, datetime
from typing import Any

import httpx

from ats_job_aggregator.heuristics import infer_experience_level, infer_job_type
from ats_job_aggregator.models import NormalizedPosting
from ats_job_aggregator.scrapers.base import BaseScraper, display_company, parse_timestamp

JOB_BOARD_QUERY = """
query ApiJobBoardWithTeams($organizationHostedJobsPageName: String!) {
  jobBoard: jobBoardWithTeams(
    organizationHostedJobsPageName: $organizationHostedJobsPageName
  ) {
    jobPostings {
      id
      title
      locationName
      employmentType
      publishedAt
    }
  }
}
"""


class AshbyScraper(BaseScraper):
    """
    Scrapes an Ashby-hosted board through its GraphQL endpoint
    (https://jobs.ashbyhq.com/api/non-user-graphql).
    """

    GRAPHQL_URL = "https://jobs.ashbyhq.com/api/non-user-graphql"
    BOARD_URL = "https://jobs.ashbyhq.com"
    SOURCE_NAME = "ashby"

    async def _request(self, client: httpx.AsyncClient, company_id: str) -> httpx.Response:
        return await client.post(
            self.GRAPHQL_URL,
            json={
                "operationName": "ApiJobBoardWithTeams",
                "variables": {"organizationHostedJobsPageName": company_id},
                "query": JOB_BOARD_QUERY,
            },
        )

    def _extract_items(self, payload: Any) -> list[Any]:
        job_board = ((payload or {}).get("data") or {}).get("jobBoard") or {}
        return job_board.get("jobPostings") or []

    def _parse_job(self, item: Any, company_id: str) -> NormalizedPosting:
        title = item["title"]
        posting_id = item["id"]
        return NormalizedPosting(
            title=title,
            company=display_company(company_id),
            location=item.get("locationName") or "Remote",
            job_type=infer_job_type(title, item.get("employmentType")),
            experience_level=infer_experience_level(title),
            degree_required="any",
            description="",
            apply_url=f"{self.BOARD_URL}/{company_id}/{posting_id}",
            source=self.SOURCE_NAME,
            source_id=posting_id,
            posted_date=parse_timestamp(item.get("publishedAt")) or datetime.now(tz=UTC),
        )

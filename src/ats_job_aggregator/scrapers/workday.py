import logging

from ats_job_aggregator.models import NormalizedPosting

logger = logging.getLogger(__name__)


class WorkdayScraper:
    """
    Placeholder for Workday boards (https://<company>.wd1.myworkdayjobs.com).

    Workday career sites render their listings client-side and have no
    public JSON feed, so they need a headless browser. Until one is wired
    in, scrape() logs a warning and returns no postings.
    """

    SOURCE_NAME = "workday"

    async def scrape(self, company_id: str, **_: object) -> list[NormalizedPosting]:
        logger.warning(
            f"Workday scraping for {company_id} requires browser rendering; "
            f"returning no postings."
        )
        return []

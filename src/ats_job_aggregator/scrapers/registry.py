from typing import Protocol

from ats_job_aggregator.models import NormalizedPosting
from ats_job_aggregator.scrapers.ashby import AshbyScraper
from ats_job_aggregator.scrapers.greenhouse import GreenhouseScraper
from ats_job_aggregator.scrapers.lever import LeverScraper
from ats_job_aggregator.scrapers.smartrecruiters import SmartRecruitersScraper
from ats_job_aggregator.scrapers.workday import WorkdayScraper


class Scraper(Protocol):
    SOURCE_NAME: str

    async def scrape(self, company_id: str) -> list[NormalizedPosting]: ...


class UnknownSourceError(ValueError):
    """Raised when a source name has no registered scraper."""

    def __init__(self, source: str) -> None:
        super().__init__(f"Unknown source: {source}")
        self.source = source


SCRAPERS: dict[str, type[Scraper]] = {
    GreenhouseScraper.SOURCE_NAME: GreenhouseScraper,
    LeverScraper.SOURCE_NAME: LeverScraper,
    AshbyScraper.SOURCE_NAME: AshbyScraper,
    SmartRecruitersScraper.SOURCE_NAME: SmartRecruitersScraper,
    WorkdayScraper.SOURCE_NAME: WorkdayScraper,
}


def get_scraper(source: str) -> Scraper:
    """Return a scraper for the given source name, or raise UnknownSourceError."""
    try:
        scraper_class = SCRAPERS[source.strip().lower()]
    except KeyError:
        raise UnknownSourceError(source) from None
    return scraper_class()

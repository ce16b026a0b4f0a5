import logging
from datetime import UTC, datetime, timedelta

from ats_job_aggregator.classifier import AIClassifier
from ats_job_aggregator.config import AppConfig
from ats_job_aggregator.db import JobStore
from ats_job_aggregator.models import (
    Classification,
    CompanyIngestResult,
    FullScrapeResult,
    ReclassifyResult,
)
from ats_job_aggregator.pipeline import IngestionPipeline
from ats_job_aggregator.scrapers.registry import get_scraper
from ats_job_aggregator.verification import MAX_ATTEMPTS

logger = logging.getLogger(__name__)


class JobAggregator:
    """
    Entry points the scheduler and operators call: scrape one company,
    scrape every configured company, and (re)classify stored jobs.
    """

    def __init__(self, store: JobStore, classifier: AIClassifier, config: AppConfig) -> None:
        self.store = store
        self.classifier = classifier
        self.config = config
        self.pipeline = IngestionPipeline(store, classifier)

    async def ingest_company(self, source: str, company_id: str) -> CompanyIngestResult:
        """
        Scrape one company board and ingest its postings.
        Raises UnknownSourceError before touching the store if the source is not registered.
        """
        scraper = get_scraper(source)
        postings = await scraper.scrape(company_id)
        result = await self.pipeline.process(postings)
        logger.info(
            f"Scraped {source}/{company_id}: {len(postings)} found, {result.added} added, "
            f"{result.updated} updated, {result.errors} errors"
        )
        return CompanyIngestResult(jobs_found=len(postings), **result.model_dump())

    async def ingest_all_configured(self, now: datetime | None = None) -> FullScrapeResult:
        """
        Run the full scrape over every configured company, then expire
        jobs that have not been verified within the staleness window.
        One company failing is logged and counted; the run carries on.
        """
        result = FullScrapeResult()
        logger.info(f"Starting full scrape of {len(self.config.target_companies)} companies")

        for source, company_id in self.config.target_companies:
            try:
                company_result = await self.ingest_company(source, company_id)
            except Exception as e:
                logger.error(f"Failed to scrape {source}/{company_id}: {e}")
                result.failed += 1
                continue

            result.successful += 1
            result.total += company_result.jobs_found
            result.added += company_result.added
            result.updated += company_result.updated

        result.expired = self.expire_stale_jobs(now=now)
        logger.info(
            f"Full scrape finished. Total: {result.total}, Added: {result.added}, "
            f"Updated: {result.updated}, Successful: {result.successful}, "
            f"Failed: {result.failed}, Expired: {result.expired}"
        )
        return result

    def expire_stale_jobs(self, now: datetime | None = None) -> int:
        current = now or datetime.now(tz=UTC)
        cutoff = current - timedelta(days=self.config.stale_after_days)
        expired = self.store.mark_stale_inactive(cutoff, MAX_ATTEMPTS)
        if expired:
            logger.info(
                f"Expired {expired} jobs not verified in the last "
                f"{self.config.stale_after_days} days"
            )
        return expired

    async def classify_job(self, job_id: int) -> Classification | None:
        """AI-classify one stored job and write the result back."""
        job = self.store.find_by_id(job_id)
        if job is None:
            logger.warning(f"Job {job_id} not found")
            return None

        classification = await self.classifier.classify(job)
        if classification is None:
            return None

        self.store.update_ai_fields(job_id, classification)
        return classification

    async def reclassify_unclassified(self) -> ReclassifyResult:
        """Run the classifier over active jobs that have never been AI-classified."""
        jobs = self.store.list_unclassified()
        result = ReclassifyResult(total=len(jobs))

        if not self.classifier.is_enabled:
            logger.warning("AI classification disabled; nothing will be reclassified")

        for job in jobs:
            try:
                classification = await self.classifier.classify(job)
                if classification is None:
                    result.failed += 1
                    continue
                self.store.update_ai_fields(job.id, classification)
                result.classified += 1
            except Exception as e:
                logger.error(f"Error reclassifying job {job.id}: {e}")
                result.failed += 1

        logger.info(
            f"Reclassification finished. Total: {result.total}, "
            f"Classified: {result.classified}, Failed: {result.failed}"
        )
        return result

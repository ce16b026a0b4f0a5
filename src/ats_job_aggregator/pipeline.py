import logging
from datetime import datetime
from typing import Any

from ats_job_aggregator.classifier import AIClassifier
from ats_job_aggregator.db import JobStore
from ats_job_aggregator.fingerprint import fingerprint
from ats_job_aggregator.models import Classification, IngestResult, NormalizedPosting

logger = logging.getLogger(__name__)


def merge_fields(
    posting: NormalizedPosting, classification: Classification | None
) -> dict[str, Any]:
    """
    Build the store fields for a posting. Classifier values replace the
    scraped ones only for fields the classifier actually returned.
    """
    fields: dict[str, Any] = posting.model_dump()
    if classification is None:
        return fields

    for key, value in classification.model_dump().items():
        if value is None:
            continue
        fields[key] = value
    fields["ai_classified"] = True
    return fields


class IngestionPipeline:
    """
    Fingerprints, classifies and upserts normalized postings one at a time.
    A failure on one posting is logged and counted, never raised.
    """

    def __init__(self, store: JobStore, classifier: AIClassifier) -> None:
        self.store = store
        self.classifier = classifier

    async def process(
        self, postings: list[NormalizedPosting], now: datetime | None = None
    ) -> IngestResult:
        result = IngestResult()

        for posting in postings:
            try:
                content_hash = fingerprint(posting)
                classification = await self.classifier.classify(posting)
                fields = merge_fields(posting, classification)

                job, created = self.store.upsert_by_fingerprint(content_hash, fields, now=now)

                if created:
                    result.added += 1
                else:
                    result.updated += 1
                if classification is not None:
                    result.ai_classified += 1
                logger.debug(f"{'Added' if created else 'Updated'} job {job.id}: {job.title}")
            except Exception as e:
                logger.error(f"Error processing job '{posting.title}': {e}")
                result.errors += 1

        return result

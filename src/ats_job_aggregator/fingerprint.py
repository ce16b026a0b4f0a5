import hashlib

from ats_job_aggregator.models import NormalizedPosting

FINGERPRINT_DELIMITER = "|"
FINGERPRINT_LENGTH = 64


def fingerprint(posting: NormalizedPosting) -> str:
    """
    Derive the deduplication key for a posting.

    SHA-256 over the lowercased "title|company|location" string. The source
    and its native id are left out, so the same job reported by
    two boards collapses into one stored row.
    """
    content = FINGERPRINT_DELIMITER.join(
        [posting.title, posting.company, posting.location or ""]
    ).lower()
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field, HttpUrl, field_validator

JobType = Literal["internship", "full-time", "part-time", "contract"]
ExperienceLevel = Literal["fresher", "1-3", "3-5", "5+"]
DegreeRequired = Literal["btech", "ballb", "llb", "any"]
Category = Literal[
    "Engineering",
    "Design",
    "Marketing",
    "Sales",
    "Finance",
    "Legal",
    "HR",
    "Operations",
    "Data Science",
    "Product",
    "Customer Support",
    "Other",
]

JOB_TYPES: tuple[str, ...] = ("internship", "full-time", "part-time", "contract")
EXPERIENCE_LEVELS: tuple[str, ...] = ("fresher", "1-3", "3-5", "5+")
DEGREES: tuple[str, ...] = ("btech", "ballb", "llb", "any")
CATEGORIES: tuple[str, ...] = (
    "Engineering",
    "Design",
    "Marketing",
    "Sales",
    "Finance",
    "Legal",
    "HR",
    "Operations",
    "Data Science",
    "Product",
    "Customer Support",
    "Other",
)

MAX_DESCRIPTION_LENGTH = 5000
MAX_SKILLS = 10


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class NormalizedPosting(BaseModel):
    """
    Standardized model for a scraped job posting.
    All scrapers must return instances of this model.
    """

    title: str
    company: str
    location: str | None = None
    job_type: JobType = "full-time"
    experience_level: ExperienceLevel = "3-5"
    degree_required: DegreeRequired = "any"
    description: str | None = None
    apply_url: HttpUrl
    source: str
    source_id: str | None = None
    posted_date: datetime = Field(default_factory=_utcnow)

    @field_validator("description")
    @classmethod
    def _truncate_description(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value[:MAX_DESCRIPTION_LENGTH]

    @field_validator("posted_date")
    @classmethod
    def _normalize_posted_date(cls, value: datetime) -> datetime:
        return _as_utc(value)


class Classification(BaseModel):
    """Fields inferred by the AI classifier for a single posting."""

    job_type: JobType
    experience_level: ExperienceLevel
    degree_required: DegreeRequired
    salary_min: float | None = None
    salary_max: float | None = None
    salary_currency: str | None = None
    skills: list[str] = Field(default_factory=list, max_length=MAX_SKILLS)
    category: Category = "Other"


class PersistedJob(BaseModel):
    """A job row as held by the store."""

    id: int
    content_hash: str
    title: str
    company: str
    location: str | None = None
    job_type: str
    experience_level: str
    degree_required: str
    description: str | None = None
    apply_url: str
    source: str
    source_id: str | None = None
    posted_date: datetime
    is_active: bool = True
    last_verified: datetime
    verification_attempts: int = 0
    last_verification_error: str | None = None
    ai_classified: bool = False
    salary_min: float | None = None
    salary_max: float | None = None
    salary_currency: str | None = None
    skills: list[str] = Field(default_factory=list)
    category: str | None = None
    created_at: datetime
    updated_at: datetime


class LivenessResult(BaseModel):
    """Outcome of fetching a posting's apply URL."""

    is_valid: bool
    error: str | None = None


class IngestResult(BaseModel):
    added: int = 0
    updated: int = 0
    ai_classified: int = 0
    errors: int = 0


class CompanyIngestResult(IngestResult):
    jobs_found: int = 0


class FullScrapeResult(BaseModel):
    total: int = 0
    added: int = 0
    updated: int = 0
    successful: int = 0
    failed: int = 0
    expired: int = 0


class VerifyAllResult(BaseModel):
    verified: int = 0
    marked_inactive: int = 0
    errors: int = 0


class ReclassifyResult(BaseModel):
    total: int = 0
    classified: int = 0
    failed: int = 0

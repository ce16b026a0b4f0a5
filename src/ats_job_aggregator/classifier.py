import asyncio
import json
import logging
import math
import re
from typing import Any

import google.generativeai as genai

from ats_job_aggregator.config import AppConfig
from ats_job_aggregator.models import (
    CATEGORIES,
    DEGREES,
    EXPERIENCE_LEVELS,
    JOB_TYPES,
    MAX_SKILLS,
    Classification,
    NormalizedPosting,
    PersistedJob,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_TIMEOUT = 8.0  # seconds
MAX_PROMPT_DESCRIPTION = 3000

CODE_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)

PROMPT_TEMPLATE = """You are a job posting classifier. Analyze this job and return ONLY a valid \
JSON object with no markdown formatting, no code fences, and no extra text.

Job Title: {title}
Company: {company}
Location: {location}
Description: {description}

Return exactly this JSON structure:
{{
  "jobType": "<one of: {job_types}>",
  "experienceLevel": "<one of: {experience_levels}>",
  "degreeRequired": "<one of: {degrees}>",
  "salaryMin": <number or null if not mentioned>,
  "salaryMax": <number or null if not mentioned>,
  "salaryCurrency": "<ISO currency code like USD, INR, EUR or null>",
  "skills": ["<skill1>", "<skill2>", "...up to {max_skills} most relevant skills"],
  "category": "<one of: {categories}>"
}}

Rules:
- For experienceLevel: "fresher" = 0-1 years, "1-3" = 1-3 years, "3-5" = 3-5 years, \
"5+" = 5+ years
- For degreeRequired: only use "btech" if explicitly requires B.Tech/B.E./CS degree, \
"ballb" for BA LLB, "llb" for LLB, otherwise "any"
- For salary: extract annual salary if mentioned, convert to numbers. If only monthly is \
given, multiply by 12. If not mentioned, use null.
- For skills: extract specific technical skills, tools, languages, and frameworks mentioned
- Return ONLY valid JSON, no explanation"""


def validate_enum(value: Any, allowed: tuple[str, ...], fallback: str) -> str:
    """
    Return value if it is one of allowed, trying an exact match first and
    then a case-insensitive one. Anything else maps to fallback.
    """
    if not isinstance(value, str):
        return fallback
    if value in allowed:
        return value
    lowered = value.strip().lower()
    for option in allowed:
        if option.lower() == lowered:
            return option
    return fallback


def _as_number(value: Any) -> float | None:
    # bool is an int subclass; true/false are not salaries
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences the model may add despite instructions."""
    return CODE_FENCE_RE.sub("", text).strip()


def parse_classification(text: str) -> Classification | None:
    """
    Parse the model's raw text into a Classification.

    Each field is validated against its closed set with a per-field default;
    skills keep only strings and are capped; salary fields are kept only
    when numeric. Returns None when the text is not a JSON object.
    """
    try:
        parsed = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse AI response: {e}")
        return None

    if not isinstance(parsed, dict):
        logger.warning(f"AI response is not a JSON object: {type(parsed).__name__}")
        return None

    raw_skills = parsed.get("skills")
    skills = (
        [skill for skill in raw_skills if isinstance(skill, str)][:MAX_SKILLS]
        if isinstance(raw_skills, list)
        else []
    )
    currency = parsed.get("salaryCurrency")
    if not isinstance(currency, str) or not currency.strip():
        currency = None

    return Classification(
        job_type=validate_enum(parsed.get("jobType"), JOB_TYPES, "full-time"),
        experience_level=validate_enum(parsed.get("experienceLevel"), EXPERIENCE_LEVELS, "3-5"),
        degree_required=validate_enum(parsed.get("degreeRequired"), DEGREES, "any"),
        salary_min=_as_number(parsed.get("salaryMin")),
        salary_max=_as_number(parsed.get("salaryMax")),
        salary_currency=currency.strip().upper() if currency else None,
        skills=skills,
        category=validate_enum(parsed.get("category"), CATEGORIES, "Other"),
    )


class AIClassifier:
    """
    Infers job type, experience level, degree, salary, skills and category
    for a posting with a Gemini model.

    Disabled (classify() always returns None, without any network call) when
    the config carries no API key. Every failure, including the hard timeout,
    turns into None so that callers keep the scraped values.
    """

    def __init__(self, config: AppConfig) -> None:
        self.model_name = config.gemini_model or DEFAULT_MODEL
        self.timeout = config.ai_timeout_seconds or DEFAULT_TIMEOUT
        self._model: Any = None

        if config.gemini_api_key:
            genai.configure(api_key=config.gemini_api_key)
            self._model = genai.GenerativeModel(self.model_name)
            logger.info(f"AI classifier initialized with {self.model_name}")
        else:
            logger.warning(
                "GEMINI_API_KEY not set - AI classification disabled, "
                "falling back to keyword matching"
            )

    @property
    def is_enabled(self) -> bool:
        return self._model is not None

    @staticmethod
    def build_prompt(
        title: str, company: str, location: str | None, description: str | None
    ) -> str:
        return PROMPT_TEMPLATE.format(
            title=title,
            company=company,
            location=location or "Not specified",
            description=(description or "")[:MAX_PROMPT_DESCRIPTION],
            job_types=", ".join(JOB_TYPES),
            experience_levels=", ".join(EXPERIENCE_LEVELS),
            degrees=", ".join(DEGREES),
            categories=", ".join(CATEGORIES),
            max_skills=MAX_SKILLS,
        )

    async def classify(self, posting: NormalizedPosting | PersistedJob) -> Classification | None:
        """Classify a scraped posting or a stored job. Returns None on any failure."""
        if not self.is_enabled:
            return None

        prompt = self.build_prompt(
            posting.title, posting.company, posting.location, posting.description
        )
        try:
            response = await asyncio.wait_for(
                self._model.generate_content_async(prompt), timeout=self.timeout
            )
            return parse_classification(response.text)
        except TimeoutError:
            logger.warning(
                f"AI classification timed out after {self.timeout}s for '{posting.title}'"
            )
            return None
        except Exception as e:
            logger.warning(f"AI classification failed for '{posting.title}': {e}")
            return None

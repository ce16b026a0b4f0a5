import re

from ats_job_aggregator.models import ExperienceLevel, JobType


class TitleHeuristics:
    """
    Infers job type and experience level from a posting title, optionally
    helped by a structured hint the source API supplies (employment type,
    commitment, experience label).

    Keywords are matched as whole words, case-insensitively, so "intern"
    does not fire on "internal" or "international".
    """

    INTERN_KEYWORDS = ["intern", "interns", "internship", "internships"]
    INTERNSHIP_KEYWORDS = INTERN_KEYWORDS + ["co-op", "coop", "trainee"]
    CONTRACT_KEYWORDS = ["contract", "contractor", "freelance", "temporary", "temp"]
    PART_TIME_KEYWORDS = ["part-time", "part time", "parttime"]

    SENIOR_KEYWORDS = ["senior", "sr", "staff", "lead", "principal"]
    JUNIOR_KEYWORDS = ["junior", "jr", "associate"]
    FRESHER_KEYWORDS = INTERN_KEYWORDS + ["entry", "entry-level", "graduate", "new grad"]
    MID_KEYWORDS = ["mid", "mid-level", "intermediate"]

    def __init__(self) -> None:
        self.internship = self._compile(self.INTERNSHIP_KEYWORDS)
        self.contract = self._compile(self.CONTRACT_KEYWORDS)
        self.part_time = self._compile(self.PART_TIME_KEYWORDS)
        self.senior = self._compile(self.SENIOR_KEYWORDS)
        self.junior = self._compile(self.JUNIOR_KEYWORDS)
        self.fresher = self._compile(self.FRESHER_KEYWORDS)
        self.mid = self._compile(self.MID_KEYWORDS)

    @staticmethod
    def _compile(keywords: list[str]) -> re.Pattern[str]:
        return re.compile(
            r"\b(?:" + "|".join(re.escape(kw) for kw in keywords) + r")\b",
            re.IGNORECASE,
        )

    def infer_job_type(self, title: str, hint: str | None = None) -> JobType:
        """
        Structured hints win over the title. The title can only tell us
        about internships; everything else defaults to full-time.
        """
        if hint:
            if self.internship.search(hint):
                return "internship"
            if self.part_time.search(hint):
                return "part-time"
            if self.contract.search(hint):
                return "contract"
        if self.internship.search(title or ""):
            return "internship"
        return "full-time"

    def infer_experience_level(self, title: str, hint: str | None = None) -> ExperienceLevel:
        for text in (hint, title):
            if not text:
                continue
            if self.fresher.search(text):
                return "fresher"
            if self.senior.search(text):
                return "5+"
            if self.junior.search(text):
                return "1-3"
            if self.mid.search(text):
                return "3-5"
        return "3-5"


_default = TitleHeuristics()


def infer_job_type(title: str, hint: str | None = None) -> JobType:
    return _default.infer_job_type(title, hint)


def infer_experience_level(title: str, hint: str | None = None) -> ExperienceLevel:
    return _default.infer_experience_level(title, hint)

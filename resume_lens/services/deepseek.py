# services/deepseek.py

import json
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from resume_lens.schemas import (
    JobDetails,
    JobQuery,
    JobRecommendation,
    KeywordAnalysis,
    ResumeProfile,
)

logger = logging.getLogger(__name__)

JOB_TYPES = {"full-time", "part-time", "contract", "remote", "hybrid"}
JOB_CATEGORIES = {"best-match", "trending", "remote", "other"}

JOB_DETAILS_SYSTEM = (
    "You are an expert job description writer. Generate detailed, realistic job information "
    "based on the provided job details. Return structured JSON with comprehensive job information."
)

RECOMMENDATIONS_SYSTEM = (
    "You are an expert job matching assistant. Generate realistic job recommendations based on "
    "resume data. Return structured JSON with job listings that match the candidate's skills and experience."
)


class GeneratorError(RuntimeError):
    """Raised when the language model call fails or returns unusable output."""


class JobGenerator(Protocol):
    async def generate_job_details(self, query: JobQuery) -> JobDetails: ...

    async def generate_job_recommendations(
        self, profile: ResumeProfile, keyword_analysis: Optional[KeywordAnalysis] = None
    ) -> List[JobRecommendation]: ...


def extract_json(content: str, opening: str = "{", closing: str = "}") -> Any:
    """Parse the outermost JSON object (or array) embedded in model output."""
    start = content.find(opening)
    end = content.rfind(closing)
    if start == -1 or end == -1 or end < start:
        raise GeneratorError("Failed to locate JSON in model output")
    try:
        return json.loads(content[start:end + 1])
    except json.JSONDecodeError as e:
        raise GeneratorError(f"Failed to parse JSON from model output: {e}") from e


def _strings(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item]


def _optional_text(item: Dict[str, Any], name: str) -> Optional[str]:
    value = item.get(name)
    return value if isinstance(value, str) else None


def normalize_job_details(parsed: Any, company: str) -> JobDetails:
    if not isinstance(parsed, dict):
        raise GeneratorError("Job details output is not a JSON object")

    def text(name: str, fallback: str) -> str:
        value = parsed.get(name)
        return value if isinstance(value, str) else fallback

    return JobDetails(
        description=text("description", "Job description not available."),
        requirements=_strings(parsed.get("requirements")),
        benefits=_strings(parsed.get("benefits")),
        application_process=text("applicationProcess", "Apply through company website or job portal."),
        company_info=text("companyInfo", f"{company} is a professional organization."),
    )


def normalize_job_recommendations(parsed: Any) -> List[JobRecommendation]:
    """Keep well-formed listings, clamp match scores and sort best match first."""
    if not isinstance(parsed, list):
        return []

    jobs = []
    for index, item in enumerate(parsed):
        if not isinstance(item, dict):
            continue
        title = item.get("title")
        company = item.get("company")
        if not (isinstance(title, str) and title and isinstance(company, str) and company):
            continue

        match = item.get("match")
        if isinstance(match, bool) or not isinstance(match, (int, float)):
            match = 0
        job_type = item.get("type")
        category = item.get("category")

        jobs.append(JobRecommendation(
            id=item["id"] if isinstance(item.get("id"), str) else f"job-{index}",
            title=title,
            company=company,
            match=max(0, min(100, match)),
            skills=_strings(item.get("skills")),
            location=_optional_text(item, "location") or "Location not specified",
            salary=_optional_text(item, "salary"),
            description=_optional_text(item, "description"),
            url=_optional_text(item, "url"),
            type=job_type if job_type in JOB_TYPES else None,
            category=category if category in JOB_CATEGORIES else "other",
        ))

    jobs.sort(key=lambda job: job.match, reverse=True)
    return jobs


def build_job_details_prompt(query: JobQuery) -> str:
    return f"""Generate detailed job information for the following position:

JOB TITLE: {query.job_title}
COMPANY: {query.company}
LOCATION: {query.location}
TYPE: {query.type or "full-time"}
RELEVANT SKILLS: {", ".join(query.skills) or "Not specified"}

Return a JSON object with this structure:
{{
  "description": "Detailed job description (2-3 paragraphs)",
  "requirements": ["Requirement 1", "..."] (5-8 specific requirements),
  "benefits": ["Benefit 1", "..."] (4-6 realistic benefits),
  "applicationProcess": "Brief description of how to apply (1-2 sentences)",
  "companyInfo": "Brief information about the company (1-2 sentences)"
}}

Return ONLY valid JSON."""


def build_recommendations_prompt(profile: ResumeProfile, keyword_analysis: Optional[KeywordAnalysis]) -> str:
    prompt = (
        "Generate 8-12 job recommendations based on the following resume data. "
        "Consider the candidate's skills, experience, and education.\n\n"
        f"RESUME DATA:\n{profile.model_dump_json(indent=2, exclude_none=True)}"
    )
    if keyword_analysis is not None:
        matched = [s.skill for s in keyword_analysis.your_skills if s.found_in_job]
        prompt += (
            "\n\nKEYWORD ANALYSIS:\n"
            f"Match Percentage: {keyword_analysis.match_percentage}%\n"
            f"Matched Skills: {', '.join(matched)}\n"
            f"Missing Keywords: {', '.join(keyword_analysis.missing_keywords)}"
        )
    prompt += """

Return a JSON array of job recommendations in this format:
[
  {
    "id": "unique-id",
    "title": "Job Title",
    "company": "Company Name",
    "match": 0-100,
    "skills": ["skill1", "skill2"],
    "location": "City, State or Remote",
    "salary": "optional salary range",
    "description": "optional brief description",
    "type": "full-time" | "part-time" | "contract" | "remote" | "hybrid",
    "category": "best-match" | "trending" | "remote" | "other"
  }
]

Return ONLY valid JSON array."""
    return prompt


class DeepSeekClient:
    """Job content generator backed by the DeepSeek chat completions API."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "deepseek-chat",
        base_url: str = "https://api.deepseek.com",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def chat(self, prompt: str, system: Optional[str] = None, temperature: float = 0.2) -> str:
        if not self.api_key:
            raise GeneratorError("Missing DEEPSEEK_API_KEY")

        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        body = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "stream": False,
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=body,
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error(f"DeepSeek HTTP error: {e.response.status_code}")
                raise GeneratorError(f"DeepSeek error: {e.response.status_code} {e.response.text}") from e
            except httpx.RequestError as e:
                logger.error(f"DeepSeek request error: {e}")
                raise GeneratorError(f"DeepSeek request failed: {e}") from e

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            content = None
        if not content:
            raise GeneratorError("DeepSeek returned empty content")
        return content

    async def generate_job_details(self, query: JobQuery) -> JobDetails:
        logger.info(f"Generating job details for {query.job_title} at {query.company}")
        content = await self.chat(build_job_details_prompt(query), system=JOB_DETAILS_SYSTEM, temperature=0.3)
        return normalize_job_details(extract_json(content), query.company)

    async def generate_job_recommendations(
        self, profile: ResumeProfile, keyword_analysis: Optional[KeywordAnalysis] = None
    ) -> List[JobRecommendation]:
        logger.info(f"Generating job recommendations for {len(profile.skills)} skills")
        prompt = build_recommendations_prompt(profile, keyword_analysis)
        content = await self.chat(prompt, system=RECOMMENDATIONS_SYSTEM, temperature=0.3)
        return normalize_job_recommendations(extract_json(content, "[", "]"))

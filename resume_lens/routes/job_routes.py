from fastapi import APIRouter, Depends, HTTPException, Request
import logging
from typing import Any, Dict, List, Optional
from prometheus_client import Counter
from pydantic import ValidationError

from resume_lens.core.cache import MISSING, TTLCache
from resume_lens.core.keys import canonical_json, derive_key, generate_key
from resume_lens.core.settings import settings
from resume_lens.middleware.rate_limit import limiter
from resume_lens.schemas import (
    CachedResponse,
    ErrorResponse,
    EducationItem,
    ExperienceItem,
    JobQuery,
    KeywordAnalysis,
    ResumeProfile,
)
from resume_lens.services.deepseek import JobGenerator


router = APIRouter()
logger = logging.getLogger(__name__)

CACHE_HITS = Counter("result_cache_hits_total", "Result cache hits", ["namespace"])
CACHE_MISSES = Counter("result_cache_misses_total", "Result cache misses", ["namespace"])


def get_result_cache(request: Request) -> TTLCache:
    return request.app.state.result_cache

def get_job_generator(request: Request) -> JobGenerator:
    return request.app.state.job_generator


async def _read_payload(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Missing payload")
    return payload

def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""

def _optional_text(value: Any) -> Optional[str]:
    return value.strip() if isinstance(value, str) else None

def sanitize_string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]

def sanitize_experience(value: Any) -> List[ExperienceItem]:
    if not isinstance(value, list):
        return []
    result = []
    for record in value:
        if not isinstance(record, dict):
            continue
        company, role = _text(record.get("company")), _text(record.get("role"))
        if not company and not role:
            continue
        result.append(ExperienceItem(
            company=company,
            role=role,
            duration=_optional_text(record.get("duration")),
            description=_optional_text(record.get("description")),
        ))
    return result

def sanitize_education(value: Any) -> List[EducationItem]:
    if not isinstance(value, list):
        return []
    result = []
    for record in value:
        if not isinstance(record, dict):
            continue
        school, degree = _text(record.get("school")), _text(record.get("degree"))
        if not school and not degree:
            continue
        result.append(EducationItem(school=school, degree=degree, year=_optional_text(record.get("year"))))
    return result

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing or invalid payload"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    500: {"model": ErrorResponse, "description": "Generation failed"},
}

def job_details_cache_key(query: JobQuery) -> str:
    digest = derive_key(query.job_title, query.company, query.location, query.type, query.skills, length=16)
    return f"job-details:{digest}"

def recommendations_cache_key(profile: ResumeProfile, keyword_analysis: Optional[KeywordAnalysis]) -> str:
    keyword_digest = canonical_json(keyword_analysis.match_percentage) if keyword_analysis else ""
    return f"recommendations:{generate_key(profile)}:{keyword_digest}"


@router.post("/job-details", response_model=CachedResponse, responses=ERROR_RESPONSES)
@limiter.limit(settings.llm_rate_limit)
async def job_details(
    request: Request,
    cache: TTLCache = Depends(get_result_cache),
    generator: JobGenerator = Depends(get_job_generator),
):
    payload = await _read_payload(request)
    query = JobQuery(
        job_title=_text(payload.get("jobTitle")),
        company=_text(payload.get("company")),
        location=_text(payload.get("location")) or "Location not specified",
        type=_optional_text(payload.get("type")) or None,
        skills=sanitize_string_list(payload.get("skills")),
    )
    if not query.job_title or not query.company:
        raise HTTPException(status_code=400, detail="Job title and company are required")

    cache_key = job_details_cache_key(query)
    cached = cache.get(cache_key, MISSING)
    if cached is not MISSING:
        CACHE_HITS.labels(namespace="job-details").inc()
        logger.debug(f"Cache hit: {cache_key}")
        return {"data": cached, "cached": True}
    CACHE_MISSES.labels(namespace="job-details").inc()

    try:
        details = await generator.generate_job_details(query)
    except Exception as e:
        logger.error(f"Job details generation failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e) or "Job details generation failed")

    data = details.model_dump(by_alias=True)
    cache.set(cache_key, data)
    return {"data": data, "cached": False}


@router.post("/recommendations", response_model=CachedResponse, responses=ERROR_RESPONSES)
@limiter.limit(settings.llm_rate_limit)
async def recommendations(
    request: Request,
    cache: TTLCache = Depends(get_result_cache),
    generator: JobGenerator = Depends(get_job_generator),
):
    payload = await _read_payload(request)
    resume_source = payload.get("resume")
    if resume_source is None:
        resume_source = payload
    if not isinstance(resume_source, dict):
        raise HTTPException(status_code=400, detail="Missing resume data")

    profile = ResumeProfile(
        skills=sanitize_string_list(resume_source.get("skills")),
        experience=sanitize_experience(resume_source.get("experience")),
        education=sanitize_education(resume_source.get("education")),
        summary=_optional_text(resume_source.get("summary")) or None,
    )
    if profile.is_empty():
        raise HTTPException(status_code=400, detail="Resume data is empty")

    keyword_analysis = None
    if isinstance(payload.get("keywordAnalysis"), dict):
        try:
            keyword_analysis = KeywordAnalysis.model_validate(payload["keywordAnalysis"])
        except ValidationError:
            raise HTTPException(status_code=400, detail="Invalid keyword analysis")

    cache_key = recommendations_cache_key(profile, keyword_analysis)
    cached = cache.get(cache_key, MISSING)
    if cached is not MISSING:
        CACHE_HITS.labels(namespace="recommendations").inc()
        logger.debug(f"Cache hit: {cache_key}")
        return {"data": cached, "cached": True}
    CACHE_MISSES.labels(namespace="recommendations").inc()

    try:
        jobs = await generator.generate_job_recommendations(profile, keyword_analysis)
    except Exception as e:
        logger.error(f"Job recommendations generation failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e) or "Job recommendations generation failed")

    data = [job.model_dump(exclude_none=True) for job in jobs]
    cache.set(cache_key, data)
    return {"data": data, "cached": False}

# resume_lens/schemas.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, List, Literal, Optional


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ExperienceItem(BaseModel):
    company: str
    role: str
    duration: Optional[str] = None
    description: Optional[str] = None

class EducationItem(BaseModel):
    school: str
    degree: str
    year: Optional[str] = None

class ResumeProfile(BaseModel):
    skills: List[str] = []
    experience: List[ExperienceItem] = []
    education: List[EducationItem] = []
    summary: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.skills or self.experience or self.education or self.summary)


class SkillMatch(CamelModel):
    skill: str
    match: float = 0
    found_in_job: bool = Field(False, alias="foundInJob")

class KeywordAnalysis(CamelModel):
    # Only what recommendation prompts and cache keys read; the rest is ignored
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    match_percentage: Optional[float] = Field(None, alias="matchPercentage")
    your_skills: List[SkillMatch] = Field(default_factory=list, alias="yourSkills")
    missing_keywords: List[str] = Field(default_factory=list, alias="missingKeywords")


class JobQuery(BaseModel):
    job_title: str
    company: str
    location: str = "Location not specified"
    type: Optional[str] = None
    skills: List[str] = []

class JobDetails(CamelModel):
    description: str
    requirements: List[str] = []
    benefits: List[str] = []
    application_process: str = Field(alias="applicationProcess")
    company_info: str = Field(alias="companyInfo")

JobType = Literal["full-time", "part-time", "contract", "remote", "hybrid"]
JobCategory = Literal["best-match", "trending", "remote", "other"]

class JobRecommendation(BaseModel):
    id: str
    title: str
    company: str
    match: float
    skills: List[str] = []
    location: str
    salary: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    type: Optional[JobType] = None
    category: Optional[JobCategory] = None


class CachedResponse(BaseModel):
    data: Any
    cached: bool

class ErrorResponse(BaseModel):
    detail: str
    code: str | None = None
    meta: Any | None = None

import pytest
from fastapi.testclient import TestClient
from limits import parse
from prometheus_client.parser import text_string_to_metric_families

from resume_lens.core.cache import TTLCache
from resume_lens.core.settings import Settings, settings
from resume_lens.main import create_app
from resume_lens.middleware.rate_limit import limiter
from resume_lens.schemas import JobDetails, JobRecommendation
from resume_lens.services.deepseek import GeneratorError


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class FakeGenerator:
    def __init__(self, recommendations=None, error=None):
        self.detail_calls = []
        self.recommendation_calls = []
        self.recommendations = recommendations
        self.error = error

    async def generate_job_details(self, query):
        self.detail_calls.append(query)
        if self.error:
            raise self.error
        return JobDetails(
            description=f"{query.job_title} at {query.company}",
            requirements=["Python"],
            benefits=["Remote work"],
            application_process="Apply online.",
            company_info=f"{query.company} builds things.",
        )

    async def generate_job_recommendations(self, profile, keyword_analysis=None):
        self.recommendation_calls.append((profile, keyword_analysis))
        if self.error:
            raise self.error
        if self.recommendations is not None:
            return self.recommendations
        return [JobRecommendation(id="job-1", title="Frontend Engineer", company="Acme", match=88,
                                  skills=profile.skills[:2], location="Remote", category="best-match")]


@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def cache(clock):
    return TTLCache(ttl_seconds=3600, clock=clock)

@pytest.fixture
def generator():
    return FakeGenerator()

@pytest.fixture
def client(cache, generator):
    limiter.reset()
    app = create_app(Settings(cache_sweep_enabled=False), cache=cache, generator=generator)
    return TestClient(app)


JOB = {"jobTitle": "Data Engineer", "company": "Initech", "location": "Remote", "skills": ["Spark", "SQL"]}
RESUME = {
    "skills": ["JS", "React"],
    "experience": [{"company": "Acme", "role": "Developer", "duration": "2 years"}],
    "education": [{"school": "State University", "degree": "BSc"}],
    "summary": "Engineer",
}


def test_job_details_miss_then_hit(client, generator):
    first = client.post("/api/jobs/job-details", json=JOB)
    assert first.status_code == 200
    assert first.json()["cached"] is False
    assert first.json()["data"]["applicationProcess"] == "Apply online."

    noisy = {"jobTitle": " data engineer ", "company": "INITECH", "location": "remote", "skills": ["sql", "spark"]}
    second = client.post("/api/jobs/job-details", json=noisy)
    assert second.json() == {"data": first.json()["data"], "cached": True}
    assert len(generator.detail_calls) == 1

def test_job_details_requires_title_and_company(client, generator):
    res = client.post("/api/jobs/job-details", json={"jobTitle": "  ", "company": "Initech"})
    assert res.status_code == 400
    assert res.json()["detail"] == "Job title and company are required"
    assert generator.detail_calls == []

def test_job_details_rejects_non_object_payload(client):
    assert client.post("/api/jobs/job-details", json=["not", "an", "object"]).status_code == 400
    res = client.post("/api/jobs/job-details", content=b"{broken", headers={"content-type": "application/json"})
    assert res.status_code == 400
    assert res.json()["detail"] == "Missing payload"

def test_job_details_defaults_location_and_drops_bad_skills(client, generator):
    client.post("/api/jobs/job-details", json={"jobTitle": "QA", "company": "Acme", "skills": ["Selenium", 3, " "]})
    query = generator.detail_calls[0]
    assert query.location == "Location not specified"
    assert query.skills == ["Selenium"]

def test_generator_failure_returns_500_and_caches_nothing(cache):
    limiter.reset()
    failing = FakeGenerator(error=GeneratorError("DeepSeek error: 503"))
    app = create_app(Settings(cache_sweep_enabled=False), cache=cache, generator=failing)
    client = TestClient(app)

    res = client.post("/api/jobs/job-details", json=JOB)
    assert res.status_code == 500
    assert res.json()["detail"] == "DeepSeek error: 503"
    assert client.post("/api/jobs/recommendations", json=RESUME).status_code == 500
    assert cache.size() == 0

def test_recommendations_miss_then_hit(client, generator):
    first = client.post("/api/jobs/recommendations", json={"resume": RESUME})
    assert first.status_code == 200
    assert first.json()["cached"] is False
    assert first.json()["data"][0]["title"] == "Frontend Engineer"
    assert "salary" not in first.json()["data"][0]

    flat = dict(RESUME, skills=["react", "js "], summary=" ENGINEER")
    second = client.post("/api/jobs/recommendations", json=flat)
    assert second.json()["cached"] is True
    assert len(generator.recommendation_calls) == 1

def test_keyword_analysis_gets_its_own_cache_entry(client, generator):
    client.post("/api/jobs/recommendations", json={"resume": RESUME})
    with_keywords = {"resume": RESUME, "keywordAnalysis": {"matchPercentage": 72, "missingKeywords": ["Docker"]}}
    res = client.post("/api/jobs/recommendations", json=with_keywords)
    assert res.json()["cached"] is False
    assert generator.recommendation_calls[1][1].match_percentage == 72
    assert client.post("/api/jobs/recommendations", json=with_keywords).json()["cached"] is True

def test_recommendations_rejects_empty_resume(client, generator):
    res = client.post("/api/jobs/recommendations", json={"resume": {"skills": ["  "], "experience": [{"company": ""}]}})
    assert res.status_code == 400
    assert res.json()["detail"] == "Resume data is empty"
    assert client.post("/api/jobs/recommendations", json={"resume": "text"}).status_code == 400
    assert generator.recommendation_calls == []

def test_recommendations_rejects_invalid_keyword_analysis(client):
    payload = {"resume": RESUME, "keywordAnalysis": {"matchPercentage": "lots"}}
    assert client.post("/api/jobs/recommendations", json=payload).status_code == 400

def test_empty_recommendation_list_is_cached(cache):
    limiter.reset()
    generator = FakeGenerator(recommendations=[])
    client = TestClient(create_app(Settings(cache_sweep_enabled=False), cache=cache, generator=generator))
    assert client.post("/api/jobs/recommendations", json=RESUME).json() == {"data": [], "cached": False}
    assert client.post("/api/jobs/recommendations", json=RESUME).json() == {"data": [], "cached": True}
    assert len(generator.recommendation_calls) == 1

def test_cached_results_expire_after_ttl(client, clock, generator):
    client.post("/api/jobs/job-details", json=JOB)
    clock.now += 3600
    res = client.post("/api/jobs/job-details", json=JOB)
    assert res.json()["cached"] is False
    assert len(generator.detail_calls) == 2

def test_root_reports_raw_cache_size(client, cache, clock):
    cache.set("job-details:stale", {})
    clock.now += 7200
    res = client.get("/")
    assert res.status_code == 200
    assert res.json()["cache_entries"] == 1


def _sample(client, name, namespace):
    for family in text_string_to_metric_families(client.get("/metrics").text):
        for sample in family.samples:
            if sample.name == name and sample.labels.get("namespace") == namespace:
                return sample.value
    return 0.0


def test_lifespan_starts_and_stops_sweeper(generator):
    cache = TTLCache(sweep_interval_seconds=60)
    app = create_app(Settings(cache_sweep_enabled=True), cache=cache, generator=generator)
    with TestClient(app):
        assert cache.sweeper_running
    assert not cache.sweeper_running

def test_lifespan_skips_sweeper_when_disabled(cache, generator):
    app = create_app(Settings(cache_sweep_enabled=False), cache=cache, generator=generator)
    with TestClient(app):
        assert not cache.sweeper_running

def test_llm_routes_are_rate_limited(client, generator):
    allowed = parse(settings.llm_rate_limit).amount
    for _ in range(allowed):
        assert client.post("/api/jobs/job-details", json=JOB).status_code == 200
    res = client.post("/api/jobs/job-details", json=JOB)
    assert res.status_code == 429
    assert res.json() == {"detail": "Rate limit exceeded"}
    assert len(generator.detail_calls) == 1

def test_cache_hit_and_miss_counters(client):
    hits = _sample(client, "result_cache_hits_total", "job-details")
    misses = _sample(client, "result_cache_misses_total", "job-details")

    client.post("/api/jobs/job-details", json=JOB)
    client.post("/api/jobs/job-details", json=JOB)

    assert _sample(client, "result_cache_misses_total", "job-details") == misses + 1
    assert _sample(client, "result_cache_hits_total", "job-details") == hits + 1

def test_error_responses_documented(client):
    responses = client.get("/openapi.json").json()["paths"]["/api/jobs/recommendations"]["post"]["responses"]
    for status in ("400", "429", "500"):
        schema = responses[status]["content"]["application/json"]["schema"]
        assert schema["$ref"].endswith("/ErrorResponse")

def test_null_resume_falls_back_to_top_level_payload(client, generator):
    res = client.post("/api/jobs/recommendations", json=dict(RESUME, resume=None))
    assert res.status_code == 200
    assert generator.recommendation_calls[0][0].skills == ["JS", "React"]

from backend.app.utils.error_handlers import get_error_message


JANE = {
    "email": "Jane@Example.com",
    "name": "Jane Doe",
    "linkedin_url": "https://linkedin.com/in/janedoe",
    "skills_experience": "React, TypeScript, Node.js, 5 years frontend",
}

REACT_JOB = {
    "job_id": "job-react-1",
    "title": "Senior React Developer",
    "description": "React and TypeScript for a frontend platform team.",
    "company": "Acme",
    "location": "Remote",
}


def _seed(client):
    r = client.post("/candidates", json=JANE)
    assert r.status_code == 201, r.text
    r = client.post("/jobs", json=REACT_JOB)
    assert r.status_code == 201, r.text


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["vector_index"] == "sql"


def test_init_indexes_reports_counts(client):
    r = client.post("/indexes/init")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert body["indexes"] == {"candidate-index": 0, "job-description-index": 0}


def test_store_and_get_candidate(client):
    r = client.post("/candidates", json=JANE)
    assert r.status_code == 201, r.text
    assert r.json()["candidate"]["email"] == "jane@example.com"

    r = client.get("/candidates/jane@example.com")
    assert r.status_code == 200
    cand = r.json()["candidate"]
    assert cand["name"] == "Jane Doe"
    assert cand["skills_experience"] == JANE["skills_experience"]


def test_store_and_get_job(client):
    r = client.post("/jobs", json=REACT_JOB)
    assert r.status_code == 201, r.text

    r = client.get("/jobs/job-react-1")
    assert r.status_code == 200
    job = r.json()["job"]
    assert job["job_id"] == "job-react-1"
    assert job["title"] == "Senior React Developer"
    assert job["company"] == "Acme"
    assert job["salary"] == ""


def test_candidates_for_job_end_to_end(client, fake_gemini):
    _seed(client)

    r = client.get("/jobs/job-react-1/matches")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert body["job"]["title"] == "Senior React Developer"
    assert len(body["matches"]) == 1
    m = body["matches"][0]
    assert m["email"] == "jane@example.com"
    assert m["match_score"] == 88
    assert m["feedback"]["category"] == "high"
    assert m["badge"] == "default"
    assert m["provenance"] == "llm"
    assert len(m["questions"]) == 3
    assert -1.0 <= m["vector_score"] <= 1.0


def test_jobs_for_candidate_and_detail_filter(client, fake_gemini):
    _seed(client)

    r = client.get("/candidates/jane@example.com/matches")
    assert r.status_code == 200, r.text
    matches = r.json()["matches"]
    assert [m["entity_id"] for m in matches] == ["job-react-1"]
    assert matches[0]["questions"] is None
    assert matches[0]["location"] == "Remote"

    r = client.get("/candidates/jane@example.com/matches", params={"job_id": "job-react-1"})
    assert r.status_code == 200
    assert len(r.json()["matches"]) == 1


def test_missing_match_detail_is_404_with_empty_matches(client, fake_gemini):
    _seed(client)
    r = client.get("/jobs/job-react-1/matches", params={"candidate": "ghost@example.com"})
    assert r.status_code == 404
    body = r.json()
    assert body["success"] is False
    assert body["matches"] == []
    assert body["error"] == get_error_message("match_not_found")
    assert body["details"]["id"] == "ghost@example.com"


def test_unknown_job_is_404(client):
    r = client.get("/jobs/job-404/matches")
    assert r.status_code == 404
    assert r.json()["matches"] == []
    assert r.json()["error"] == get_error_message("job_not_found")

    r = client.get("/jobs/job-404")
    assert r.status_code == 404


def test_unknown_candidate_is_404(client):
    r = client.get("/candidates/nobody@example.com")
    assert r.status_code == 404
    assert r.json()["success"] is False
    assert r.json()["error"] == get_error_message("candidate_not_found")


def test_search_candidates_on_empty_index(client, fake_gemini):
    r = client.post("/search/candidates", json={"title": "React Dev", "description": "React"})
    assert r.status_code == 200, r.text
    assert r.json()["matches"] == []
    assert fake_gemini.calls == []


def test_search_candidates_ranks_stored_candidates(client, fake_gemini):
    client.post("/candidates", json=JANE)
    client.post(
        "/candidates",
        json={"email": "bob@example.com", "name": "Bob", "skills_experience": "Java, Spring, Kafka"},
    )
    fake_gemini.scores_by_marker = {"Java, Spring": 20}

    r = client.post("/search/candidates", json={"title": "React Dev", "description": "React TypeScript", "top_k": 5})
    assert r.status_code == 200, r.text
    matches = r.json()["matches"]
    assert [m["email"] for m in matches] == ["jane@example.com", "bob@example.com"]
    assert matches[1]["feedback"]["category"] == "low"
    assert matches[1]["badge"] == "destructive"


def test_top_k_limits_results(client, fake_gemini):
    for i in range(4):
        client.post(
            "/candidates",
            json={"email": f"c{i}@example.com", "name": f"C{i}", "skills_experience": f"React engineer {i}"},
        )
    r = client.post("/search/candidates", json={"title": "React", "description": "React engineer", "top_k": 2})
    assert r.status_code == 200
    assert len(r.json()["matches"]) == 2


def test_validation_errors(client):
    r = client.post("/candidates", json={**JANE, "email": "not-an-email"})
    assert r.status_code == 400
    assert r.json()["success"] is False

    r = client.post("/jobs", json={**REACT_JOB, "job_id": "bad id with spaces"})
    assert r.status_code == 400

    r = client.get("/jobs/job-react-1/matches", params={"top_k": 0})
    assert r.status_code == 400

    r = client.post("/search/candidates", json={"title": "", "description": ""})
    assert r.status_code == 400


def test_cache_stats_and_purge(client, fake_gemini):
    _seed(client)
    client.get("/jobs/job-react-1/matches")
    client.get("/jobs/job-react-1/matches")

    stats = client.get("/cache/stats").json()["cache"]
    assert stats["total_cached_matches"] == 1
    assert stats["hits"] == 1

    r = client.post("/cache/purge")
    assert r.json() == {"success": True, "removed": 0}


def test_embedding_outage_is_503(client, orchestrator, monkeypatch):
    from backend.app.utils.error_handlers import EmbeddingUnavailable

    async def down(text):
        raise EmbeddingUnavailable()

    monkeypatch.setattr(orchestrator.embedder, "embed", down)
    r = client.post("/search/candidates", json={"title": "React Dev", "description": "React"})
    assert r.status_code == 503
    body = r.json()
    assert body["success"] is False
    assert body["matches"] == []


def test_react_job_finds_jane_with_consistent_category(client, fake_gemini):
    client.post("/jobs", json={"job_id": "senior-react", "title": "Senior React Developer", "description": "5 years React, TypeScript, testing"})
    client.post("/candidates", json={"email": "jane@example.com", "name": "Jane", "skills_experience": "React, Redux, Jest, 6 years experience"})
    fake_gemini.score = 72

    r = client.get("/jobs/senior-react/matches")
    assert r.status_code == 200, r.text
    jane = next(m for m in r.json()["matches"] if m["email"] == "jane@example.com")
    assert 0 <= jane["match_score"] <= 100
    assert jane["feedback"]["category"] == "high"

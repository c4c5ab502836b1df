"""Lesson progress ingestion and the read-through progress cache.

Verifies:
1. First GET is a cache miss (computes and stores the snapshot)
2. Second GET is a cache hit with identical content
3. A lesson update invalidates the entry so the next GET is fresh
4. Enrollments are only visible to their learner (and admins)
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import auth, build_course, enroll, mint_token, sample_value


def _hits() -> float:
    return sample_value("cache_operations_total", {"operation": "hit"})


def _misses() -> float:
    return sample_value("cache_operations_total", {"operation": "miss"})


def _put(client: TestClient, enrollment_id, lesson_id, token: str, **body):
    return client.put(
        f"/v1/enrollments/{enrollment_id}/lessons/{lesson_id}/progress",
        json=body,
        headers=auth(token),
    )


def test_cache_miss_then_hit(client: TestClient) -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    token = mint_token()

    misses, hits = _misses(), _hits()
    resp1 = client.get(f"/v1/enrollments/{enrollment.id}/progress", headers=auth(token))
    assert resp1.status_code == 200
    assert _misses() - misses == 1

    resp2 = client.get(f"/v1/enrollments/{enrollment.id}/progress", headers=auth(token))
    assert resp2.status_code == 200
    assert _hits() - hits == 1
    assert resp1.json() == resp2.json()


def test_lesson_update_invalidates_snapshot(client: TestClient) -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    token = mint_token()

    before = client.get(f"/v1/enrollments/{enrollment.id}/progress", headers=auth(token))
    assert before.json()["completed_lessons"] == 0

    resp = _put(client, enrollment.id, sample.article.id, token, completed=True)
    assert resp.status_code == 200
    assert resp.json()["completed"] is True

    misses = _misses()
    after = client.get(f"/v1/enrollments/{enrollment.id}/progress", headers=auth(token))
    assert _misses() - misses == 1
    data = after.json()
    assert data["completed_lessons"] == 1
    assert data["modules"][0]["lessons"][1]["completed"] is True


def test_progress_snapshot_shape(client: TestClient) -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    data = client.get(
        f"/v1/enrollments/{enrollment.id}/progress", headers=auth(mint_token())
    ).json()
    assert data["enrollment_id"] == str(enrollment.id)
    assert data["total_lessons"] == 3
    assert data["total_assessments"] == 2
    assert data["final_assessment"]["attempted"] is False
    assert data["final_assessment_required"] is True
    assert data["modules"][0]["assessment"]["assessment_id"] == str(
        sample.module_assessment.id
    )
    assert data["course_complete"] is False


def test_video_ticks_accumulate(client: TestClient) -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    token = mint_token()
    _put(client, enrollment.id, sample.video.id, token, position=100, watch_duration=100)
    data = _put(
        client, enrollment.id, sample.video.id, token, position=550, watch_duration=550
    ).json()
    assert data["last_position"] == 550
    assert data["video_percent_watched"] == 91
    assert data["completed"] is True


def test_negative_position_is_rejected(client: TestClient) -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    resp = _put(client, enrollment.id, sample.video.id, mint_token(), position=-1)
    assert resp.status_code == 422


def test_quiz_lesson_needs_passed_quiz(client: TestClient) -> None:
    sample = build_course()
    enrollment = enroll(sample.course)
    resp = _put(client, enrollment.id, sample.quiz_lesson.id, mint_token(), completed=True)
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "quiz_required"


def test_unknown_lesson_is_404(client: TestClient) -> None:
    sample = build_course()
    other = build_course()
    enrollment = enroll(sample.course)
    resp = _put(client, enrollment.id, other.video.id, mint_token(), completed=True)
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "lesson_not_found"


def test_progress_is_private_to_the_learner(client: TestClient) -> None:
    sample = build_course()
    enrollment = enroll(sample.course, user_id="learner-1")

    resp = client.get(
        f"/v1/enrollments/{enrollment.id}/progress", headers=auth(mint_token("learner-2"))
    )
    assert resp.status_code == 403

    admin = mint_token("support-admin", roles=["admin"])
    resp = client.get(f"/v1/enrollments/{enrollment.id}/progress", headers=auth(admin))
    assert resp.status_code == 200


def test_unknown_enrollment_is_404(client: TestClient) -> None:
    resp = client.get(
        "/v1/enrollments/00000000-0000-0000-0000-000000000000/progress",
        headers=auth(mint_token()),
    )
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "enrollment_not_found"

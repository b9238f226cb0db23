from fastapi.testclient import TestClient

from main import app
from utils import pronunciation, tts
from utils.auth import sign_user_token

ALICE = {"X-User-Token": "alice"}
BOB = {"X-User-Token": "bob"}


def write_config(config_dir, text):
    (config_dir / "config.toml").write_text(text, encoding="utf-8")


def _create_set(client, headers=ALICE):
    response = client.post(
        "/sets",
        json={
            "name": "Animals",
            "cards": [
                {"front": "perro", "back": "dog", "choices": ["dog", "cat"]},
                {"front": "gato", "back": "cat", "choices": ["dog", "cat"]},
            ],
        },
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


def test_set_and_card_management(lingo_home):
    client = TestClient(app)
    created = _create_set(client)
    set_id = created["id"]
    assert [card["seq"] for card in created["cards"]] == [1, 2]

    added = client.post(f"/sets/{set_id}/cards", json=[{"front": "pato", "back": "duck"}], headers=ALICE)
    assert added.status_code == 201
    assert [card["front"] for card in added.json()] == ["perro", "gato", "pato"]

    card_id = added.json()[2]["id"]
    patched = client.patch(f"/sets/cards/{card_id}", json={"back": "a duck"}, headers=ALICE)
    assert patched.status_code == 200
    assert patched.json()["back"] == "a duck"
    assert patched.json()["front"] == "pato"

    empty_patch = client.patch(f"/sets/cards/{card_id}", json={}, headers=ALICE)
    assert empty_patch.status_code == 400

    not_owner = client.patch(f"/sets/cards/{card_id}", json={"back": "x"}, headers=BOB)
    assert not_owner.status_code == 404

    deleted = client.delete(f"/sets/cards/{card_id}", headers=ALICE)
    assert deleted.status_code == 204
    listed = client.get(f"/sets/{set_id}/cards", headers=ALICE)
    assert [card["front"] for card in listed.json()] == ["perro", "gato"]


def test_create_set_reports_every_violation(lingo_home):
    client = TestClient(app)
    response = client.post(
        "/sets",
        json={"name": "", "cards": [{"front": " ", "back": "x"}]},
        headers=ALICE,
    )
    assert response.status_code == 400
    fields = {v["field"] for v in response.json()["violations"]}
    assert {"name", "cards.0.front"} <= fields


def test_daily_plan_job_settings_and_inquiry(lingo_home):
    client = TestClient(app)
    set_id = _create_set(client)["id"]

    settings = client.post(
        "/daily-plans/setting",
        json={"dailyActive": "Y", "dailyTarget": 5, "defaultSetId": set_id},
        headers=ALICE,
    )
    assert settings.status_code == 200
    assert settings.json()["dailyActive"] is True

    assert client.get("/daily-plans/inquiry", headers=ALICE).status_code == 404

    first = client.post("/job/daily-plans/generate")
    assert first.status_code == 200
    assert first.json()["status"] == "planned"
    again = client.post("/job/daily-plans/generate")
    assert again.status_code == 409
    assert again.json()["status"] == "already_planned"

    inquiry = client.get("/daily-plans/inquiry", headers=ALICE)
    assert inquiry.status_code == 200
    cards = inquiry.json()
    assert [card["seq"] for card in cards] == [1, 2]
    plan_id = cards[0]["dailyPlanId"]

    refreshed = client.post("/daily-plans/refresh", headers=ALICE)
    assert refreshed.status_code == 200
    assert refreshed.json()["id"] == plan_id

    started = client.post("/exams/start", json={"dailyPlanId": plan_id}, headers=ALICE)
    assert started.status_code == 201
    assert client.post("/daily-plans/refresh", headers=ALICE).status_code == 409


def test_job_key_is_enforced_when_configured(lingo_home):
    write_config(lingo_home, "[auth]\njob_key = \"s3cret\"\n")
    client = TestClient(app)
    assert client.post("/job/daily-plans/generate").status_code == 403
    allowed = client.post("/job/daily-plans/generate", headers={"X-Job-Key": "s3cret"})
    assert allowed.status_code == 200


def test_signed_user_tokens(lingo_home):
    write_config(lingo_home, "[auth]\nsecret = \"hmac-key\"\n")
    client = TestClient(app)

    assert client.get("/daily-plans/inquiry", headers=ALICE).status_code == 401
    signed = {"X-User-Token": sign_user_token("alice", "hmac-key")}
    assert client.get("/daily-plans/inquiry", headers=signed).status_code == 404


def test_exam_round_trip_over_http(lingo_home):
    client = TestClient(app)
    set_id = _create_set(client)["id"]

    started = client.post("/exams/start", json={"setId": set_id, "questionCount": 2}, headers=ALICE)
    assert started.status_code == 201
    exam = started.json()
    exam_id = exam["id"]
    assert exam["status"] == "ACTIVE"

    early = client.post(f"/exams/{exam_id}/submit", headers=ALICE)
    assert early.status_code == 409

    for question in exam["questions"]:
        choice = question["choices"].index(question["back"]) + 1
        answered = client.post(
            f"/exams/{exam_id}/answer", json={"seq": question["seq"], "choice": choice}, headers=ALICE
        )
        assert answered.json() == {"seq": question["seq"], "correct": True}

    both = client.post(f"/exams/{exam_id}/answer", json={"seq": 1, "choice": 1, "typedText": "dog"}, headers=ALICE)
    assert both.status_code == 400

    submitted = client.post(f"/exams/{exam_id}/submit", headers=ALICE)
    assert submitted.status_code == 200
    assert submitted.json() == {"id": exam_id, "score": 2, "scoreMax": 2}

    detail = client.get(f"/exams/{exam_id}", headers=ALICE).json()
    assert detail["status"] == "SUBMITTED"
    assert all(q["answer"]["isCorrect"] for q in detail["questions"])

    assert client.get(f"/exams/{exam_id}", headers=BOB).status_code == 404
    assert client.post(f"/exams/{exam_id}/cancel", headers=ALICE).status_code == 409

    page = client.post("/exams/list", json={"page": 1, "size": 10}, headers=ALICE).json()
    assert page["totalElements"] == 1
    assert page["content"][0]["status"] == "SUBMITTED"
    small = client.post("/exams/list", json={"page": 1, "size": 2}, headers=ALICE)
    assert small.status_code == 400


def test_exam_start_requires_single_source(lingo_home):
    client = TestClient(app)
    response = client.post("/exams/start", json={"setId": 1, "dailyPlanId": 1}, headers=ALICE)
    assert response.status_code == 400
    response = client.post("/exams/start", json={"setId": 1}, headers=ALICE)
    assert response.status_code == 400


def test_pronunciation_score_stores_attempt(lingo_home, conn, monkeypatch):
    async def fake_transcribe(data, filename, media_type, logger):
        assert data == b"RIFF"
        assert media_type == "audio/wav"
        return "the quick brown fox jumps"

    monkeypatch.setattr(pronunciation, "transcribe_audio", fake_transcribe)
    client = TestClient(app)

    response = client.post(
        "/voice/pronunciation-score",
        data={"text": "The quick brown fox"},
        files={"audio": ("clip.wav", b"RIFF", "audio/wav")},
        headers=ALICE,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["score"] == 75
    assert body["details"]["insertions"] == 1
    assert body["sttText"] == "the quick brown fox jumps"
    row = conn.execute("SELECT user_token, score FROM pronunciation_attempts").fetchone()
    assert (row["user_token"], row["score"]) == ("alice", 75)


def test_pronunciation_rejects_non_audio(lingo_home, monkeypatch):
    async def fake_transcribe(*args, **kwargs):
        raise AssertionError("recognizer must not be called")

    monkeypatch.setattr(pronunciation, "transcribe_audio", fake_transcribe)
    client = TestClient(app)
    response = client.post(
        "/voice/pronunciation-score",
        data={"text": "hello"},
        files={"audio": ("notes.txt", b"hello", "text/plain")},
        headers=ALICE,
    )
    assert response.status_code == 400


def test_tts_cache_hit_and_miss(lingo_home, conn, monkeypatch):
    calls = []

    async def fake_request(text, speed, cfg, logger):
        calls.append((text, speed))
        return "https://cdn.test/audio/1.mp3", "audio/1.mp3"

    monkeypatch.setattr(tts, "_request_speech", fake_request)
    client = TestClient(app)

    first = client.post("/voice/tts", json={"text": "Hello, world!"}, headers=ALICE)
    second = client.post("/voice/tts", json={"text": "hello world"}, headers=ALICE)

    assert first.json() == {"audioUrl": "https://cdn.test/audio/1.mp3", "cached": False}
    assert second.json() == {"audioUrl": "https://cdn.test/audio/1.mp3", "cached": True}
    assert len(calls) == 1
    assert conn.execute("SELECT hit_count FROM tts_cache").fetchone()[0] == 1


def test_remote_failure_surfaces_generic_error(lingo_home):
    write_config(lingo_home, "[tts]\nurl = \"\"\n")
    client = TestClient(app)
    response = client.post("/voice/tts", json={"text": "hi"}, headers=ALICE)
    assert response.status_code == 500
    assert response.json()["message"] == "something went wrong"

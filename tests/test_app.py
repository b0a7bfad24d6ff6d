import asyncio

import pytest
from fastapi.testclient import TestClient

from backend.app import app, get_driver, get_session_store
from backend.session import ACTIVE_JOB_PREFIX, SESSION_KEY_PREFIX, SessionStore

from conftest import FakeProvider, FakeRedis, make_driver

URLS = ["https://cdn.test/1.png", "https://cdn.test/2.png", "https://cdn.test/3.png"]


@pytest.fixture
def provider():
    return FakeProvider([{"status": "processing"}, {"status": "succeeded", "output": URLS}] * 5)


@pytest.fixture
def client(provider, fake_redis):
    driver = make_driver(provider)
    app.dependency_overrides[get_driver] = lambda: driver
    app.dependency_overrides[get_session_store] = lambda: SessionStore(fake_redis)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _generate(client, **kwargs):
    body = {"session_id": "s1", "main_text": "I QUIT MY JOB", "style_id": "bold"}
    body.update(kwargs)
    return client.post("/generate", json=body)


class TestGenerate:
    def test_returns_images_and_prompt(self, client, provider):
        resp = _generate(client)
        assert resp.status_code == 200
        data = resp.json()
        assert data["images"] == URLS
        assert data["prompt"].startswith('YouTube thumbnail with text "I QUIT MY JOB", bold dramatic')
        assert provider.last_payload()["input"]["prompt"] == data["prompt"]

    def test_blank_main_text(self, client, provider):
        resp = _generate(client, main_text="  ")
        assert resp.status_code == 400
        assert resp.json()["type"] == "ValidationError"
        assert provider.requests == []

    def test_reference_image_not_sent(self, client, provider):
        resp = _generate(client, reference_image="aGVsbG8=")
        assert resp.status_code == 200
        assert "aGVsbG8=" not in provider.creates[0].content.decode()

    def test_session_state_saved(self, client):
        _generate(client, context_text="office tower")
        session = client.get("/sessions/s1").json()
        assert session["thumbnails"] == URLS
        assert session["last_request"]["main_text"] == "I QUIT MY JOB"
        assert session["last_request"]["context_text"] == "office tower"
        assert session["selected_index"] is None

    def test_busy_session_rejected(self, client, provider, fake_redis):
        asyncio.run(fake_redis.set(f"{ACTIVE_JOB_PREFIX}s1", "1"))
        resp = _generate(client)
        assert resp.status_code == 409
        assert resp.json()["type"] == "SessionBusyError"
        assert provider.requests == []

    def test_lock_released_after_failure(self, fake_redis):
        provider = FakeProvider([{"status": "failed", "error": "bad prompt"}])
        driver = make_driver(provider)
        app.dependency_overrides[get_driver] = lambda: driver
        app.dependency_overrides[get_session_store] = lambda: SessionStore(fake_redis)
        try:
            resp = _generate(TestClient(app))
        finally:
            app.dependency_overrides.clear()

        assert resp.status_code == 502
        assert resp.json() == {"error": "bad prompt", "type": "GenerationFailed"}
        assert f"{ACTIVE_JOB_PREFIX}s1" not in fake_redis.data

    def test_missing_token(self, fake_redis):
        provider = FakeProvider()
        driver = make_driver(provider, token=None)
        app.dependency_overrides[get_driver] = lambda: driver
        app.dependency_overrides[get_session_store] = lambda: SessionStore(fake_redis)
        try:
            resp = _generate(TestClient(app))
        finally:
            app.dependency_overrides.clear()

        assert resp.status_code == 500
        assert resp.json()["type"] == "ConfigurationError"
        assert provider.requests == []


class TestRefine:
    def test_refine_selected_thumbnail(self, client, provider):
        _generate(client, context_text="office tower", reference_url="https://youtu.be/abc")
        assert client.post("/sessions/s1/select", json={"index": 1}).status_code == 200

        resp = client.post("/refine", json={"session_id": "s1", "instruction": "bigger text"})
        assert resp.status_code == 200
        prompt = resp.json()["prompt"]
        assert prompt.startswith('Refine YouTube thumbnail: bigger text, Original text: "I QUIT MY JOB"')
        assert "office tower" in prompt
        assert "youtu.be" not in prompt

        session = client.get("/sessions/s1").json()
        assert session["selected_index"] is None
        assert session["last_request"]["main_text"] == "I QUIT MY JOB"

    def test_index_in_request(self, client):
        _generate(client)
        resp = client.post("/refine", json={"session_id": "s1", "instruction": "x", "selected_index": 2})
        assert resp.status_code == 200

    def test_requires_selection(self, client):
        _generate(client)
        resp = client.post("/refine", json={"session_id": "s1", "instruction": "bigger text"})
        assert resp.status_code == 400

    def test_unknown_session(self, client):
        resp = client.post("/refine", json={"session_id": "nope", "instruction": "bigger text"})
        assert resp.status_code == 404

    def test_blank_instruction(self, client):
        resp = client.post("/refine", json={"session_id": "s1", "instruction": " "})
        assert resp.status_code == 400


class LockTrackingRedis(FakeRedis):
    """Records, for each session read or write, whether the session lock was held."""

    def __init__(self):
        super().__init__()
        self.lock_held = []

    def _track(self, key):
        if key.startswith(SESSION_KEY_PREFIX):
            session_id = key[len(SESSION_KEY_PREFIX):]
            self.lock_held.append(f"{ACTIVE_JOB_PREFIX}{session_id}" in self.data)

    async def get(self, key):
        self._track(key)
        return await super().get(key)

    async def set(self, key, value, ex=None, nx=False):
        self._track(key)
        return await super().set(key, value, ex=ex, nx=nx)


class TestSessionLock:
    def test_generate_and_refine_touch_session_under_lock(self, provider):
        rds = LockTrackingRedis()
        driver = make_driver(provider)
        app.dependency_overrides[get_driver] = lambda: driver
        app.dependency_overrides[get_session_store] = lambda: SessionStore(rds)
        try:
            client = TestClient(app)
            assert _generate(client).status_code == 200
            generate_access = list(rds.lock_held)
            rds.lock_held.clear()

            resp = client.post("/refine", json={"session_id": "s1", "instruction": "x", "selected_index": 0})
            assert resp.status_code == 200
        finally:
            app.dependency_overrides.clear()

        assert generate_access and all(generate_access)
        assert rds.lock_held and all(rds.lock_held)
        assert f"{ACTIVE_JOB_PREFIX}s1" not in rds.data

    def test_busy_refine_leaves_session_alone(self, client, provider, fake_redis):
        _generate(client)
        before = fake_redis.data[f"{SESSION_KEY_PREFIX}s1"]
        polls = len(provider.requests)
        asyncio.run(fake_redis.set(f"{ACTIVE_JOB_PREFIX}s1", "1"))

        resp = client.post("/refine", json={"session_id": "s1", "instruction": "x", "selected_index": 0})
        assert resp.status_code == 409
        assert fake_redis.data[f"{SESSION_KEY_PREFIX}s1"] == before
        assert len(provider.requests) == polls


class TestSessions:
    def test_select_out_of_range(self, client):
        _generate(client)
        assert client.post("/sessions/s1/select", json={"index": 3}).status_code == 400

    def test_unknown_session(self, client):
        assert client.get("/sessions/missing").status_code == 404

    def test_session_saved_with_ttl(self, client, fake_redis):
        _generate(client)
        assert fake_redis.expiry[f"{SESSION_KEY_PREFIX}s1"] == 3600


class TestJobs:
    def test_submit_and_check(self, client, provider):
        resp = client.post("/jobs", json={"prompt": "a prompt", "num_outputs": 2})
        assert resp.status_code == 200
        assert resp.json()["job_id"] == "pred-1"

        first = client.get("/jobs/pred-1").json()
        assert first["status"] == "processing"
        assert first["images"] == []
        second = client.get("/jobs/pred-1").json()
        assert second["status"] == "succeeded"
        assert second["images"] == URLS

    def test_empty_prompt(self, client, provider):
        assert client.post("/jobs", json={"prompt": ""}).status_code == 400
        assert provider.requests == []


class TestMisc:
    def test_styles(self, client):
        ids = [s["id"] for s in client.get("/styles").json()]
        assert ids == ["bold", "minimal", "energetic", "professional"]

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok", "provider_configured": True}

"""Integration tests for the REST API.

All tests use the FastAPI TestClient with a fake generation service, an
in-memory history table and a dict-backed storage bucket. Tests cover:

- ``POST /api/v1/generate-derivations``, ``/train-avatar``, ``/try-on``, ``/swap``
- ``POST/GET/DELETE /api/v1/history``
- ``/api/v1/jobs`` submission, polling, retry and removal
- ``/api/v1/model-config`` and ``/api/v1/prompts``
- ``GET /health``
"""

from __future__ import annotations

import pytest

from tests.fakes import DESCRIPTION, GARMENT_IMAGE, INPUT_IMAGE, rendered
from viba.api.v1 import health as health_api
from viba.api.v1 import jobs as jobs_api
from viba.auth.supabase_auth import CurrentUser, verify_jwt
from viba.jobs.in_process_queue import InProcessQueue
from viba.jobs.models import JobStatus


# ---------------------------------------------------------------------------
# Generation endpoints.
# ---------------------------------------------------------------------------


class TestGenerateDerivations:
    """Test POST /api/v1/generate-derivations."""

    def test_missing_image_is_rejected_before_upstream(self, test_client, generator):
        resp = test_client.post("/api/v1/generate-derivations", json={"intensity": 5})
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"
        assert generator.describe_calls == []
        assert generator.render_calls == []

    def test_success_is_saved_to_history(self, test_client, repository):
        resp = test_client.post(
            "/api/v1/generate-derivations",
            json={"image": INPUT_IMAGE, "intensity": 6, "skinTone": "Dark"},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["description"] == DESCRIPTION
        assert data["failedVariants"] == 0
        assert len(data["images"]) == 4
        assert all(url.startswith("https://storage.test/signed/owners/user-1/") for url in data["images"])

        record = repository.get("user-1", data["generationId"])
        assert record.parameters["creativity"] == 6
        assert record.parameters["skinTone"] == "Dark"
        assert all(key.startswith("owners/user-1/") for key in record.storage_refs())

    def test_save_to_history_false(self, test_client, repository):
        resp = test_client.post(
            "/api/v1/generate-derivations",
            json={"image": INPUT_IMAGE, "intensity": 5, "saveToHistory": False},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["images"] == [rendered(i) for i in range(4)]
        assert data["generationId"] is None
        assert repository.list_for_owner("user-1") == []

    def test_partial_failure_reported(self, test_client, generator):
        def render(index):
            # variant 1 fails its first call and both retries
            if index in (0, 2, 3):
                return rendered(index)
            raise ConnectionError("dropped")

        generator.render_fn = render
        resp = test_client.post("/api/v1/generate-derivations", json={"image": INPUT_IMAGE, "intensity": 5})
        assert resp.status_code == 200
        assert resp.json()["failedVariants"] == 1
        assert len(resp.json()["images"]) == 3

    def test_intensity_required(self, test_client, generator):
        resp = test_client.post("/api/v1/generate-derivations", json={"image": INPUT_IMAGE})
        assert resp.status_code == 400
        assert "intensity" in resp.json()["detail"]
        assert generator.describe_calls == []

    @pytest.mark.parametrize("intensity", [0, 11])
    def test_intensity_out_of_range(self, test_client, intensity):
        resp = test_client.post("/api/v1/generate-derivations", json={"image": INPUT_IMAGE, "intensity": intensity})
        assert resp.status_code == 400

    def test_unknown_field_rejected(self, test_client):
        resp = test_client.post("/api/v1/generate-derivations", json={"image": INPUT_IMAGE, "seed": 4})
        assert resp.status_code == 400

    def test_model_override(self, test_client, generator):
        resp = test_client.post(
            "/api/v1/generate-derivations",
            json={
                "image": INPUT_IMAGE,
                "intensity": 5,
                "modelConfig": {"textModel": "gemini-2.5-pro", "imageModel": "gemini-2.0-flash-exp"},
                "saveToHistory": False,
            },
        )
        assert resp.status_code == 200
        assert generator.describe_calls[0]["model"] == "gemini-2.5-pro"
        assert generator.render_calls[0]["model"] == "gemini-2.5-flash-image"

    def test_unconfigured_service(self, test_client, generator):
        generator.configured = False
        resp = test_client.post("/api/v1/generate-derivations", json={"image": INPUT_IMAGE, "intensity": 5})
        assert resp.status_code == 503

    def test_requires_authentication(self, test_client):
        from viba.main import app

        app.dependency_overrides.pop(verify_jwt)
        resp = test_client.post("/api/v1/generate-derivations", json={"image": INPUT_IMAGE, "intensity": 5})
        assert resp.status_code == 401


class TestCompositeEndpoints:
    """Test /train-avatar, /try-on and /swap."""

    def test_avatar(self, test_client, generator):
        resp = test_client.post(
            "/api/v1/train-avatar",
            json={"files": [{"image": INPUT_IMAGE}, {"image": GARMENT_IMAGE}]},
        )
        assert resp.status_code == 200
        assert resp.json()["image"].startswith("https://storage.test/signed/")
        assert resp.json()["generationId"]
        assert generator.render_calls[0]["image_size"] == "4K"

    def test_avatar_too_many_files(self, test_client, generator):
        resp = test_client.post("/api/v1/train-avatar", json={"files": [{"image": INPUT_IMAGE}] * 4})
        assert resp.status_code == 400
        assert generator.render_calls == []

    def test_try_on(self, test_client, generator, repository):
        resp = test_client.post(
            "/api/v1/try-on",
            json={"modelImage": INPUT_IMAGE, "garmentImage": GARMENT_IMAGE, "model": "gemini-2.5-flash-image"},
        )
        assert resp.status_code == 200
        record = repository.get("user-1", resp.json()["generationId"])
        assert record.type.value == "try_on"
        assert record.parameters == {"model": "gemini-2.5-flash-image"}
        assert len(record.input_files) == 2

    def test_swap_missing_scene(self, test_client, generator):
        resp = test_client.post("/api/v1/swap", json={"sourceImage": INPUT_IMAGE})
        assert resp.status_code == 400
        assert "sceneImage" in resp.json()["detail"]
        assert generator.render_calls == []

    def test_quota_surfaces_as_429(self, test_client, generator, sleep):
        generator.render_results.append(RuntimeError("429 RESOURCE_EXHAUSTED"))
        resp = test_client.post("/api/v1/swap", json={"sourceImage": INPUT_IMAGE, "sceneImage": GARMENT_IMAGE})
        assert resp.status_code == 429
        assert resp.json()["error"] == "quota_exceeded"
        assert len(generator.render_calls) == 1
        assert sleep.delays == []

    def test_no_image_after_retries(self, test_client, generator):
        from viba.errors import ContentPolicyError

        generator.render_results.extend([ContentPolicyError("No image generated")] * 3)
        resp = test_client.post("/api/v1/try-on", json={"modelImage": INPUT_IMAGE, "garmentImage": GARMENT_IMAGE})
        assert resp.status_code == 422
        assert len(generator.render_calls) == 3


# ---------------------------------------------------------------------------
# History endpoints.
# ---------------------------------------------------------------------------


class TestHistory:
    """Test /api/v1/history."""

    def _create(self, test_client, **overrides):
        body = {
            "type": "avatar",
            "input_files": [INPUT_IMAGE],
            "output_files": [GARMENT_IMAGE],
            "parameters": {"model": "gemini-3-pro-image-preview"},
        }
        body.update(overrides)
        return test_client.post("/api/v1/history", json=body)

    def test_create_uploads_and_resolves(self, test_client, backend):
        resp = self._create(test_client)
        assert resp.status_code == 201
        data = resp.json()
        assert data["output_files"][0].startswith("https://storage.test/signed/owners/user-1/")
        assert "user_id" not in data
        assert len(backend.objects) == 2

    def test_list_newest_first(self, test_client):
        first = self._create(test_client).json()["id"]
        second = self._create(test_client, type="swap").json()["id"]
        resp = test_client.get("/api/v1/history")
        assert resp.status_code == 200
        ids = [r["id"] for r in resp.json()]
        assert set(ids) == {first, second}

    def test_delete_removes_record_and_artifacts(self, test_client, backend):
        record_id = self._create(test_client).json()["id"]

        resp = test_client.delete(f"/api/v1/history/{record_id}")

        assert resp.status_code == 200
        assert backend.objects == {}
        assert len(backend.remove_calls) == 1
        assert test_client.get("/api/v1/history").json() == []

    def test_delete_missing(self, test_client):
        resp = test_client.delete("/api/v1/history/nope")
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    def test_unknown_type_rejected(self, test_client):
        assert self._create(test_client, type="video").status_code == 400

    def test_id_of_another_owner_is_refused(self, test_client, backend):
        from viba.main import app

        record_id = "3f2b8c1e-5d4a-4e6f-9a7b-1c2d3e4f5a6b"
        assert self._create(test_client, id=record_id).status_code == 201
        stored = set(backend.objects)

        app.dependency_overrides[verify_jwt] = lambda: CurrentUser(id="user-2")
        resp = self._create(test_client, id=record_id)
        assert resp.status_code == 409
        assert resp.json()["error"] == "conflict"
        assert set(backend.objects) == stored

        app.dependency_overrides[verify_jwt] = lambda: CurrentUser(id="user-1")
        assert [r["id"] for r in test_client.get("/api/v1/history").json()] == [record_id]

    @pytest.mark.parametrize("record_id", ["../x", "shared", ""])
    def test_malformed_id_rejected(self, test_client, backend, record_id):
        resp = self._create(test_client, id=record_id)
        assert resp.status_code == 400
        assert backend.objects == {}

    @pytest.mark.parametrize(
        "files",
        [
            ["owners/user-2/abc/output_1_0.png"],
            ["iVBORw0KGgo="],
            ["https://cdn.example.com/image.png"],
            ["owners/user-1/../user-2/abc/output_1_0.png"],
        ],
    )
    def test_only_data_urls_or_own_keys_accepted(self, test_client, backend, files):
        resp = self._create(test_client, output_files=files)
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"
        assert backend.objects == {}

    def test_own_key_is_accepted(self, test_client, backend):
        key = "owners/user-1/abc/output_1_0.png"
        backend.objects[key] = b"stored"
        resp = self._create(test_client, output_files=[key])
        assert resp.status_code == 201
        assert resp.json()["output_files"][0].startswith(f"https://storage.test/signed/{key}")


# ---------------------------------------------------------------------------
# Job endpoints.
# ---------------------------------------------------------------------------


@pytest.fixture
def queue(test_client):
    """A queue whose worker loop is not started, so jobs stay pending."""

    async def worker(job):
        return job

    dispatcher = InProcessQueue(worker)
    jobs_api.set_dispatcher(dispatcher)
    health_api.set_dispatcher(dispatcher)
    return dispatcher


class TestJobs:
    """Test /api/v1/jobs."""

    def _submit(self, test_client):
        resp = test_client.post("/api/v1/jobs/try-on", json={"modelImage": INPUT_IMAGE, "garmentImage": GARMENT_IMAGE})
        assert resp.status_code == 200
        return resp.json()["jobId"]

    def test_submit_and_poll(self, test_client, queue):
        job_id = self._submit(test_client)
        resp = test_client.get(f"/api/v1/jobs/{job_id}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "pending"
        assert data["type"] == "try_on"
        assert data["input_count"] == 2

    def test_submit_validates_before_queueing(self, test_client, queue):
        resp = test_client.post("/api/v1/jobs/derivations", json={"intensity": 3})
        assert resp.status_code == 400
        assert queue.pending_count() == 0

    def test_list_filtered_by_type(self, test_client, queue):
        self._submit(test_client)
        test_client.post("/api/v1/jobs/avatar", json={"files": [{"image": INPUT_IMAGE}]})
        resp = test_client.get("/api/v1/jobs", params={"type": "avatar"})
        assert resp.json()["count"] == 1
        assert resp.json()["jobs"][0]["type"] == "avatar"
        assert test_client.get("/api/v1/jobs").json()["count"] == 2

    def test_other_user_sees_not_found(self, test_client, queue):
        from viba.main import app

        job_id = self._submit(test_client)
        app.dependency_overrides[verify_jwt] = lambda: CurrentUser(id="user-2")
        assert test_client.get(f"/api/v1/jobs/{job_id}").status_code == 404
        assert test_client.get("/api/v1/jobs").json()["count"] == 0

    def test_retry_only_failed(self, test_client, queue):
        job_id = self._submit(test_client)
        assert test_client.post(f"/api/v1/jobs/{job_id}/retry").status_code == 409

        job = queue._jobs[job_id]
        job.status = JobStatus.FAILED
        job.error = "upstream unavailable"
        failed = test_client.get(f"/api/v1/jobs/{job_id}").json()
        assert failed["error"] == "upstream unavailable"

        resp = test_client.post(f"/api/v1/jobs/{job_id}/retry")
        assert resp.status_code == 200
        assert resp.json()["status"] == "pending"
        assert "error" not in resp.json()

    def test_remove(self, test_client, queue):
        job_id = self._submit(test_client)
        queue._jobs[job_id].status = JobStatus.PROCESSING
        assert test_client.delete(f"/api/v1/jobs/{job_id}").status_code == 409

        queue._jobs[job_id].status = JobStatus.COMPLETED
        assert test_client.delete(f"/api/v1/jobs/{job_id}").status_code == 200
        assert test_client.get(f"/api/v1/jobs/{job_id}").status_code == 404

    def test_health_reports_queue_depth(self, test_client, queue):
        self._submit(test_client)
        data = test_client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["queue"] == {"pending": 1, "processing": 0}
        assert data["storage_configured"] is True


# ---------------------------------------------------------------------------
# Model config and prompts.
# ---------------------------------------------------------------------------


class TestModelConfigApi:
    """Test /api/v1/model-config and /api/v1/prompts."""

    def test_get_defaults(self, test_client):
        data = test_client.get("/api/v1/model-config").json()
        assert data["config"]["derivation_text"] == "gemini-3-pro-preview"
        assert "try_on" in data["features"]
        assert data["available_models"]

    def test_update_normalizes_and_applies(self, test_client, generator):
        resp = test_client.put("/api/v1/model-config", json={"models": {"avatar": "models/gemini-2.5-flash-image"}})
        assert resp.status_code == 200
        assert resp.json()["config"]["avatar"] == "gemini-2.5-flash-image"

        test_client.post("/api/v1/train-avatar", json={"files": [{"image": INPUT_IMAGE}], "saveToHistory": False})
        assert generator.render_calls[0]["model"] == "gemini-2.5-flash-image"

    def test_update_unknown_feature(self, test_client):
        resp = test_client.put("/api/v1/model-config", json={"models": {"video": "veo"}})
        assert resp.status_code == 400

    def test_reset(self, test_client):
        test_client.put("/api/v1/model-config", json={"models": {"swap": "gemini-2.5-flash-image"}})
        resp = test_client.delete("/api/v1/model-config")
        assert resp.json()["config"]["swap"] == "gemini-3-pro-image-preview"

    def test_prompts_catalog(self, test_client):
        prompts = test_client.get("/api/v1/prompts").json()["prompts"]
        assert [p["type"] for p in prompts] == ["derivation", "avatar", "try_on", "swap"]

"""
Tests for the HTTP surface: /health and POST /api/merge.

The merge pipeline is replaced by a fake so these tests cover request
handling, upload storage, error envelopes and delivery of the result.
"""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from video_merger.exceptions import EncodeError, PipelineJobError, UnsupportedCodecError
from video_merger.main import app


class FakePipeline:
    """Writes a merged file into the job directory, or raises ``error``."""

    error: Exception | None = None
    jobs: list = []

    def __init__(self, settings=None):
        self.settings = settings

    async def run(self, job, output_dir=None):
        FakePipeline.jobs.append(job)
        if FakePipeline.error is not None:
            raise FakePipeline.error
        final_path = Path(job.work_dir) / "merged.mp4"
        final_path.write_bytes(b"merged video bytes")
        return final_path


@pytest.fixture
def fake_pipeline(monkeypatch):
    FakePipeline.error = None
    FakePipeline.jobs = []
    monkeypatch.setattr("video_merger.api.merge.MergePipeline", FakePipeline)
    return FakePipeline


@pytest.fixture
def client(settings, monkeypatch, fake_pipeline):
    """FastAPI test client with storage pointed at tmp_path."""
    monkeypatch.setattr("video_merger.api.merge.get_settings", lambda: settings)
    return TestClient(app, raise_server_exceptions=False)


def video_part(name: str, content: bytes = b"fake video") -> tuple:
    return ("videos", (name, content, "video/mp4"))


def music_part(name: str = "song.mp3", content: bytes = b"fake music") -> tuple:
    return ("music", (name, content, "audio/mpeg"))


def uploaded_files(settings) -> list[str]:
    upload_dir = Path(settings.upload_dir)
    return sorted(p.name for p in upload_dir.iterdir()) if upload_dir.exists() else []


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert "version" in response.json()


class TestMergeRequestErrors:
    def test_missing_videos(self, client, fake_pipeline):
        response = client.post("/api/merge", files=[music_part()])

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "MISSING_INPUT"
        assert error["location"]["field"] == "video"
        assert fake_pipeline.jobs == []

    def test_missing_music(self, client, fake_pipeline):
        response = client.post("/api/merge", files=[video_part("a.mp4")])

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MISSING_INPUT"
        assert "music" in response.json()["error"]["message"]
        assert fake_pipeline.jobs == []

    def test_too_many_videos_nothing_saved(self, client, settings, fake_pipeline):
        files = [video_part(f"v{i}.mp4") for i in range(21)] + [music_part()]
        response = client.post("/api/merge", files=files)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "TOO_MANY_INPUTS"
        assert uploaded_files(settings) == []
        assert fake_pipeline.jobs == []

    def test_file_too_large(self, client, settings, fake_pipeline):
        settings.max_upload_size_mb = 1
        files = [
            video_part("small.mp4"),
            video_part("huge.mp4", b"\0" * (1024 * 1024 + 1)),
            music_part(),
        ]
        response = client.post("/api/merge", files=files)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "FILE_TOO_LARGE"
        assert error["location"]["file_name"] == "huge.mp4"
        assert uploaded_files(settings) == []
        assert fake_pipeline.jobs == []

    def test_error_envelope_shape(self, client):
        response = client.post("/api/merge", files=[music_part()])

        data = response.json()
        assert "request_id" in data
        assert data["error"]["retryable"] is False
        assert data["error"]["suggested_fix"]
        assert "processing_time_ms" in data["meta"]


class TestMergeSuccess:
    def test_returns_merged_file(self, client, fake_pipeline):
        files = [video_part("intro.mp4"), video_part("outro.mov"), music_part()]
        response = client.post("/api/merge", files=files)

        assert response.status_code == 200
        assert response.headers["content-type"] == "video/mp4"
        assert "merged.mp4" in response.headers["content-disposition"]
        assert response.content == b"merged video bytes"

    def test_videos_keep_upload_order(self, client, fake_pipeline):
        files = [video_part("first.mp4"), video_part("second.mp4"), video_part("third.mp4"), music_part()]
        client.post("/api/merge", files=files)

        job = fake_pipeline.jobs[0]
        assert [v.display_name for v in job.videos] == ["first.mp4", "second.mp4", "third.mp4"]
        assert job.audio.display_name == "song.mp3"
        assert all(Path(v.path).suffix == ".mp4" for v in job.videos)

    def test_uploads_get_unique_names(self, client, fake_pipeline):
        files = [video_part("same.mp4"), video_part("same.mp4"), music_part()]
        client.post("/api/merge", files=files)

        paths = [v.path for v in fake_pipeline.jobs[0].videos]
        assert len(set(paths)) == 2

    def test_result_deleted_after_delivery(self, client, settings, fake_pipeline):
        response = client.post("/api/merge", files=[video_part("a.mp4"), music_part()])

        assert response.status_code == 200
        job = fake_pipeline.jobs[0]
        assert not Path(job.work_dir).exists()
        assert list(Path(settings.work_root).iterdir()) == []


class TestMergePipelineErrors:
    def test_engine_failure_hides_diagnostic(self, client, fake_pipeline):
        cause = EncodeError("[libx264 @ 0x55d] height not divisible by 2 (321x241)")
        fake_pipeline.error = PipelineJobError("normalizing", cause, "job1")

        response = client.post("/api/merge", files=[video_part("a.mp4"), music_part()])

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "ENCODE_FAILED"
        assert error["message"] == "Video processing failed. Please try again later."
        assert "libx264" not in response.text
        assert error["location"]["stage"] == "normalizing"
        assert error["retryable"] is True
        assert error["retry_after_ms"] == 2000

    def test_validation_failure_names_file(self, client, fake_pipeline):
        cause = UnsupportedCodecError("A.flv", "vp6", ("h264", "hevc", "vp8", "vp9"))
        fake_pipeline.error = PipelineJobError("validating", cause, "job1")

        response = client.post("/api/merge", files=[video_part("A.flv"), music_part()])

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "UNSUPPORTED_CODEC"
        assert "A.flv" in error["message"]
        assert error["location"]["file_name"] == "A.flv"

    def test_unexpected_error_returns_internal_error(self, client, fake_pipeline):
        fake_pipeline.error = RuntimeError("database on fire")

        response = client.post("/api/merge", files=[video_part("a.mp4"), music_part()])

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "INTERNAL_ERROR"
        assert error["message"] == "Internal server error"
        assert "database on fire" not in response.text

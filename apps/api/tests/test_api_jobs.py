"""HTTP surface for replica and video jobs."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
import unittest

from fastapi.testclient import TestClient

from synthjobs.adapters.vendor import FakeVendorClient, VendorUnavailableError
from synthjobs.main import create_app
from synthjobs.repositories.sql import SqlJobStore
from synthjobs.routes.dependencies import get_reconciler
from synthjobs.schemas.job import JobKind, ReplicaStatus, VideoStatus

from settings_env import SettingsEnvCase


class _ApiCase(SettingsEnvCase):
    def setUp(self) -> None:
        super().setUp()
        self.app = create_app()
        self.vendor = FakeVendorClient()
        self.sleeps: list[float] = []
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
        self.app.state.vendor_client = self.vendor
        self.app.state.clock = lambda: self.now
        self.app.state.sleep = self.sleeps.append
        self.client = TestClient(self.app)
        self.store = self.app.state.store

    def _ready_replica(self) -> str:
        response = self.client.post("/api/v1/replicas", json={"train_video_url": "https://media/train.mp4"})
        replica_id = response.json()["replica_id"]
        self.store.transition(
            kind=JobKind.REPLICA,
            vendor_id=replica_id,
            from_status=ReplicaStatus.TRAINING,
            to_status=ReplicaStatus.READY,
        )
        return replica_id


class HealthTests(_ApiCase):
    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})


class ReplicaApiTests(_ApiCase):
    def test_create_replica_returns_training_job(self) -> None:
        response = self.client.post(
            "/api/v1/replicas",
            json={"train_video_url": "https://media/train.mp4", "replica_name": "Ada"},
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["status"], "TRAINING")
        self.assertEqual(body["replica_name"], "Ada")
        self.assertIn(body["replica_id"], self.store.replica_jobs)
        self.assertEqual(self.vendor.last_callback_url, "https://svc.test/api/v1/webhooks/vendor")

    def test_missing_or_blank_train_video_url_is_invalid_input(self) -> None:
        for payload in ({}, {"train_video_url": "  "}):
            with self.subTest(payload=payload):
                response = self.client.post("/api/v1/replicas", json=payload)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()["code"], "INVALID_INPUT")
        self.assertEqual(self.vendor.calls, [])

    def test_vendor_outage_maps_to_503_without_job(self) -> None:
        self.vendor.queue_failure(VendorUnavailableError("timeout"), times=3)

        response = self.client.post("/api/v1/replicas", json={"train_video_url": "https://media/train.mp4"})

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["code"], "VENDOR_UNAVAILABLE")
        self.assertEqual(self.store.replica_jobs, {})
        self.assertEqual(len(self.sleeps), 2)

    def test_replica_status_poll(self) -> None:
        created = self.client.post("/api/v1/replicas", json={"train_video_url": "https://media/train.mp4"})
        replica_id = created.json()["replica_id"]
        self.vendor.set_replica_state(replica_id, ReplicaStatus.READY)

        response = self.client.get("/api/v1/replicas/status", params={"id": replica_id})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "READY")
        self.assertIsNotNone(response.json()["last_checked_at"])

    def test_status_requires_id_and_hides_unknown_jobs(self) -> None:
        missing_id = self.client.get("/api/v1/replicas/status")
        unknown = self.client.get("/api/v1/replicas/status", params={"id": "r-unknown"})

        self.assertEqual(missing_id.status_code, 400)
        self.assertEqual(missing_id.json()["code"], "INVALID_INPUT")
        self.assertEqual(unknown.status_code, 404)
        self.assertEqual(unknown.json(), {"code": "RESOURCE_NOT_FOUND", "message": "Resource not found"})


class VideoApiTests(_ApiCase):
    def test_create_video_then_poll_until_completed(self) -> None:
        replica_id = self._ready_replica()

        created = self.client.post(
            "/api/v1/videos",
            json={"persona_id": "p1", "replica_id": replica_id, "script": "Hello there"},
        )
        self.assertEqual(created.status_code, 201)
        video_id = created.json()["video_id"]
        self.assertEqual(created.json()["status"], "PENDING")

        self.vendor.set_video_state(video_id, VideoStatus.COMPLETED, result_url="https://cdn/out.mp4")
        polled = self.client.get("/api/v1/videos/status", params={"id": video_id})

        self.assertEqual(polled.status_code, 200)
        self.assertEqual(polled.json()["status"], "COMPLETED")
        self.assertEqual(polled.json()["result_url"], "https://cdn/out.mp4")

    def test_video_requires_exactly_one_input(self) -> None:
        replica_id = self._ready_replica()

        response = self.client.post(
            "/api/v1/videos",
            json={
                "persona_id": "p1",
                "replica_id": replica_id,
                "script": "Hello",
                "audio_url": "https://media/voice.mp3",
            },
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_INPUT")
        self.assertEqual(self.store.video_jobs, {})

    def test_video_for_training_replica_conflicts(self) -> None:
        created = self.client.post("/api/v1/replicas", json={"train_video_url": "https://media/train.mp4"})
        replica_id = created.json()["replica_id"]

        response = self.client.post(
            "/api/v1/videos",
            json={"persona_id": "p1", "replica_id": replica_id, "script": "Hello"},
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "REPLICA_NOT_READY")
        self.assertEqual(response.json()["details"]["current_status"], "TRAINING")

    def test_vendor_lost_video_passes_status_through_once_per_staleness_window(self) -> None:
        replica_id = self._ready_replica()
        created = self.client.post(
            "/api/v1/videos",
            json={"persona_id": "p1", "replica_id": replica_id, "script": "Hello"},
        )
        video_id = created.json()["video_id"]
        del self.vendor.videos[video_id]

        response = self.client.get("/api/v1/videos/status", params={"id": video_id})
        vendor_calls = len(self.vendor.calls)
        repeat = self.client.get("/api/v1/videos/status", params={"id": video_id})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["video_id"], video_id)
        self.assertEqual(response.json()["status"], "PENDING")
        self.assertEqual(repeat.status_code, 200)
        self.assertEqual(len(self.vendor.calls), vendor_calls)

    def test_persona_listing_returns_only_that_persona(self) -> None:
        replica_id = self._ready_replica()
        for persona_id in ("p1", "p2", "p1"):
            self.client.post(
                "/api/v1/videos",
                json={"persona_id": persona_id, "replica_id": replica_id, "script": "Hello"},
            )
        calls_before = len(self.vendor.calls)

        response = self.client.get("/api/v1/personas/p1/videos")

        self.assertEqual(response.status_code, 200)
        items = response.json()["items"]
        self.assertEqual(len(items), 2)
        self.assertEqual({item["persona_id"] for item in items}, {"p1"})
        self.assertEqual(len(self.vendor.calls), calls_before)
        self.assertEqual(self.client.get("/api/v1/personas/nobody/videos").json(), {"items": []})

    def test_persona_listing_reads_the_store_off_the_event_loop(self) -> None:
        loop_running: list[bool] = []

        class _RecordingReconciler:
            def list_persona_videos(self, persona_id: str) -> list:
                try:
                    asyncio.get_running_loop()
                except RuntimeError:
                    loop_running.append(False)
                else:
                    loop_running.append(True)
                return []

        self.app.dependency_overrides[get_reconciler] = _RecordingReconciler

        response = self.client.get("/api/v1/personas/p1/videos")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(loop_running, [False])


class SqlBackedApiTests(SettingsEnvCase):
    env = {**SettingsEnvCase.env, "SYNTHJOBS_DATABASE_URL": "sqlite://"}

    def setUp(self) -> None:
        super().setUp()
        self.app = create_app()
        self.vendor = FakeVendorClient()
        self.app.state.vendor_client = self.vendor

    def test_database_url_selects_sql_store(self) -> None:
        self.assertIsInstance(self.app.state.store, SqlJobStore)

        with TestClient(self.app) as client:
            response = client.post("/api/v1/replicas", json={"train_video_url": "https://media/train.mp4"})
            self.assertEqual(response.status_code, 201)
            replica_id = response.json()["replica_id"]
            self.assertEqual(self.app.state.store.get_replica_job(replica_id).status, ReplicaStatus.TRAINING)


if __name__ == "__main__":
    unittest.main()

"""Integration tests for the HTTP API.

Tests the generation, library, album, playlist, shared link and billing
webhook endpoints through httpx.ASGITransport. Providers are scripted and
polling loops sleep far longer than a test runs, so every request sees the
state the test arranged.
"""

import json
import time
from datetime import timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from cadenza.app import app
from cadenza.core.timezone import utcnow
from cadenza.models.generation_job import JobKind, JobStatus, Visibility
from cadenza.models.user import PlanStatus
from cadenza.services.billing.signature import WEBHOOK_SECRET_SETTING, sign_payload
from cadenza.services.exceptions import ProviderUnavailable
from cadenza.services.poller import JobPoller
from cadenza.services.providers.base import ProviderObservation

WEBHOOK_SECRET = "whsec_route_tests"


@pytest.fixture
def provider(make_provider):
    return make_provider(script=[ProviderObservation.processing()])


@pytest_asyncio.fixture
async def test_client(session_factory, uow_factory, provider, monkeypatch):
    """Provide AsyncClient for testing API endpoints with database access."""
    monkeypatch.setenv("FREE_MAX_GENERATIONS", "5")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)

    providers = {kind: provider for kind in JobKind}
    poller = JobPoller(uow_factory, providers, interval_seconds=3600)
    # Inject dependencies into app.state (lifespan does not run under ASGITransport)
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.providers = providers
    app.state.poller = poller

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    await poller.shutdown()


def as_user(user):
    return {"X-User-Id": str(user.id)}


def signed_headers(body: bytes, secret: str = WEBHOOK_SECRET) -> dict[str, str]:
    timestamp = int(time.time())
    return {
        "Stripe-Signature": f"t={timestamp},v1={sign_payload(body, secret, timestamp)}",
        "Content-Type": "application/json",
    }


@pytest.mark.asyncio
class TestSubmitGeneration:
    """Test POST /api/generations/{kind}."""

    async def test_text_to_music_accepted(self, test_client, make_user, provider):
        # Arrange
        user = await make_user(generations_used_this_month=1)

        # Act
        response = await test_client.post(
            "/api/generations/text-to-music",
            json={"tags": "lofi, chill", "duration": 60},
            headers=as_user(user),
        )

        # Assert
        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "submitted"
        assert data["external_job_id"] == "scripted-req-1"
        assert provider.submitted == [
            (JobKind.TEXT_TO_MUSIC, {"tags": "lofi, chill", "duration": 60.0})
        ]

    async def test_submission_attaches_poller(self, test_client, make_user):
        user = await make_user()

        response = await test_client.post(
            "/api/generations/image", json={"prompt": "neon skyline"}, headers=as_user(user)
        )

        assert response.status_code == 202
        assert len(app.state.poller.active_job_ids) == 1

    async def test_requires_identity(self, test_client):
        response = await test_client.post("/api/generations/text-to-music", json={"tags": "lofi"})
        assert response.status_code == 401

        response = await test_client.post(
            "/api/generations/text-to-music",
            json={"tags": "lofi"},
            headers={"X-User-Id": "not-a-uuid"},
        )
        assert response.status_code == 400

    async def test_invalid_input(self, test_client, make_user):
        user = await make_user()

        response = await test_client.post(
            "/api/generations/text-to-music", json={"tags": ""}, headers=as_user(user)
        )

        assert response.status_code == 422

    async def test_quota_exceeded(self, test_client, make_user, provider, uow_factory):
        user = await make_user(generations_used_this_month=5)

        response = await test_client.post(
            "/api/generations/text-to-music", json={"tags": "lofi"}, headers=as_user(user)
        )

        assert response.status_code == 402
        assert response.json()["detail"]["reason"] == "QuotaExceeded"
        assert provider.submitted == []
        async with await uow_factory() as uow:
            assert await uow.generation_jobs.count_by_owner(user.id) == 0

    async def test_plan_expired(self, test_client, make_user, make_plan):
        plan = await make_plan()
        user = await make_user(
            subscription_plan_id=plan.id,
            plan_status=PlanStatus.ACTIVE,
            plan_end_date=utcnow() - timedelta(days=1),
        )

        response = await test_client.post(
            "/api/generations/text-to-music", json={"tags": "lofi"}, headers=as_user(user)
        )

        assert response.status_code == 402
        assert response.json()["detail"]["reason"] == "PlanExpired"

    async def test_provider_failure_returns_failed_job(
        self, test_client, make_user, provider, uow_factory
    ):
        user = await make_user()
        provider.submit_error = ProviderUnavailable("503 from upstream")

        response = await test_client.post(
            "/api/generations/text-to-music", json={"tags": "lofi"}, headers=as_user(user)
        )

        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["error_type"] == "ProviderUnavailable"

        job_response = await test_client.get(
            f"/api/generations/{detail['job_id']}", headers=as_user(user)
        )
        assert job_response.json()["status"] == "failed"
        assert job_response.json()["error_message"]
        async with await uow_factory() as uow:
            assert (await uow.users.get_by_id(user.id)).generations_used_this_month == 0


@pytest.mark.asyncio
class TestReadGeneration:
    """Test GET /api/generations/{job_id} and DELETE /api/generations/{job_id}/watch."""

    async def test_owner_sees_input(self, test_client, make_user, make_job):
        owner = await make_user()
        job = await make_job(owner.id)

        response = await test_client.get(f"/api/generations/{job.id}", headers=as_user(owner))

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["audio_url"] == job.audio_url
        assert data["input_payload"] == {"tags": "lofi"}

    async def test_public_job_for_anonymous_hides_input(self, test_client, make_user, make_job):
        owner = await make_user()
        job = await make_job(owner.id)

        response = await test_client.get(f"/api/generations/{job.id}")

        assert response.status_code == 200
        assert response.json()["input_payload"] is None

    async def test_private_job_forbidden(self, test_client, make_user, make_job):
        owner = await make_user()
        stranger = await make_user()
        job = await make_job(owner.id, visibility=Visibility.PRIVATE)

        response = await test_client.get(f"/api/generations/{job.id}", headers=as_user(stranger))

        assert response.status_code == 403

    async def test_unknown_job(self, test_client):
        response = await test_client.get(f"/api/generations/{uuid4()}")
        assert response.status_code == 404

    async def test_owner_read_attaches_and_delete_detaches(self, test_client, make_user, make_job):
        owner = await make_user()
        job = await make_job(owner.id, status=JobStatus.PROCESSING)
        poller = app.state.poller

        response = await test_client.get(f"/api/generations/{job.id}", headers=as_user(owner))
        assert response.json()["status"] == "processing"
        assert poller.is_watching(job.id)

        response = await test_client.delete(
            f"/api/generations/{job.id}/watch", headers=as_user(owner)
        )
        assert response.status_code == 200
        assert response.json() == {"detached": True}
        assert not poller.is_watching(job.id)

    async def test_stranger_cannot_detach(self, test_client, make_user, make_job):
        owner = await make_user()
        stranger = await make_user()
        job = await make_job(owner.id, status=JobStatus.PROCESSING)

        response = await test_client.delete(
            f"/api/generations/{job.id}/watch", headers=as_user(stranger)
        )

        assert response.status_code == 403


@pytest.mark.asyncio
class TestUpdateGeneration:
    """Test PATCH /api/generations/{job_id}."""

    async def test_make_private_and_retitle(self, test_client, make_user, make_job):
        owner = await make_user()
        job = await make_job(owner.id)

        response = await test_client.patch(
            f"/api/generations/{job.id}",
            json={"visibility": "private", "title": "Late Night"},
            headers=as_user(owner),
        )

        assert response.status_code == 200
        assert response.json()["visibility"] == "private"
        assert response.json()["title"] == "Late Night"

    async def test_in_flight_job_conflict(self, test_client, make_user, make_job):
        owner = await make_user()
        job = await make_job(owner.id, status=JobStatus.PROCESSING)

        response = await test_client.patch(
            f"/api/generations/{job.id}", json={"title": "x"}, headers=as_user(owner)
        )

        assert response.status_code == 409

    async def test_non_owner_forbidden(self, test_client, make_user, make_job):
        owner = await make_user()
        stranger = await make_user()
        job = await make_job(owner.id)

        response = await test_client.patch(
            f"/api/generations/{job.id}", json={"title": "mine"}, headers=as_user(stranger)
        )

        assert response.status_code == 403

    async def test_album_must_be_owned(self, test_client, make_user, make_job):
        owner = await make_user()
        stranger = await make_user()
        job = await make_job(owner.id)
        album = await test_client.post(
            "/api/albums", json={"name": "Not yours"}, headers=as_user(stranger)
        )

        response = await test_client.patch(
            f"/api/generations/{job.id}",
            json={"album_id": album.json()["id"]},
            headers=as_user(owner),
        )

        assert response.status_code == 403


@pytest.mark.asyncio
class TestListings:
    async def test_my_generations_include_every_status(self, test_client, make_user, make_job):
        owner = await make_user()
        await make_job(owner.id)
        await make_job(owner.id, status=JobStatus.FAILED)
        await make_job(owner.id, visibility=Visibility.PRIVATE, kind=JobKind.IMAGE)

        response = await test_client.get("/api/generations", headers=as_user(owner))
        assert response.status_code == 200
        assert len(response.json()) == 3

        response = await test_client.get(
            "/api/generations", params={"kind": "image"}, headers=as_user(owner)
        )
        assert [g["kind"] for g in response.json()] == ["image"]

    async def test_gallery_and_profile_show_public_completed_only(
        self, test_client, make_user, make_job
    ):
        owner = await make_user()
        public = await make_job(owner.id)
        await make_job(owner.id, visibility=Visibility.PRIVATE)
        await make_job(owner.id, status=JobStatus.PROCESSING)

        gallery = await test_client.get("/api/gallery")
        profile = await test_client.get(f"/api/users/{owner.id}/generations")

        assert [g["id"] for g in gallery.json()] == [str(public.id)]
        assert [g["id"] for g in profile.json()] == [str(public.id)]

    async def test_usage(self, test_client, make_user):
        user = await make_user(generations_used_this_month=2)

        response = await test_client.get("/api/me/usage", headers=as_user(user))

        assert response.status_code == 200
        data = response.json()
        assert data["plan_status"] == "free"
        assert data["music"] == {"used": 2, "limit": 5, "denied_reason": None}

    async def test_usage_unknown_user(self, test_client):
        response = await test_client.get("/api/me/usage", headers={"X-User-Id": str(uuid4())})
        assert response.status_code == 404

    async def test_active_plans_in_display_order(self, test_client, make_plan):
        await make_plan(name="Studio", sort_order=2)
        await make_plan(name="Creator", sort_order=1)
        await make_plan(name="Legacy", is_active=False)

        response = await test_client.get("/api/plans")

        assert response.status_code == 200
        assert [p["name"] for p in response.json()] == ["Creator", "Studio"]
        assert response.json()[0]["max_generations"] == 50

    async def test_my_albums(self, test_client, make_user):
        owner = await make_user()
        other = await make_user()
        await test_client.post("/api/albums", json={"name": "Mine"}, headers=as_user(owner))
        await test_client.post("/api/albums", json={"name": "Theirs"}, headers=as_user(other))

        response = await test_client.get("/api/albums", headers=as_user(owner))

        assert [a["name"] for a in response.json()] == ["Mine"]
        assert response.json()[0]["visibility"] == "private"


@pytest.mark.asyncio
class TestSharing:
    async def test_track_link_lifecycle(self, test_client, make_user, make_job):
        owner = await make_user()
        job = await make_job(owner.id, visibility=Visibility.PRIVATE)

        created = await test_client.post(
            f"/api/generations/{job.id}/share", headers=as_user(owner)
        )
        assert created.status_code == 201
        token = created.json()["token"]
        assert created.json()["url"].endswith(f"/api/shared/{token}")

        shared = await test_client.get(f"/api/shared/{token}")
        assert shared.status_code == 200
        assert shared.json()["resource_type"] == "track"
        assert shared.json()["view_count"] == 1
        assert shared.json()["track"]["id"] == str(job.id)

        via_token = await test_client.get(
            f"/api/generations/{job.id}", params={"share_token": token}
        )
        assert via_token.status_code == 200

        revoked = await test_client.delete(f"/api/shared/{token}", headers=as_user(owner))
        assert revoked.json() == {"revoked": True}
        assert (await test_client.get(f"/api/shared/{token}")).status_code == 404

    async def test_in_flight_track_cannot_be_shared(self, test_client, make_user, make_job):
        owner = await make_user()
        job = await make_job(owner.id, status=JobStatus.PROCESSING)

        response = await test_client.post(
            f"/api/generations/{job.id}/share", headers=as_user(owner)
        )

        assert response.status_code == 409

    async def test_private_album_via_link(self, test_client, make_user, make_job):
        owner = await make_user()
        job = await make_job(owner.id, visibility=Visibility.PRIVATE)
        album = await test_client.post(
            "/api/albums", json={"name": "Night Drives"}, headers=as_user(owner)
        )
        album_id = album.json()["id"]
        await test_client.patch(
            f"/api/generations/{job.id}", json={"album_id": album_id}, headers=as_user(owner)
        )

        assert (await test_client.get(f"/api/albums/{album_id}")).status_code == 403

        link = await test_client.post(f"/api/albums/{album_id}/share", headers=as_user(owner))
        token = link.json()["token"]

        response = await test_client.get(f"/api/albums/{album_id}", params={"share_token": token})
        assert response.status_code == 200
        assert [t["id"] for t in response.json()["tracks"]] == [str(job.id)]

        shared = await test_client.get(f"/api/shared/{token}")
        assert shared.json()["album"]["id"] == album_id


@pytest.mark.asyncio
class TestPlaylists:
    async def test_add_public_track_of_another_user(self, test_client, make_user, make_job):
        owner = await make_user()
        artist = await make_user()
        track = await make_job(artist.id)
        playlist = await test_client.post(
            "/api/playlists", json={"name": "Focus"}, headers=as_user(owner)
        )
        playlist_id = playlist.json()["id"]

        added = await test_client.post(
            f"/api/playlists/{playlist_id}/tracks",
            json={"track_id": str(track.id)},
            headers=as_user(owner),
        )
        assert added.status_code == 201
        assert [t["id"] for t in added.json()["tracks"]] == [str(track.id)]

        duplicate = await test_client.post(
            f"/api/playlists/{playlist_id}/tracks",
            json={"track_id": str(track.id)},
            headers=as_user(owner),
        )
        assert duplicate.status_code == 409

    async def test_private_track_of_another_user_forbidden(
        self, test_client, make_user, make_job
    ):
        owner = await make_user()
        artist = await make_user()
        track = await make_job(artist.id, visibility=Visibility.PRIVATE)
        playlist = await test_client.post(
            "/api/playlists", json={"name": "Focus"}, headers=as_user(owner)
        )

        response = await test_client.post(
            f"/api/playlists/{playlist.json()['id']}/tracks",
            json={"track_id": str(track.id)},
            headers=as_user(owner),
        )

        assert response.status_code == 403

    async def test_private_playlist_hidden(self, test_client, make_user):
        owner = await make_user()
        stranger = await make_user()
        playlist = await test_client.post(
            "/api/playlists", json={"name": "Secret"}, headers=as_user(owner)
        )
        playlist_id = playlist.json()["id"]

        assert (await test_client.get(f"/api/playlists/{playlist_id}")).status_code == 403
        response = await test_client.get(f"/api/playlists/{playlist_id}", headers=as_user(owner))
        assert response.status_code == 200
        assert response.json()["name"] == "Secret"
        stranger_response = await test_client.get(
            f"/api/playlists/{playlist_id}", headers=as_user(stranger)
        )
        assert stranger_response.status_code == 403


@pytest.mark.asyncio
class TestBillingWebhook:
    """Test POST /webhooks/billing with signature verification."""

    async def test_missing_signature(self, test_client):
        response = await test_client.post("/webhooks/billing", content=b"{}")
        assert response.status_code == 401

    async def test_invalid_signature_writes_nothing(
        self, test_client, make_user, make_plan, uow_factory
    ):
        plan = await make_plan()
        user = await make_user(subscription_plan_id=plan.id, stripe_subscription_id="sub_1")
        body = json.dumps(
            {
                "type": "invoice.payment_succeeded",
                "data": {"object": {"subscription": "sub_1", "amount_paid": 999}},
            }
        ).encode()

        response = await test_client.post(
            "/webhooks/billing", content=body, headers=signed_headers(body, "whsec_wrong")
        )

        assert response.status_code == 401
        async with await uow_factory() as uow:
            assert (await uow.users.get_by_id(user.id)).plan_status == PlanStatus.FREE

    async def test_payment_succeeded_applied(
        self, test_client, make_user, make_plan, uow_factory
    ):
        plan = await make_plan()
        user = await make_user(
            subscription_plan_id=plan.id,
            plan_status=PlanStatus.INACTIVE,
            stripe_subscription_id="sub_1",
            generations_used_this_month=7,
        )
        body = json.dumps(
            {
                "id": "evt_1",
                "type": "invoice.payment_succeeded",
                "data": {
                    "object": {
                        "subscription": "sub_1",
                        "amount_paid": 999,
                        "lines": {"data": [{"price": {"recurring": {"interval": "month"}}}]},
                    }
                },
            }
        ).encode()

        response = await test_client.post(
            "/webhooks/billing", content=body, headers=signed_headers(body)
        )

        assert response.status_code == 200
        assert response.json() == {
            "received": True,
            "handled": True,
            "event_type": "invoice.payment_succeeded",
        }
        async with await uow_factory() as uow:
            stored = await uow.users.get_by_id(user.id)
        assert stored.plan_status == PlanStatus.ACTIVE
        assert stored.generations_used_this_month == 0

    async def test_unhandled_event_acknowledged(self, test_client):
        body = b'{"type": "customer.created", "data": {"object": {}}}'

        response = await test_client.post(
            "/webhooks/billing", content=body, headers=signed_headers(body)
        )

        assert response.status_code == 200
        assert response.json()["handled"] is False

    async def test_invalid_json(self, test_client):
        body = b"not json"

        response = await test_client.post(
            "/webhooks/billing", content=body, headers=signed_headers(body)
        )

        assert response.status_code == 400

    async def test_secret_from_site_setting(self, test_client, uow_factory, monkeypatch):
        monkeypatch.delenv("STRIPE_WEBHOOK_SECRET")
        async with await uow_factory() as uow:
            await uow.site_settings.set_value(WEBHOOK_SECRET_SETTING, "whsec_from_db")
        body = b'{"type": "customer.created", "data": {"object": {}}}'

        accepted = await test_client.post(
            "/webhooks/billing", content=body, headers=signed_headers(body, "whsec_from_db")
        )
        rejected = await test_client.post(
            "/webhooks/billing", content=body, headers=signed_headers(body)
        )

        assert accepted.status_code == 200
        assert rejected.status_code == 401

    async def test_unconfigured_secret(self, test_client, monkeypatch):
        monkeypatch.delenv("STRIPE_WEBHOOK_SECRET")
        body = b"{}"

        response = await test_client.post(
            "/webhooks/billing", content=body, headers=signed_headers(body)
        )

        assert response.status_code == 500


@pytest.mark.asyncio
async def test_health(test_client):
    response = await test_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "active_pollers": 0}

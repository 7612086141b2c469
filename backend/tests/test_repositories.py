"""Repository tests: job record store, usage counters, links and settings."""

import asyncio
from datetime import timedelta

import pytest

from cadenza.core.timezone import utcnow
from cadenza.models.album import Album
from cadenza.models.generation_job import InvalidTransition, JobKind, JobStatus, Visibility
from cadenza.models.shareable_link import SharedResource
from cadenza.services.exceptions import ForbiddenError, NotFoundError
from cadenza.services.providers.base import JobResult, ProviderObservation


async def create_submitted_job(uow_factory, user_id, visibility=Visibility.PUBLIC, **kwargs):
    async with await uow_factory() as uow:
        job = await uow.generation_jobs.create(
            user_id, kwargs.pop("kind", JobKind.TEXT_TO_MUSIC), {"tags": "lofi"}, visibility
        )
        return await uow.generation_jobs.record_submitted(job.id, "req-1")


async def complete_job(uow_factory, job_id, audio_url="https://cdn.example.com/a.wav"):
    async with await uow_factory() as uow:
        return await uow.generation_jobs.record_status(
            job_id, ProviderObservation.completed(JobResult(audio_url=audio_url))
        )


class TestGenerationJobRepository:
    @pytest.mark.asyncio
    async def test_create_starts_pending(self, uow_factory, make_user):
        user = await make_user()
        async with await uow_factory() as uow:
            job = await uow.generation_jobs.create(
                user.id, JobKind.IMAGE, {"prompt": "neon city"}, Visibility.PRIVATE, "City"
            )

        assert job.status == JobStatus.PENDING
        assert job.external_job_id is None
        assert job.visibility == Visibility.PRIVATE
        assert job.title == "City"

    @pytest.mark.asyncio
    async def test_timestamps_stored_as_naive_utc(self, uow_factory, make_user):
        user = await make_user()
        before = utcnow()
        job = await create_submitted_job(uow_factory, user.id)

        async with await uow_factory() as uow:
            stored = await uow.generation_jobs.get_by_id(job.id)

        assert stored.created_at.tzinfo is None
        assert stored.updated_at.tzinfo is None
        assert before - timedelta(seconds=5) <= stored.created_at <= utcnow()

    @pytest.mark.asyncio
    async def test_record_submitted_rejects_duplicate(self, uow_factory, make_user):
        user = await make_user()
        job = await create_submitted_job(uow_factory, user.id)
        assert job.status == JobStatus.SUBMITTED

        with pytest.raises(InvalidTransition):
            async with await uow_factory() as uow:
                await uow.generation_jobs.record_submitted(job.id, "req-2")

        async with await uow_factory() as uow:
            stored = await uow.generation_jobs.get_by_id(job.id)
        assert stored.external_job_id == "req-1"

    @pytest.mark.asyncio
    async def test_repeated_processing_does_not_write(self, uow_factory, make_user):
        user = await make_user()
        job = await create_submitted_job(uow_factory, user.id)

        async with await uow_factory() as uow:
            first = await uow.generation_jobs.record_status(
                job.id, ProviderObservation.processing()
            )
        first_updated_at = first.updated_at

        await asyncio.sleep(0.01)
        async with await uow_factory() as uow:
            await uow.generation_jobs.record_status(job.id, ProviderObservation.processing())
            # Earlier state observed after processing is ignored too
            await uow.generation_jobs.record_status(job.id, ProviderObservation.submitted())

        async with await uow_factory() as uow:
            stored = await uow.generation_jobs.get_by_id(job.id)
        assert stored.status == JobStatus.PROCESSING
        assert stored.updated_at == first_updated_at

    @pytest.mark.asyncio
    async def test_terminal_job_is_write_once(self, uow_factory, make_user):
        user = await make_user()
        job = await create_submitted_job(uow_factory, user.id)
        completed = await complete_job(uow_factory, job.id)
        assert completed.status == JobStatus.COMPLETED

        for observation in (
            ProviderObservation.failed("late failure"),
            ProviderObservation.processing(),
            ProviderObservation.completed(JobResult(audio_url="https://cdn.example.com/b.wav")),
        ):
            with pytest.raises(InvalidTransition):
                async with await uow_factory() as uow:
                    await uow.generation_jobs.record_status(job.id, observation)

        async with await uow_factory() as uow:
            stored = await uow.generation_jobs.get_by_id(job.id)
        assert stored.status == JobStatus.COMPLETED
        assert stored.audio_url == "https://cdn.example.com/a.wav"
        assert stored.error_message is None

    @pytest.mark.asyncio
    async def test_failed_observation_stores_error_only(self, uow_factory, make_user):
        user = await make_user()
        job = await create_submitted_job(uow_factory, user.id)
        async with await uow_factory() as uow:
            failed = await uow.generation_jobs.record_status(
                job.id, ProviderObservation.failed("content policy")
            )
        assert failed.status == JobStatus.FAILED
        assert failed.error_message == "content policy"
        assert not failed.has_result

    @pytest.mark.asyncio
    async def test_get_enforces_visibility(self, uow_factory, make_user):
        owner = await make_user()
        stranger = await make_user()
        private_job = await create_submitted_job(uow_factory, owner.id, Visibility.PRIVATE)
        public_job = await create_submitted_job(uow_factory, owner.id, Visibility.PUBLIC)

        async with await uow_factory() as uow:
            assert (await uow.generation_jobs.get(private_job.id, owner.id)).id == private_job.id
            assert (await uow.generation_jobs.get(public_job.id, stranger.id)).id == public_job.id
            assert (await uow.generation_jobs.get(public_job.id, None)).id == public_job.id

            with pytest.raises(ForbiddenError):
                await uow.generation_jobs.get(private_job.id, stranger.id)
            with pytest.raises(ForbiddenError):
                await uow.generation_jobs.get(private_job.id, None)

    @pytest.mark.asyncio
    async def test_get_unknown_job_raises_not_found(self, uow_factory, make_user):
        user = await make_user()
        async with await uow_factory() as uow:
            with pytest.raises(NotFoundError):
                await uow.generation_jobs.get(user.id, user.id)

    @pytest.mark.asyncio
    async def test_public_listings_exclude_private_and_unfinished(self, uow_factory, make_user):
        owner = await make_user()
        public_done = await create_submitted_job(uow_factory, owner.id, Visibility.PUBLIC)
        await complete_job(uow_factory, public_done.id)
        private_done = await create_submitted_job(uow_factory, owner.id, Visibility.PRIVATE)
        await complete_job(uow_factory, private_done.id)
        await create_submitted_job(uow_factory, owner.id, Visibility.PUBLIC)

        async with await uow_factory() as uow:
            profile = await uow.generation_jobs.list_public_by_owner(owner.id)
            gallery = await uow.generation_jobs.list_gallery()
            mine = await uow.generation_jobs.list_by_owner(owner.id)
            mine_private = await uow.generation_jobs.list_by_owner(
                owner.id, visibility=Visibility.PRIVATE
            )

        assert [j.id for j in profile] == [public_done.id]
        assert [j.id for j in gallery] == [public_done.id]
        assert len(mine) == 3
        assert [j.id for j in mine_private] == [private_done.id]

    @pytest.mark.asyncio
    async def test_list_by_owner_filters_kind(self, uow_factory, make_user):
        owner = await make_user()
        await create_submitted_job(uow_factory, owner.id, kind=JobKind.IMAGE)
        await create_submitted_job(uow_factory, owner.id, kind=JobKind.TEXT_TO_MUSIC)

        async with await uow_factory() as uow:
            images = await uow.generation_jobs.list_by_owner(owner.id, kind=JobKind.IMAGE)
        assert [j.kind for j in images] == [JobKind.IMAGE]

    @pytest.mark.asyncio
    async def test_update_metadata_bumps_updated_at(self, uow_factory, make_user):
        owner = await make_user()
        job = await create_submitted_job(uow_factory, owner.id)
        job = await complete_job(uow_factory, job.id)
        async with await uow_factory() as uow:
            album = await uow.albums.add(Album(user_id=owner.id, name="Night drives"))

        await asyncio.sleep(0.01)
        async with await uow_factory() as uow:
            stored = await uow.generation_jobs.get_by_id(job.id)
            updated = await uow.generation_jobs.update_metadata(
                stored, visibility=Visibility.PRIVATE, title="Rain", album_id=album.id
            )

        assert updated.visibility == Visibility.PRIVATE
        assert updated.title == "Rain"
        assert updated.album_id == album.id
        assert updated.updated_at > job.updated_at

    @pytest.mark.asyncio
    async def test_list_stale_pending(self, uow_factory, make_user):
        owner = await make_user()
        async with await uow_factory() as uow:
            stale = await uow.generation_jobs.create(owner.id, JobKind.IMAGE, {"prompt": "x"})
            stale.created_at = utcnow() - timedelta(minutes=30)
            await uow.generation_jobs.create(owner.id, JobKind.IMAGE, {"prompt": "fresh"})

        async with await uow_factory() as uow:
            found = await uow.generation_jobs.list_stale_pending(
                older_than=utcnow() - timedelta(minutes=5)
            )
        assert [j.id for j in found] == [stale.id]


class TestUserRepository:
    @pytest.mark.asyncio
    async def test_increment_stops_at_limit(self, uow_factory, make_user):
        user = await make_user()
        results = []
        for _ in range(4):
            async with await uow_factory() as uow:
                results.append(
                    await uow.users.increment_usage_if_below(
                        user.id, "video_generations_used_this_month", 3
                    )
                )

        assert results == [True, True, True, False]
        async with await uow_factory() as uow:
            stored = await uow.users.get_by_id(user.id)
        assert stored.video_generations_used_this_month == 3

    @pytest.mark.asyncio
    async def test_decrement_never_below_zero(self, uow_factory, make_user):
        user = await make_user(image_generations_used_this_month=1)
        async with await uow_factory() as uow:
            assert await uow.users.decrement_usage(user.id, "image_generations_used_this_month")
            assert not await uow.users.decrement_usage(
                user.id, "image_generations_used_this_month"
            )
        async with await uow_factory() as uow:
            stored = await uow.users.get_by_id(user.id)
        assert stored.image_generations_used_this_month == 0

    @pytest.mark.asyncio
    async def test_unknown_counter_rejected(self, uow_factory, make_user):
        user = await make_user()
        async with await uow_factory() as uow:
            with pytest.raises(ValueError):
                await uow.users.increment_usage_if_below(user.id, "email", 10)

    @pytest.mark.asyncio
    async def test_lookup_by_billing_ids(self, uow_factory, make_user):
        user = await make_user(stripe_customer_id="cus_1", stripe_subscription_id="sub_1")
        async with await uow_factory() as uow:
            assert (await uow.users.get_by_stripe_customer_id("cus_1")).id == user.id
            assert (await uow.users.get_by_stripe_subscription_id("sub_1")).id == user.id
            assert await uow.users.get_by_stripe_subscription_id("sub_unknown") is None


class TestShareableLinkRepository:
    @pytest.mark.asyncio
    async def test_valid_link_lifecycle(self, uow_factory, make_user):
        owner = await make_user()
        job = await create_submitted_job(uow_factory, owner.id)

        async with await uow_factory() as uow:
            link = await uow.shareable_links.create(SharedResource.TRACK, job.id, owner.id)
        assert len(link.token) >= 32

        async with await uow_factory() as uow:
            found = await uow.shareable_links.get_valid(link.token)
            await uow.shareable_links.increment_view_count(found)
            await uow.shareable_links.increment_view_count(found)

        async with await uow_factory() as uow:
            stored = await uow.shareable_links.get_by_token(link.token)
            assert stored.view_count == 2
            await uow.shareable_links.revoke(stored)

        async with await uow_factory() as uow:
            assert await uow.shareable_links.get_valid(link.token) is None

    @pytest.mark.asyncio
    async def test_expired_link_is_invalid(self, uow_factory, make_user):
        owner = await make_user()
        async with await uow_factory() as uow:
            album = await uow.albums.add(Album(user_id=owner.id, name="Old"))
            link = await uow.shareable_links.create(
                SharedResource.ALBUM, album.id, owner.id, expires_at=utcnow() - timedelta(days=1)
            )

        async with await uow_factory() as uow:
            assert await uow.shareable_links.get_valid(link.token) is None
            assert await uow.shareable_links.get_by_token(link.token) is not None


class TestSiteSettingRepository:
    @pytest.mark.asyncio
    async def test_upsert_and_delete(self, uow_factory):
        async with await uow_factory() as uow:
            await uow.site_settings.set_value("stripe_webhook_secret", "whsec_one")
        async with await uow_factory() as uow:
            await uow.site_settings.set_value("stripe_webhook_secret", "whsec_two")
        async with await uow_factory() as uow:
            assert await uow.site_settings.get_value("stripe_webhook_secret") == "whsec_two"
            await uow.site_settings.delete_value("stripe_webhook_secret")
        async with await uow_factory() as uow:
            assert await uow.site_settings.get_value("stripe_webhook_secret") is None

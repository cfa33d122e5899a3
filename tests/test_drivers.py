"""Driver application tests: submission rules, admin review and its effect on ride posting."""

from __future__ import annotations

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from carpool.domain.enums import DriverApplicationStatus, EventType
from carpool.domain.errors import (
    DriverNotApproved,
    InvalidDriverApplication,
    InvalidStateTransition,
    NotAdmin,
    NotFound,
)
from carpool.infrastructure.models import OutboxEventModel
from carpool.infrastructure.repositories import UserRepository
from carpool.services.drivers import DriverApplicationService
from carpool.services.rides import RideService
from tests.conftest import NOW


@pytest.fixture
def service(db_session, clock):
    return DriverApplicationService(db_session, clock=clock)


@pytest_asyncio.fixture
async def admin(make_user):
    return await make_user("Admin", is_admin=True)


@pytest_asyncio.fixture
async def applicant(make_user):
    return await make_user("Applicant")


async def apply(service, user_id: int, **overrides):
    details = {
        "first_name": "Sam",
        "surname": "Carter",
        "car_make": "Ford",
        "car_model": "Focus",
        "years_driving_experience": 5,
        "has_drivers_license": True,
        "car_insured": True,
        "has_mot": True,
        "home_area": "Gateshead",
    }
    details.update(overrides)
    return await service.submit_application(user_id, **details)


async def events_of(session, event_type: EventType) -> list[OutboxEventModel]:
    result = await session.execute(
        select(OutboxEventModel)
        .where(OutboxEventModel.event_type == event_type.value)
        .order_by(OutboxEventModel.id)
    )
    return list(result.scalars().all())


class TestSubmit:
    @pytest.mark.asyncio
    async def test_application_is_stored_pending(self, db_session, service, applicant):
        application = await apply(service, applicant.id, first_name="  Sam ")

        assert application.status == DriverApplicationStatus.PENDING
        assert application.first_name == "Sam"
        assert application.reviewed_by is None

        (event,) = await events_of(db_session, EventType.DRIVER_APPLICATION_SUBMITTED)
        assert event.aggregate_id == str(application.id)
        assert event.payload["user_id"] == applicant.id

    @pytest.mark.asyncio
    async def test_one_pending_application_at_a_time(self, service, applicant):
        await apply(service, applicant.id)
        with pytest.raises(InvalidDriverApplication):
            await apply(service, applicant.id)

    @pytest.mark.asyncio
    async def test_approved_driver_cannot_apply(self, service, make_user):
        driver = await make_user("Driver", is_approved_driver=True)
        with pytest.raises(InvalidDriverApplication):
            await apply(service, driver.id)

    @pytest.mark.asyncio
    async def test_unknown_user(self, service):
        with pytest.raises(NotFound):
            await apply(service, 999)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"has_drivers_license": False},
            {"car_insured": False},
            {"has_mot": False},
            {"first_name": "   "},
            {"car_model": ""},
            {"years_driving_experience": -1},
        ],
    )
    async def test_ineligible_application(self, service, applicant, overrides):
        with pytest.raises(InvalidDriverApplication):
            await apply(service, applicant.id, **overrides)

    @pytest.mark.asyncio
    async def test_can_reapply_after_rejection(self, service, admin, applicant):
        first = await apply(service, applicant.id)
        await service.reject_application(first.id, admin.id, "Licence photo unreadable")

        second = await apply(service, applicant.id)
        assert second.id != first.id
        assert second.status == DriverApplicationStatus.PENDING


class TestReview:
    @pytest.mark.asyncio
    async def test_approval_makes_the_user_a_driver(
        self, db_session, service, clock, admin, applicant
    ):
        application = await apply(service, applicant.id, home_area="Gateshead")
        approved = await service.approve_application(application.id, admin.id, "All checks passed")

        assert approved.status == DriverApplicationStatus.APPROVED
        assert approved.reviewed_by == admin.id
        assert approved.admin_notes == "All checks passed"
        assert approved.reviewed_at is not None

        user = await UserRepository(db_session).get_by_id(applicant.id)
        assert user.is_approved_driver is True
        assert user.home_area == "Gateshead"

        (event,) = await events_of(db_session, EventType.DRIVER_APPROVED)
        assert event.payload["status"] == "APPROVED"
        assert event.payload["reviewed_by"] == admin.id

        ride, _ = await RideService(db_session, clock=clock).post_ride(
            applicant.id,
            "Gateshead Metro Station",
            "Manchester Airport",
            NOW + timedelta(hours=100),
            3,
            2000,
        )
        assert ride.driver_id == applicant.id

    @pytest.mark.asyncio
    async def test_rejection_keeps_the_user_off_the_road(
        self, db_session, service, clock, admin, applicant
    ):
        application = await apply(service, applicant.id)
        rejected = await service.reject_application(application.id, admin.id)

        assert rejected.status == DriverApplicationStatus.REJECTED
        assert rejected.admin_notes is None
        assert len(await events_of(db_session, EventType.DRIVER_REJECTED)) == 1

        with pytest.raises(DriverNotApproved):
            await RideService(db_session, clock=clock).post_ride(
                applicant.id,
                "Gateshead Metro Station",
                "Manchester Airport",
                NOW + timedelta(hours=100),
                3,
                2000,
            )

    @pytest.mark.asyncio
    async def test_only_admins_review(self, db_session, service, applicant, make_user):
        application = await apply(service, applicant.id)
        other = await make_user("Not an admin")

        with pytest.raises(NotAdmin):
            await service.approve_application(application.id, other.id)
        with pytest.raises(NotAdmin):
            await service.reject_application(application.id, 999)
        with pytest.raises(NotAdmin):
            await service.approve_application(application.id, applicant.id)

        pending = await service.get_application(application.id)
        assert pending.status == DriverApplicationStatus.PENDING
        assert await events_of(db_session, EventType.DRIVER_APPROVED) == []

    @pytest.mark.asyncio
    async def test_application_is_reviewed_once(self, service, admin, applicant):
        application = await apply(service, applicant.id)
        await service.reject_application(application.id, admin.id)

        with pytest.raises(InvalidStateTransition):
            await service.approve_application(application.id, admin.id)

        assert (await service.get_application(application.id)).status == (
            DriverApplicationStatus.REJECTED
        )

    @pytest.mark.asyncio
    async def test_missing_application(self, service, admin):
        with pytest.raises(NotFound):
            await service.approve_application(999, admin.id)

    @pytest.mark.asyncio
    async def test_review_queue(self, service, admin, applicant, make_user):
        other = await make_user("Second applicant")
        first = await apply(service, applicant.id)
        second = await apply(service, other.id)
        await service.approve_application(first.id, admin.id)

        pending = await service.list_applications(admin.id, DriverApplicationStatus.PENDING)
        assert [a.id for a in pending] == [second.id]
        assert {a.id for a in await service.list_applications(admin.id)} == {
            first.id,
            second.id,
        }

        with pytest.raises(NotAdmin):
            await service.list_applications(applicant.id)

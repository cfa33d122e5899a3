"""
Driver applications
===================

A user becomes an approved driver only through an application reviewed by
an administrator:

    PENDING --approve--> APPROVED   (user.is_approved_driver = True)
    PENDING --reject---> REJECTED

Reviews are a status compare-and-set on the pending row, so two admins
acting at once cannot both decide the same application.  A user may hold
one pending application at a time and may reapply after a rejection.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.domain.clock import Clock, utcnow
from carpool.domain.enums import DriverApplicationStatus, EventType
from carpool.domain.errors import (
    InvalidDriverApplication,
    InvalidStateTransition,
    NotAdmin,
    NotFound,
)
from carpool.infrastructure.models import DriverApplicationModel, UserModel
from carpool.infrastructure.repositories import (
    DriverApplicationRepository,
    UserRepository,
)
from carpool.services.events import EventPublisher, application_payload

logger = logging.getLogger(__name__)

_REVIEW_EVENTS = {
    DriverApplicationStatus.APPROVED: EventType.DRIVER_APPROVED,
    DriverApplicationStatus.REJECTED: EventType.DRIVER_REJECTED,
}


class DriverApplicationService:
    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self.session = session
        self.applications = DriverApplicationRepository(session)
        self.users = UserRepository(session)
        self.events = EventPublisher(session)
        self.clock = clock

    async def submit_application(
        self,
        user_id: int,
        first_name: str,
        surname: str,
        car_make: str,
        car_model: str,
        years_driving_experience: int,
        has_drivers_license: bool,
        car_insured: bool,
        has_mot: bool,
        home_area: Optional[str] = None,
    ) -> DriverApplicationModel:
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        if user.is_approved_driver:
            raise InvalidDriverApplication("Already an approved driver")
        if await self.applications.get_pending_for_user(user_id) is not None:
            raise InvalidDriverApplication("An application is already awaiting review")

        fields = {
            "first name": first_name,
            "surname": surname,
            "car make": car_make,
            "car model": car_model,
        }
        for label, value in fields.items():
            if not value or not value.strip():
                raise InvalidDriverApplication(f"{label.capitalize()} is required")
        if not has_drivers_license:
            raise InvalidDriverApplication("A valid driving licence is required")
        if not car_insured:
            raise InvalidDriverApplication("The car must be insured")
        if not has_mot:
            raise InvalidDriverApplication("The car must have a valid MOT")
        if years_driving_experience < 0:
            raise InvalidDriverApplication("Years of driving experience cannot be negative")

        application = await self.applications.create(
            DriverApplicationModel(
                user_id=user_id,
                first_name=first_name.strip(),
                surname=surname.strip(),
                home_area=home_area.strip() if home_area else None,
                car_make=car_make.strip(),
                car_model=car_model.strip(),
                years_driving_experience=years_driving_experience,
                has_drivers_license=has_drivers_license,
                car_insured=car_insured,
                has_mot=has_mot,
                status=DriverApplicationStatus.PENDING,
            )
        )
        await self.events.publish(
            EventType.DRIVER_APPLICATION_SUBMITTED,
            application.id,
            application_payload(application),
        )
        await self.session.commit()
        logger.info("Driver application %d submitted by user %d", application.id, user_id)
        return await self.get_application(application.id)

    async def approve_application(
        self, application_id: int, admin_id: int, admin_notes: Optional[str] = None
    ) -> DriverApplicationModel:
        return await self._review(
            application_id, admin_id, DriverApplicationStatus.APPROVED, admin_notes
        )

    async def reject_application(
        self, application_id: int, admin_id: int, admin_notes: Optional[str] = None
    ) -> DriverApplicationModel:
        return await self._review(
            application_id, admin_id, DriverApplicationStatus.REJECTED, admin_notes
        )

    async def _review(
        self,
        application_id: int,
        admin_id: int,
        decision: DriverApplicationStatus,
        admin_notes: Optional[str],
    ) -> DriverApplicationModel:
        await self._admin(admin_id)
        application = await self.get_application(application_id)
        if application.status != DriverApplicationStatus.PENDING:
            raise InvalidStateTransition(
                f"Application {application_id} is already {application.status.value.lower()}"
            )

        reviewed = await self.applications.review(
            application_id,
            decision,
            admin_notes=admin_notes or None,
            reviewed_by=admin_id,
            reviewed_at=self.clock(),
        )
        if not reviewed:
            raise InvalidStateTransition(
                f"Application {application_id} was reviewed by someone else"
            )

        if decision == DriverApplicationStatus.APPROVED:
            user = await self.users.get_by_id(application.user_id)
            user.is_approved_driver = True
            if application.home_area:
                user.home_area = application.home_area

        application = await self.get_application(application_id)
        await self.events.publish(
            _REVIEW_EVENTS[decision], application_id, application_payload(application)
        )
        await self.session.commit()
        logger.info(
            "Driver application %d %s by admin %d",
            application_id, decision.value.lower(), admin_id,
        )
        return application

    async def _admin(self, admin_id: int) -> UserModel:
        admin = await self.users.get_by_id(admin_id)
        if admin is None or not admin.is_admin:
            raise NotAdmin()
        return admin

    async def get_application(self, application_id: int) -> DriverApplicationModel:
        application = await self.applications.get_fresh(application_id)
        if application is None:
            raise NotFound(f"Application {application_id} not found")
        return application

    async def list_applications(
        self, admin_id: int, status: Optional[DriverApplicationStatus] = None
    ) -> list[DriverApplicationModel]:
        await self._admin(admin_id)
        return await self.applications.get_all(status)

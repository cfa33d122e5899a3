"""FastAPI dependency injection helpers."""

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.domain.clock import Clock, utcnow
from carpool.infrastructure.database import async_session_factory
from carpool.infrastructure.payments import PaymentGateway, get_payment_gateway


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_gateway() -> PaymentGateway:
    return get_payment_gateway()


def get_clock() -> Clock:
    return utcnow

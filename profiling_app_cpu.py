import cProfile
from datetime import datetime, timedelta

from booking_engine.clock import FixedClock
from booking_engine.config import EngineSettings
from booking_engine.database import Base, make_engine, make_session_factory
from booking_engine.errors import Conflict, InvalidTransition
from booking_engine.models import Resource
from booking_engine.schemas import BookingCreate
from booking_engine.service import BookingService, Caller

settings = EngineSettings(holidays=frozenset())
engine = make_engine("sqlite://")
SessionLocal = make_session_factory(engine)
clock = FixedClock(datetime(2025, 6, 1, 10, 0), settings.tz)
service = BookingService(SessionLocal, settings=settings, clock=clock)

ADMIN = Caller(user_id="admin", role="admin")


def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        session.add_all([Resource(id=i, name=f"Room {i}") for i in range(1, 6)])
        session.commit()


def scenario_bookings():
    """
    Request, approve and collide on bookings over four working weeks.
    """
    first_day = datetime(2025, 6, 2, tzinfo=settings.tz)
    for day in range(28):
        current = first_day + timedelta(days=day)
        if current.weekday() >= 5:
            continue
        for resource_id in range(1, 6):
            for hour in range(9, 17):
                caller = Caller(user_id=f"user{(hour + resource_id) % 20}")
                request = BookingCreate(
                    resource_id=resource_id,
                    start_time=current.replace(hour=hour),
                    end_time=current.replace(hour=hour + 1),
                    purpose="load test",
                )
                try:
                    booking = service.create_booking(request, caller)
                except Conflict:
                    continue
                # approve every other request so later ones collide
                if hour % 2 == 0:
                    try:
                        service.approve(booking.id, ADMIN)
                    except (Conflict, InvalidTransition):
                        pass

    # suggestions against a busy calendar
    for resource_id in range(1, 6):
        service.suggest_slots(resource_id, first_day.replace(hour=9), timedelta(hours=2))


def main():
    reset_db()
    scenario_bookings()


if __name__ == "__main__":
    # run cProfile and sort by cumulative time
    cProfile.run("main()", sort="cumtime")

from datetime import date, datetime, time

from .schemas import SYSTEM_USER_ID, Category, Event

# (date, name) pairs; each holiday spans the whole day
HOLIDAYS_2026: tuple[tuple[str, str], ...] = (
    ("2026-01-01", "New Year's Day"),
    ("2026-01-16", "Isra and Mi'raj"),
    ("2026-02-01", "Federal Territory Day and Thaipusam"),
    ("2026-02-14", "Valentine's Day"),
    ("2026-02-17", "Chinese New Year's Day"),
    ("2026-02-19", "First Day of Ramadan"),
    ("2026-03-07", "Nuzul Al-Quran"),
    ("2026-03-20", "Hari Raya Puasa"),
    ("2026-04-03", "Good Friday (Sabah, Sarawak)"),
    ("2026-04-05", "Easter Sunday"),
    ("2026-05-01", "Labour Day"),
    ("2026-05-26", "Day of Arafat (Kelantan, Terengganu)"),
    ("2026-05-27", "Hari Raya Haji"),
    ("2026-05-30", "Harvest Festival (Labuan, Sabah)"),
    ("2026-05-31", "Wesak Day and Second Day of Harvest Festival (Labuan, Sabah)"),
    ("2026-06-01", "The Yang di-Pertuan Agong's Birthday"),
    ("2026-06-17", "Muharram"),
    ("2026-08-25", "The Prophet Muhammad's Birthday"),
    ("2026-08-31", "Malaysia's National Day"),
    ("2026-09-16", "Malaysia Day"),
    ("2026-11-08", "Diwali (Most regions)"),
    ("2026-12-24", "Christmas Eve"),
    ("2026-12-25", "Christmas Day"),
    ("2026-12-31", "New Year's Eve"),
)


def load_holidays() -> list[Event]:
    """System events owned by the sentinel user; built in memory, never written to disk."""
    holidays = []
    for day_str, name in HOLIDAYS_2026:
        day = date.fromisoformat(day_str)
        holidays.append(
            Event(
                id=-1,
                userId=SYSTEM_USER_ID,
                title=name,
                description="Public Holiday",
                startDateTime=datetime.combine(day, time.min),
                endDateTime=datetime.combine(day, time(23, 59)),
                category=Category.HOLIDAY.value,
            )
        )
    return holidays

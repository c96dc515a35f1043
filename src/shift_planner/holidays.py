"""
Holiday annotation with a per-year cache.

Provider lookups run on background threads; until a year is cached,
is_holiday() answers False.
"""

import logging
import threading
from datetime import date
from typing import Dict, FrozenSet, Iterable, List, Optional, Protocol

logger = logging.getLogger(__name__)


class HolidayProvider(Protocol):
    def get_holidays(self, year: int) -> List[Dict[str, int]]: ...


class HolidayCache:
    """Holiday date sets keyed by year"""

    def __init__(self):
        self._years: Dict[int, FrozenSet[date]] = {}

    def get(self, year: int) -> Optional[FrozenSet[date]]:
        return self._years.get(year)

    def populate(self, year: int, dates: Iterable[date]):
        self._years[year] = frozenset(dates)

    def clear(self):
        self._years.clear()

    def __contains__(self, year: int) -> bool:
        return year in self._years


class HolidayAnnotator:

    def __init__(self, provider: HolidayProvider, cache: Optional[HolidayCache] = None):
        self.provider = provider
        self.cache = cache if cache is not None else HolidayCache()
        self._in_flight: Dict[int, threading.Thread] = {}

    def is_holiday(self, day: date) -> bool:
        holidays = self.cache.get(day.year)
        return holidays is not None and day in holidays

    def load_year(self, year: int) -> FrozenSet[date]:
        """Fetch and cache one year; any provider failure caches no holidays"""
        try:
            entries = self.provider.get_holidays(year)
            if not isinstance(entries, list):
                raise TypeError(f"expected a list, got {type(entries).__name__}")
            dates = [date(int(e["year"]), int(e["month"]), int(e["day"])) for e in entries]
        except Exception as e:
            logger.warning(f"Holiday lookup for {year} failed, treating it as having no holidays: {e}")
            dates = []
        self.cache.populate(year, dates)
        return self.cache.get(year)

    def prefetch_for_week(self, week_dates: List[date]):
        """Start background fetches for the years the week touches"""
        if not week_dates:
            return
        for year in sorted({week_dates[0].year, week_dates[-1].year}):
            if year in self.cache or year in self._in_flight:
                continue
            thread = threading.Thread(target=self._fetch, args=(year,), daemon=True)
            self._in_flight[year] = thread
            thread.start()

    def wait_for_pending(self, timeout: Optional[float] = None):
        for thread in list(self._in_flight.values()):
            thread.join(timeout)

    def _fetch(self, year: int):
        try:
            self.load_year(year)
        finally:
            self._in_flight.pop(year, None)


class SampleHolidayProvider:
    """Colombian public holidays for a handful of years; other years have none"""

    HOLIDAYS = {
        2024: [(1, 1), (1, 8), (3, 25), (3, 28), (3, 29), (5, 1), (5, 13), (6, 3), (6, 10),
               (7, 1), (7, 20), (8, 7), (8, 19), (10, 14), (11, 4), (11, 11), (12, 8), (12, 25)],
        2025: [(1, 1), (1, 6), (3, 24), (4, 17), (4, 18), (5, 1), (6, 2), (6, 23), (6, 30),
               (7, 20), (8, 7), (8, 18), (10, 13), (11, 3), (11, 17), (12, 8), (12, 25)],
        2026: [(1, 1), (1, 12), (3, 23), (4, 2), (4, 3), (5, 1), (5, 18), (6, 8), (6, 15),
               (6, 29), (7, 20), (8, 7), (8, 17), (10, 12), (11, 2), (11, 16), (12, 8), (12, 25)],
    }

    def get_holidays(self, year: int) -> List[Dict[str, int]]:
        return [{"year": year, "month": month, "day": day} for month, day in self.HOLIDAYS.get(year, [])]

"""Date key and Monday-first week helpers"""

from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence, Union

DATE_FORMAT = "%Y-%m-%d"


def date_key(value: Union[date, str]) -> str:
    if isinstance(value, str):
        return parse_date_key(value).strftime(DATE_FORMAT)
    return value.strftime(DATE_FORMAT)


def parse_date_key(value: str) -> date:
    return datetime.strptime(value.strip(), DATE_FORMAT).date()


def week_start(value: Union[date, str]) -> date:
    day = parse_date_key(value) if isinstance(value, str) else value
    return day - timedelta(days=day.weekday())


def week_date_keys(value: Union[date, str]) -> List[str]:
    """The seven date keys, Monday first, of the week containing value"""
    monday = week_start(value)
    return [date_key(monday + timedelta(days=offset)) for offset in range(7)]


def next_week_date_keys(current_week: Sequence[str]) -> List[str]:
    return [next_week_key(key) for key in current_week]


def next_week_key(value: str) -> str:
    return date_key(parse_date_key(value) + timedelta(days=7))


def next_day_key(value: str) -> str:
    return date_key(parse_date_key(value) + timedelta(days=1))


def map_to_week_slot(source: Union[date, str], target_week: Sequence[str]) -> Optional[str]:
    """Date key in target_week sharing source's weekday (Monday = 0)"""
    day = parse_date_key(source) if isinstance(source, str) else source
    index = day.weekday()
    if index >= len(target_week):
        return None
    return target_week[index]


def first_monday_of_year(year: int) -> date:
    jan_first = date(year, 1, 1)
    return jan_first + timedelta(days=(7 - jan_first.weekday()) % 7)

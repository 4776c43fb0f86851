# gaytradies/age.py
from datetime import date
from typing import Optional

ADULT_AGE = 18


def calculate_age(
    year: Optional[int],
    month: Optional[int],
    day: Optional[int],
    today: Optional[date] = None,
) -> Optional[int]:
    """Whole years between a birth date and ``today``.

    Returns None when any part of the birth date is missing or zero.
    """
    if not year or not month or not day:
        return None
    today = today or date.today()
    age = today.year - year
    if (today.month, today.day) < (month, day):
        age -= 1
    return age


def is_adult(age: Optional[int]) -> bool:
    # an undeterminable age never counts as adult
    return age is not None and age >= ADULT_AGE

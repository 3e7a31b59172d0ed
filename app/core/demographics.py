# app/core/demographics.py
"""
模块职能：年龄与年龄段规则（纯函数，无 I/O）。

- calculate_age(dob, today)：按日历整年相减，未到生日则减一
- AGE_GROUPS：固定年龄段 0-17 / 18-30 / 31-45 / 46-59 / 60+
- age_group_of(age)：年龄 → 年龄段标签
- dob_range(label, today)：年龄段 → 出生日期区间，供查询条件使用
"""
from __future__ import annotations

from datetime import date
from typing import Dict, Optional, Tuple

# (label, min_age, max_age)；max_age=None 表示无上限
AGE_GROUPS: Tuple[Tuple[str, int, Optional[int]], ...] = (
    ("0-17", 0, 17),
    ("18-30", 18, 30),
    ("31-45", 31, 45),
    ("46-59", 46, 59),
    ("60+", 60, None),
)
_BY_LABEL: Dict[str, Tuple[int, Optional[int]]] = {g[0]: (g[1], g[2]) for g in AGE_GROUPS}


def calculate_age(dob: date, today: Optional[date] = None) -> int:
    today = today or date.today()
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def years_before(day: date, years: int) -> date:
    """同月同日往前推 years 年；2/29 落到平年时取 2/28。"""
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        return day.replace(year=day.year - years, day=28)


def age_group_of(age: int) -> str:
    for label, lo, hi in AGE_GROUPS:
        if age >= lo and (hi is None or age <= hi):
            return label
    # 负年龄（出生日期在未来）归入最小段
    return AGE_GROUPS[0][0]


def is_age_group(label: Optional[str]) -> bool:
    return bool(label) and label in _BY_LABEL


def dob_range(label: str, today: Optional[date] = None) -> Tuple[Optional[date], Optional[date]]:
    """
    返回 (earliest_exclusive, latest_inclusive)：
    年龄 ∈ [lo, hi] ⇔ earliest_exclusive < dob <= latest_inclusive
    - latest_inclusive = today 往前 lo 年（lo=0 时不设上界）
    - earliest_exclusive = today 往前 hi+1 年（hi=None 时不设下界）
    """
    lo, hi = _BY_LABEL[label]
    today = today or date.today()
    latest = years_before(today, lo) if lo > 0 else None
    earliest = years_before(today, hi + 1) if hi is not None else None
    return earliest, latest


def empty_histogram() -> Dict[str, int]:
    return {label: 0 for label, _, _ in AGE_GROUPS}

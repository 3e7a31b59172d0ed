"""
模块职能：
- 住户列表/搜索的结构化过滤条件。
- ResidentFilters 收集可选条件；to_clauses() 产出 SQLAlchemy 表达式列表（全部参数绑定，
  不拼接 SQL 字符串），调用方以 AND 组合。

条件：
- search：first_name / last_name / household_number / resident_id / contact_number 子串，不区分大小写
- age_group：0-17 / 18-30 / 31-45 / 46-59 / 60+，换算成 date_of_birth 区间；未知标签忽略
- gender：精确匹配
- street：address 精确匹配
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.sql.elements import ColumnElement

from app.core.demographics import dob_range, is_age_group
from app.core.models import Resident

SEARCH_COLUMNS = (
    Resident.first_name,
    Resident.last_name,
    Resident.household_number,
    Resident.resident_id,
    Resident.contact_number,
)


def escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _clean(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    return v or None


@dataclass
class ResidentFilters:
    search: Optional[str] = None
    age_group: Optional[str] = None
    gender: Optional[str] = None
    street: Optional[str] = None

    def __post_init__(self):
        self.search = _clean(self.search)
        self.gender = _clean(self.gender)
        self.street = _clean(self.street)
        self.age_group = _clean(self.age_group)
        if not is_age_group(self.age_group):
            self.age_group = None

    def is_empty(self) -> bool:
        return not any((self.search, self.age_group, self.gender, self.street))

    def to_clauses(self, today: Optional[date] = None) -> List[ColumnElement]:
        clauses: List[ColumnElement] = [Resident.is_active.is_(True)]

        if self.search:
            pattern = f"%{escape_like(self.search.lower())}%"
            clauses.append(or_(*[
                func.lower(col).like(pattern, escape="\\") for col in SEARCH_COLUMNS
            ]))

        if self.age_group:
            earliest, latest = dob_range(self.age_group, today)
            if latest is not None:
                clauses.append(Resident.date_of_birth <= latest)
            if earliest is not None:
                clauses.append(Resident.date_of_birth > earliest)

        if self.gender:
            clauses.append(Resident.gender == self.gender)

        if self.street:
            clauses.append(Resident.address == self.street)

        return clauses

"""
模块职能：
- 住户登记的增删改查、分页过滤、搜索与人口统计。
- resident_id 自动生成（RES-NNN），age 写入时按出生日期重算，删除为软删除。

主要方法（ResidentService）：
- list_residents(page, limit, filters)
- search(query, filters, page, limit)：query 与过滤条件至少一项非空
- get(id) / update(id, fields)：仅限未删除的住户，否则 404
- create(fields) / soft_delete(id)
- stats()：总数 + 性别 / 街道 / 学历分布 + 年龄段直方图（按当日实时计算）

日志：
- resident_create / resident_update / resident_soft_delete / resident_id_conflict
"""
from __future__ import annotations

import math
import threading
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.demographics import age_group_of, calculate_age, empty_histogram
from app.core.errors import BadRequest, DuplicateResidentId, MissingFields, NotFound, ValidationError
from app.core.models import OTHERS_PLEASE_SPECIFY, Resident
from app.infra.logger import emit
from app.services.resident_filters import ResidentFilters

REQUIRED_FIELDS = ("household_number", "first_name", "last_name", "gender", "date_of_birth", "address")

EDITABLE_FIELDS = (
    "household_number", "resident_id", "philsys_number", "first_name", "last_name",
    "middle_name", "gender", "date_of_birth", "birth_place", "address", "contact_number",
    "civil_status", "religion", "educational_attainment", "educational_attainment_other",
)

# "读最大号 → 插入 → 提交" 在进程内串行；跨进程冲突由唯一约束拦下后重试
_resident_id_lock = threading.Lock()
RESIDENT_ID_ATTEMPTS = 3


def _iso(v):
    if isinstance(v, (date, datetime)):
        return v.isoformat()
    return v


def serialize(r: Resident, today: Optional[date] = None) -> Dict[str, Any]:
    data = {c: _iso(getattr(r, c)) for c in ("id",) + EDITABLE_FIELDS}
    # 对外的 age 以出生日期实时计算，存储列只是写入时快照
    data["age"] = calculate_age(r.date_of_birth, today) if r.date_of_birth else r.age
    data["is_active"] = bool(r.is_active)
    data["created_at"] = _iso(r.created_at)
    data["updated_at"] = _iso(r.updated_at)
    return data


def summary(r: Resident) -> Dict[str, Any]:
    return {
        "id": r.id,
        "household_number": r.household_number,
        "resident_id": r.resident_id,
        "first_name": r.first_name,
        "last_name": r.last_name,
        "age": r.age,
    }


def pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit) if limit else 0}


def _as_date(v) -> date:
    if isinstance(v, date):
        return v
    try:
        return date.fromisoformat(str(v))
    except ValueError:
        raise ValidationError("date_of_birth must be an ISO date (YYYY-MM-DD)")


class ResidentService:
    def __init__(self, db: Session, max_page_size: int = 100, today: Optional[date] = None):
        self.db = db
        self.max_page_size = max_page_size
        self._today = today

    @property
    def today(self) -> date:
        return self._today or date.today()

    def _clamp(self, page: int, limit: int) -> Tuple[int, int]:
        page = max(1, int(page or 1))
        limit = max(1, min(int(limit or 10), self.max_page_size))
        return page, limit

    def _active(self, resident_id: int) -> Resident:
        r = self.db.get(Resident, resident_id)
        if not r or not r.is_active:
            raise NotFound("Resident not found")
        return r

    # ------------------------------------------------------------------
    # 读
    # ------------------------------------------------------------------
    def list_residents(self, page: int = 1, limit: int = 10,
                       filters: Optional[ResidentFilters] = None) -> Tuple[List[Dict], Dict]:
        page, limit = self._clamp(page, limit)
        clauses = (filters or ResidentFilters()).to_clauses(self.today)

        total = self.db.execute(select(func.count(Resident.id)).where(*clauses)).scalar() or 0
        rows = self.db.execute(
            select(Resident)
            .where(*clauses)
            .order_by(Resident.last_name.asc(), Resident.first_name.asc(), Resident.id.asc())
            .limit(limit)
            .offset((page - 1) * limit)
        ).scalars().all()
        return [serialize(r, self.today) for r in rows], pagination(page, limit, total)

    def search(self, query: Optional[str], filters: Optional[ResidentFilters] = None,
               page: int = 1, limit: int = 10) -> Tuple[List[Dict], Dict]:
        base = filters or ResidentFilters()
        merged = ResidentFilters(
            search=query, age_group=base.age_group, gender=base.gender, street=base.street,
        )
        if merged.is_empty():
            raise BadRequest("Search query or filter is required")
        return self.list_residents(page, limit, merged)

    def get(self, resident_id: int) -> Dict:
        return serialize(self._active(resident_id), self.today)

    def stats(self) -> Dict[str, Any]:
        active = Resident.is_active.is_(True)
        total = self.db.execute(select(func.count(Resident.id)).where(active)).scalar() or 0

        def grouped(col, key):
            rows = self.db.execute(
                select(col, func.count(Resident.id)).where(active).group_by(col).order_by(col)
            ).all()
            return [{key: v, "count": n} for v, n in rows]

        histogram = empty_histogram()
        dobs = self.db.execute(
            select(Resident.date_of_birth).where(active, Resident.date_of_birth.is_not(None))
        ).scalars()
        for dob in dobs:
            histogram[age_group_of(calculate_age(dob, self.today))] += 1

        return {
            "total": total,
            "byGender": grouped(Resident.gender, "gender"),
            "byAge": [{"ageGroup": k, "count": v} for k, v in histogram.items()],
            "byStreet": grouped(Resident.address, "street"),
            "byEducationalAttainment": grouped(Resident.educational_attainment, "educational_attainment"),
        }

    # ------------------------------------------------------------------
    # 写
    # ------------------------------------------------------------------
    def create(self, fields: Dict[str, Any], actor_id: Optional[int] = None) -> Dict:
        missing = [f for f in REQUIRED_FIELDS if not fields.get(f)]
        if fields.get("educational_attainment") == OTHERS_PLEASE_SPECIFY \
                and not fields.get("educational_attainment_other"):
            missing.append("educational_attainment_other")
        if missing:
            raise MissingFields(missing)

        dob = _as_date(fields["date_of_birth"])
        values = {f: fields.get(f) for f in EDITABLE_FIELDS if f != "resident_id"}
        values["date_of_birth"] = dob
        if values.get("educational_attainment") != OTHERS_PLEASE_SPECIFY:
            values["educational_attainment_other"] = None

        for attempt in range(1, RESIDENT_ID_ATTEMPTS + 1):
            with _resident_id_lock:
                r = Resident(
                    **values,
                    resident_id=Resident.next_resident_id(self.db),
                    age=calculate_age(dob, self.today),
                    is_active=True,
                )
                self.db.add(r)
                try:
                    self.db.commit()
                    break
                except IntegrityError:
                    # 其他进程先占用了同一个号：回滚后重新取号
                    self.db.rollback()
                    emit("resident_id_conflict", level="WARNING", resident_id=r.resident_id, attempt=attempt)
        else:
            raise DuplicateResidentId()
        self.db.refresh(r)

        emit("resident_create", id=r.id, resident_id=r.resident_id, actor=actor_id)
        return summary(r)

    def update(self, resident_id: int, fields: Dict[str, Any], actor_id: Optional[int] = None) -> Dict:
        r = self._active(resident_id)

        changes = {f: fields[f] for f in EDITABLE_FIELDS if fields.get(f) is not None}

        new_rid = changes.get("resident_id")
        if new_rid is not None and new_rid != r.resident_id:
            clash = self.db.execute(
                select(Resident.id).where(Resident.resident_id == new_rid, Resident.id != r.id)
            ).first()
            if clash:
                raise DuplicateResidentId()

        if "date_of_birth" in changes:
            changes["date_of_birth"] = _as_date(changes["date_of_birth"])
            changes["age"] = calculate_age(changes["date_of_birth"], self.today)

        attainment = changes.get("educational_attainment", r.educational_attainment)
        if attainment == OTHERS_PLEASE_SPECIFY:
            if not changes.get("educational_attainment_other", r.educational_attainment_other):
                raise MissingFields(["educational_attainment_other"])
        elif "educational_attainment" in changes or "educational_attainment_other" in changes:
            changes["educational_attainment_other"] = None

        for k, v in changes.items():
            setattr(r, k, v)
        r.updated_at = func.now()
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateResidentId()
        self.db.refresh(r)

        emit("resident_update", id=r.id, fields=sorted(changes), actor=actor_id)
        return serialize(r, self.today)

    def soft_delete(self, resident_id: int, actor_id: Optional[int] = None) -> None:
        r = self.db.get(Resident, resident_id)
        if not r:
            raise NotFound("Resident not found")
        r.is_active = False
        r.updated_at = func.now()
        self.db.commit()
        emit("resident_soft_delete", id=r.id, resident_id=r.resident_id, actor=actor_id)

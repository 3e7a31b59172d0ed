# tests/test_residents.py
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from app.core.demographics import calculate_age, years_before
from app.core.errors import BadRequest, DuplicateResidentId, MissingFields, NotFound
from app.core.models import Resident
from app.infra.db import build_engine, init_db, make_session_factory
from app.services.resident_filters import ResidentFilters
from app.services.residents import ResidentService


def _resident(**overrides):
    body = {
        "household_number": "HH-1",
        "first_name": "Jane",
        "last_name": "Doe",
        "gender": "F",
        "date_of_birth": "1995-08-20",
        "address": "Mabini St",
    }
    body.update(overrides)
    return body


def _dob_for_age(age: int) -> str:
    # 今天往前 age 年再早一天：当天已过生日，年龄确定为 age
    d = years_before(date.today(), age)
    return date.fromordinal(d.toordinal() - 1).isoformat()


def _create(client, headers, **overrides):
    r = client.post("/api/residents", headers=headers, json=_resident(**overrides))
    assert r.status_code == 201, r.text
    return r.json()["data"]


# ----------------------------------------------------------------------
# 创建 / ID 生成
# ----------------------------------------------------------------------
def test_resident_ids_are_sequential(client, staff_headers):
    ids = [_create(client, staff_headers, first_name=n)["resident_id"] for n in ("A", "B", "C")]
    assert ids == ["RES-001", "RES-002", "RES-003"]


def test_resident_id_continues_from_max_suffix(client, staff_headers, admin_headers):
    first = _create(client, staff_headers)
    r = client.put(f"/api/residents/{first['id']}", headers=staff_headers, json={"resident_id": "RES-041"})
    assert r.status_code == 200
    # 软删除的行仍参与取号，避免 ID 复用
    client.delete(f"/api/residents/{first['id']}", headers=admin_headers)
    assert _create(client, staff_headers)["resident_id"] == "RES-042"


def test_household_number_may_repeat(client, staff_headers):
    a = _create(client, staff_headers, first_name="Ana")
    b = _create(client, staff_headers, first_name="Ben")
    assert a["household_number"] == b["household_number"] == "HH-1"
    assert a["resident_id"] != b["resident_id"]


def test_create_reports_every_missing_field(client, staff_headers):
    r = client.post("/api/residents", headers=staff_headers, json={"first_name": "Jane", "gender": ""})
    assert r.status_code == 400
    assert r.json() == {
        "success": False,
        "error": "Missing required fields: household_number, last_name, gender, date_of_birth, address",
    }


def test_create_rejects_malformed_date(client, staff_headers):
    r = client.post("/api/residents", headers=staff_headers, json=_resident(date_of_birth="20-08-1995"))
    assert r.status_code == 400
    assert r.json()["fields"] == ["date_of_birth"]


def test_create_computes_age_and_returns_summary(client, staff_headers):
    data = _create(client, staff_headers)
    assert set(data) == {"id", "household_number", "resident_id", "first_name", "last_name", "age"}
    assert data["age"] == calculate_age(date(1995, 8, 20))


def test_others_please_specify_requires_detail(client, staff_headers):
    r = client.post("/api/residents", headers=staff_headers,
                    json=_resident(educational_attainment="Others please specify"))
    assert r.status_code == 400
    assert "educational_attainment_other" in r.json()["error"]

    data = _create(client, staff_headers, educational_attainment="Others please specify",
                   educational_attainment_other="Madrasah")
    full = client.get(f"/api/residents/{data['id']}", headers=staff_headers).json()["data"]
    assert full["educational_attainment_other"] == "Madrasah"


def test_other_detail_ignored_for_regular_attainment(client, staff_headers):
    data = _create(client, staff_headers, educational_attainment="Highschool",
                   educational_attainment_other="stray text")
    full = client.get(f"/api/residents/{data['id']}", headers=staff_headers).json()["data"]
    assert full["educational_attainment_other"] is None


def test_requires_authentication(client):
    assert client.get("/api/residents").status_code == 401
    assert client.post("/api/residents", json=_resident()).status_code == 401


# ----------------------------------------------------------------------
# 读取 / 更新 / 删除
# ----------------------------------------------------------------------
def test_get_unknown_resident_404(client, staff_headers):
    r = client.get("/api/residents/999", headers=staff_headers)
    assert r.status_code == 404
    assert r.json()["error"] == "Resident not found"


def test_partial_update_leaves_other_fields(client, staff_headers):
    data = _create(client, staff_headers, middle_name="Q", religion="None")
    before = client.get(f"/api/residents/{data['id']}", headers=staff_headers).json()["data"]

    r = client.put(f"/api/residents/{data['id']}", headers=staff_headers, json={"contact_number": "555-1"})
    assert r.status_code == 200
    after = client.get(f"/api/residents/{data['id']}", headers=staff_headers).json()["data"]

    assert after["contact_number"] == "555-1"
    for key in ("household_number", "resident_id", "first_name", "last_name", "middle_name",
                "gender", "date_of_birth", "address", "religion", "age"):
        assert after[key] == before[key]


def test_update_null_is_treated_as_omitted(client, staff_headers):
    data = _create(client, staff_headers)
    r = client.put(f"/api/residents/{data['id']}", headers=staff_headers,
                   json={"first_name": None, "last_name": "Smith"})
    assert r.status_code == 200
    assert r.json()["data"]["first_name"] == "Jane"
    assert r.json()["data"]["last_name"] == "Smith"


def test_update_date_of_birth_recomputes_age(client, staff_headers):
    data = _create(client, staff_headers)
    r = client.put(f"/api/residents/{data['id']}", headers=staff_headers,
                   json={"date_of_birth": _dob_for_age(40)})
    assert r.status_code == 200
    assert r.json()["data"]["age"] == 40


def test_update_duplicate_resident_id(client, staff_headers):
    _create(client, staff_headers, first_name="A")
    b = _create(client, staff_headers, first_name="B")
    r = client.put(f"/api/residents/{b['id']}", headers=staff_headers, json={"resident_id": "RES-001"})
    assert r.status_code == 400
    assert r.json()["error"] == "Resident ID already exists"


def test_update_same_resident_id_is_allowed(client, staff_headers):
    a = _create(client, staff_headers)
    r = client.put(f"/api/residents/{a['id']}", headers=staff_headers, json={"resident_id": "RES-001"})
    assert r.status_code == 200


def test_update_unknown_resident_404(client, staff_headers):
    r = client.put("/api/residents/77", headers=staff_headers, json={"first_name": "X"})
    assert r.status_code == 404


def test_update_soft_deleted_resident_404(client, staff_headers, admin_headers, db):
    data = _create(client, staff_headers)
    assert client.delete(f"/api/residents/{data['id']}", headers=admin_headers).status_code == 200

    for body in ({}, {"first_name": "Revived"}):
        r = client.put(f"/api/residents/{data['id']}", headers=staff_headers, json=body)
        assert r.status_code == 404
        assert r.json() == {"success": False, "error": "Resident not found"}

    row = db.get(Resident, data["id"])
    assert row.first_name == "Jane"
    assert row.is_active is False


def test_delete_requires_admin(client, staff_headers):
    data = _create(client, staff_headers)
    r = client.delete(f"/api/residents/{data['id']}", headers=staff_headers)
    assert r.status_code == 403
    assert r.json()["error"] == "Insufficient permissions"


def test_delete_unknown_resident_404(client, admin_headers):
    assert client.delete("/api/residents/123", headers=admin_headers).status_code == 404


def test_soft_deleted_resident_disappears_everywhere(client, staff_headers, admin_headers, db):
    keep = _create(client, staff_headers, first_name="Keep")
    gone = _create(client, staff_headers, first_name="Gone")

    r = client.delete(f"/api/residents/{gone['id']}", headers=admin_headers)
    assert r.status_code == 200

    assert client.get(f"/api/residents/{gone['id']}", headers=staff_headers).status_code == 404

    listed = client.get("/api/residents", headers=staff_headers).json()
    assert [x["id"] for x in listed["data"]] == [keep["id"]]
    assert listed["pagination"]["total"] == 1

    found = client.get("/api/residents/search", params={"query": "Gone"}, headers=staff_headers).json()
    assert found["data"] == []

    stats = client.get("/api/residents/stats", headers=staff_headers).json()["data"]
    assert stats["total"] == 1

    # 行仍在库里，只是 is_active=0
    row = db.get(Resident, gone["id"])
    assert row is not None and row.is_active is False


# ----------------------------------------------------------------------
# 列表 / 过滤 / 搜索
# ----------------------------------------------------------------------
def test_list_ordered_by_last_name_with_pagination(client, staff_headers):
    for last in ("Cruz", "Abad", "Bautista", "Dela Rosa", "Estrada"):
        _create(client, staff_headers, last_name=last)

    r = client.get("/api/residents", params={"page": 1, "limit": 2}, headers=staff_headers).json()
    assert [x["last_name"] for x in r["data"]] == ["Abad", "Bautista"]
    assert r["pagination"] == {"page": 1, "limit": 2, "total": 5, "pages": 3}

    r = client.get("/api/residents", params={"page": 3, "limit": 2}, headers=staff_headers).json()
    assert [x["last_name"] for x in r["data"]] == ["Estrada"]


def test_list_defaults_and_limit_cap(client, staff_headers, settings):
    _create(client, staff_headers)
    r = client.get("/api/residents", headers=staff_headers).json()
    assert r["pagination"]["page"] == 1
    assert r["pagination"]["limit"] == 10

    r = client.get("/api/residents", params={"limit": 5000}, headers=staff_headers).json()
    assert r["pagination"]["limit"] == settings.max_page_size


def test_list_rejects_non_numeric_page(client, staff_headers):
    r = client.get("/api/residents", params={"page": "abc"}, headers=staff_headers)
    assert r.status_code == 400
    assert r.json()["fields"] == ["page"]


def test_filter_gender_and_age_group_combined(client, staff_headers):
    _create(client, staff_headers, first_name="F25", gender="F", date_of_birth=_dob_for_age(25))
    _create(client, staff_headers, first_name="F40", gender="F", date_of_birth=_dob_for_age(40))
    _create(client, staff_headers, first_name="M25", gender="M", date_of_birth=_dob_for_age(25))
    _create(client, staff_headers, first_name="F18", gender="F", date_of_birth=_dob_for_age(18))
    _create(client, staff_headers, first_name="F30", gender="F", date_of_birth=_dob_for_age(30))
    _create(client, staff_headers, first_name="F31", gender="F", date_of_birth=_dob_for_age(31))

    r = client.get("/api/residents", params={"page": 1, "limit": 10, "gender": "F", "ageGroup": "18-30"},
                   headers=staff_headers).json()
    assert sorted(x["first_name"] for x in r["data"]) == ["F18", "F25", "F30"]
    assert all(18 <= x["age"] <= 30 and x["gender"] == "F" for x in r["data"])


def test_unknown_age_group_is_ignored(client, staff_headers):
    _create(client, staff_headers, first_name="A")
    _create(client, staff_headers, first_name="B", date_of_birth=_dob_for_age(70))
    r = client.get("/api/residents", params={"ageGroup": "teenagers"}, headers=staff_headers).json()
    assert r["pagination"]["total"] == 2


def test_filter_by_street_is_exact(client, staff_headers):
    _create(client, staff_headers, first_name="A", address="Rizal Ave")
    _create(client, staff_headers, first_name="B", address="Rizal Avenue Ext")
    r = client.get("/api/residents", params={"street": "Rizal Ave"}, headers=staff_headers).json()
    assert [x["first_name"] for x in r["data"]] == ["A"]


def test_search_is_case_insensitive_across_columns(client, staff_headers):
    _create(client, staff_headers, first_name="Maria", last_name="Santos", household_number="HH-7")
    _create(client, staff_headers, first_name="Jose", last_name="Rizal", household_number="B-3",
            contact_number="0917-555")
    _create(client, staff_headers, first_name="Juan", last_name="Luna", household_number="HH-9")

    def names(**params):
        r = client.get("/api/residents/search", params=params, headers=staff_headers)
        assert r.status_code == 200, r.text
        return sorted(x["first_name"] for x in r.json()["data"])

    assert names(query="santos") == ["Maria"]
    assert names(query="hh-") == ["Juan", "Maria"]
    assert names(query="0917") == ["Jose"]
    assert names(query="RES-00") == ["Jose", "Juan", "Maria"]


def test_search_treats_like_wildcards_literally(client, staff_headers):
    _create(client, staff_headers, first_name="Percy")
    r = client.get("/api/residents/search", params={"query": "%"}, headers=staff_headers).json()
    assert r["data"] == []


def test_search_list_param_also_filters(client, staff_headers):
    _create(client, staff_headers, first_name="Maria")
    _create(client, staff_headers, first_name="Jose")
    r = client.get("/api/residents", params={"search": "mar"}, headers=staff_headers).json()
    assert [x["first_name"] for x in r["data"]] == ["Maria"]


def test_search_requires_query_or_filter(client, staff_headers):
    r = client.get("/api/residents/search", headers=staff_headers)
    assert r.status_code == 400
    assert r.json()["error"] == "Search query or filter is required"

    r = client.get("/api/residents/search", params={"query": "   "}, headers=staff_headers)
    assert r.status_code == 400


def test_search_with_filters_only(client, staff_headers):
    _create(client, staff_headers, first_name="A", gender="M")
    _create(client, staff_headers, first_name="B", gender="F")
    r = client.get("/api/residents/search", params={"gender": "M"}, headers=staff_headers)
    assert r.status_code == 200
    assert [x["first_name"] for x in r.json()["data"]] == ["A"]


# ----------------------------------------------------------------------
# 统计
# ----------------------------------------------------------------------
def test_stats_shape_and_buckets(client, staff_headers):
    _create(client, staff_headers, gender="F", date_of_birth=_dob_for_age(5), address="A St",
            educational_attainment="Elementary")
    _create(client, staff_headers, gender="F", date_of_birth=_dob_for_age(59), address="A St",
            educational_attainment="College Graduate")
    _create(client, staff_headers, gender="M", date_of_birth=_dob_for_age(60), address="B St",
            educational_attainment="College Graduate")

    r = client.get("/api/residents/stats", headers=staff_headers)
    assert r.status_code == 200
    stats = r.json()["data"]
    assert stats["total"] == 3
    assert stats["byGender"] == [{"gender": "F", "count": 2}, {"gender": "M", "count": 1}]
    assert stats["byStreet"] == [{"street": "A St", "count": 2}, {"street": "B St", "count": 1}]
    assert {"educational_attainment": "College Graduate", "count": 2} in stats["byEducationalAttainment"]
    assert stats["byAge"] == [
        {"ageGroup": "0-17", "count": 1},
        {"ageGroup": "18-30", "count": 0},
        {"ageGroup": "31-45", "count": 0},
        {"ageGroup": "46-59", "count": 1},
        {"ageGroup": "60+", "count": 1},
    ]


# ----------------------------------------------------------------------
# 服务层（注入“今天”）
# ----------------------------------------------------------------------
def test_service_age_uses_injected_today(db_only):
    svc = ResidentService(db_only, today=date(2024, 6, 14))
    created = svc.create(_resident(date_of_birth=date(2000, 6, 15)))
    assert created["age"] == 23

    later = ResidentService(db_only, today=date(2024, 6, 15))
    assert later.get(created["id"])["age"] == 24


def test_service_stats_recomputed_live(db_only):
    ResidentService(db_only, today=date(2024, 6, 14)).create(_resident(date_of_birth=date(2006, 6, 15)))

    before = ResidentService(db_only, today=date(2024, 6, 14)).stats()["byAge"]
    after = ResidentService(db_only, today=date(2024, 6, 15)).stats()["byAge"]
    assert before[0] == {"ageGroup": "0-17", "count": 1}
    assert after[1] == {"ageGroup": "18-30", "count": 1}


def test_service_errors(db_only):
    svc = ResidentService(db_only)
    with pytest.raises(MissingFields) as exc:
        svc.create({})
    assert exc.value.fields == ["household_number", "first_name", "last_name", "gender",
                                "date_of_birth", "address"]
    with pytest.raises(NotFound):
        svc.get(1)
    with pytest.raises(NotFound):
        svc.soft_delete(1)
    with pytest.raises(BadRequest):
        svc.search(None, ResidentFilters(age_group="nonsense"))


def test_service_update_rejects_inactive_resident(db_only):
    svc = ResidentService(db_only)
    created = svc.create(_resident())
    svc.soft_delete(created["id"])
    with pytest.raises(NotFound):
        svc.update(created["id"], {"contact_number": "555-1"})


# ----------------------------------------------------------------------
# resident_id 取号：并发串行化与冲突重试
# ----------------------------------------------------------------------
def test_concurrent_creates_get_unique_sequential_ids(settings):
    engine = build_engine(settings.database_url)
    init_db(engine)
    factory = make_session_factory(engine)

    def create_one(n):
        with factory() as session:
            return ResidentService(session).create(_resident(first_name=f"N{n}"))["resident_id"]

    try:
        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = list(pool.map(create_one, range(20)))
    finally:
        engine.dispose()

    assert len(set(ids)) == 20
    assert sorted(ids) == [f"RES-{n:03d}" for n in range(1, 21)]


def test_create_retries_when_id_already_taken(db_only, monkeypatch):
    svc = ResidentService(db_only)
    svc.create(_resident(first_name="First"))

    real_next = Resident.next_resident_id
    calls = []

    def stale_then_real(db):
        # 第一次返回另一个进程已经用掉的号
        calls.append(1)
        return "RES-001" if len(calls) == 1 else real_next(db)

    monkeypatch.setattr(Resident, "next_resident_id", staticmethod(stale_then_real))
    created = svc.create(_resident(first_name="Second"))

    assert len(calls) == 2
    assert created["resident_id"] == "RES-002"
    assert svc.list_residents()[1]["total"] == 2


def test_create_gives_up_after_repeated_id_conflicts(db_only, monkeypatch):
    svc = ResidentService(db_only)
    svc.create(_resident(first_name="First"))

    monkeypatch.setattr(Resident, "next_resident_id", staticmethod(lambda db: "RES-001"))
    with pytest.raises(DuplicateResidentId):
        svc.create(_resident(first_name="Second"))

    monkeypatch.undo()
    assert svc.create(_resident(first_name="Third"))["resident_id"] == "RES-002"

from datetime import timedelta
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from daily import user_today
from models import Quest, DailySummary, Item
from gamification import add_to_inventory
from scheduler import run_daily_maintenance
from conftest import PASSWORD


def payload(catalog, day):
    return {
        "date": day.isoformat(),
        "entries": [
            {"metric_id": catalog["workout"].id, "completed": True, "time_spent_minutes": 45},
            {"metric_id": catalog["reading"].id, "score_value": 4},
        ],
    }


def test_health(client):
    assert client.get("/").json()["status"] == "ok"


def test_register_login_and_me(client):
    res = client.post("/auth/register", json={"email": "Ana@Example.com", "password": PASSWORD, "name": "Ana"})
    assert res.status_code == 201
    token = res.json()["access_token"]

    assert client.post("/auth/register", json={"email": "ana@example.com", "password": PASSWORD,
                                                "name": "Ana"}).status_code == 409
    assert client.post("/auth/login", json={"email": "ana@example.com", "password": "wrong!"}).status_code == 401
    assert client.post("/auth/login", json={"email": "ana@example.com", "password": PASSWORD}).status_code == 200

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["email"] == "ana@example.com"
    assert me["level"] == 1


def test_requires_token(client):
    assert client.get("/gamification/xp").status_code in (401, 403)
    assert client.get("/gamification/xp", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_submit_and_read_daily(client, seeded, user, catalog, auth_headers):
    today = user_today(user)
    res = client.post("/daily", json=payload(catalog, today), headers=auth_headers(user))

    assert res.status_code == 200
    body = res.json()
    assert body["summary"]["total_score"] == 90
    assert body["total_time"] == 45
    assert body["xp_result"]["xp_awarded"] == 10
    assert str(catalog["health"].id) in body["axis_scores"]

    log = client.get(f"/daily/{today.isoformat()}", headers=auth_headers(user)).json()
    assert log["summary"]["total_score"] == 90
    assert len(log["entries"]) == 2


def test_validation_errors_carry_codes(client, seeded, user, catalog, auth_headers):
    today = user_today(user)

    res = client.post("/daily", json={"date": today.isoformat(), "entries": []}, headers=auth_headers(user))
    assert res.status_code == 400
    assert res.json() == {"detail": res.json()["detail"], "code": "empty_submission", "retryable": False}

    res = client.post("/daily", json=payload(catalog, today - timedelta(days=2)), headers=auth_headers(user))
    assert res.status_code == 403
    assert res.json()["code"] == "retroactive_edit_required"

    res = client.post("/daily", json=payload(catalog, today + timedelta(days=1)), headers=auth_headers(user))
    assert res.status_code == 400
    assert res.json()["code"] == "future_date"


def test_malformed_body_is_422(client, user, auth_headers):
    res = client.post("/daily", json={"date": "ayer", "entries": [{"metric_id": "x"}]}, headers=auth_headers(user))
    assert res.status_code == 422


def test_persistence_failure_is_503(client, seeded, user, catalog, auth_headers):
    with patch("daily.update_streaks", side_effect=OperationalError("INSERT", {}, Exception("db down"))):
        res = client.post("/daily", json=payload(catalog, user_today(user)), headers=auth_headers(user))

    assert res.status_code == 503
    assert res.json()["retryable"] is True


def test_scroll_unlocks_past_day(client, seeded, user, catalog, auth_headers):
    headers = auth_headers(user)
    past = user_today(user) - timedelta(days=2)
    scroll = seeded.query(Item).filter(Item.effect_type == "retroactive_edit").one()
    add_to_inventory(seeded, user, scroll)
    seeded.commit()

    assert client.post("/daily/retroactive-grant", json={"hours": 168}, headers=headers).status_code in (404, 405)

    res = client.post("/inventory/consume", json={"item_id": scroll.id}, headers=headers)
    assert res.status_code == 200
    assert res.json()["grant"]["used_at"] is None
    assert res.json()["remaining"] == 0

    assert client.post("/daily", json=payload(catalog, past), headers=headers).status_code == 200
    assert client.post("/inventory/consume", json={"item_id": scroll.id}, headers=headers).status_code == 403


def test_potion_shows_up_as_buff(client, seeded, user, auth_headers):
    headers = auth_headers(user)
    potion = seeded.query(Item).filter(Item.effect_type == "xp_boost").one()
    add_to_inventory(seeded, user, potion)
    seeded.commit()

    assert [i["quantity"] for i in client.get("/inventory", headers=headers).json()] == [1]
    res = client.post("/inventory/consume", json={"item_id": potion.id}, headers=headers)
    assert res.json()["buff"]["effect_type"] == "xp_boost"

    assert client.get("/inventory", headers=headers).json() == []
    assert [b["effect_type"] for b in client.get("/inventory/buffs", headers=headers).json()] == ["xp_boost"]


def test_non_finite_scale_value_is_422(client, seeded, user, catalog, auth_headers):
    body = (
        '{"date": "%s", "entries": [{"metric_id": %d, "score_value": Infinity}]}'
        % (user_today(user).isoformat(), catalog["reading"].id)
    )
    headers = {**auth_headers(user), "Content-Type": "application/json"}

    res = client.post("/daily", content=body, headers=headers)

    assert res.status_code == 422
    assert seeded.query(DailySummary).count() == 0


def test_progress_views(client, seeded, user, catalog, auth_headers):
    headers = auth_headers(user)
    client.post("/daily", json=payload(catalog, user_today(user)), headers=headers)

    xp = client.get("/gamification/xp", headers=headers).json()
    assert xp["xp"] > 0
    assert xp["attributes"]["strength"]["xp"] == 450

    skills = {s["name"]: s for s in client.get("/gamification/skills", headers=headers).json()}
    assert skills["strength"]["total_xp"] == 450
    assert skills["charisma"]["total_xp"] == 0

    achievements = {a["code"]: a for a in client.get("/achievements", headers=headers).json()}
    assert achievements["first_blood"]["unlocked"] is True

    campaign = client.get("/campaign/status", headers=headers).json()
    assert campaign["current_stage"] == 1
    assert campaign["current_boss_health"] == campaign["boss"]["max_health"] - 90

    assert client.get("/bosses/active", headers=headers).json() is None
    assert client.get("/inventory", headers=headers).json() == []


def test_hardcore_is_locked(client, user, auth_headers):
    res = client.put("/settings/hardcore", json={"active": True}, headers=auth_headers(user))
    assert res.status_code == 403

    res = client.put("/settings/hardcore", json={"active": False}, headers=auth_headers(user))
    assert res.status_code == 200
    assert res.json()["hardcore_mode_active"] is False


def test_quest_lifecycle(client, seeded, user, catalog, auth_headers):
    headers = auth_headers(user)
    created = client.post("/quests", headers=headers)
    assert created.status_code == 201
    quest_id = created.json()["id"]

    listing = client.get("/quests", headers=headers).json()
    assert [q["id"] for q in listing["active"]] == [quest_id]

    res = client.request("DELETE", "/quests", json={"id": quest_id}, headers=headers)
    assert res.json()["deleted"] == 1
    assert client.request("DELETE", "/quests", json={"id": quest_id}, headers=headers).status_code == 404

    client.post("/quests", headers=headers)
    client.post("/quests", headers=headers)
    assert client.request("DELETE", "/quests", json={"id": "all"}, headers=headers).json()["deleted"] == 2


def test_daily_maintenance_spawns_and_drains(seeded, make_user):
    db = seeded
    user = make_user(xp=500, level=2)
    today = user_today(user)
    db.add(DailySummary(user_id=user.id, date=today - timedelta(days=3), total_score=70, mode="Stable"))
    db.add(Quest(user_id=user.id, title="Vieja", target_value=2, current_value=0, xp_reward=400,
                 status="active", expires_at=user.created_at - timedelta(days=1)))
    db.commit()

    stats = run_daily_maintenance(db, today)

    assert stats == {"users": 1, "spawned": 1, "drained": 1, "expired": 1, "shielded": 0, "errors": 0}
    assert user.xp == 450
    assert run_daily_maintenance(db, today)["drained"] == 0

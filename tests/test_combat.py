from datetime import timedelta

import pytest

from models import Boss, BossEncounter, BossPenaltyLog, DailySummary, CampaignProgress, XpTransaction, DailyDamageLog
from combat import (
    boss_damage_for_score, deal_boss_damage, check_boss_spawn, get_active_boss,
    process_daily_boss_penalty, get_campaign_status, deal_campaign_damage,
    resolve_boss_combat, resolve_campaign_combat,
    BOSS_GOLD_BOUNTY, CAMPAIGN_CATALOG
)
from gamification import add_to_inventory
from models import Item
from conftest import TODAY


def log_day(db, user, day, score=70):
    db.add(DailySummary(user_id=user.id, date=day, total_score=score, mode="Stable"))
    db.commit()


def spawn(db, user, health=None):
    boss = db.query(Boss).first()
    encounter = BossEncounter(user_id=user.id, boss_id=boss.id,
                              current_health=boss.max_health if health is None else health)
    db.add(encounter)
    db.commit()
    return encounter


@pytest.mark.parametrize("score,damage", [(100, 100), (99, 50), (80, 50), (79, 0), (0, 0)])
def test_boss_damage_tiers(score, damage):
    assert boss_damage_for_score(score) == damage


# ── Jefes ──

def test_damage_reduces_health(seeded, user):
    db = seeded
    spawn(db, user)
    result = deal_boss_damage(db, user, 50)

    assert result["defeated"] is False
    assert result["remaining_health"] == 250


def test_defeat_grants_reward_exactly_once(seeded, user):
    db = seeded
    encounter = spawn(db, user, health=80)

    first = deal_boss_damage(db, user, 100)
    second = deal_boss_damage(db, user, 100)

    assert first["defeated"] is True
    assert first["remaining_health"] == 0
    assert first["reward"]["gold"] == BOSS_GOLD_BOUNTY
    assert first["reward"]["item"]["rarity"] == "epic"
    assert second["defeated"] is False

    db.refresh(encounter)
    assert encounter.current_health == 0
    assert encounter.is_active is False
    assert user.gold == BOSS_GOLD_BOUNTY
    assert db.query(XpTransaction).filter(XpTransaction.reason.like("boss_defeated:%")).count() == 1


def test_no_active_boss_means_no_damage(seeded, user):
    assert deal_boss_damage(seeded, user, 100) == {"defeated": False, "damage": 0, "remaining_health": None}


def test_boss_spawns_after_two_missed_days(seeded, user):
    db = seeded
    log_day(db, user, TODAY - timedelta(days=3))

    encounter = check_boss_spawn(db, user, TODAY)

    assert encounter is not None
    assert get_active_boss(db, user).id == encounter.id
    assert user.last_boss_check == TODAY


def test_boss_does_not_spawn_after_yesterday(seeded, user):
    db = seeded
    log_day(db, user, TODAY - timedelta(days=1))
    assert check_boss_spawn(db, user, TODAY) is None


def test_spawn_check_runs_once_per_day(seeded, user):
    db = seeded
    log_day(db, user, TODAY - timedelta(days=1))
    assert check_boss_spawn(db, user, TODAY) is None

    # aunque ahora el hueco lo justificase, hoy ya se comprobó
    db.query(DailySummary).delete()
    log_day(db, user, TODAY - timedelta(days=5))
    assert check_boss_spawn(db, user, TODAY) is None
    assert check_boss_spawn(db, user, TODAY + timedelta(days=1)) is not None


def test_no_second_boss_while_one_is_active(seeded, user):
    db = seeded
    spawn(db, user)
    log_day(db, user, TODAY - timedelta(days=4))
    assert check_boss_spawn(db, user, TODAY) is None
    assert db.query(BossEncounter).count() == 1


def test_daily_penalty_is_idempotent_per_day(seeded, make_user):
    db = seeded
    user = make_user(xp=500, level=2)
    spawn(db, user)

    first = process_daily_boss_penalty(db, user, TODAY)
    second = process_daily_boss_penalty(db, user, TODAY)
    next_day = process_daily_boss_penalty(db, user, TODAY + timedelta(days=1))

    assert first["penalty_applied"] is True and first["amount"] == 50
    assert second["penalty_applied"] is False
    assert next_day["penalty_applied"] is True
    assert user.xp == 400
    assert db.query(BossPenaltyLog).count() == 2


def test_penalty_reduced_by_iron_will_plating(seeded, make_user):
    db = seeded
    user = make_user(xp=500, level=2)
    spawn(db, user)
    plating = db.query(Item).filter(Item.name == "Iron Will Plating").one()
    add_to_inventory(db, user, plating)
    db.commit()

    assert process_daily_boss_penalty(db, user, TODAY)["amount"] == 40


def test_no_penalty_without_boss(seeded, user):
    assert process_daily_boss_penalty(seeded, user, TODAY) == {"penalty_applied": False}


def test_same_day_boss_damage_applies_only_the_difference(seeded, user):
    db = seeded
    encounter = spawn(db, user)
    user.last_boss_check = TODAY
    db.commit()

    good = resolve_boss_combat(db, user, 85, TODAY, TODAY)
    perfect = resolve_boss_combat(db, user, 100, TODAY, TODAY)
    repeat = resolve_boss_combat(db, user, 100, TODAY, TODAY)
    next_day = resolve_boss_combat(db, user, 100, TODAY + timedelta(days=1), TODAY + timedelta(days=1))

    assert [good["damage"], perfect["damage"], repeat["damage"], next_day["damage"]] == [50, 50, 0, 100]
    db.refresh(encounter)
    assert encounter.current_health == 100
    log = db.query(DailyDamageLog).filter(DailyDamageLog.date == TODAY).one()
    assert (log.target, log.damage) == (f"boss:{encounter.id}", 100)


# ── Campaña ──

def test_campaign_initialises_at_stage_one(seeded, user):
    status = get_campaign_status(seeded, user)

    assert status["current_stage"] == 1
    assert status["completed"] is False
    assert status["current_boss_health"] == CAMPAIGN_CATALOG[0]["max_health"]


def test_campaign_damage_and_stage_advance(seeded, user):
    db = seeded
    stage_one = CAMPAIGN_CATALOG[0]

    hit = deal_campaign_damage(db, user, 90)
    assert hit["remaining_health"] == stage_one["max_health"] - 90

    kill = deal_campaign_damage(db, user, stage_one["max_health"])
    assert kill["defeated"] is True
    assert kill["remaining_health"] == 0
    assert kill["next_stage"] == 2
    assert kill["reward"]["gold"] == stage_one["reward_gold"]
    assert user.gold == stage_one["reward_gold"]

    status = get_campaign_status(db, user)
    assert status["current_stage"] == 2
    assert status["current_boss_health"] == CAMPAIGN_CATALOG[1]["max_health"]


def test_campaign_completes_after_last_stage(seeded, user):
    db = seeded
    for stage in CAMPAIGN_CATALOG:
        deal_campaign_damage(db, user, stage["max_health"])

    status = get_campaign_status(db, user)
    assert status["completed"] is True
    assert status["boss"] is None
    assert deal_campaign_damage(db, user, 100)["defeated"] is False

    progress = db.query(CampaignProgress).filter(CampaignProgress.user_id == user.id).one()
    assert progress.completed is True


def test_campaign_without_bosses_is_complete(db, user):
    status = get_campaign_status(db, user)
    assert status["completed"] is True
    assert status["boss"] is None


def test_campaign_damage_is_counted_per_day(seeded, user):
    db = seeded
    max_health = CAMPAIGN_CATALOG[0]["max_health"]

    resolve_campaign_combat(db, user, 40, TODAY)
    raised = resolve_campaign_combat(db, user, 70, TODAY)
    lowered = resolve_campaign_combat(db, user, 20, TODAY)

    assert raised["damage"] == 30
    assert lowered["damage"] == 0
    assert get_campaign_status(db, user)["current_boss_health"] == max_health - 70

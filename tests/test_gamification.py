from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from models import XpTransaction, UserInventory, Item, ActiveBuff
from gamification import (
    calculate_level, get_level_threshold, get_level_info, award_xp, deduct_xp,
    has_transaction_like, daily_log_reason,
    attribute_level, award_attribute_xp, get_skills, get_xp_status,
    process_daily_log_rewards, set_hardcore_mode, FeatureLockedError,
    XP_REWARDS, GOLD_REWARDS, HARDCORE_PENALTY_XP, ALL_ATTRIBUTES
)
from conftest import TODAY


def done(attribute=None, minutes=None, completed=True):
    return SimpleNamespace(completed=completed, rpg_attribute=attribute, time_spent_minutes=minutes)


def inventory_count(db, user):
    return sum(slot.quantity for slot in db.query(UserInventory).filter(UserInventory.user_id == user.id))


# ── Niveles ──

@pytest.mark.parametrize("xp,level", [
    (0, 1), (299, 1), (300, 2), (674, 2), (675, 3), (7500, 10),
])
def test_calculate_level(xp, level):
    assert calculate_level(xp) == level


def test_level_is_capped():
    assert calculate_level(get_level_threshold(150)) == 100


@pytest.mark.parametrize("xp,level", [
    (0, 1), (99, 1), (100, 2), (399, 2), (400, 3), (1600, 5), (8100, 10),
])
def test_attribute_level(xp, level):
    assert attribute_level(xp) == level


def test_level_info(make_user):
    user = make_user(xp=450, level=2)
    info = get_level_info(user)
    assert info["xp_in_level"] == 150
    assert info["xp_next_level"] == 375
    assert info["xp_progress"] == 40
    assert info["title"] == "Aprendiz"


# ── Libro de XP ──

def test_award_xp_appends_and_levels_up(db, user):
    result = award_xp(db, user, "test:bonus", 300)

    assert result == {"xp_earned": 300, "total_xp": 300, "level": 2, "leveled_up": True}
    assert db.query(XpTransaction).filter(XpTransaction.reason == "test:bonus").count() == 1


def test_deduct_xp_never_goes_below_zero(db, make_user):
    user = make_user(xp=100)
    deduct_xp(db, user, "test:penalty", 500)

    assert user.xp == 0
    row = db.query(XpTransaction).filter(XpTransaction.reason == "test:penalty").one()
    assert row.amount == -500


def test_prefix_check_treats_underscore_literally(db, user):
    db.add(XpTransaction(user_id=user.id, amount=10, reason=f"dailyXlog:{TODAY.isoformat()}"))
    db.commit()
    assert has_transaction_like(db, user.id, daily_log_reason(TODAY)) is False

    award_xp(db, user, daily_log_reason(TODAY), 10)
    assert has_transaction_like(db, user.id, daily_log_reason(TODAY)) is True


# ── Recompensa diaria ──

def test_perfect_day_rewards_once(seeded, user):
    db = seeded
    first = process_daily_log_rewards(db, user, TODAY, 100, [], False)
    second = process_daily_log_rewards(db, user, TODAY, 100, [], False)

    assert first["xp_awarded"] == XP_REWARDS["daily_log"] + XP_REWARDS["perfect_day"]
    assert first["gold_awarded"] == GOLD_REWARDS["daily_log"] + GOLD_REWARDS["perfect_day"]
    assert first["loot_drop"] is not None
    assert second["skipped"] is True

    assert user.xp == XP_REWARDS["daily_log"] + XP_REWARDS["perfect_day"]
    assert inventory_count(db, user) == 1


def test_regular_day_has_no_loot(seeded, user):
    result = process_daily_log_rewards(seeded, user, TODAY, 70, [], False)
    assert result["loot_drop"] is None
    assert user.gold == GOLD_REWARDS["daily_log"]
    assert inventory_count(seeded, user) == 0


def test_attribute_xp_from_minutes_or_flat_default(db, user):
    entries = [done("strength", 30), done("intellect"), done("focus", 20, completed=False), done(None, 60)]
    result = process_daily_log_rewards(db, user, TODAY, 70, entries, False)

    assert result["attribute_xp"]["strength"]["total_xp"] == 300
    assert result["attribute_xp"]["intellect"]["total_xp"] == 50
    assert "focus" not in result["attribute_xp"]


def test_same_attribute_twice_accumulates(db, user):
    result = process_daily_log_rewards(db, user, TODAY, 70, [done("strength", 10), done("strength", 5)], False)
    assert result["attribute_xp"]["strength"]["total_xp"] == 150
    assert result["attribute_xp"]["strength"]["xp"] == 150


@pytest.mark.parametrize("expires_in,total", [(timedelta(hours=1), 450), (timedelta(hours=-1), 300)])
def test_focus_potion_boosts_attribute_xp(seeded, user, expires_in, total):
    db = seeded
    potion = db.query(Item).filter(Item.effect_type == "xp_boost").one()
    db.add(ActiveBuff(user_id=user.id, item_id=potion.id, effect_type="xp_boost",
                      expires_at=datetime.utcnow() + expires_in))
    db.commit()

    result = process_daily_log_rewards(db, user, TODAY, 70, [done("strength", 30)], False)

    assert result["attribute_xp"]["strength"]["total_xp"] == total
    assert result["xp_boost"] is (total == 450)


def test_hardcore_doubles_attribute_xp(db, make_user):
    user = make_user(hardcore_mode_active=True)
    result = process_daily_log_rewards(db, user, TODAY, 70, [done("strength", 30)], True)

    assert result["attribute_xp"]["strength"]["total_xp"] == 600
    assert result["hardcore_failed"] is False
    assert user.hardcore_mode_active is True


def test_hardcore_failure_deactivates_and_penalises(db, make_user):
    user = make_user(xp=1000, level=3, hardcore_mode_active=True)
    result = process_daily_log_rewards(db, user, TODAY, 30, [done("strength", 30)], True)

    assert result["hardcore_failed"] is True
    assert result["penalty"] == HARDCORE_PENALTY_XP
    assert user.hardcore_mode_active is False
    assert user.xp == 1000 + XP_REWARDS["daily_log"] - HARDCORE_PENALTY_XP
    # sin doble XP el día del fallo
    assert result["attribute_xp"]["strength"]["total_xp"] == 300


def test_hardcore_state_is_the_one_passed_in(db, make_user):
    user = make_user(hardcore_mode_active=False)
    result = process_daily_log_rewards(db, user, TODAY, 30, [], True)
    assert result["hardcore_failed"] is True


def test_resubmission_does_not_penalise_twice(db, make_user):
    user = make_user(xp=2000, level=4, hardcore_mode_active=True)
    process_daily_log_rewards(db, user, TODAY, 30, [], True)
    xp_after = user.xp
    process_daily_log_rewards(db, user, TODAY, 30, [], True)
    assert user.xp == xp_after


# ── Hardcore y vistas ──

def test_hardcore_requires_discipline_level_5(db, user):
    with pytest.raises(FeatureLockedError):
        set_hardcore_mode(db, user, True)

    award_attribute_xp(db, user, "discipline", 1600)
    set_hardcore_mode(db, user, True)
    assert user.hardcore_mode_active is True
    assert user.hardcore_start_date is not None

    set_hardcore_mode(db, user, False)
    assert user.hardcore_mode_active is False


def test_skills_list_all_standard_attributes(db, user):
    award_attribute_xp(db, user, "strength", 250)
    db.commit()
    skills = {s["name"]: s for s in get_skills(db, user)}

    assert set(ALL_ATTRIBUTES) <= set(skills)
    assert skills["strength"]["level"] == 2
    assert skills["strength"]["xp_into_level"] == 150
    assert skills["strength"]["xp_needed_for_level"] == 300
    assert skills["vitality"]["total_xp"] == 0


def test_xp_status(db, make_user):
    user = make_user(xp=300, level=2, gold=40)
    status = get_xp_status(db, user)
    assert status["level"] == 2
    assert status["gold"] == 40
    assert status["hardcore_mode_active"] is False

"""
=============================================================================
COMBAT.PY — Jefes y Campaña
=============================================================================
Dos máquinas de estado con el mismo modelo de daño:

JEFES (aparecen cuando el usuario abandona el registro):
  sin jefe ──(2+ días sin registrar)──→ ACTIVO ──(vida = 0)──→ DERROTADO
  - Un día con nota ≥ 80 le hace daño: 100 si la nota es 100, si no 50
  - Mientras siga vivo, cada día drena XP (daily_penalty_xp)
  - Derrotarlo da XP, 500 de oro y un objeto de su rareza

CAMPAÑA (escalera de jefes de historia, en orden):
  peldaño 1 ──(vida = 0)──→ peldaño 2 ──→ ... ──→ COMPLETADA
  - Cualquier nota > 0 hace tanto daño como la nota
  - Derrotar al jefe del peldaño da su XP, su oro y un objeto

La vida siempre está entre 0 y max_health. Llegar a 0 da la recompensa
UNA sola vez: el combate deja de estar activo en la misma escritura.

El daño de cada día registrado se apunta en daily_damage_log. Si el
usuario corrige el día y sube la nota, solo se aplica la diferencia.
"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from models import (
    User, Boss, BossEncounter, BossPenaltyLog, CampaignBoss, CampaignProgress, DailyDamageLog,
    DailySummary, Item, UserInventory
)
from gamification import award_xp, deduct_xp, award_gold, grant_random_item, item_to_dict
import logging

logger = logging.getLogger("nexoquest.combat")

# ─────────────────────────────────────────────────────────────────────────────
# REGLAS DE COMBATE
# ─────────────────────────────────────────────────────────────────────────────

BOSS_DAMAGE_MIN_SCORE = 80
BOSS_DAMAGE = {"perfect": 100, "good": 50}
BOSS_GOLD_BOUNTY = 500
BOSS_DEFAULT_REWARD_XP = 1000
BOSS_DEFAULT_PENALTY_XP = 50
BOSS_SPAWN_GAP_DAYS = 2

# Reduce el drenaje diario 10 XP por unidad en el inventario
DRAIN_REDUCTION_ITEM = "Iron Will Plating"
DRAIN_REDUCTION_PER_STACK = 10


def boss_damage_for_score(score: int) -> int:
    """Daño a un jefe según la nota del día (0 si no llega a 80)"""
    if score >= 100:
        return BOSS_DAMAGE["perfect"]
    if score >= BOSS_DAMAGE_MIN_SCORE:
        return BOSS_DAMAGE["good"]
    return 0


def campaign_damage_for_score(score: int) -> int:
    return max(0, int(score))


def _claim_daily_damage(db: Session, user: User, target: str, day: date, damage: int) -> int:
    """
    Apunta que el registro de `day` hace `damage` a `target` y devuelve
    lo que falta por aplicar. Bajar la nota no cura al jefe. Sin commit.
    """
    log = db.query(DailyDamageLog).filter(
        DailyDamageLog.user_id == user.id,
        DailyDamageLog.target == target,
        DailyDamageLog.date == day
    ).first()
    already = log.damage if log else 0

    pending = max(0, int(damage) - already)
    if pending == 0:
        return 0

    if log is None:
        db.add(DailyDamageLog(user_id=user.id, target=target, date=day, damage=int(damage)))
    else:
        log.damage = int(damage)
    return pending


# =============================================================================
# ===================== JEFES =================================================
# =============================================================================

BOSS_CATALOG = [
    {
        "name": "El Devorador de Rutinas",
        "description": "Aparece cuando abandonas el registro dos días seguidos. Se alimenta de tu XP.",
        "max_health": 300,
        "daily_penalty_xp": 50,
        "reward_xp": 1000,
        "reward_item_rarity": "epic",
        "spawn_condition": "missed_2_days",
    },
]


def seed_bosses(db: Session):
    for data in BOSS_CATALOG:
        if not db.query(Boss).filter(Boss.name == data["name"]).first():
            db.add(Boss(**data))
    db.commit()
    logger.info(f"✅ {len(BOSS_CATALOG)} jefes verificados en BD")


def get_active_boss(db: Session, user: User) -> Optional[BossEncounter]:
    return db.query(BossEncounter).filter(
        BossEncounter.user_id == user.id,
        BossEncounter.defeated_at == None
    ).order_by(BossEncounter.id).first()


def encounter_to_dict(encounter: Optional[BossEncounter]) -> Optional[dict]:
    if encounter is None:
        return None
    boss = encounter.boss
    return {
        "encounter_id": encounter.id,
        "boss_id": boss.id,
        "name": boss.name,
        "description": boss.description,
        "current_health": encounter.current_health,
        "max_health": boss.max_health,
        "daily_penalty_xp": boss.daily_penalty_xp,
        "reward_xp": boss.reward_xp,
        "reward_item_rarity": boss.reward_item_rarity,
        "is_active": encounter.is_active,
    }


def deal_boss_damage(db: Session, user: User, amount: int) -> dict:
    """
    Daña al jefe activo del usuario.

    Retorna:
      {"defeated": False, "damage": 50, "remaining_health": 150}
      {"defeated": True, "damage": 100, "remaining_health": 0,
       "reward": {"xp": 1000, "gold": 500, "item": {...}, "boss_name": "..."}}
    """
    encounter = get_active_boss(db, user)
    if encounter is None or amount <= 0:
        return {"defeated": False, "damage": 0,
                "remaining_health": encounter.current_health if encounter else None}

    boss = encounter.boss
    new_health = max(0, min(boss.max_health, encounter.current_health - int(amount)))
    encounter.current_health = new_health

    if new_health > 0:
        db.commit()
        return {"defeated": False, "damage": int(amount), "remaining_health": new_health}

    # ── Jefe derrotado ──
    encounter.defeated_at = datetime.utcnow()
    xp_amount = boss.reward_xp or BOSS_DEFAULT_REWARD_XP
    award_xp(db, user, f"boss_defeated:{boss.name}:{encounter.id}", xp_amount, commit=False)
    award_gold(db, user, BOSS_GOLD_BOUNTY, commit=False)
    item = grant_random_item(db, user, boss.reward_item_rarity or "epic")
    db.commit()

    logger.info(f"⚔️ Usuario {user.id} derrota a {boss.name}")
    return {
        "defeated": True,
        "damage": int(amount),
        "remaining_health": 0,
        "reward": {
            "xp": xp_amount,
            "gold": BOSS_GOLD_BOUNTY,
            "item": item_to_dict(item),
            "boss_name": boss.name,
        }
    }


def last_logged_day_before(db: Session, user: User, day: date) -> Optional[date]:
    row = db.query(DailySummary.date).filter(
        DailySummary.user_id == user.id,
        DailySummary.date < day
    ).order_by(DailySummary.date.desc()).first()
    return row[0] if row else None


def check_boss_spawn(db: Session, user: User, today: Optional[date] = None) -> Optional[BossEncounter]:
    """
    Evalúa si aparece un jefe. Solo si no hay uno activo, y como mucho
    una vez al día por usuario.

    Condición "missed_2_days": el último día registrado antes de hoy
    tiene 2 días o más de antigüedad.
    """
    today = today or date.today()

    if get_active_boss(db, user):
        return None
    if user.last_boss_check == today:
        return None

    user.last_boss_check = today
    encounter = None

    last_day = last_logged_day_before(db, user, today)
    if last_day is not None and (today - last_day).days >= BOSS_SPAWN_GAP_DAYS:
        boss = db.query(Boss).filter(Boss.spawn_condition == "missed_2_days").order_by(Boss.id).first()
        if boss:
            encounter = BossEncounter(user_id=user.id, boss_id=boss.id, current_health=boss.max_health)
            db.add(encounter)
            logger.info(f"👹 {boss.name} aparece para el usuario {user.id}")

    db.commit()
    return encounter


def drain_reduction(db: Session, user: User) -> int:
    slot = db.query(UserInventory).join(Item).filter(
        UserInventory.user_id == user.id,
        Item.name == DRAIN_REDUCTION_ITEM
    ).first()
    return (slot.quantity or 0) * DRAIN_REDUCTION_PER_STACK if slot else 0


def process_daily_boss_penalty(db: Session, user: User, day: Optional[date] = None) -> dict:
    """
    Drena XP mientras el jefe siga vivo. Idempotente por (usuario, jefe, día).
    """
    day = day or date.today()
    encounter = get_active_boss(db, user)
    if encounter is None:
        return {"penalty_applied": False}

    existing = db.query(BossPenaltyLog).filter(
        BossPenaltyLog.encounter_id == encounter.id,
        BossPenaltyLog.penalty_date == day
    ).first()
    if existing:
        return {"penalty_applied": False}

    boss = encounter.boss
    amount = boss.daily_penalty_xp if boss.daily_penalty_xp is not None else BOSS_DEFAULT_PENALTY_XP
    amount = max(0, amount - drain_reduction(db, user))

    if amount > 0:
        deduct_xp(db, user, f"boss_drain:{boss.name}:{day.isoformat()}", amount, commit=False)

    db.add(BossPenaltyLog(user_id=user.id, encounter_id=encounter.id, penalty_date=day, xp_drained=amount))
    db.commit()

    logger.info(f"🩸 {boss.name} drena {amount} XP al usuario {user.id}")
    return {"penalty_applied": True, "amount": amount, "boss_name": boss.name}


def resolve_boss_combat(db: Session, user: User, score: int, day: Optional[date] = None,
                        today: Optional[date] = None) -> dict:
    """
    Lo que hace el registro del día `day` con los jefes:
      1. Si no hay jefe activo → comprobación diaria de aparición
      2. Si la nota llega a 80 → daño al jefe activo, descontando el que
         ese mismo día ya le hizo un envío anterior
    """
    today = today or date.today()
    day = day or today
    spawned = check_boss_spawn(db, user, today)

    encounter = get_active_boss(db, user)
    damage = 0
    if encounter is not None:
        damage = _claim_daily_damage(db, user, f"boss:{encounter.id}", day, boss_damage_for_score(score))

    if damage > 0:
        result = deal_boss_damage(db, user, damage)
    else:
        result = {"defeated": False, "damage": 0,
                  "remaining_health": encounter.current_health if encounter else None}

    result["spawned"] = encounter_to_dict(spawned)
    result["active_boss"] = encounter_to_dict(get_active_boss(db, user))
    return result


# =============================================================================
# ===================== CAMPAÑA ===============================================
# =============================================================================

CAMPAIGN_CATALOG = [
    {"stage_number": 1, "name": "El Guardián de la Niebla", "max_health": 300,
     "reward_xp": 300, "reward_gold": 150, "reward_item_rarity": "common",
     "description": "La pereza de las mañanas toma forma. Primer obstáculo del camino."},
    {"stage_number": 2, "name": "La Hidra de las Distracciones", "max_health": 600,
     "reward_xp": 600, "reward_gold": 300, "reward_item_rarity": "rare",
     "description": "Cada notificación que ignoras le corta una cabeza."},
    {"stage_number": 3, "name": "El Rey del Mañana", "max_health": 1000,
     "reward_xp": 1500, "reward_gold": 750, "reward_item_rarity": "epic",
     "description": "Señor de la procrastinación. Solo cae ante la constancia."},
]


def seed_campaign(db: Session):
    for data in CAMPAIGN_CATALOG:
        if not db.query(CampaignBoss).filter(CampaignBoss.stage_number == data["stage_number"]).first():
            db.add(CampaignBoss(**data))
    db.commit()
    logger.info(f"✅ {len(CAMPAIGN_CATALOG)} peldaños de campaña verificados en BD")


def _get_or_create_progress(db: Session, user: User) -> CampaignProgress:
    progress = db.query(CampaignProgress).filter(CampaignProgress.user_id == user.id).first()
    if progress is None:
        progress = CampaignProgress(user_id=user.id, current_stage=1, current_boss_health=None)
        db.add(progress)
        db.flush()
    return progress


def get_campaign_status(db: Session, user: User) -> dict:
    """
    Progreso de campaña del usuario. Lo inicializa si no existe y
    presenta al jefe del peldaño con la vida llena la primera vez.
    """
    progress = _get_or_create_progress(db, user)
    boss = db.query(CampaignBoss).filter(CampaignBoss.stage_number == progress.current_stage).first()

    if boss is None:
        if not progress.completed:
            progress.completed = True
            progress.current_boss_health = 0
        db.commit()
        return {"current_stage": progress.current_stage, "current_boss_health": 0,
                "completed": True, "boss": None}

    if progress.current_boss_health is None:
        progress.current_boss_health = boss.max_health
    db.commit()

    return {
        "current_stage": progress.current_stage,
        "current_boss_health": progress.current_boss_health,
        "completed": False,
        "boss": {
            "id": boss.id,
            "name": boss.name,
            "description": boss.description,
            "max_health": boss.max_health,
            "reward_xp": boss.reward_xp,
            "reward_gold": boss.reward_gold,
            "reward_item_rarity": boss.reward_item_rarity,
        }
    }


def deal_campaign_damage(db: Session, user: User, amount: int) -> dict:
    """
    Daña al jefe del peldaño actual. Si cae, avanza al siguiente peldaño
    (o marca la campaña como completada si no hay más).
    """
    status = get_campaign_status(db, user)
    if status["boss"] is None:
        return {"defeated": False, "remaining_health": 0, "completed": True}
    if amount <= 0:
        return {"defeated": False, "remaining_health": status["current_boss_health"]}

    progress = _get_or_create_progress(db, user)
    boss = status["boss"]
    new_health = max(0, min(boss["max_health"], status["current_boss_health"] - int(amount)))
    progress.updated_at = datetime.utcnow()

    if new_health > 0:
        progress.current_boss_health = new_health
        db.commit()
        return {"defeated": False, "damage": int(amount), "remaining_health": new_health}

    # ── Jefe de campaña derrotado ──
    progress.current_stage = status["current_stage"] + 1
    progress.current_boss_health = None
    has_next = db.query(CampaignBoss).filter(
        CampaignBoss.stage_number == progress.current_stage
    ).first() is not None
    progress.completed = not has_next

    award_xp(db, user, f"campaign_boss_defeated:{boss['name']}", boss["reward_xp"] or 0, commit=False)
    award_gold(db, user, boss["reward_gold"] or 0, commit=False)
    item = grant_random_item(db, user, boss["reward_item_rarity"] or "rare")
    db.commit()

    logger.info(f"🏰 Usuario {user.id} supera el peldaño {status['current_stage']} ({boss['name']})")
    return {
        "defeated": True,
        "damage": int(amount),
        "remaining_health": 0,
        "next_stage": progress.current_stage,
        "completed": progress.completed,
        "reward": {
            "xp": boss["reward_xp"],
            "gold": boss["reward_gold"],
            "item": item_to_dict(item),
            "boss_name": boss["name"],
        }
    }


def resolve_campaign_combat(db: Session, user: User, score: int, day: Optional[date] = None) -> dict:
    """Daño de campaña del registro de `day`, sin repetir el de envíos anteriores de ese día"""
    day = day or date.today()
    status = get_campaign_status(db, user)
    damage = 0
    if not status["completed"]:
        damage = _claim_daily_damage(db, user, "campaign", day, campaign_damage_for_score(score))

    if damage <= 0:
        return {"defeated": False, "damage": 0, "remaining_health": status["current_boss_health"]}
    return deal_campaign_damage(db, user, damage)

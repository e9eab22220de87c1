"""
=============================================================================
INVENTORY.PY — Usar objetos del inventario
=============================================================================
Gastar un objeto resta una unidad y aplica su efecto:

  xp_boost          → Poción de Enfoque: +50% de XP de atributos durante 24h
  streak_freeze     → Escudo de Racha: el próximo día sin registro no rompe
                      las rachas (vale 14 días, solo uno activo a la vez)
  retroactive_edit  → Pergamino del Ayer: permiso de un solo uso para
                      registrar un día pasado

Los objetos pasivos (Iron Will Plating) y los cosméticos no se gastan.
"""

from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from models import User, Item, UserInventory, ActiveBuff, DailySummary
from gamification import get_active_buff, item_to_dict
from streaks import bridge_missed_day
from daily import grant_retroactive_edit
import logging

logger = logging.getLogger("nexoquest.inventory")

BUFF_DURATIONS = {
    "xp_boost": timedelta(hours=24),
    "streak_freeze": timedelta(days=14),
}
CONSUMABLE_EFFECTS = {"xp_boost", "streak_freeze", "retroactive_edit"}

EFFECT_MESSAGES = {
    "xp_boost": "¡+50% de XP de atributos durante 24 horas!",
    "streak_freeze": "El próximo día sin registro no romperá tus rachas (válido 14 días).",
    "retroactive_edit": "Tienes un permiso para registrar un día pasado.",
}


class InventoryError(Exception):
    """El objeto no se puede usar ahora"""


class ItemNotOwnedError(InventoryError):
    """El usuario no tiene unidades del objeto"""


# =============================================================================
# ===================== CONSULTAS =============================================
# =============================================================================

def list_inventory(db: Session, user: User) -> list[dict]:
    rows = db.query(UserInventory, Item).join(Item).filter(
        UserInventory.user_id == user.id,
        UserInventory.quantity > 0
    ).order_by(Item.id).all()

    result = []
    for slot, item in rows:
        data = item_to_dict(item)
        data.update({"effect_type": item.effect_type, "quantity": slot.quantity})
        result.append(data)
    return result


def list_active_buffs(db: Session, user: User, now: Optional[datetime] = None) -> list[ActiveBuff]:
    now = now or datetime.utcnow()
    return db.query(ActiveBuff).filter(
        ActiveBuff.user_id == user.id,
        ActiveBuff.expires_at > now
    ).order_by(ActiveBuff.expires_at).all()


# =============================================================================
# ===================== GASTAR UN OBJETO ======================================
# =============================================================================

def consume_item(db: Session, user: User, item_id: int, now: Optional[datetime] = None) -> dict:
    """
    Gasta una unidad de `item_id` y aplica su efecto, todo en un commit.

    Retorna:
      {"item": {...}, "effect_type": "xp_boost", "message": "...", "remaining": 2,
       "buff": <ActiveBuff> | None, "grant": <RetroactiveEditGrant> | None}
    """
    now = now or datetime.utcnow()

    slot = db.query(UserInventory).filter(
        UserInventory.user_id == user.id,
        UserInventory.item_id == item_id
    ).first()
    if slot is None or (slot.quantity or 0) <= 0:
        raise ItemNotOwnedError("No tienes este objeto")

    item = slot.item
    effect = item.effect_type
    if effect not in CONSUMABLE_EFFECTS:
        raise InventoryError(f"{item.name} no se puede usar")

    if effect == "streak_freeze" and get_active_buff(db, user.id, effect, now):
        raise InventoryError("Ya tienes un Escudo de Racha activo")

    # Resta solo si sigue quedando alguna unidad
    taken = db.query(UserInventory).filter(
        UserInventory.id == slot.id,
        UserInventory.quantity > 0
    ).update({"quantity": UserInventory.quantity - 1}, synchronize_session="fetch")
    if taken == 0:
        db.rollback()
        raise ItemNotOwnedError("No tienes este objeto")

    buff = None
    grant = None
    if effect in BUFF_DURATIONS:
        buff = ActiveBuff(user_id=user.id, item_id=item.id, effect_type=effect,
                          expires_at=now + BUFF_DURATIONS[effect])
        db.add(buff)
    else:
        grant = grant_retroactive_edit(db, user, commit=False)

    db.commit()
    db.refresh(slot)
    if buff is not None:
        db.refresh(buff)
    if grant is not None:
        db.refresh(grant)

    logger.info(f"🎒 Usuario {user.id} usa {item.name} ({effect})")
    return {
        "item": item_to_dict(item),
        "effect_type": effect,
        "message": EFFECT_MESSAGES[effect],
        "remaining": slot.quantity,
        "buff": buff,
        "grant": grant,
    }


# =============================================================================
# ===================== ESCUDO DE RACHA =======================================
# =============================================================================

def apply_streak_freeze(db: Session, user: User, today: date) -> int:
    """
    Si ayer no hubo registro y hay un Escudo de Racha activo, protege las
    rachas que seguían vivas anteayer y gasta el escudo.
    Devuelve cuántas rachas se protegieron.
    """
    missed_day = today - timedelta(days=1)
    logged = db.query(DailySummary.id).filter(
        DailySummary.user_id == user.id,
        DailySummary.date == missed_day
    ).first()
    if logged is not None:
        return 0

    buff = get_active_buff(db, user.id, "streak_freeze")
    if buff is None:
        return 0

    bridged = bridge_missed_day(db, user.id, missed_day)
    if not bridged:
        return 0

    db.delete(buff)
    db.commit()
    logger.info(f"🛡️ Escudo de Racha protege {len(bridged)} rachas del usuario {user.id} ({missed_day})")
    return len(bridged)

"""
=============================================================================
GAMIFICATION.PY — XP, Niveles, Atributos, Oro y Botín
=============================================================================
Gestiona:
  - El libro de XP (xp_transactions): solo se añaden filas
  - Niveles del personaje (curva cuadrática)
  - Atributos RPG (fuerza, intelecto...) alimentados por el tiempo invertido
  - Oro y botín (objetos al inventario)
  - Modo hardcore

La recompensa del registro diario es IDEMPOTENTE: si ya existe una
transacción "daily_log:<fecha>..." para el usuario, no se vuelve a dar nada.
Así, reenviar el mismo día no regala XP doble.
"""

import math
import random
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from models import User, XpTransaction, UserAttribute, Item, UserInventory, ActiveBuff
import logging

logger = logging.getLogger("nexoquest.gamification")


# =============================================================================
# ===================== SISTEMA DE NIVELES ====================================
# =============================================================================
# El nivel N necesita N² × 75 XP acumulados.
# Nivel 2 → 300 XP, Nivel 5 → 1.875 XP, Nivel 10 → 7.500 XP...

MAX_LEVEL = 100

LEVEL_TITLES = {
    1: "Novato",
    2: "Aprendiz",
    3: "Iniciado",
    5: "Constante",
    7: "Disciplinado",
    10: "Veterano",
    15: "Experto",
    20: "Maestro",
    30: "Leyenda",
    50: "Inmortal",
}


def get_level_title(level: int) -> str:
    title = "Novato"
    for lvl, name in sorted(LEVEL_TITLES.items()):
        if level >= lvl:
            title = name
    return title


def get_level_threshold(level: int) -> int:
    """XP total necesario para alcanzar `level`"""
    return level * level * 75


def calculate_level(total_xp: int) -> int:
    level = 1
    while level < MAX_LEVEL and total_xp >= get_level_threshold(level + 1):
        level += 1
    return level


def get_level_info(user: User) -> dict:
    """Información completa del nivel del usuario"""
    level = user.level or 1
    xp = user.xp or 0
    current = get_level_threshold(level)
    nxt = get_level_threshold(level + 1)
    into_level = max(0, xp - current)
    needed = nxt - current

    return {
        "level": level,
        "xp": xp,
        "xp_in_level": into_level,
        "xp_next_level": needed,
        "xp_progress": min(100, round(into_level / needed * 100)) if needed > 0 else 100,
        "title": get_level_title(level)
    }


# =============================================================================
# ===================== LIBRO DE XP ===========================================
# =============================================================================

XP_REWARDS = {
    "daily_log": 10,        # Registrar el día
    "perfect_day": 50,      # Bonus por nota 100
}

GOLD_REWARDS = {
    "daily_log": 10,
    "perfect_day": 25,
}

HARDCORE_FAIL_SCORE = 40
HARDCORE_PENALTY_XP = 500
HARDCORE_REQUIRED_ATTRIBUTE = "discipline"
HARDCORE_REQUIRED_LEVEL = 5


class FeatureLockedError(Exception):
    """El usuario no tiene el nivel de atributo que pide la función"""


def award_xp(db: Session, user: User, reason: str, amount: int, commit: bool = True) -> dict:
    """
    Añade una fila al libro de XP y actualiza el total y el nivel del usuario.

    Retorna:
      {"xp_earned": 50, "total_xp": 1250, "level": 2, "leveled_up": True}
    """
    amount = int(amount or 0)
    old_level = user.level or 1

    db.add(XpTransaction(user_id=user.id, amount=amount, reason=reason))
    user.xp = max(0, (user.xp or 0) + amount)
    user.level = calculate_level(user.xp)

    leveled_up = user.level > old_level
    if leveled_up:
        logger.info(f"⬆️ Usuario {user.id} sube a nivel {user.level} ({get_level_title(user.level)})")

    if commit:
        db.commit()

    return {
        "xp_earned": amount,
        "total_xp": user.xp,
        "level": user.level,
        "leveled_up": leveled_up,
    }


def deduct_xp(db: Session, user: User, reason: str, amount: int, commit: bool = True) -> dict:
    """Penalización: fila negativa en el libro. El total nunca baja de 0."""
    return award_xp(db, user, reason, -abs(int(amount or 0)), commit=commit)


def has_transaction_like(db: Session, user_id: int, prefix: str) -> bool:
    return db.query(XpTransaction.id).filter(
        XpTransaction.user_id == user_id,
        XpTransaction.reason.startswith(prefix, autoescape=True)
    ).first() is not None


def has_transaction(db: Session, user_id: int, reason: str) -> bool:
    return db.query(XpTransaction.id).filter(
        XpTransaction.user_id == user_id,
        XpTransaction.reason == reason
    ).first() is not None


def daily_log_reason(day: date) -> str:
    return f"daily_log:{day.isoformat()}"


def award_gold(db: Session, user: User, amount: int, commit: bool = True) -> int:
    user.gold = (user.gold or 0) + int(amount or 0)
    if commit:
        db.commit()
    return user.gold


# =============================================================================
# ===================== BOTÍN E INVENTARIO ====================================
# =============================================================================

ITEM_CATALOG = [
    {"name": "Poción de Enfoque", "icon": "🧪", "rarity": "common", "effect_type": "xp_boost", "price": 100,
     "description": "Un trago de claridad para la próxima sesión de trabajo profundo."},
    {"name": "Pergamino del Ayer", "icon": "📜", "rarity": "rare", "effect_type": "retroactive_edit", "price": 300,
     "description": "Permite registrar un día pasado."},
    {"name": "Escudo de Racha", "icon": "🛡️", "rarity": "rare", "effect_type": "streak_freeze", "price": 400,
     "description": "Protege una racha durante un día sin registro."},
    {"name": "Iron Will Plating", "icon": "⚙️", "rarity": "epic", "effect_type": "boss_drain_reduction", "price": 800,
     "description": "Reduce el XP que drena un jefe cada día."},
    {"name": "Corona del Constante", "icon": "👑", "rarity": "legendary", "effect_type": "cosmetic", "price": 2000,
     "description": "Solo para quien no falla."},
]


def seed_items(db: Session):
    """Inserta el catálogo de objetos si falta alguno"""
    for data in ITEM_CATALOG:
        existing = db.query(Item).filter(Item.name == data["name"]).first()
        if not existing:
            db.add(Item(**data))
    db.commit()
    logger.info(f"✅ {len(ITEM_CATALOG)} objetos verificados en BD")


def add_to_inventory(db: Session, user: User, item: Item) -> UserInventory:
    """Suma una unidad del objeto al inventario (apila si ya lo tiene)"""
    slot = db.query(UserInventory).filter(
        UserInventory.user_id == user.id,
        UserInventory.item_id == item.id
    ).first()
    if slot:
        slot.quantity = (slot.quantity or 0) + 1
        slot.last_acquired_at = datetime.utcnow()
    else:
        slot = UserInventory(user_id=user.id, item_id=item.id, quantity=1)
        db.add(slot)
    return slot


def grant_random_item(db: Session, user: User, rarity: Optional[str] = None) -> Optional[Item]:
    """
    Saca un objeto al azar (de una rareza concreta o de todo el catálogo)
    y lo mete en el inventario. Sin commit.
    """
    query = db.query(Item)
    if rarity:
        query = query.filter(Item.rarity == rarity)
    items = query.order_by(Item.id).all()
    if not items:
        return None

    item = random.choice(items)
    add_to_inventory(db, user, item)
    return item


def get_active_buff(db: Session, user_id: int, effect_type: str,
                    now: Optional[datetime] = None) -> Optional[ActiveBuff]:
    """El efecto vigente de ese tipo (el que caduca antes), o None"""
    now = now or datetime.utcnow()
    return db.query(ActiveBuff).filter(
        ActiveBuff.user_id == user_id,
        ActiveBuff.effect_type == effect_type,
        ActiveBuff.expires_at > now
    ).order_by(ActiveBuff.expires_at).first()


def item_to_dict(item: Optional[Item]) -> Optional[dict]:
    if item is None:
        return None
    return {
        "id": item.id,
        "name": item.name,
        "icon": item.icon,
        "rarity": item.rarity,
        "description": item.description,
    }


# =============================================================================
# ===================== ATRIBUTOS RPG =========================================
# =============================================================================
# nivel = floor(sqrt(total_xp) / 10) + 1
# XP total para el nivel L = ((L - 1) × 10)²  → L2: 100, L3: 400, L5: 1.600

ALL_ATTRIBUTES = ["strength", "intellect", "vitality", "charisma", "focus"]

ATTRIBUTE_XP_PER_MINUTE = 10
ATTRIBUTE_XP_DEFAULT = 50       # Si la métrica se completa sin tiempo registrado
XP_BOOST_PERCENT = 150          # Poción de Enfoque activa: +50% de XP de atributos


def attribute_level(total_xp: int) -> int:
    return math.isqrt(max(0, int(total_xp or 0))) // 10 + 1


def attribute_xp_for_level(level: int) -> int:
    if level <= 1:
        return 0
    return ((level - 1) * 10) ** 2


def award_attribute_xp(db: Session, user: User, attribute_name: str, amount: int) -> dict:
    """Suma XP a un atributo y recalcula su nivel. Sin commit."""
    attr = db.query(UserAttribute).filter(
        UserAttribute.user_id == user.id,
        UserAttribute.attribute_name == attribute_name
    ).first()
    if attr is None:
        attr = UserAttribute(user_id=user.id, attribute_name=attribute_name, total_xp=0, level=1)
        db.add(attr)

    old_level = attr.level or 1
    attr.total_xp = (attr.total_xp or 0) + max(0, int(amount))
    attr.level = attribute_level(attr.total_xp)
    db.flush()

    return {"xp": int(amount), "total_xp": attr.total_xp, "level": attr.level, "leveled_up": attr.level > old_level}


def get_attribute_map(db: Session, user: User) -> dict:
    rows = db.query(UserAttribute).filter(UserAttribute.user_id == user.id).all()
    return {r.attribute_name: {"xp": r.total_xp, "level": r.level} for r in rows}


def get_skills(db: Session, user: User) -> list[dict]:
    """Los 5 atributos estándar (aunque tengan 0 XP) más los que tenga el usuario"""
    attrs = get_attribute_map(db, user)
    names = ALL_ATTRIBUTES + sorted(n for n in attrs if n not in ALL_ATTRIBUTES)

    result = []
    for name in names:
        raw = attrs.get(name, {"xp": 0, "level": 1})
        current = attribute_xp_for_level(raw["level"])
        nxt = attribute_xp_for_level(raw["level"] + 1)
        into_level = max(0, raw["xp"] - current)
        needed = nxt - current
        result.append({
            "name": name,
            "total_xp": raw["xp"],
            "level": raw["level"],
            "xp_into_level": into_level,
            "xp_needed_for_level": needed,
            "progress_percent": min(into_level / needed * 100, 100) if needed > 0 else 100,
        })
    return result


def get_xp_status(db: Session, user: User) -> dict:
    info = get_level_info(user)
    info.update({
        "gold": user.gold or 0,
        "hardcore_mode_active": bool(user.hardcore_mode_active),
        "attributes": get_attribute_map(db, user),
    })
    return info


# =============================================================================
# ===================== MODO HARDCORE =========================================
# =============================================================================

def set_hardcore_mode(db: Session, user: User, active: bool) -> User:
    """
    Activar exige Disciplina nivel 5. Desactivar siempre se puede.
    """
    if active:
        discipline = get_attribute_map(db, user).get(HARDCORE_REQUIRED_ATTRIBUTE)
        if not discipline or discipline["level"] < HARDCORE_REQUIRED_LEVEL:
            raise FeatureLockedError(
                f"Requiere {HARDCORE_REQUIRED_ATTRIBUTE} nivel {HARDCORE_REQUIRED_LEVEL}"
            )
        user.hardcore_mode_active = True
        user.hardcore_start_date = datetime.utcnow()
        logger.info(f"💀 Usuario {user.id} activa el modo hardcore")
    else:
        user.hardcore_mode_active = False

    db.commit()
    return user


# =============================================================================
# ===================== RECOMPENSA DEL REGISTRO DIARIO ========================
# =============================================================================

def process_daily_log_rewards(
    db: Session,
    user: User,
    day: date,
    score: int,
    entries,
    hardcore_active: bool
) -> dict:
    """
    Reparte XP, oro, botín y XP de atributos por registrar el día.

    `hardcore_active` es el estado del modo hardcore capturado AL EMPEZAR
    el registro. No se vuelve a leer del usuario aunque se desactive aquí.

    Flujo:
      1. ¿Ya hay "daily_log:<fecha>*"? → no se da nada
      2. XP base (+ bonus si nota 100, + un objeto al azar)
      3. Oro base (+ bonus si nota 100)
      4. Hardcore con nota < 40 → se desactiva, penalización, sin doble XP
      5. XP de atributos por cada métrica completada con atributo
         (+50% con una Poción de Enfoque activa)
    """
    reason = daily_log_reason(day)
    if has_transaction_like(db, user.id, reason):
        logger.info(f"↩️ Recompensa de {reason} ya otorgada a {user.id}, se omite")
        return {"skipped": True, "xp_awarded": 0, "gold_awarded": 0, "loot_drop": None,
                "attribute_xp": {}, "hardcore_failed": False, "penalty": 0,
                "total_xp": user.xp or 0, "level": user.level or 1, "leveled_up": False}

    old_level = user.level or 1
    perfect = score == 100

    xp_awarded = XP_REWARDS["daily_log"]
    award_xp(db, user, reason, XP_REWARDS["daily_log"], commit=False)
    gold_awarded = GOLD_REWARDS["daily_log"]
    loot = None

    if perfect:
        award_xp(db, user, f"{reason}:perfect", XP_REWARDS["perfect_day"], commit=False)
        xp_awarded += XP_REWARDS["perfect_day"]
        gold_awarded += GOLD_REWARDS["perfect_day"]
        loot = grant_random_item(db, user)

    award_gold(db, user, gold_awarded, commit=False)

    # ── Hardcore ──
    hardcore_failed = hardcore_active and score < HARDCORE_FAIL_SCORE
    penalty = 0
    multiplier = 2 if hardcore_active else 1
    if hardcore_failed:
        user.hardcore_mode_active = False
        penalty = HARDCORE_PENALTY_XP
        deduct_xp(db, user, f"hardcore_failure:{day.isoformat()}", penalty, commit=False)
        multiplier = 1
        logger.info(f"💀 Usuario {user.id} pierde el modo hardcore (nota {score})")

    # ── Atributos ──
    boosted = get_active_buff(db, user.id, "xp_boost") is not None
    attribute_xp = {}
    for entry in entries:
        if not entry.completed or not entry.rpg_attribute:
            continue
        minutes = entry.time_spent_minutes or 0
        base = minutes * ATTRIBUTE_XP_PER_MINUTE if minutes > 0 else ATTRIBUTE_XP_DEFAULT
        amount = base * multiplier
        if boosted:
            amount = amount * XP_BOOST_PERCENT // 100
        result = award_attribute_xp(db, user, entry.rpg_attribute, amount)
        previous = attribute_xp.get(entry.rpg_attribute)
        if previous:
            result["xp"] += previous["xp"]
            result["leveled_up"] = result["leveled_up"] or previous["leveled_up"]
        attribute_xp[entry.rpg_attribute] = result

    db.commit()

    return {
        "skipped": False,
        "xp_awarded": xp_awarded,
        "gold_awarded": gold_awarded,
        "perfect": perfect,
        "loot_drop": item_to_dict(loot),
        "attribute_xp": attribute_xp,
        "xp_boost": boosted,
        "hardcore_failed": hardcore_failed,
        "penalty": penalty,
        "total_xp": user.xp,
        "level": user.level,
        "leveled_up": user.level > old_level,
    }

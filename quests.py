"""
=============================================================================
QUESTS.PY — Misiones cortas ligadas a una métrica
=============================================================================
Una misión pide completar una métrica concreta N veces antes de una fecha.

  - Cada día registrado con esa métrica completada suma EXACTAMENTE 1
    (no importan los puntos ni el tiempo)
  - current_value ≥ target_value → completada, se da su XP una sola vez
  - Pasada la fecha límite sin completarla → expirada

Las misiones nuevas apuntan a la métrica que peor va en los últimos 14 días.
"""

import random
from datetime import date, datetime, timedelta
from typing import Optional, Union

from sqlalchemy import func, and_
from sqlalchemy.orm import Session

from models import User, Quest, QuestStatus, QuestProgressLog, Metric, Axis, DailyEntry
from gamification import award_xp, has_transaction
import logging

logger = logging.getLogger("nexoquest.quests")

MAX_ACTIVE_QUESTS = 3
QUEST_LOOKBACK_DAYS = 14
QUEST_TARGET_RANGE = (2, 4)
QUEST_XP_BASE = 100
QUEST_XP_PER_TARGET = 150
RECENT_COMPLETED_LIMIT = 3


class QuestError(Exception):
    """No se puede generar la misión"""


def quest_reason(quest: Quest) -> str:
    return f"quest_completed:{quest.id}"


def get_active_quests(db: Session, user: User) -> list[Quest]:
    return db.query(Quest).filter(
        Quest.user_id == user.id,
        Quest.status == QuestStatus.active.value
    ).order_by(Quest.created_at.desc(), Quest.id.desc()).all()


# =============================================================================
# ===================== EXPIRACIÓN ============================================
# =============================================================================

def expire_quests(db: Session, user: User, now: Optional[datetime] = None) -> int:
    """Marca como expiradas las misiones activas cuya fecha ya pasó"""
    now = now or datetime.utcnow()
    expired = db.query(Quest).filter(
        Quest.user_id == user.id,
        Quest.status == QuestStatus.active.value,
        Quest.expires_at != None,
        Quest.expires_at < now
    ).all()

    for quest in expired:
        quest.status = QuestStatus.expired.value
    if expired:
        db.commit()
        logger.info(f"⌛ {len(expired)} misiones expiradas para el usuario {user.id}")
    return len(expired)


# =============================================================================
# ===================== PROGRESO ==============================================
# =============================================================================

def track_quest_progress(db: Session, user: User, entries, day: Optional[date] = None,
                         now: Optional[datetime] = None) -> dict:
    """
    Avanza las misiones activas con las métricas completadas del registro
    del día `day`. Cada misión avanza como mucho una vez por día: un
    reenvío del mismo día solo cuenta las misiones que antes no avanzaron.

    Retorna:
      {"progressed": [3, 5], "completed": [{"quest_id": 5, "title": "...", "xp_reward": 550}],
       "xp_awarded": 550}
    """
    day = day or date.today()
    expire_quests(db, user, now)

    completed_metrics = {e.metric_id for e in entries if e.completed}
    result = {"progressed": [], "completed": [], "xp_awarded": 0}
    if not completed_metrics:
        return result

    quests = db.query(Quest).filter(
        Quest.user_id == user.id,
        Quest.status == QuestStatus.active.value,
        Quest.metric_id.in_(completed_metrics)
    ).order_by(Quest.id).all()

    counted = {
        row[0] for row in db.query(QuestProgressLog.quest_id).filter(
            QuestProgressLog.quest_id.in_([q.id for q in quests]),
            QuestProgressLog.date == day
        ).all()
    } if quests else set()

    for quest in quests:
        if quest.id in counted:
            continue
        db.add(QuestProgressLog(quest_id=quest.id, date=day))
        quest.current_value = (quest.current_value or 0) + 1
        result["progressed"].append(quest.id)

        if quest.current_value < quest.target_value:
            continue

        quest.status = QuestStatus.completed.value
        quest.completed_at = now or datetime.utcnow()
        if not has_transaction(db, user.id, quest_reason(quest)):
            award_xp(db, user, quest_reason(quest), quest.xp_reward or 0, commit=False)
            result["xp_awarded"] += quest.xp_reward or 0
        result["completed"].append({"quest_id": quest.id, "title": quest.title, "xp_reward": quest.xp_reward})
        logger.info(f"📜 Usuario {user.id} completa la misión '{quest.title}'")

    db.commit()
    return result


# =============================================================================
# ===================== GENERACIÓN ============================================
# =============================================================================

def find_weakest_metric(db: Session, user: User, today: date) -> Optional[Metric]:
    """Métrica activa con menos puntos acumulados en los últimos 14 días"""
    since = today - timedelta(days=QUEST_LOOKBACK_DAYS)
    recent_score = func.coalesce(func.sum(DailyEntry.score_awarded), 0)

    row = db.query(Metric, recent_score.label("recent_score")).join(Axis).outerjoin(
        DailyEntry,
        and_(
            DailyEntry.metric_id == Metric.id,
            DailyEntry.user_id == user.id,
            DailyEntry.date >= since
        )
    ).filter(
        Metric.active == True,
        Axis.active == True
    ).group_by(Metric.id).order_by(recent_score.asc(), Metric.id.asc()).first()

    return row[0] if row else None


def generate_quest(db: Session, user: User, today: Optional[date] = None) -> Quest:
    today = today or date.today()

    if len(get_active_quests(db, user)) >= MAX_ACTIVE_QUESTS:
        raise QuestError("El diario de misiones está lleno. Completa alguna antes.")

    metric = find_weakest_metric(db, user, today)
    if metric is None:
        raise QuestError("No hay métricas activas para generar una misión.")

    target = random.randint(*QUEST_TARGET_RANGE)
    quest = Quest(
        user_id=user.id,
        metric_id=metric.id,
        title=f"Protocolo de recuperación: {metric.name}",
        description=f"Tu constancia en {metric.name} ha bajado. Complétala {target} veces antes de que acabe el plazo.",
        target_value=target,
        current_value=0,
        xp_reward=target * QUEST_XP_PER_TARGET + QUEST_XP_BASE,
        status=QuestStatus.active.value,
        expires_at=datetime.utcnow() + timedelta(days=target + 1),
    )
    db.add(quest)
    db.commit()
    db.refresh(quest)

    logger.info(f"🗺️ Nueva misión para el usuario {user.id}: {quest.title}")
    return quest


def abandon_quest(db: Session, user: User, quest_id: Union[int, str]) -> int:
    """Borra una misión del usuario, o todas las activas con "all"."""
    query = db.query(Quest).filter(Quest.user_id == user.id)
    if quest_id == "all":
        query = query.filter(Quest.status == QuestStatus.active.value)
    else:
        query = query.filter(Quest.id == int(quest_id))

    quest_ids = [q.id for q in query.all()]
    if not quest_ids:
        return 0

    db.query(QuestProgressLog).filter(QuestProgressLog.quest_id.in_(quest_ids)).delete(synchronize_session=False)
    deleted = db.query(Quest).filter(Quest.id.in_(quest_ids)).delete(synchronize_session="fetch")
    db.commit()
    return deleted


def list_quests(db: Session, user: User) -> dict:
    completed = db.query(Quest).filter(
        Quest.user_id == user.id,
        Quest.status == QuestStatus.completed.value
    ).order_by(Quest.completed_at.desc(), Quest.id.desc()).limit(RECENT_COMPLETED_LIMIT).all()

    return {"active": get_active_quests(db, user), "recent_completed": completed}

"""
=============================================================================
SCHEDULER.PY — Mantenimiento diario automático
=============================================================================
Lo que pasa aunque el usuario no abra la app. Una vez al día (00:05 UTC),
para cada usuario:
  1. ¿Aparece un jefe? (lleva 2+ días sin registrar)
  2. Si hay jefe vivo → drena su XP diario (una vez por día y jefe)
  3. Las misiones caducadas pasan a "expired"
  4. Si ayer no registró y tiene un Escudo de Racha → protege sus rachas

Usa APScheduler con CronTrigger. Si un usuario falla, se registra el
error y se sigue con el siguiente.
"""

import os
import logging
from datetime import date
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from database import SessionLocal
from models import User
from combat import check_boss_spawn, process_daily_boss_penalty
from quests import expire_quests
from inventory import apply_streak_freeze
from daily import user_today

logger = logging.getLogger("nexoquest.scheduler")

SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() in ("1", "true", "yes")

scheduler: AsyncIOScheduler = None


# =============================================================================
# ===================== TAREA DIARIA ==========================================
# =============================================================================

def run_daily_maintenance(db: Session, today: Optional[date] = None) -> dict:
    """
    Ejecuta el mantenimiento para todos los usuarios.
    `today` fuerza la fecha (si no, el "hoy" de cada usuario).

    Retorna contadores:
      {"users": 12, "spawned": 1, "drained": 3, "expired": 2, "shielded": 1, "errors": 0}
    """
    stats = {"users": 0, "spawned": 0, "drained": 0, "expired": 0, "shielded": 0, "errors": 0}

    for user in db.query(User).order_by(User.id).all():
        stats["users"] += 1
        day = today or user_today(user)
        try:
            if check_boss_spawn(db, user, day):
                stats["spawned"] += 1
            if process_daily_boss_penalty(db, user, day)["penalty_applied"]:
                stats["drained"] += 1
            stats["expired"] += expire_quests(db, user)
            if apply_streak_freeze(db, user, day):
                stats["shielded"] += 1
        except Exception as e:
            db.rollback()
            stats["errors"] += 1
            logger.error(f"Error en el mantenimiento diario para {user.id}: {e}")

    logger.info(
        f"🌙 Mantenimiento diario: {stats['users']} usuarios, {stats['spawned']} jefes nuevos, "
        f"{stats['drained']} drenajes, {stats['expired']} misiones expiradas, "
        f"{stats['shielded']} escudos de racha, {stats['errors']} errores"
    )
    return stats


async def daily_maintenance():
    db = SessionLocal()
    try:
        run_daily_maintenance(db)
    finally:
        db.close()


# =============================================================================
# ===================== INICIALIZAR SCHEDULER =================================
# =============================================================================

def create_scheduler() -> AsyncIOScheduler:
    global scheduler

    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        daily_maintenance,
        CronTrigger(hour=0, minute=5),
        id="daily_maintenance",
        name="Jefes, drenaje de XP, misiones caducadas y escudos de racha",
        replace_existing=True
    )

    logger.info("⏰ Scheduler configurado: mantenimiento diario a las 00:05")
    return scheduler


def start_scheduler():
    global scheduler
    if scheduler and not scheduler.running:
        scheduler.start()
        logger.info("⏰ Scheduler arrancado")


def stop_scheduler():
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("⏰ Scheduler parado")

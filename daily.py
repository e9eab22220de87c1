"""
=============================================================================
DAILY.PY — Registro diario (el corazón del motor)
=============================================================================
Flujo de un envío:

  recibido → validado → puntuado → guardado → efectos secundarios

  1. Validación (antes de escribir nada):
       - al menos una métrica, sin métricas repetidas
       - nada de fechas futuras
       - un día pasado exige un permiso de edición retroactiva vigente
  2. Pesos del día → nota ponderada → banderas (burnout / procrastinación)
  3. UNA transacción: borrar entradas del día, insertar las nuevas,
     guardar el resumen, avanzar rachas, consumir el permiso → commit
  4. Tras el commit, cada efecto va por separado:
       XP y botín → jefes → campaña → misiones → logros
     Si uno falla se registra y su resultado es None. El registro del
     usuario ya está guardado y no se pierde.
"""

import os
from datetime import date, datetime, timedelta
from typing import Optional

import pytz
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import User, DailyEntry, DailySummary, RetroactiveEditGrant
from catalog import get_active_axes, get_active_metrics, resolve_axis_weights
from scoring import compute_daily_score, compute_flags, BURNOUT_LOOKBACK_DAYS
from streaks import update_streaks
from gamification import process_daily_log_rewards
from combat import resolve_boss_combat, resolve_campaign_combat
from quests import track_quest_progress
from achievements import check_and_unlock_achievements, achievement_to_dict
import logging

logger = logging.getLogger("nexoquest.daily")

DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Europe/Madrid")
RETROACTIVE_GRANT_HOURS = 24


# =============================================================================
# ===================== ERRORES ===============================================
# =============================================================================

class SubmissionError(Exception):
    """Error de un envío. `code` lo identifica y `retryable` dice si reintentar sirve."""
    retryable = False

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class SubmissionValidationError(SubmissionError):
    """Entrada rechazada antes de escribir nada"""


class SubmissionPersistenceError(SubmissionError):
    """La transacción falló: no se ha guardado nada"""
    retryable = True


# =============================================================================
# ===================== FECHAS Y PERMISOS =====================================
# =============================================================================

def user_today(user: User) -> date:
    """'Hoy' en la zona horaria del usuario"""
    try:
        tz = pytz.timezone(user.timezone or DEFAULT_TIMEZONE)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"⚠️ Zona horaria desconocida '{user.timezone}' para {user.id}, uso {DEFAULT_TIMEZONE}")
        tz = pytz.timezone(DEFAULT_TIMEZONE)
    return datetime.now(tz).date()


def grant_retroactive_edit(db: Session, user: User, hours: int = RETROACTIVE_GRANT_HOURS,
                           commit: bool = True) -> RetroactiveEditGrant:
    """
    Concede un permiso de un solo uso para registrar un día pasado.
    Los jugadores lo obtienen gastando un Pergamino del Ayer (inventory.py).
    """
    grant = RetroactiveEditGrant(
        user_id=user.id,
        expires_at=datetime.utcnow() + timedelta(hours=hours),
    )
    db.add(grant)
    if commit:
        db.commit()
        db.refresh(grant)
    else:
        db.flush()
    logger.info(f"📜 Permiso retroactivo para el usuario {user.id} (válido {hours}h)")
    return grant


def find_usable_grant(db: Session, user: User) -> Optional[RetroactiveEditGrant]:
    return db.query(RetroactiveEditGrant).filter(
        RetroactiveEditGrant.user_id == user.id,
        RetroactiveEditGrant.used_at == None,
        RetroactiveEditGrant.expires_at > datetime.utcnow()
    ).order_by(RetroactiveEditGrant.expires_at).first()


def validate_submission(db: Session, user: User, payload, today: date) -> Optional[RetroactiveEditGrant]:
    """Devuelve el permiso a consumir (si el día es pasado) o lanza SubmissionValidationError"""
    if not payload.entries:
        raise SubmissionValidationError("empty_submission", "El registro no tiene ninguna métrica")

    metric_ids = [e.metric_id for e in payload.entries]
    if len(metric_ids) != len(set(metric_ids)):
        raise SubmissionValidationError("duplicate_metric", "Una métrica aparece más de una vez")

    if payload.date > today:
        raise SubmissionValidationError("future_date", "No se pueden registrar días futuros")

    if payload.date < today:
        grant = find_usable_grant(db, user)
        if grant is None:
            raise SubmissionValidationError(
                "retroactive_edit_required",
                "Registrar un día pasado requiere un permiso de edición retroactiva"
            )
        return grant

    return None


# =============================================================================
# ===================== SERIALIZACIÓN =========================================
# =============================================================================

def summary_to_dict(summary: Optional[DailySummary]) -> Optional[dict]:
    if summary is None:
        return None
    return {
        "date": summary.date,
        "total_score": summary.total_score,
        "mode": summary.mode,
        "burnout_flag": summary.burnout_flag,
        "procrastination_flag": summary.procrastination_flag,
    }


def entry_to_dict(entry) -> dict:
    return {
        "metric_id": entry.metric_id,
        "completed": entry.completed,
        "score_awarded": entry.score_awarded,
        "score_value": entry.score_value,
        "time_spent_minutes": entry.time_spent_minutes,
        "review": entry.review,
    }


def axis_scores_to_dict(axes: dict) -> dict:
    return {
        axis_id: {
            "raw": a.raw,
            "max": a.max,
            "weight": float(a.weight),
            "ratio": a.ratio,
            "contribution": float(a.contribution),
        }
        for axis_id, a in axes.items()
    }


# =============================================================================
# ===================== EFECTOS AISLADOS ======================================
# =============================================================================

def _run_isolated(db: Session, name: str, func, *args):
    """Ejecuta un efecto secundario. Si falla: rollback, log y None."""
    try:
        return func(*args)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error en '{name}' tras el registro diario: {e}", exc_info=True)
        return None


# =============================================================================
# ===================== ENVÍO DEL DÍA =========================================
# =============================================================================

def submit_daily_log(db: Session, user: User, payload, today: Optional[date] = None) -> dict:
    """
    Registra (o reemplaza) el día `payload.date` del usuario.

    payload → objeto con .date y .entries (ver schemas.DailySubmission)
    today   → "hoy" para las comprobaciones; por defecto el de la zona del usuario

    Combate y misiones llevan la cuenta por día: reenviar un día corregido
    solo aplica la diferencia (más daño, o el avance de una misión que
    antes no contaba) y nunca repite lo ya hecho.
    """
    today = today or user_today(user)
    day = payload.date

    grant = validate_submission(db, user, payload, today)

    # Estado hardcore al empezar. No se vuelve a leer durante el envío.
    hardcore_active = bool(user.hardcore_mode_active)

    axes = get_active_axes(db)
    metrics = get_active_metrics(db)
    weights = resolve_axis_weights(db, day, axes)
    score = compute_daily_score(payload.entries, metrics, weights)

    recent = db.query(DailySummary).filter(
        DailySummary.user_id == user.id,
        DailySummary.date < day
    ).order_by(DailySummary.date.desc()).limit(BURNOUT_LOOKBACK_DAYS).all()
    flags = compute_flags(score.total_score, score.total_time, recent)

    # ── Transacción ──
    try:
        if grant is not None:
            # Solo lo gasta quien lo encuentra aún sin usar
            claimed = db.query(RetroactiveEditGrant).filter(
                RetroactiveEditGrant.id == grant.id,
                RetroactiveEditGrant.used_at == None
            ).update(
                {"used_at": datetime.utcnow(), "used_for_date": day},
                synchronize_session="fetch"
            )
            if claimed == 0:
                db.rollback()
                raise SubmissionValidationError(
                    "retroactive_edit_required",
                    "El permiso de edición retroactiva ya se ha usado"
                )

        summary = db.query(DailySummary).filter(
            DailySummary.user_id == user.id,
            DailySummary.date == day
        ).first()

        db.query(DailyEntry).filter(
            DailyEntry.user_id == user.id,
            DailyEntry.date == day
        ).delete(synchronize_session="fetch")

        for e in score.entries:
            db.add(DailyEntry(
                user_id=user.id,
                metric_id=e.metric_id,
                date=day,
                completed=e.completed,
                score_awarded=e.score_awarded,
                score_value=e.score_value,
                time_spent_minutes=e.time_spent_minutes,
                review=e.review,
            ))

        if summary is None:
            summary = DailySummary(user_id=user.id, date=day)
            db.add(summary)
        summary.total_score = score.total_score
        summary.mode = flags.mode
        summary.burnout_flag = flags.burnout_flag
        summary.procrastination_flag = flags.procrastination_flag
        summary.updated_at = datetime.utcnow()

        update_streaks(db, user.id, score.entries, day)
        user.last_active = datetime.utcnow()

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Fallo guardando el día {day} del usuario {user.id}: {e}")
        raise SubmissionPersistenceError("persistence_failed", "No se pudo guardar el registro. Inténtalo de nuevo.") from e

    logger.info(f"📝 Usuario {user.id} registra {day}: nota {score.total_score} ({flags.mode})")

    # ── Efectos secundarios ──
    xp_result = _run_isolated(
        db, "xp", process_daily_log_rewards, db, user, day, score.total_score, score.entries, hardcore_active
    )

    boss_feedback = _run_isolated(db, "jefes", resolve_boss_combat, db, user, score.total_score, day, today)
    campaign_feedback = _run_isolated(db, "campaña", resolve_campaign_combat, db, user, score.total_score, day)
    quest_xp_result = _run_isolated(db, "misiones", track_quest_progress, db, user, score.entries, day)

    unlocked = _run_isolated(db, "logros", check_and_unlock_achievements, db, user)

    return {
        "summary": summary_to_dict(summary),
        "entries": [entry_to_dict(e) for e in score.entries],
        "axis_scores": axis_scores_to_dict(score.axes),
        "total_time": score.total_time,
        "xp_result": xp_result,
        "quest_xp_result": quest_xp_result,
        "newly_unlocked_achievements": [achievement_to_dict(a) for a in unlocked] if unlocked is not None else None,
        "loot_drop": xp_result.get("loot_drop") if xp_result else None,
        "boss_feedback": boss_feedback,
        "campaign_feedback": campaign_feedback,
    }


def get_daily_log(db: Session, user: User, day: date) -> dict:
    summary = db.query(DailySummary).filter(
        DailySummary.user_id == user.id,
        DailySummary.date == day
    ).first()
    entries = db.query(DailyEntry).filter(
        DailyEntry.user_id == user.id,
        DailyEntry.date == day
    ).order_by(DailyEntry.metric_id).all()

    return {
        "date": day,
        "summary": summary_to_dict(summary),
        "entries": [entry_to_dict(e) for e in entries],
    }

"""
=============================================================================
STREAKS.PY — Rachas por métrica
=============================================================================
Una racha = días SEGUIDOS completando una métrica.

Reglas al registrar una métrica completada en la fecha D:
  - Sin racha previa        → actual = 1, mejor = 1
  - Mismo día que el último → no cambia (reenviar el día es idempotente)
  - D = último + 1          → actual + 1
  - D anterior al último    → se ignora (rellenar un día pasado no reescribe
                              la historia hacia atrás)
  - Hueco de más de 1 día   → actual = 1, la mejor se conserva

Las métricas NO completadas no tocan la racha.

Estas funciones NO hacen commit: forman parte de la transacción del
registro diario (ver daily.py).
"""

from datetime import date, timedelta

from sqlalchemy.orm import Session

from models import Streak


def advance_streak(streak: Streak, day: date) -> bool:
    """
    Aplica un día completado a la racha. Devuelve True si cambió algo.
    """
    current = streak.current_streak or 0
    longest = streak.longest_streak or 0
    last = streak.last_log_date

    if last is None:
        current = 1
    elif day == last:
        return False
    elif day < last:
        return False
    elif (day - last).days == 1:
        current += 1
    else:
        current = 1

    streak.current_streak = current
    streak.longest_streak = max(longest, current)
    streak.last_log_date = day
    return True


def record_completion(db: Session, user_id: int, metric_id: int, day: date) -> Streak:
    """Busca (o crea) la racha del usuario para la métrica y la avanza"""
    streak = db.query(Streak).filter(
        Streak.user_id == user_id,
        Streak.metric_id == metric_id
    ).first()

    if streak is None:
        streak = Streak(
            user_id=user_id,
            metric_id=metric_id,
            current_streak=0,
            longest_streak=0,
            last_log_date=None
        )
        db.add(streak)

    advance_streak(streak, day)
    return streak


def update_streaks(db: Session, user_id: int, entries, day: date) -> list[Streak]:
    """Avanza la racha de cada entrada completada del día"""
    touched = []
    for entry in entries:
        if not entry.completed:
            continue
        touched.append(record_completion(db, user_id, entry.metric_id, day))
    return touched


def bridge_missed_day(db: Session, user_id: int, missed_day: date) -> list[Streak]:
    """
    Escudo de Racha: las rachas vivas hasta el día anterior a `missed_day`
    pasan a contar `missed_day` como registrado, sin sumar. Así el
    siguiente día completado continúa la racha en vez de reiniciarla.
    """
    streaks = db.query(Streak).filter(
        Streak.user_id == user_id,
        Streak.current_streak > 0,
        Streak.last_log_date == missed_day - timedelta(days=1)
    ).all()
    for streak in streaks:
        streak.last_log_date = missed_day
    return streaks

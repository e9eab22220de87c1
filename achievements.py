"""
=============================================================================
ACHIEVEMENTS.PY — Sistema de Logros
=============================================================================
Cada logro tiene una condición que se evalúa contra datos VIVOS del
usuario (rachas, niveles de atributo, días perfectos...).

  - Un logro se desbloquea la primera vez que su condición es cierta
  - Desbloquearlo da su XP (razón "achievement:<code>")
  - Nunca se vuelve a bloquear, aunque la condición deje de cumplirse
"""

from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import User, Achievement, UserAchievement, Streak, DailySummary
from gamification import award_xp, get_attribute_map
import logging

logger = logging.getLogger("nexoquest.achievements")


@dataclass
class AchievementStats:
    """Agregados del usuario sobre los que se evalúan las condiciones"""
    logged_days: int
    max_streak: int
    perfect_days: int
    attributes: dict

    def attribute_level(self, name: str) -> int:
        return self.attributes.get(name, {}).get("level", 1)


# =============================================================================
# ===================== DEFINICIONES ==========================================
# =============================================================================

ACHIEVEMENTS_DEFINITIONS = [
    {"code": "first_blood", "name": "Primera sangre 🩸", "description": "Registra tu primer día",
     "icon": "🩸", "xp": 100,
     "check": lambda s: s.logged_days >= 1},
    {"code": "streak_7", "name": "Semana de fuego 🔥", "description": "Mantén una racha de 7 días en una métrica",
     "icon": "🔥", "xp": 500,
     "check": lambda s: s.max_streak >= 7},
    {"code": "streak_30", "name": "Mes de acero 🛡️", "description": "Mantén una racha de 30 días en una métrica",
     "icon": "🛡️", "xp": 2500,
     "check": lambda s: s.max_streak >= 30},
    {"code": "level_5_strength", "name": "Brazo de hierro 💪", "description": "Alcanza Fuerza nivel 5",
     "icon": "💪", "xp": 1000,
     "check": lambda s: s.attribute_level("strength") >= 5},
    {"code": "level_10_intellect", "name": "Mente brillante 🧠", "description": "Alcanza Intelecto nivel 10",
     "icon": "🧠", "xp": 3000,
     "check": lambda s: s.attribute_level("intellect") >= 10},
    {"code": "perfect_day", "name": "Día perfecto 💯", "description": "Consigue una nota de 100",
     "icon": "💯", "xp": 1000,
     "check": lambda s: s.perfect_days >= 1},
]

CHECKS = {d["code"]: d["check"] for d in ACHIEVEMENTS_DEFINITIONS}


def seed_achievements(db: Session):
    """
    Inserta los logros en la BD si no existen.
    Se ejecuta al arrancar la aplicación.
    """
    for ach_def in ACHIEVEMENTS_DEFINITIONS:
        existing = db.query(Achievement).filter(Achievement.code == ach_def["code"]).first()
        if not existing:
            db.add(Achievement(
                code=ach_def["code"],
                name=ach_def["name"],
                description=ach_def["description"],
                icon=ach_def["icon"],
                xp_reward=ach_def["xp"]
            ))
    db.commit()
    logger.info(f"✅ {len(ACHIEVEMENTS_DEFINITIONS)} logros verificados en BD")


def collect_stats(db: Session, user: User) -> AchievementStats:
    logged_days = db.query(func.count(DailySummary.id)).filter(DailySummary.user_id == user.id).scalar() or 0
    max_streak = db.query(func.max(Streak.longest_streak)).filter(Streak.user_id == user.id).scalar() or 0
    perfect_days = db.query(func.count(DailySummary.id)).filter(
        DailySummary.user_id == user.id,
        DailySummary.total_score == 100
    ).scalar() or 0

    return AchievementStats(
        logged_days=logged_days,
        max_streak=max_streak,
        perfect_days=perfect_days,
        attributes=get_attribute_map(db, user),
    )


def check_and_unlock_achievements(db: Session, user: User) -> list[Achievement]:
    """
    Verifica si el usuario ha desbloqueado algún logro nuevo.
    Retorna lista de logros recién desbloqueados.

    Si la condición de un logro falla, se registra y se siguen
    evaluando los demás.
    """
    unlocked_ids = {
        ua.achievement_id for ua in
        db.query(UserAchievement).filter(UserAchievement.user_id == user.id).all()
    }
    stats = collect_stats(db, user)

    newly_unlocked = []
    for achievement in db.query(Achievement).order_by(Achievement.id).all():
        if achievement.id in unlocked_ids:
            continue
        check = CHECKS.get(achievement.code)
        if check is None:
            continue
        try:
            passed = check(stats)
        except Exception as e:
            logger.error(f"❌ Error evaluando el logro {achievement.code}: {e}")
            continue
        if passed:
            unlocked = _unlock(db, user, achievement)
            if unlocked:
                newly_unlocked.append(unlocked)

    return newly_unlocked


def _unlock(db: Session, user: User, achievement: Achievement):
    """Desbloquea un logro para un usuario"""
    existing = db.query(UserAchievement).filter(
        UserAchievement.user_id == user.id,
        UserAchievement.achievement_id == achievement.id
    ).first()
    if existing:
        return None

    db.add(UserAchievement(user_id=user.id, achievement_id=achievement.id))
    if achievement.xp_reward:
        award_xp(db, user, f"achievement:{achievement.code}", achievement.xp_reward, commit=False)

    db.commit()
    logger.info(f"🏆 {user.name} desbloqueó: {achievement.name}")
    return achievement


def achievement_to_dict(achievement: Achievement) -> dict:
    return {
        "code": achievement.code,
        "name": achievement.name,
        "description": achievement.description,
        "icon": achievement.icon,
        "xp_reward": achievement.xp_reward,
    }


def list_achievements(db: Session, user: User) -> list[dict]:
    """Todos los logros, marcando los que el usuario ya tiene"""
    unlocked = {
        ua.achievement_id: ua.unlocked_at for ua in
        db.query(UserAchievement).filter(UserAchievement.user_id == user.id).all()
    }
    result = []
    for achievement in db.query(Achievement).order_by(Achievement.id).all():
        data = achievement_to_dict(achievement)
        data["unlocked"] = achievement.id in unlocked
        data["unlocked_at"] = unlocked.get(achievement.id)
        result.append(data)
    return result

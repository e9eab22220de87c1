"""
=============================================================================
MODELS.PY — Todos los Modelos (Tablas) de la Base de Datos
=============================================================================
Cada clase aquí = una tabla. Cada atributo = una columna.

RELACIONES:
  USER
  ├── daily_entries[]       (un registro por métrica por día)
  ├── daily_summaries[]     (un resumen por día)
  ├── streaks[]             (una racha por métrica)
  ├── xp_transactions[]     (libro de XP, solo se añaden filas)
  ├── attributes[]          (fuerza, intelecto, vitalidad...)
  ├── inventory[]           (objetos conseguidos)
  ├── active_buffs[]        (efectos de objetos consumidos)
  ├── boss_encounters[]     (jefes activos y derrotados)
  ├── daily_damage_log[]    (daño hecho por cada día registrado)
  ├── campaign_progress     (peldaño actual de la campaña)
  ├── quests[]              (misiones cortas ligadas a una métrica)
  │     └── progress_log[]  (un avance por día)
  ├── user_achievements[]   (logros desbloqueados)
  └── retroactive_grants[]  (permisos de edición de días pasados)

CATÁLOGO (lo configura el sistema, no el motor):
  AXIS ──→ metrics[]
  PRIORITY_CYCLE ──→ axis_weights[]
"""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Boolean, Float, Text, Date,
    DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from database import Base
import enum


# =============================================================================
# ===================== ENUMS (Tipos predefinidos) ============================
# =============================================================================

class InputType(str, enum.Enum):
    """Cómo se puntúa una métrica"""
    boolean = "boolean"        # Hecho / no hecho
    emoji_5 = "emoji_5"        # Escala de 5 caras (0-5)
    scale_0_5 = "scale_0_5"    # Escala 0-5
    scale_0_10 = "scale_0_10"  # Escala 0-10

class DayMode(str, enum.Enum):
    """Etiqueta del día según la puntuación y las banderas"""
    growth = "Growth"
    stable = "Stable"
    recovery = "Recovery"
    burnout_risk = "Burnout Risk"
    slump = "Slump"

class QuestStatus(str, enum.Enum):
    active = "active"
    completed = "completed"
    expired = "expired"

class ItemRarity(str, enum.Enum):
    common = "common"
    rare = "rare"
    epic = "epic"
    legendary = "legendary"


# =============================================================================
# ===================== TABLA 1: USERS ========================================
# =============================================================================

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)

    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(100), nullable=False)
    timezone = Column(String(50), default="Europe/Madrid")

    # ── Progresión ──
    xp = Column(Integer, default=0)
    level = Column(Integer, default=1)
    gold = Column(Integer, default=0)

    # ── Modo hardcore ──
    # Dobla el XP de atributos, pero castiga los días malos.
    hardcore_mode_active = Column(Boolean, default=False)
    hardcore_start_date = Column(DateTime, nullable=True)

    last_boss_check = Column(Date, nullable=True)
    # last_boss_check → último día en que se evaluó la aparición de un jefe

    created_at = Column(DateTime, default=datetime.utcnow)
    last_active = Column(DateTime, default=datetime.utcnow)

    daily_entries = relationship("DailyEntry", back_populates="user", cascade="all, delete-orphan")
    daily_summaries = relationship("DailySummary", back_populates="user", cascade="all, delete-orphan")
    streaks = relationship("Streak", back_populates="user", cascade="all, delete-orphan")
    xp_transactions = relationship("XpTransaction", back_populates="user", cascade="all, delete-orphan")
    attributes = relationship("UserAttribute", back_populates="user", cascade="all, delete-orphan")
    inventory = relationship("UserInventory", back_populates="user", cascade="all, delete-orphan")
    boss_encounters = relationship("BossEncounter", back_populates="user", cascade="all, delete-orphan")
    campaign_progress = relationship("CampaignProgress", back_populates="user", uselist=False,
                                     cascade="all, delete-orphan")
    quests = relationship("Quest", back_populates="user", cascade="all, delete-orphan")
    user_achievements = relationship("UserAchievement", back_populates="user", cascade="all, delete-orphan")
    retroactive_grants = relationship("RetroactiveEditGrant", back_populates="user", cascade="all, delete-orphan")


# =============================================================================
# ===================== TABLA 2: AXES =========================================
# =============================================================================
# Dimensión de vida: Salud, Mente, Trabajo...

class Axis(Base):
    __tablename__ = "axes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    active = Column(Boolean, default=True)

    metrics = relationship("Metric", back_populates="axis")


# =============================================================================
# ===================== TABLA 3: METRICS ======================================
# =============================================================================

class Metric(Base):
    __tablename__ = "metrics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    axis_id = Column(Integer, ForeignKey("axes.id"), nullable=False)

    name = Column(String(100), nullable=False)
    icon = Column(String(10), default="✅")
    max_points = Column(Integer, default=0)
    input_type = Column(String(20), default=InputType.boolean)
    active = Column(Boolean, default=True)

    rpg_attribute = Column(String(30), nullable=True)
    # rpg_attribute → "strength", "intellect"... Si es NULL no da XP de atributo

    axis = relationship("Axis", back_populates="metrics")


# =============================================================================
# ===================== TABLA 4: PRIORITY_CYCLES + AXIS_WEIGHTS ===============
# =============================================================================
# Un ciclo cubre un rango de fechas y reparte el 100% entre los ejes.

class PriorityCycle(Base):
    __tablename__ = "priority_cycles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    weights = relationship("AxisWeight", back_populates="cycle", cascade="all, delete-orphan")


class AxisWeight(Base):
    __tablename__ = "axis_weights"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cycle_id = Column(Integer, ForeignKey("priority_cycles.id"), nullable=False)
    axis_id = Column(Integer, ForeignKey("axes.id"), nullable=False)
    weight_percentage = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint('cycle_id', 'axis_id', name='uq_cycle_axis'),
    )

    cycle = relationship("PriorityCycle", back_populates="weights")


# =============================================================================
# ===================== TABLA 5: DAILY_ENTRIES ================================
# =============================================================================
# Resultado de cada métrica en un día. Se reemplaza entero al reenviar el día.

class DailyEntry(Base):
    __tablename__ = "daily_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    metric_id = Column(Integer, ForeignKey("metrics.id"), nullable=False)

    date = Column(Date, nullable=False)
    completed = Column(Boolean, default=False)
    score_awarded = Column(Integer, default=0)
    # score_awarded → nunca mayor que metric.max_points
    score_value = Column(Float, nullable=True)
    # score_value → valor crudo de la escala (4 de 5, 7 de 10...)
    time_spent_minutes = Column(Integer, nullable=True)
    review = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'metric_id', 'date', name='uq_entry_user_metric_date'),
    )

    user = relationship("User", back_populates="daily_entries")
    metric = relationship("Metric")


# =============================================================================
# ===================== TABLA 6: DAILY_SCORES =================================
# =============================================================================

class DailySummary(Base):
    __tablename__ = "daily_scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    date = Column(Date, nullable=False)
    total_score = Column(Integer, default=0)
    # total_score → 0 a 100
    mode = Column(String(20), default=DayMode.stable)
    burnout_flag = Column(Boolean, default=False)
    procrastination_flag = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'date', name='uq_summary_user_date'),
    )

    user = relationship("User", back_populates="daily_summaries")


# =============================================================================
# ===================== TABLA 7: STREAKS ======================================
# =============================================================================

class Streak(Base):
    __tablename__ = "streaks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    metric_id = Column(Integer, ForeignKey("metrics.id"), nullable=False)

    current_streak = Column(Integer, default=0)
    longest_streak = Column(Integer, default=0)
    # longest_streak → solo sube, nunca baja
    last_log_date = Column(Date, nullable=True)

    __table_args__ = (
        UniqueConstraint('user_id', 'metric_id', name='uq_streak_user_metric'),
    )

    user = relationship("User", back_populates="streaks")


# =============================================================================
# ===================== TABLA 8: XP_TRANSACTIONS ==============================
# =============================================================================
# Libro de XP. Solo se añaden filas. El "reason" es una etiqueta estructurada
# ("daily_log:2026-10-18", "achievement:streak_7"...) que sirve como clave
# de idempotencia.

class XpTransaction(Base):
    __tablename__ = "xp_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    amount = Column(Integer, nullable=False)
    reason = Column(String(200), nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="xp_transactions")


# =============================================================================
# ===================== TABLA 9: USER_ATTRIBUTES ==============================
# =============================================================================

class UserAttribute(Base):
    __tablename__ = "user_attributes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    attribute_name = Column(String(30), nullable=False)
    total_xp = Column(Integer, default=0)
    level = Column(Integer, default=1)
    # level = floor(sqrt(total_xp) / 10) + 1

    __table_args__ = (
        UniqueConstraint('user_id', 'attribute_name', name='uq_user_attribute'),
    )

    user = relationship("User", back_populates="attributes")


# =============================================================================
# ===================== TABLA 10: ITEMS + USER_INVENTORY ======================
# =============================================================================

class Item(Base):
    __tablename__ = "items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    icon = Column(String(10), default="🎁")
    rarity = Column(String(20), default=ItemRarity.common)
    effect_type = Column(String(50), nullable=True)
    price = Column(Integer, default=0)


class UserInventory(Base):
    __tablename__ = "user_inventory"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)

    quantity = Column(Integer, default=1)
    last_acquired_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'item_id', name='uq_user_item'),
    )

    user = relationship("User", back_populates="inventory")
    item = relationship("Item")


# =============================================================================
# ===================== TABLA 11: BOSSES + BOSS_ENCOUNTERS ====================
# =============================================================================

class Boss(Base):
    __tablename__ = "bosses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)

    max_health = Column(Integer, nullable=False)
    daily_penalty_xp = Column(Integer, default=50)
    reward_xp = Column(Integer, default=1000)
    reward_item_rarity = Column(String(20), default=ItemRarity.epic)
    spawn_condition = Column(String(50), nullable=True)
    # spawn_condition → "missed_2_days"


class BossEncounter(Base):
    __tablename__ = "active_bosses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    boss_id = Column(Integer, ForeignKey("bosses.id"), nullable=False)

    current_health = Column(Integer, nullable=False)
    # current_health → entre 0 y boss.max_health

    started_at = Column(DateTime, default=datetime.utcnow)
    defeated_at = Column(DateTime, nullable=True)
    # defeated_at → NULL mientras el combate sigue activo

    user = relationship("User", back_populates="boss_encounters")
    boss = relationship("Boss")

    @property
    def is_active(self) -> bool:
        return self.defeated_at is None


class BossPenaltyLog(Base):
    """Un drenaje de XP por combate y día, como mucho"""
    __tablename__ = "boss_penalty_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    encounter_id = Column(Integer, ForeignKey("active_bosses.id"), nullable=False)

    penalty_date = Column(Date, nullable=False)
    xp_drained = Column(Integer, default=0)

    __table_args__ = (
        UniqueConstraint('encounter_id', 'penalty_date', name='uq_penalty_encounter_date'),
    )


# =============================================================================
# ===================== TABLA 12: CAMPAIGN ====================================
# =============================================================================
# Escalera de jefes de historia: hay que derrotarlos en orden.

class CampaignBoss(Base):
    __tablename__ = "campaign_bosses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    stage_number = Column(Integer, unique=True, nullable=False)

    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    max_health = Column(Integer, nullable=False)
    reward_xp = Column(Integer, default=500)
    reward_gold = Column(Integer, default=250)
    reward_item_rarity = Column(String(20), default=ItemRarity.rare)


class CampaignProgress(Base):
    __tablename__ = "user_campaign_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    current_stage = Column(Integer, default=1)
    current_boss_health = Column(Integer, nullable=True)
    # current_boss_health → NULL hasta que se presenta el jefe del peldaño
    completed = Column(Boolean, default=False)

    updated_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="campaign_progress")


# =============================================================================
# ===================== TABLA 13: QUESTS ======================================
# =============================================================================

class Quest(Base):
    __tablename__ = "quests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    metric_id = Column(Integer, ForeignKey("metrics.id"), nullable=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    target_value = Column(Integer, nullable=False)
    current_value = Column(Integer, default=0)
    xp_reward = Column(Integer, default=0)
    status = Column(String(20), default=QuestStatus.active)

    created_at = Column(DateTime, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # El id forma parte de la razón "quest_completed:<id>": no se reutiliza
    __table_args__ = {"sqlite_autoincrement": True}

    user = relationship("User", back_populates="quests")
    metric = relationship("Metric")


# =============================================================================
# ===================== TABLA 14: ACHIEVEMENTS ================================
# =============================================================================
# Logros DISPONIBLES (los define el sistema). Las condiciones viven en
# achievements.py, aquí solo se guarda el catálogo.

class Achievement(Base):
    __tablename__ = "achievements"

    id = Column(Integer, primary_key=True, autoincrement=True)

    code = Column(String(50), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    description = Column(String(300), nullable=False)
    icon = Column(String(10), default="🏆")
    xp_reward = Column(Integer, default=0)


class UserAchievement(Base):
    """Logros desbloqueados. Una vez dentro, no se borran nunca."""
    __tablename__ = "user_achievements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    achievement_id = Column(Integer, ForeignKey("achievements.id"), nullable=False)

    unlocked_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'achievement_id', name='uq_user_achievement'),
    )

    user = relationship("User", back_populates="user_achievements")
    achievement = relationship("Achievement")


# =============================================================================
# ===================== TABLA 15: RETROACTIVE_EDIT_GRANTS =====================
# =============================================================================
# Permiso de un solo uso para registrar un día anterior a hoy.

class RetroactiveEditGrant(Base):
    __tablename__ = "retroactive_edit_grants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    used_for_date = Column(Date, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="retroactive_grants")


# =============================================================================
# ===================== TABLA 16: ACTIVE_BUFFS ================================
# =============================================================================
# Efectos temporales de los objetos consumidos (poción, escudo de racha).

class ActiveBuff(Base):
    __tablename__ = "active_buffs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("items.id"), nullable=False)

    effect_type = Column(String(50), nullable=False)
    expires_at = Column(DateTime, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    item = relationship("Item")


# =============================================================================
# ===================== TABLA 17: DAILY_DAMAGE_LOG ============================
# =============================================================================
# Daño ya hecho por el registro de un día a cada objetivo.
# target → "boss:<encounter_id>" o "campaign"

class DailyDamageLog(Base):
    __tablename__ = "daily_damage_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    target = Column(String(50), nullable=False)
    date = Column(Date, nullable=False)
    damage = Column(Integer, default=0)

    __table_args__ = (
        UniqueConstraint('user_id', 'target', 'date', name='uq_damage_user_target_date'),
    )


# =============================================================================
# ===================== TABLA 18: QUEST_PROGRESS_LOG ==========================
# =============================================================================
# Un avance por misión y día registrado, como mucho.

class QuestProgressLog(Base):
    __tablename__ = "quest_progress_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quest_id = Column(Integer, ForeignKey("quests.id", ondelete="CASCADE"), nullable=False)

    date = Column(Date, nullable=False)

    __table_args__ = (
        UniqueConstraint('quest_id', 'date', name='uq_quest_progress_date'),
    )

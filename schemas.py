"""
=============================================================================
SCHEMAS.PY — Esquemas de Validación (Pydantic)
=============================================================================
  - Models (SQLAlchemy) → las TABLAS
  - Schemas (Pydantic)  → lo que la API acepta y devuelve

Un cuerpo mal formado se rechaza con 422 antes de llegar al motor.

Convención de nombres:
  XxxCreate   → para crear algo nuevo (POST)
  XxxResponse → lo que devuelve la API
"""

from pydantic import BaseModel, Field, EmailStr
from datetime import date, datetime
from typing import Optional, Union, Literal


# =============================================================================
# ===================== AUTH ==================================================
# =============================================================================

class UserRegister(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6, description="Mínimo 6 caracteres")
    name: str = Field(min_length=1, max_length=100)
    timezone: Optional[str] = Field(default=None, max_length=50)

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: int
    name: str

class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    timezone: Optional[str] = None
    xp: int
    level: int
    gold: int
    hardcore_mode_active: bool
    created_at: datetime
    model_config = {"from_attributes": True}


# =============================================================================
# ===================== REGISTRO DIARIO =======================================
# =============================================================================

class MetricInput(BaseModel):
    """Resultado de una métrica en el día"""
    metric_id: int
    completed: bool = False
    score_value: Optional[float] = Field(default=None, allow_inf_nan=False, description="Valor de la escala (0-5, 0-10)")
    time_spent_minutes: Optional[int] = Field(default=None, ge=0, le=1440)
    review: Optional[str] = Field(default=None, max_length=2000)

class DailySubmission(BaseModel):
    """
    Ejemplo:
      {"date": "2026-10-18", "entries": [
          {"metric_id": 1, "completed": true, "time_spent_minutes": 30},
          {"metric_id": 2, "score_value": 4}
      ]}
    """
    date: date
    entries: list[MetricInput]

class DailySummaryResponse(BaseModel):
    date: date
    total_score: int
    mode: str
    burnout_flag: bool
    procrastination_flag: bool

class DailyEntryResponse(BaseModel):
    metric_id: int
    completed: bool
    score_awarded: int
    score_value: Optional[float] = None
    time_spent_minutes: Optional[int] = None
    review: Optional[str] = None

class AxisScoreResponse(BaseModel):
    raw: int
    max: int
    weight: float
    ratio: float
    contribution: float

class ItemResponse(BaseModel):
    id: int
    name: str
    icon: Optional[str] = None
    rarity: str
    description: Optional[str] = None

class AchievementResponse(BaseModel):
    code: str
    name: str
    description: str
    icon: str
    xp_reward: int
    unlocked: Optional[bool] = None
    unlocked_at: Optional[datetime] = None

class DailySubmissionResponse(BaseModel):
    """Resultado de un envío. Los efectos que fallaron vienen a null."""
    summary: DailySummaryResponse
    entries: list[DailyEntryResponse]
    axis_scores: dict[int, AxisScoreResponse]
    total_time: int
    xp_result: Optional[dict] = None
    quest_xp_result: Optional[dict] = None
    newly_unlocked_achievements: Optional[list[AchievementResponse]] = None
    loot_drop: Optional[ItemResponse] = None
    boss_feedback: Optional[dict] = None
    campaign_feedback: Optional[dict] = None

class DailyLogResponse(BaseModel):
    date: date
    summary: Optional[DailySummaryResponse] = None
    entries: list[DailyEntryResponse]

class RetroactiveGrantResponse(BaseModel):
    id: int
    expires_at: datetime
    used_at: Optional[datetime] = None
    used_for_date: Optional[date] = None
    model_config = {"from_attributes": True}


# =============================================================================
# ===================== PROGRESIÓN ============================================
# =============================================================================

class XpStatusResponse(BaseModel):
    level: int
    xp: int
    xp_in_level: int
    xp_next_level: int
    xp_progress: int
    title: str
    gold: int
    hardcore_mode_active: bool
    attributes: dict[str, dict]

class SkillResponse(BaseModel):
    name: str
    total_xp: int
    level: int
    xp_into_level: int
    xp_needed_for_level: int
    progress_percent: float

class HardcoreToggle(BaseModel):
    active: bool

class InventoryItemResponse(ItemResponse):
    quantity: int
    effect_type: Optional[str] = None

class ConsumeItem(BaseModel):
    item_id: int

class ActiveBuffResponse(BaseModel):
    id: int
    item_id: int
    effect_type: str
    expires_at: datetime
    model_config = {"from_attributes": True}

class ConsumeItemResponse(BaseModel):
    """
    Ejemplo (Pergamino del Ayer):
      {"item": {...}, "effect_type": "retroactive_edit", "remaining": 0,
       "buff": null, "grant": {"id": 3, "expires_at": "...", "used_at": null}}
    """
    item: ItemResponse
    effect_type: str
    message: str
    remaining: int
    buff: Optional[ActiveBuffResponse] = None
    grant: Optional[RetroactiveGrantResponse] = None


# =============================================================================
# ===================== COMBATE ===============================================
# =============================================================================

class ActiveBossResponse(BaseModel):
    encounter_id: int
    boss_id: int
    name: str
    description: Optional[str] = None
    current_health: int
    max_health: int
    daily_penalty_xp: int
    reward_xp: int
    reward_item_rarity: str
    is_active: bool

class CampaignBossResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    max_health: int
    reward_xp: int
    reward_gold: int
    reward_item_rarity: str

class CampaignStatusResponse(BaseModel):
    current_stage: int
    current_boss_health: int
    completed: bool
    boss: Optional[CampaignBossResponse] = None


# =============================================================================
# ===================== MISIONES ==============================================
# =============================================================================

class QuestResponse(BaseModel):
    id: int
    metric_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    target_value: int
    current_value: int
    xp_reward: int
    status: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    model_config = {"from_attributes": True}

class QuestListResponse(BaseModel):
    active: list[QuestResponse]
    recent_completed: list[QuestResponse]

class QuestAbandon(BaseModel):
    id: Union[int, Literal["all"]]

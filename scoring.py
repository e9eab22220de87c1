"""
=============================================================================
SCORING.PY — Puntuación ponderada del día y banderas de estado
=============================================================================
Funciones PURAS: no tocan la base de datos. Reciben las entradas del día,
las métricas activas y los pesos de cada eje, y devuelven números.

Fórmula:
  1. Cada métrica → puntos (según su input_type)
  2. Cada eje → raw (puntos conseguidos) / max (puntos posibles)
  3. Nota final = Σ (raw / max × peso del eje), redondeada hacia arriba en .5

Ejemplo:
  Salud (peso 50): 10 de 10 puntos → 1.0 × 50 = 50
  Mente (peso 50): 16 de 20 puntos → 0.8 × 50 = 40
  Nota final = 90
"""

import math
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Iterable, Optional

from models import InputType, DayMode

# ─────────────────────────────────────────────────────────────────────────────
# UMBRALES
# ─────────────────────────────────────────────────────────────────────────────

SCALE_MAXIMUMS = {
    InputType.emoji_5.value: 5,
    InputType.scale_0_5.value: 5,
    InputType.scale_0_10.value: 10,
}

BURNOUT_MINUTES = 480           # Más de 8h registradas...
BURNOUT_SCORE = 50              # ...con nota por debajo de 50
BURNOUT_RECOVERY_SCORE = 60     # La bandera se mantiene hasta superar 60
BURNOUT_LOOKBACK_DAYS = 3       # Cuántos resúmenes anteriores se miran
PROCRASTINATION_MINUTES = 30
PROCRASTINATION_SCORE = 40
GROWTH_SCORE = 85
RECOVERY_SCORE = 60


@dataclass
class ScoredEntry:
    """Una métrica del día ya puntuada"""
    metric_id: int
    axis_id: int
    completed: bool
    score_awarded: int
    score_value: Optional[float] = None
    time_spent_minutes: Optional[int] = None
    review: Optional[str] = None
    rpg_attribute: Optional[str] = None


@dataclass
class AxisScore:
    raw: int = 0
    max: int = 0
    weight: Fraction = Fraction(0)

    @property
    def ratio(self) -> float:
        return self.raw / self.max if self.max > 0 else 0.0

    @property
    def contribution(self) -> Fraction:
        if self.max <= 0:
            return Fraction(0)
        return Fraction(self.raw, self.max) * self.weight


@dataclass
class DailyScore:
    total_score: int
    entries: list[ScoredEntry] = field(default_factory=list)
    axes: dict[int, AxisScore] = field(default_factory=dict)

    @property
    def total_time(self) -> int:
        return sum(e.time_spent_minutes or 0 for e in self.entries)


@dataclass
class DayFlags:
    burnout_flag: bool
    procrastination_flag: bool
    mode: str


# =============================================================================
# ===================== REDONDEO ==============================================
# =============================================================================

def round_half_up(value) -> int:
    """
    Redondeo "de toda la vida": 2.5 → 3, 89.5 → 90.
    (round() de Python redondea al par: round(2.5) == 2)
    """
    return math.floor(Fraction(value) + Fraction(1, 2))


# =============================================================================
# ===================== PUNTOS POR MÉTRICA ====================================
# =============================================================================

def score_metric(input_type: str, max_points: int, completed: bool, score_value: Optional[float]) -> int:
    """
    Puntos que da una métrica según su tipo:
      boolean     → max_points si está hecha, si no 0
      emoji_5     → round(clamp(v, 0, 5) / 5 × max_points)
      scale_0_5   → igual que emoji_5
      scale_0_10  → round(clamp(v, 0, 10) / 10 × max_points)
    """
    scale_max = SCALE_MAXIMUMS.get(input_type)
    if scale_max is None:
        return max_points if completed else 0

    if score_value is None:
        return 0
    clamped = min(max(Fraction(score_value), Fraction(0)), Fraction(scale_max))
    return round_half_up(clamped / scale_max * max_points)


# =============================================================================
# ===================== NOTA DEL DÍA ==========================================
# =============================================================================

def compute_daily_score(inputs: Iterable, metrics: Iterable, weights: dict) -> DailyScore:
    """
    Calcula la nota ponderada del día.

    inputs  → objetos con metric_id, completed, score_value,
              time_spent_minutes, review (p.ej. schemas.MetricInput)
    metrics → métricas ACTIVAS del catálogo
    weights → {axis_id: peso} (ver catalog.resolve_axis_weights)

    Las métricas desconocidas o inactivas se ignoran sin error.
    """
    metrics_map = {m.id: m for m in metrics}

    axes = {axis_id: AxisScore(weight=Fraction(weight)) for axis_id, weight in weights.items()}

    # Puntos posibles: TODAS las métricas activas, tengan entrada hoy o no
    for metric in metrics_map.values():
        if metric.axis_id in axes:
            axes[metric.axis_id].max += metric.max_points or 0

    entries = []
    for data in inputs:
        metric = metrics_map.get(data.metric_id)
        if metric is None:
            continue

        awarded = score_metric(metric.input_type, metric.max_points or 0, bool(data.completed), data.score_value)
        if metric.input_type == InputType.boolean.value:
            completed = bool(data.completed)
        else:
            completed = bool(data.completed) or awarded > 0

        if metric.axis_id in axes:
            axes[metric.axis_id].raw += awarded

        entries.append(ScoredEntry(
            metric_id=metric.id,
            axis_id=metric.axis_id,
            completed=completed,
            score_awarded=awarded,
            score_value=data.score_value,
            time_spent_minutes=data.time_spent_minutes,
            review=data.review,
            rpg_attribute=metric.rpg_attribute,
        ))

    weighted = sum((a.contribution for a in axes.values()), Fraction(0))
    total = min(100, max(0, round_half_up(weighted)))

    return DailyScore(total_score=total, entries=entries, axes=axes)


# =============================================================================
# ===================== BANDERAS Y MODO =======================================
# =============================================================================

def compute_flags(score: int, total_time: int, recent_summaries: Iterable = ()) -> DayFlags:
    """
    burnout         → (más de 8h y nota < 50) o (algún burnout en los
                      3 días anteriores y la nota aún no supera 60)
    procrastination → menos de 30 min y nota < 40
    modo            → Growth (>85) / Recovery (<60) / Stable,
                      sustituido por "Burnout Risk" o "Slump" si hay bandera
                      (burnout manda)
    """
    recent = list(recent_summaries)[:BURNOUT_LOOKBACK_DAYS]
    recent_burnout = any(s.burnout_flag for s in recent)

    burnout = (total_time > BURNOUT_MINUTES and score < BURNOUT_SCORE) or \
              (recent_burnout and score < BURNOUT_RECOVERY_SCORE)
    procrastination = total_time < PROCRASTINATION_MINUTES and score < PROCRASTINATION_SCORE

    if burnout:
        mode = DayMode.burnout_risk.value
    elif procrastination:
        mode = DayMode.slump.value
    elif score > GROWTH_SCORE:
        mode = DayMode.growth.value
    elif score < RECOVERY_SCORE:
        mode = DayMode.recovery.value
    else:
        mode = DayMode.stable.value

    return DayFlags(burnout_flag=burnout, procrastination_flag=procrastination, mode=mode)

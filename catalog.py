"""
=============================================================================
CATALOG.PY — Catálogo de Ejes, Métricas y Ciclos de Prioridad
=============================================================================
Solo lectura. El motor nunca crea ni edita el catálogo: lo consulta
para saber qué métricas existen, cuánto valen y qué peso tiene cada eje
en una fecha concreta.
"""

from datetime import date
from fractions import Fraction
from typing import Optional

from sqlalchemy.orm import Session

from models import Axis, Metric, PriorityCycle, AxisWeight


def get_active_axes(db: Session) -> list[Axis]:
    return db.query(Axis).filter(Axis.active == True).order_by(Axis.id).all()


def get_active_metrics(db: Session) -> list[Metric]:
    """Métricas activas cuyo eje también está activo"""
    return db.query(Metric).join(Axis).filter(
        Metric.active == True,
        Axis.active == True
    ).order_by(Metric.id).all()


def find_covering_cycle(db: Session, day: date) -> Optional[PriorityCycle]:
    """
    Ciclo cuyo rango incluye `day`.
    Si varios se solapan, gana el que empezó más tarde.
    """
    return db.query(PriorityCycle).filter(
        PriorityCycle.start_date <= day,
        PriorityCycle.end_date >= day
    ).order_by(PriorityCycle.start_date.desc(), PriorityCycle.id.desc()).first()


def resolve_axis_weights(db: Session, day: date, axes: Optional[list[Axis]] = None) -> dict[int, Fraction]:
    """
    Devuelve {axis_id: peso} para la fecha.

      - Con ciclo → los pesos del ciclo (ejes sin peso = 0).
      - Sin ciclo → reparto equitativo entre los ejes activos.

    Los pesos son Fraction para que 100/3 no pierda precisión al sumar.
    """
    if axes is None:
        axes = get_active_axes(db)

    cycle = find_covering_cycle(db, day)
    if cycle is None:
        if not axes:
            return {}
        equal = Fraction(100, len(axes))
        return {axis.id: equal for axis in axes}

    rows = db.query(AxisWeight).filter(AxisWeight.cycle_id == cycle.id).all()
    by_axis = {w.axis_id: Fraction(w.weight_percentage) for w in rows}
    return {axis.id: by_axis.get(axis.id, Fraction(0)) for axis in axes}

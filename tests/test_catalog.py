from datetime import timedelta
from fractions import Fraction

from catalog import get_active_metrics, resolve_axis_weights, find_covering_cycle
from conftest import TODAY


def test_equal_weights_without_cycle(db, make_axis):
    axes = [make_axis("Salud"), make_axis("Mente"), make_axis("Trabajo")]
    make_axis("Archivado", active=False)

    weights = resolve_axis_weights(db, TODAY)

    assert set(weights) == {a.id for a in axes}
    assert all(w == Fraction(100, 3) for w in weights.values())
    assert sum(weights.values()) == 100


def test_cycle_weights_and_missing_axes(db, make_axis, make_cycle):
    health, mind = make_axis("Salud"), make_axis("Mente")
    make_cycle(TODAY - timedelta(days=1), TODAY + timedelta(days=1), {health: 70})

    assert resolve_axis_weights(db, TODAY) == {health.id: 70, mind.id: 0}
    assert resolve_axis_weights(db, TODAY + timedelta(days=5)) == {health.id: 50, mind.id: 50}


def test_latest_overlapping_cycle_wins(db, make_axis, make_cycle):
    health = make_axis("Salud")
    make_cycle(TODAY - timedelta(days=30), TODAY + timedelta(days=30), {health: 40}, name="Trimestre")
    late = make_cycle(TODAY - timedelta(days=2), TODAY + timedelta(days=2), {health: 90}, name="Sprint")

    assert find_covering_cycle(db, TODAY).id == late.id
    assert resolve_axis_weights(db, TODAY) == {health.id: 90}


def test_inactive_metrics_and_axes_are_hidden(db, make_axis, make_metric):
    health = make_axis("Salud")
    archived = make_axis("Archivado", active=False)
    visible = make_metric(health, "Entrenar")
    make_metric(health, "Viejo", active=False)
    make_metric(archived, "Oculto")

    assert [m.id for m in get_active_metrics(db)] == [visible.id]

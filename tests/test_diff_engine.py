"""
Tests for snapshot diffing
"""
from restock_monitor.models import DiffEntry, Snapshot
from restock_monitor.monitoring.diff_engine import diff

from fakes import snapshot


def test_first_call_reports_everything_as_new():
    current = snapshot((1, 'Dunk Low', [(11, False, '9'), (12, True, '10')]))

    changes = diff(None, current)

    assert changes == [
        DiffEntry('1', '11', None, False),
        DiffEntry('1', '12', None, True),
    ]
    assert [c.became_available for c in changes] == [False, True]


def test_identical_snapshots_have_empty_diff():
    current = snapshot(
        (1, 'Dunk Low', [(11, False, '9'), (12, True, '10')]),
        (2, 'Jordan 1', [(21, True, '8')]),
    )

    assert diff(current, current) == []
    assert diff(Snapshot(), Snapshot()) == []


def test_reports_exactly_the_variants_that_flipped():
    previous = snapshot((1, 'Dunk Low', [(11, False, '9'), (12, True, '10'), (13, False, '11')]))
    current = snapshot((1, 'Dunk Low', [(11, True, '9'), (12, True, '10'), (13, False, '11')]))

    assert diff(previous, current) == [DiffEntry('1', '11', False, True)]


def test_product_order_does_not_change_the_result():
    previous = snapshot(
        (1, 'Dunk Low', [(11, False, '9')]),
        (2, 'Jordan 1', [(21, True, '8')]),
    )
    current = snapshot(
        (2, 'Jordan 1', [(21, False, '8')]),
        (1, 'Dunk Low', [(11, True, '9')]),
    )

    assert set(diff(previous, current)) == {
        DiffEntry('1', '11', False, True),
        DiffEntry('2', '21', True, False),
    }


def test_removed_available_variant_goes_unavailable():
    previous = snapshot((1, 'Dunk Low', [(11, True, '9'), (12, False, '10')]))

    # an unavailable variant disappearing is not a change
    assert diff(previous, snapshot((1, 'Dunk Low', [(11, True, '9')]))) == []
    assert diff(previous, snapshot((1, 'Dunk Low', [(12, False, '10')]))) == [
        DiffEntry('1', '11', True, False)
    ]


def test_new_variant_on_existing_product():
    previous = snapshot((1, 'Dunk Low', [(11, False, '9')]))
    current = snapshot((1, 'Dunk Low', [(11, False, '9'), (12, True, '10')]))

    changes = diff(previous, current)

    assert changes == [DiffEntry('1', '12', None, True)]
    assert changes[0].became_available

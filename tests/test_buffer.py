# tests/test_buffer.py

import pytest

from commission_admin.matrix.buffer import EditBuffer
from commission_admin.matrix.exceptions import MatrixFullError, MatrixValidationError, UnknownTermError
from commission_admin.matrix.ledger import PendingChangeLedger
from commission_admin.matrix.schema import CellState, Role
from commission_admin.matrix.store import CommissionRecord


def record(commission_id, term, year, role_id, rate, product_id='prod-1'):
    return CommissionRecord(commission_id, product_id, term, role_id, year, rate)


@pytest.fixture
def buffer():
    return EditBuffer(PendingChangeLedger())


# --- Loading ---

def test_initialize_groups_records_by_term_and_year(buffer):
    buffer.initialize([
        record('a', '10yr', 1, 3, 5.0),
        record('b', '10yr', 1, 4, 2.0),
        record('c', '10yr', 2, 3, 1.0),
    ])

    assert buffer.get('10yr', 1) == {3: 5.0, 4: 2.0}
    assert buffer.get('10yr', 2) == {3: 1.0}
    assert buffer.state('10yr', 1) is CellState.SYNCED
    assert buffer.get('10yr', 3) == {}
    assert not buffer.ledger


def test_initialize_drops_out_of_range_years(buffer, caplog):
    buffer.initialize([
        record('a', '10yr', 0, 3, 5.0),
        record('b', '10yr', 11, 3, 5.0),
        record('c', '10yr', 10, 3, 5.0),
    ])

    assert buffer.years('10yr') == [10]
    assert 'outside 1-10' in caplog.text
    # The dropped records are still known, so a cascade can remove them.
    assert len(buffer.persisted_records('10yr')) == 3


def test_duplicate_triples_show_the_first_record(buffer):
    buffer.initialize([
        record('first', '10yr', 1, 3, 5.0),
        record('second', '10yr', 1, 3, 6.0),
    ])

    assert buffer.get('10yr', 1) == {3: 5.0}
    assert buffer.persisted_record('10yr', 1, 3).commission_id == 'first'
    assert len(buffer.persisted_records('10yr', 1)) == 2


def test_terms_containing_the_separator_stay_distinct(buffer):
    buffer.initialize([
        record('a', '10-1', 4, 3, 1.0),
        record('b', '10', 1, 3, 2.0),
    ])

    assert buffer.terms() == ['10-1', '10']
    assert buffer.get('10-1', 4) == {3: 1.0}
    assert buffer.get('10', 1) == {3: 2.0}
    assert buffer.years('10') == [1]


# --- Editing ---

def test_set_cell_updates_buffer_and_stages_change(buffer):
    buffer.initialize([record('a', '10yr', 1, 3, 5.0)])

    buffer.set_cell('10yr', 1, Role.ADVISOR, 7)

    assert buffer.get('10yr', 1) == {3: 7.0}
    assert buffer.ledger.get('10yr', 1, 3).commission_rate == 7.0


def test_set_cell_on_an_unknown_cell_creates_an_unsaved_cell(buffer):
    buffer.set_cell('5yr', 2, 6, 1.5)

    assert buffer.get('5yr', 2) == {6: 1.5}
    assert buffer.state('5yr', 2) is CellState.UNSAVED_NEW
    assert buffer.is_phantom_term('5yr')


@pytest.mark.parametrize('year, role_id, rate', [
    (0, 3, 1.0),
    (11, 3, 1.0),
    (1, 7, 1.0),
    (1, 3, -0.5),
    (1, 3, 100.5),
])
def test_set_cell_rejects_invalid_values(buffer, year, role_id, rate):
    with pytest.raises(MatrixValidationError):
        buffer.set_cell('10yr', year, role_id, rate)
    assert not buffer.ledger


def test_add_year_fills_the_first_gap(buffer):
    buffer.initialize([
        record('a', '10yr', 1, 3, 5.0),
        record('b', '10yr', 2, 3, 5.0),
        record('c', '10yr', 4, 3, 5.0),
        record('d', '5yr', 3, 3, 5.0),
    ])

    assert buffer.add_year('10yr') == 3


def test_add_year_seeds_all_roles_at_zero(buffer):
    year = buffer.add_year('5yr')

    assert year == 1
    assert buffer.get('5yr', 1) == {3: 0.0, 4: 0.0, 5: 0.0, 6: 0.0}
    assert buffer.state('5yr', 1) is CellState.UNSAVED_NEW
    assert sorted(c.role_id for c in buffer.ledger) == [3, 4, 5, 6]


def test_add_year_twice_counts_unsaved_years(buffer):
    assert buffer.add_year('5yr') == 1
    assert buffer.add_year('5yr') == 2


def test_add_year_counts_persisted_years_outside_the_buffer(buffer):
    buffer.initialize([record('a', '10yr', 1, 3, 5.0), record('b', '10yr', 12, 3, 5.0)])

    assert buffer.add_year('10yr') == 2


def test_add_year_when_every_year_is_used(buffer):
    buffer.initialize([record(str(year), '10yr', year, 3, 1.0) for year in range(1, 11)])

    with pytest.raises(MatrixFullError):
        buffer.add_year('10yr')


# --- Cascading deletes ---

def test_remove_year_deletes_every_role_then_purges(buffer, product, add_rate, recording_store, run):
    ids = [add_rate('10yr', 1, role_id, 2.0) for role_id in (3, 4, 5, 6)]
    add_rate('10yr', 2, 3, 1.0)
    buffer.initialize(run(recording_store.list(product.id)))
    buffer.set_cell('10yr', 1, 3, 9.0)

    summary = run(buffer.remove_year(recording_store, '10yr', 1))

    assert summary.success_count == 4 and summary.failure_count == 0
    assert sorted(args[0] for args in recording_store.calls_to('delete')) == sorted(ids)
    assert ('10yr', 1) not in buffer
    assert buffer.years('10yr') == [2]
    assert not buffer.ledger
    assert buffer.add_year('10yr') == 1


def test_remove_year_purges_even_when_a_delete_fails(buffer, product, add_rate, recording_store, run):
    for role_id in (3, 4, 5, 6):
        add_rate('10yr', 1, role_id, 2.0)
    buffer.initialize(run(recording_store.list(product.id)))
    recording_store.fail_mutations = {2}

    summary = run(buffer.remove_year(recording_store, '10yr', 1))

    assert summary.success_count == 3
    assert summary.failure_count == 1
    assert 'simulated failure' in summary.errors[0]
    assert ('10yr', 1) not in buffer


@pytest.mark.parametrize('remove', [
    lambda buffer, store: buffer.remove_year(store, '10yr', 1),
    lambda buffer, store: buffer.remove_term(store, '10yr'),
])
def test_cascade_purges_when_the_store_breaks_unexpectedly(buffer, product, add_rate, store, run, monkeypatch,
                                                           remove):
    add_rate('10yr', 1, 3, 2.0)
    buffer.initialize(run(store.list(product.id)))
    buffer.set_cell('10yr', 1, 4, 1.0)

    async def broken_delete(commission_id):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(store, 'delete', broken_delete)

    with pytest.raises(RuntimeError):
        run(remove(buffer, store))

    assert buffer.state('10yr', 1) is None
    assert not buffer.ledger
    # Nothing is left half-deleted, so the cell can be edited again.
    buffer.set_cell('10yr', 1, 3, 9.0)
    assert buffer.get('10yr', 1) == {3: 9.0}


def test_remove_phantom_term_makes_no_store_calls(buffer, product, add_rate, recording_store, run):
    add_rate('10yr', 1, 3, 5.0)
    buffer.initialize(run(recording_store.list(product.id)))
    recording_store.calls.clear()
    buffer.add_year('5yr')
    buffer.add_year('5yr')
    assert buffer.is_phantom_term('5yr')

    summary = run(buffer.remove_term(recording_store, '5yr'))

    assert recording_store.calls == []
    assert summary.success_count == 0 and summary.failure_count == 0
    assert '5yr' not in buffer.terms()
    assert not buffer.ledger
    assert buffer.terms() == ['10yr']


def test_remove_persisted_term_cascades_over_years_and_roles(buffer, product, add_rate, recording_store, run):
    for year in (1, 2):
        for role_id in (3, 4, 5, 6):
            add_rate('10yr', year, role_id, 1.0)
    add_rate('10yr', 15, 3, 1.0)  # invalid year, hidden from the buffer
    keep = add_rate('5yr', 1, 3, 1.0)
    buffer.initialize(run(recording_store.list(product.id)))
    buffer.add_year('10yr')

    summary = run(buffer.remove_term(recording_store, '10yr'))

    assert summary.success_count == 9
    assert recording_store.count('delete') == 9
    assert buffer.terms() == ['5yr']
    assert not buffer.ledger
    remaining = run(recording_store.list(product.id))
    assert [r.commission_id for r in remaining] == [keep]


def test_remove_unknown_term(buffer, recording_store, run):
    with pytest.raises(UnknownTermError):
        run(buffer.remove_term(recording_store, 'nope'))


# --- Reindex ---

def test_reindex_keeps_local_edits_and_recomputes_states(buffer):
    buffer.initialize([record('a', '10yr', 1, 3, 5.0)])
    buffer.set_cell('10yr', 1, 3, 8.0)
    buffer.add_year('5yr')

    buffer.reindex([
        record('a', '10yr', 1, 3, 5.0),
        record('b', '5yr', 1, 3, 0.0),
        record('c', '20yr', 1, 4, 3.0),
    ])

    assert buffer.get('10yr', 1) == {3: 8.0}
    assert buffer.state('5yr', 1) is CellState.SYNCED
    assert not buffer.is_phantom_term('5yr')
    assert buffer.get('20yr', 1) == {4: 3.0}
    assert len(buffer.ledger) == 5

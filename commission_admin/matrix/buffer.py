# ==============================================================================
# commission_admin/matrix/buffer.py
# ------------------------------------------------------------------------------
# The edit buffer: an in-memory mirror of every displayed matrix cell, keyed by
# (premium term, year) and holding a role -> rate map. Edits made here are
# staged in the pending-change ledger in the same call.
# ==============================================================================

import logging
from dataclasses import dataclass, field

from .exceptions import EditSessionError, MatrixFullError, UnknownTermError
from .schema import (CellKey, CellState, ChangeKey, MAX_YEAR, MIN_YEAR, ROLE_IDS,
                     is_valid_year, validate_rate, validate_role, validate_term, validate_year)
from .store import run_concurrently


@dataclass
class DeleteSummary:
    success_count: int = 0
    failure_count: int = 0
    errors: list = field(default_factory=list)


class EditBuffer:
    """
    Local mirror of the commission matrix of one product.

    Besides the cells, the buffer keeps the persisted records of the last
    fetch. They decide whether a change is a create or an update, and which
    records a cascading delete has to remove.
    """

    def __init__(self, ledger):
        self.ledger = ledger
        self._cells = {}
        self._states = {}
        self._records = []
        self._index = {}

    # --- Loading ---

    def initialize(self, records):
        """Rebuilds every cell from a flat list of persisted records."""
        self._cells = {}
        self._states = {}
        self._set_records(records)

        for record in self._records:
            if not is_valid_year(record.commission_year):
                logging.warning(
                    f"Dropping commission {record.commission_id} of '{record.premium_term}': "
                    f"year {record.commission_year} is outside {MIN_YEAR}-{MAX_YEAR}.")
                continue
            self._load_record(record)

        logging.info(f"Edit buffer initialized with {len(self._cells)} cell(s) from {len(self._records)} record(s).")

    def reindex(self, records):
        """
        Refreshes the persisted records without discarding local edits.

        Cells that only exist remotely are added; cells already present keep
        their local rates. Cell states are recomputed from the new records.
        """
        self._set_records(records)
        for record in self._records:
            if is_valid_year(record.commission_year):
                self._load_record(record)

        for key in self._cells:
            self._states[key] = CellState.SYNCED if self._has_records(key) else CellState.UNSAVED_NEW

    def _set_records(self, records):
        self._records = list(records)
        self._index = {}
        for record in self._records:
            key = ChangeKey(record.premium_term, record.commission_year, record.role_id)
            if key in self._index:
                logging.warning(
                    f"Duplicate commission records for {key}: keeping {self._index[key].commission_id}, "
                    f"ignoring {record.commission_id}.")
                continue
            self._index[key] = record

    def _load_record(self, record):
        # setdefault: the first record of a duplicated triple wins, local rates are never overwritten
        key = CellKey(record.premium_term, record.commission_year)
        self._cells.setdefault(key, {}).setdefault(record.role_id, record.commission_rate)
        self._states.setdefault(key, CellState.SYNCED)

    def _has_records(self, key):
        return any(CellKey(r.premium_term, r.commission_year) == key for r in self._records)

    # --- Queries ---

    def get(self, premium_term, year):
        """Role -> rate map of one cell; empty when the cell does not exist."""
        return dict(self._cells.get(CellKey(premium_term, year), {}))

    def state(self, premium_term, year):
        return self._states.get(CellKey(premium_term, year))

    def terms(self):
        """Premium terms with at least one cell, in the order they first appeared."""
        seen = {}
        for key in self._cells:
            seen.setdefault(key.premium_term, None)
        return list(seen)

    def years(self, premium_term):
        return sorted(key.year for key in self._cells if key.premium_term == premium_term)

    def cells(self):
        """(key, rates, state) for every cell, grouped by term then ascending year."""
        order = {term: position for position, term in enumerate(self.terms())}
        keys = sorted(self._cells, key=lambda k: (order[k.premium_term], k.year))
        return [(key, dict(self._cells[key]), self._states[key]) for key in keys]

    def persisted_record(self, premium_term, year, role_id):
        return self._index.get(ChangeKey(premium_term, year, role_id))

    def persisted_records(self, premium_term, year=None):
        """Every persisted record of a term (optionally one year), duplicates included."""
        return [r for r in self._records
                if r.premium_term == premium_term and (year is None or r.commission_year == year)]

    def is_phantom_term(self, premium_term):
        """True for a term that only exists locally and has never been persisted."""
        states = [state for key, state in self._states.items() if key.premium_term == premium_term]
        return bool(states) \
            and all(state is CellState.UNSAVED_NEW for state in states) \
            and not self.persisted_records(premium_term)

    def __contains__(self, key):
        return CellKey(*key) in self._cells

    def __len__(self):
        return len(self._cells)

    # --- Editing ---

    def set_cell(self, premium_term, year, role_id, rate):
        """Sets one rate and stages the matching pending change."""
        validate_term(premium_term)
        validate_year(year)
        role_id = int(validate_role(role_id))
        rate = validate_rate(rate)

        key = CellKey(premium_term, year)
        if self._states.get(key) is CellState.DELETE_PENDING:
            raise EditSessionError(f"Year {year} of '{premium_term}' is being deleted")
        if key not in self._cells:
            self._cells[key] = {}
            self._states[key] = CellState.SYNCED if self._has_records(key) else CellState.UNSAVED_NEW

        self._cells[key][role_id] = rate
        return self.ledger.record(premium_term, year, role_id, rate)

    def add_year(self, premium_term):
        """
        Adds the smallest unused commission year of a term.

        Years used by persisted records and by local cells of the term both
        count as taken. The new cell starts at 0 for every role and all four
        rates are staged as pending changes.

        Returns:
            int: the year that was added.
        """
        validate_term(premium_term)
        taken = {r.commission_year for r in self._records if r.premium_term == premium_term}
        taken.update(key.year for key in self._cells if key.premium_term == premium_term)

        year = MIN_YEAR
        while year in taken:
            year += 1
        if year > MAX_YEAR:
            raise MatrixFullError(f"'{premium_term}' already uses every year from {MIN_YEAR} to {MAX_YEAR}")

        key = CellKey(premium_term, year)
        self._cells[key] = {}
        self._states[key] = CellState.UNSAVED_NEW
        for role_id in ROLE_IDS:
            self._cells[key][int(role_id)] = 0.0
            self.ledger.record(premium_term, year, int(role_id), 0.0)

        logging.info(f"Added year {year} to premium term '{premium_term}'.")
        return year

    # --- Cascading deletes ---

    async def remove_year(self, store, premium_term, year):
        """
        Deletes every persisted record of one (term, year) across all roles,
        then purges the cell and its pending changes whatever the outcome.
        """
        key = CellKey(premium_term, year)
        targets = self.persisted_records(premium_term, year)
        if key in self._cells:
            self._states[key] = CellState.DELETE_PENDING

        try:
            summary = await self._delete(store, targets)
        finally:
            self._cells.pop(key, None)
            self._states.pop(key, None)
            self.ledger.discard_cell(premium_term, year)
        logging.info(
            f"Removed year {year} of '{premium_term}': {summary.success_count} deleted, "
            f"{summary.failure_count} failed.")
        return summary

    async def remove_term(self, store, premium_term):
        """
        Removes a premium term with all its years and roles.

        A phantom term is purged locally without contacting the store.
        """
        if self.is_phantom_term(premium_term):
            self._purge_term(premium_term)
            logging.info(f"Removed phantom premium term '{premium_term}' (never persisted).")
            return DeleteSummary()

        targets = self.persisted_records(premium_term)
        if not targets and premium_term not in self.terms():
            raise UnknownTermError(f"Premium term '{premium_term}' not found")

        for key in self._cells:
            if key.premium_term == premium_term:
                self._states[key] = CellState.DELETE_PENDING

        try:
            summary = await self._delete(store, targets)
        finally:
            self._purge_term(premium_term)
        logging.info(
            f"Removed premium term '{premium_term}': {summary.success_count} deleted, "
            f"{summary.failure_count} failed.")
        return summary

    async def _delete(self, store, targets):
        summary = DeleteSummary()
        outcomes = await run_concurrently(store.delete(r.commission_id) for r in targets)
        deleted = set()
        for record, outcome in zip(targets, outcomes):
            if isinstance(outcome, Exception):
                logging.warning(f"Could not delete commission {record.commission_id}: {outcome}")
                summary.failure_count += 1
                summary.errors.append(str(outcome))
            else:
                summary.success_count += 1
                deleted.add(record.commission_id)
        if deleted:
            self._set_records(r for r in self._records if r.commission_id not in deleted)
        return summary

    def _purge_term(self, premium_term):
        for key in [k for k in self._cells if k.premium_term == premium_term]:
            del self._cells[key]
            del self._states[key]
        self.ledger.discard_term(premium_term)

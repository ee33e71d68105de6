# ==============================================================================
# commission_admin/matrix/session.py
# ------------------------------------------------------------------------------
# One editing session over one product's commission matrix. The session owns
# the edit buffer, the pending-change ledger, the reconciler and the bulk-entry
# draft, and is thrown away when the editor is closed.
#
# Concurrency: save requests run strictly one after another; deletes in a
# cascade and creates in a bulk commit touch disjoint records and run
# concurrently. A busy flag keeps mutating operations of one session from
# overlapping, also across request threads sharing the session.
# ==============================================================================

import logging
import threading
from contextlib import asynccontextmanager

from .buffer import EditBuffer
from .bulk import BulkEntryBuilder
from .exceptions import EditSessionError, SaveInProgressError, StoreError
from .ledger import PendingChangeLedger
from .reconciler import Reconciler
from .schema import ROLE_IDS, role_name


class MatrixEditSession:

    def __init__(self, store, product_id):
        self.store = store
        self.product_id = product_id
        self.ledger = PendingChangeLedger()
        self.buffer = EditBuffer(self.ledger)
        self.reconciler = Reconciler(store, product_id)
        self.bulk = None
        self.edit_mode = False
        self._snapshot = []
        self._lock = threading.Lock()

    # --- Lifecycle ---

    async def load(self):
        """Fetches the product's records and rebuilds the buffer from them."""
        self._snapshot = await self.store.list(self.product_id)
        self.buffer.initialize(self._snapshot)
        return self._snapshot

    def enter_edit_mode(self):
        self.edit_mode = True

    def cancel(self):
        """
        Drops every pending change and restores the last fetched state.

        Requests already sent by an earlier operation are not aborted.
        """
        discarded = len(self.ledger)
        self.ledger.clear()
        self.buffer.initialize(self._snapshot)
        self.edit_mode = False
        logging.info(f"Edit session for product '{self.product_id}' cancelled, {discarded} change(s) discarded.")

    @property
    def pending_count(self):
        return len(self.ledger)

    @property
    def busy(self):
        return self._lock.locked()

    @property
    def records(self):
        return list(self._snapshot)

    # --- Cell editing ---

    def set_cell(self, premium_term, year, role_id, rate):
        self._require_edit_mode()
        return self.buffer.set_cell(premium_term, year, role_id, rate)

    def add_year(self, premium_term):
        self._require_edit_mode()
        return self.buffer.add_year(premium_term)

    async def remove_year(self, premium_term, year):
        async with self._busy():
            summary = await self.buffer.remove_year(self.store, premium_term, year)
            await self._refresh()
        return summary

    async def remove_term(self, premium_term):
        async with self._busy():
            phantom = self.buffer.is_phantom_term(premium_term)
            summary = await self.buffer.remove_term(self.store, premium_term)
            if not phantom:
                await self._refresh()
        return summary

    # --- Save ---

    async def save(self):
        """
        Sends the pending changes and resynchronises with the store.

        Whatever the outcome of the individual requests, the ledger is cleared
        and edit mode ends. The buffer is rebuilt from a fresh fetch; when that
        fetch fails it falls back to the last good one, and the StoreError is
        raised with the SaveSummary attached. Changes that failed are not kept
        for a retry.

        Returns:
            SaveSummary
        """
        async with self._busy():
            changes = self.ledger.snapshot()
            summary = None
            reloaded = False
            try:
                summary = await self.reconciler.apply(changes, self.buffer.persisted_record)
                await self.load()
                reloaded = True
            except StoreError as e:
                e.summary = summary
                raise
            finally:
                if not reloaded:
                    self.buffer.initialize(self._snapshot)
                self.ledger.clear()
                self.edit_mode = False
        return summary

    # --- Single records ---

    async def add_record(self, premium_term, year, role_id, rate):
        """Creates one commission record directly in the store, then refreshes."""
        self._require_view_mode()
        async with self._busy():
            record = await self.store.create({
                'product_id': self.product_id,
                'premium_term': premium_term,
                'role_id': role_id,
                'commission_year': year,
                'commission_rate': rate,
            })
            await self._refresh()
        return record

    async def replace_record(self, commission_id, premium_term, year, role_id, rate):
        """Overwrites every field of one of this product's records, then refreshes."""
        self._require_view_mode()
        async with self._busy():
            self._require_record(commission_id)
            record = await self.store.replace(commission_id, {
                'premium_term': premium_term,
                'role_id': role_id,
                'commission_year': year,
                'commission_rate': rate,
            })
            await self._refresh()
        return record

    async def delete_record(self, commission_id):
        self._require_view_mode()
        async with self._busy():
            self._require_record(commission_id)
            await self.store.delete(commission_id)
            await self._refresh()

    # --- Bulk entry ---

    def start_bulk_entry(self, premium_term=''):
        self.bulk = BulkEntryBuilder(premium_term)
        return self.bulk

    async def commit_bulk_entry(self, confirm_zero_rates):
        if self.bulk is None:
            raise EditSessionError("No bulk entry in progress")
        async with self._busy():
            result = await self.bulk.commit(self.store, self.product_id, confirm_zero_rates)
            await self._refresh()
        if result.ok:
            self.bulk = None
        return result

    # --- View ---

    def matrix(self):
        """Plain-data view of the session for rendering or JSON."""
        terms = []
        for term in self.buffer.terms():
            years = []
            for year in self.buffer.years(term):
                rates = self.buffer.get(term, year)
                years.append({
                    'year': year,
                    'state': self.buffer.state(term, year).value,
                    'rates': {str(int(role_id)): rates.get(int(role_id)) for role_id in ROLE_IDS},
                })
            terms.append({
                'premium_term': term,
                'phantom': self.buffer.is_phantom_term(term),
                'years': years,
            })
        return {
            'product_id': self.product_id,
            'edit_mode': self.edit_mode,
            'busy': self.busy,
            'pending_changes': self.pending_count,
            'roles': {str(int(role_id)): role_name(role_id) for role_id in ROLE_IDS},
            'terms': terms,
        }

    # --- Helpers ---

    def _require_edit_mode(self):
        if not self.edit_mode:
            raise EditSessionError("Enter edit mode before changing cells")

    def _require_view_mode(self):
        if self.edit_mode:
            raise EditSessionError("Save or cancel the matrix edit before changing single records")

    def _require_record(self, commission_id):
        # Records of other products are out of reach even when the id exists
        if not any(r.commission_id == commission_id for r in self._snapshot):
            raise StoreError(f"Commission {commission_id} not found", status=404)

    async def _refresh(self):
        # Outside edit mode the buffer simply follows the store; inside it,
        # only the persisted records are refreshed so unsent edits survive.
        records = await self.store.list(self.product_id)
        self._snapshot = records
        if self.edit_mode:
            self.buffer.reindex(records)
        else:
            self.buffer.initialize(records)

    @asynccontextmanager
    async def _busy(self):
        if not self._lock.acquire(blocking=False):
            raise SaveInProgressError("Another save or delete is still running")
        try:
            yield
        finally:
            self._lock.release()

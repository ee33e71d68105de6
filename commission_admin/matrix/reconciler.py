# ==============================================================================
# commission_admin/matrix/reconciler.py
# ------------------------------------------------------------------------------
# Turns a snapshot of the pending-change ledger into store requests.
# A change whose (term, year, role) already has a persisted record becomes an
# update of the rate; anything else becomes a create.
# ==============================================================================

import logging
from dataclasses import dataclass, field

from .exceptions import StoreError


@dataclass
class SaveSummary:
    success_count: int = 0
    failure_count: int = 0
    errors: list = field(default_factory=list)

    @property
    def ok(self):
        return self.failure_count == 0


class Reconciler:

    def __init__(self, store, product_id):
        self.store = store
        self.product_id = product_id

    async def apply(self, changes, lookup):
        """
        Sends every change to the store, one request at a time.

        Args:
            changes (list): PendingChange snapshot, in ledger order.
            lookup (callable): (premium_term, year, role_id) -> persisted
                CommissionRecord or None.

        Returns:
            SaveSummary: counts of succeeded and failed requests. Failures are
            not retried.
        """
        summary = SaveSummary()
        logging.info(f"Reconciling {len(changes)} pending change(s) for product '{self.product_id}'.")

        for change in changes:
            existing = lookup(change.premium_term, change.commission_year, change.role_id)
            try:
                if existing is not None:
                    await self.store.update(existing.commission_id, change.update_payload())
                else:
                    await self.store.create(change.create_payload(self.product_id))
            except StoreError as e:
                logging.warning(f"Failed to save {change.key}: {e}")
                summary.failure_count += 1
                summary.errors.append(f"{change.premium_term} / year {change.commission_year} / role {change.role_id}: {e}")
            else:
                summary.success_count += 1

        logging.info(f"Reconcile finished: {summary.success_count} saved, {summary.failure_count} failed.")
        return summary

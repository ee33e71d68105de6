# ==============================================================================
# commission_admin/matrix/ledger.py
# ------------------------------------------------------------------------------
# The pending-change ledger: every cell edited since edit mode began, waiting
# to be saved. One entry per (premium term, year, role); the last write wins.
# ==============================================================================

from dataclasses import dataclass

from .schema import ChangeKey


@dataclass(frozen=True)
class PendingChange:
    premium_term: str
    commission_year: int
    role_id: int
    commission_rate: float

    @property
    def key(self):
        return ChangeKey(self.premium_term, self.commission_year, self.role_id)

    def create_payload(self, product_id):
        return {
            'product_id': product_id,
            'premium_term': self.premium_term,
            'role_id': self.role_id,
            'commission_year': self.commission_year,
            'commission_rate': self.commission_rate,
        }

    def update_payload(self):
        return {'commission_rate': self.commission_rate}


class PendingChangeLedger:
    """
    Append/overwrite map of unsaved edits.

    Iteration follows the order in which each cell was first edited.
    """

    def __init__(self):
        self._changes = {}

    def record(self, premium_term, year, role_id, rate):
        change = PendingChange(premium_term, year, role_id, rate)
        self._changes[change.key] = change
        return change

    def get(self, premium_term, year, role_id):
        return self._changes.get(ChangeKey(premium_term, year, role_id))

    def discard_cell(self, premium_term, year):
        """Drops the pending changes of every role in one (term, year) cell."""
        return self._discard(lambda key: key.premium_term == premium_term and key.year == year)

    def discard_term(self, premium_term):
        return self._discard(lambda key: key.premium_term == premium_term)

    def snapshot(self):
        """Independent copy of the pending changes, in ledger order."""
        return list(self._changes.values())

    def clear(self):
        self._changes.clear()

    def _discard(self, predicate):
        doomed = [key for key in self._changes if predicate(key)]
        for key in doomed:
            del self._changes[key]
        return len(doomed)

    def __len__(self):
        return len(self._changes)

    def __iter__(self):
        return iter(self.snapshot())

    def __contains__(self, key):
        return ChangeKey(*key) in self._changes

    def __bool__(self):
        return bool(self._changes)

# ==============================================================================
# commission_admin/matrix/store.py
# ------------------------------------------------------------------------------
# The commission store: the persisted collection of commission records the
# matrix editor reconciles against. The editor only knows the abstract
# list/create/update/delete contract; SQLCommissionStore implements it on top
# of the CommissionRate table.
# ==============================================================================

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from commission_admin import db
from commission_admin.models import CommissionRate
from .exceptions import MatrixValidationError, StoreError
from .schema import validate_rate, validate_role, validate_term, validate_year


@dataclass(frozen=True)
class CommissionRecord:
    """A persisted commission rate as returned by the store."""
    commission_id: str
    product_id: str
    premium_term: str
    role_id: int
    commission_year: int
    commission_rate: float

    @classmethod
    def from_model(cls, row):
        return cls(
            commission_id=row.id,
            product_id=row.product_id,
            premium_term=row.premium_term,
            role_id=row.role_id,
            commission_year=row.commission_year,
            commission_rate=row.commission_rate,
        )

    def to_dict(self):
        return {
            'commission_id': self.commission_id,
            'product_id': self.product_id,
            'premium_term': self.premium_term,
            'role_id': self.role_id,
            'commission_year': self.commission_year,
            'commission_rate': self.commission_rate,
        }


class CommissionStore:
    """
    Contract of the remote commission collection.

    Every method is a coroutine and any of them may raise StoreError.
    """

    async def list(self, product_id):
        raise NotImplementedError

    async def create(self, record):
        """
        Args:
            record (dict): product_id, premium_term, role_id,
                commission_year and commission_rate.

        Returns:
            CommissionRecord: the stored record, with its new identity.
        """
        raise NotImplementedError

    async def update(self, commission_id, changes):
        """Applies `changes` (only `commission_rate` is honoured) to one record."""
        raise NotImplementedError

    async def replace(self, commission_id, record):
        """Overwrites term, role, year and rate of one record (product_id is kept)."""
        raise NotImplementedError

    async def delete(self, commission_id):
        raise NotImplementedError


async def _outcome(call):
    try:
        return await call
    except StoreError as e:
        return e


async def run_concurrently(calls):
    """
    Awaits independent store calls together.

    Returns one entry per call, in call order: the call's result, or the
    StoreError it raised. Any other exception propagates.
    """
    return await asyncio.gather(*(_outcome(call) for call in calls))


class SQLCommissionStore(CommissionStore):
    """CommissionStore backed by the CommissionRate table through Flask-SQLAlchemy."""

    async def list(self, product_id):
        try:
            rows = (CommissionRate.query
                    .filter_by(product_id=product_id)
                    .order_by(CommissionRate.premium_term,
                              CommissionRate.commission_year,
                              CommissionRate.role_id,
                              CommissionRate.created_at)
                    .all())
        except SQLAlchemyError as e:
            logging.error(f"Listing commissions for product '{product_id}' failed: {e}", exc_info=True)
            raise StoreError(f"Could not load commissions: {e}") from e
        logging.info(f"Loaded {len(rows)} commission record(s) for product '{product_id}'.")
        return [CommissionRecord.from_model(row) for row in rows]

    async def create(self, record):
        if 'product_id' not in record:
            raise StoreError("Missing field 'product_id'", status=400)
        premium_term, role_id, year, rate = self._cell_fields(record)

        row = CommissionRate(product_id=record['product_id'], premium_term=premium_term, role_id=role_id,
                             commission_year=year, commission_rate=rate)
        self._commit(row, 'create')
        logging.info(f"Created commission {row.id}: '{premium_term}' year {year} role {role_id} = {rate}")
        return CommissionRecord.from_model(row)

    async def update(self, commission_id, changes):
        if 'commission_rate' not in changes:
            raise StoreError("Missing field 'commission_rate'", status=400)
        try:
            rate = validate_rate(changes['commission_rate'])
        except MatrixValidationError as e:
            raise StoreError(str(e), status=400) from e

        row = self._get(commission_id)
        row.commission_rate = rate
        self._commit(row, 'update')
        logging.info(f"Updated commission {commission_id} to {rate}")
        return CommissionRecord.from_model(row)

    async def replace(self, commission_id, record):
        premium_term, role_id, year, rate = self._cell_fields(record)

        row = self._get(commission_id)
        row.premium_term = premium_term
        row.role_id = role_id
        row.commission_year = year
        row.commission_rate = rate
        self._commit(row, 'replace')
        logging.info(f"Replaced commission {commission_id}: '{premium_term}' year {year} role {role_id} = {rate}")
        return CommissionRecord.from_model(row)

    async def delete(self, commission_id):
        row = self._get(commission_id)
        try:
            db.session.delete(row)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logging.error(f"Deleting commission {commission_id} failed: {e}", exc_info=True)
            raise StoreError(f"Could not delete commission {commission_id}: {e}") from e
        logging.info(f"Deleted commission {commission_id}")

    # --- Helpers ---

    @staticmethod
    def _cell_fields(record):
        try:
            premium_term = validate_term(record['premium_term']).strip()
            role_id = int(validate_role(record['role_id']))
            year = validate_year(record['commission_year'])
            rate = validate_rate(record['commission_rate'])
        except KeyError as e:
            raise StoreError(f"Missing field {e.args[0]!r}", status=400) from e
        except MatrixValidationError as e:
            raise StoreError(str(e), status=400) from e
        return premium_term, role_id, year, rate

    def _get(self, commission_id):
        try:
            row = db.session.get(CommissionRate, commission_id)
        except SQLAlchemyError as e:
            db.session.rollback()
            logging.error(f"Looking up commission {commission_id} failed: {e}", exc_info=True)
            raise StoreError(f"Could not load commission {commission_id}: {e}") from e
        if row is None:
            raise StoreError(f"Commission {commission_id} not found", status=404)
        return row

    def _commit(self, row, action):
        try:
            db.session.add(row)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logging.error(f"Commission {action} failed: {e}", exc_info=True)
            raise StoreError(f"Could not {action} commission: {e}") from e

# tests/conftest.py

import asyncio
import pytest

from config import Config
from commission_admin.matrix.exceptions import StoreError
from commission_admin.matrix.store import CommissionStore, SQLCommissionStore


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"


class RecordingStore(CommissionStore):
    """
    Wraps a real store, counting every call and failing chosen mutations.

    `fail_mutations` holds 1-based positions among create/update/delete calls
    that must raise StoreError instead of reaching the wrapped store.
    Each call yields to the event loop once, so concurrent callers overlap and
    `max_in_flight` shows how many requests were outstanding together.
    """
    __test__ = False

    def __init__(self, inner):
        self.inner = inner
        self.calls = []
        self.fail_mutations = set()
        self.mutation_count = 0
        self.in_flight = 0
        self.max_in_flight = 0

    def count(self, method):
        return sum(1 for name, _ in self.calls if name == method)

    def calls_to(self, method):
        return [args for name, args in self.calls if name == method]

    @property
    def mutations(self):
        return [(name, args) for name, args in self.calls if name != 'list']

    async def _call(self, name, args, action):
        self.calls.append((name, args))
        if name != 'list':
            self.mutation_count += 1
            position = self.mutation_count
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if name != 'list' and position in self.fail_mutations:
                raise StoreError(f"simulated failure of {name} #{position}", status=500)
            return await action()
        finally:
            self.in_flight -= 1

    async def list(self, product_id):
        return await self._call('list', (product_id,), lambda: self.inner.list(product_id))

    async def create(self, record):
        return await self._call('create', (dict(record),), lambda: self.inner.create(record))

    async def update(self, commission_id, changes):
        return await self._call('update', (commission_id, dict(changes)),
                                lambda: self.inner.update(commission_id, changes))

    async def replace(self, commission_id, record):
        return await self._call('replace', (commission_id, dict(record)),
                                lambda: self.inner.replace(commission_id, record))

    async def delete(self, commission_id):
        return await self._call('delete', (commission_id,), lambda: self.inner.delete(commission_id))


@pytest.fixture
def app_with_db():
    """
    Creates a new app instance with an empty in-memory database and yields it
    within an application context.
    """
    from commission_admin import create_app, db

    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app  # The tests will run here
        db.session.remove()
        db.drop_all()


@pytest.fixture
def product(app_with_db):
    from commission_admin import db
    from commission_admin.models import Product

    product = Product(id='prod-1', name='Term Life Protector', provider='Demo Assurance')
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture
def add_rate(product):
    """Inserts a CommissionRate row directly and returns its id."""
    from commission_admin import db
    from commission_admin.models import CommissionRate

    def _add(premium_term, year, role_id, rate, product_id=None):
        row = CommissionRate(product_id=product_id or product.id, premium_term=premium_term,
                             role_id=role_id, commission_year=year, commission_rate=rate)
        db.session.add(row)
        db.session.commit()
        return row.id

    return _add


@pytest.fixture
def store(app_with_db):
    return SQLCommissionStore()


@pytest.fixture
def recording_store(store):
    return RecordingStore(store)


@pytest.fixture
def run():
    """Runs a coroutine to completion."""
    return asyncio.run

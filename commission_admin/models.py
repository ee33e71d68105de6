# ==============================================================================
# commission_admin/models.py
# ------------------------------------------------------------------------------
# Defines the database schema using SQLAlchemy ORM models.
# ==============================================================================

import uuid
from datetime import datetime
from commission_admin import db


def _new_id():
    return uuid.uuid4().hex


class Product(db.Model):
    """
    An insurance product. Commission rates hang off a product and are
    edited as one matrix per product.
    """
    __tablename__ = 'product'
    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    name = db.Column(db.String(128), nullable=False)
    provider = db.Column(db.String(128))

    # Relationship: One Product has many CommissionRates.
    # If a product is deleted, its rates go with it.
    commission_rates = db.relationship('CommissionRate', backref='product', lazy='dynamic', cascade="all, delete-orphan")

    def __repr__(self):
        return f'<Product {self.id}: {self.name}>'


class CommissionRate(db.Model):
    """
    One cell of a product's commission matrix: the rate paid to a role in a
    given policy year of a premium term.

    There is deliberately no unique constraint on
    (product_id, premium_term, role_id, commission_year); duplicates can exist.
    """
    __tablename__ = 'commission_rate'
    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    product_id = db.Column(db.String(32), db.ForeignKey('product.id'), nullable=False, index=True)
    premium_term = db.Column(db.String(128), nullable=False, index=True)
    role_id = db.Column(db.Integer, nullable=False)
    commission_year = db.Column(db.Integer, nullable=False)
    commission_rate = db.Column(db.Float, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return (f'<CommissionRate {self.id}: {self.premium_term} '
                f'y{self.commission_year} r{self.role_id} = {self.commission_rate}>')

from commission_admin import db
from commission_admin.models import Product, CommissionRate

DEMO_PRODUCT = {
    'id': 'demo-term-life',
    'name': 'Term Life Protector',
    'provider': 'Demo Assurance',
}

DEFAULT_COMMISSION_MATRIX = [
    # (premium_term, year, advisor, leader_1, leader_2, senior_partner)
    ('10-14 yr', 1, 40.0, 10.0, 5.0, 2.5),
    ('10-14 yr', 2, 20.0, 5.0, 2.5, 1.0),
    ('10-14 yr', 3, 10.0, 2.5, 1.0, 0.5),
    ('15-19 yr', 1, 45.0, 12.0, 6.0, 3.0),
    ('15-19 yr', 2, 22.5, 6.0, 3.0, 1.5),
    ('above 25yr', 1, 50.0, 15.0, 7.5, 3.5),
]

ROLE_COLUMNS = (3, 4, 5, 6)

def seed_data():
    """Populates the database with a demo product and its commission matrix."""
    product = db.session.get(Product, DEMO_PRODUCT['id'])
    if not product: # Only add if it doesn't exist
        product = Product(**DEMO_PRODUCT)
        db.session.add(product)
        print(f"Seeding product: {product.name}")

    # Seed the matrix only once
    if CommissionRate.query.filter_by(product_id=product.id).count() == 0:
        print('Seeding default commission matrix...')
        for term, year, *rates in DEFAULT_COMMISSION_MATRIX:
            for role_id, rate in zip(ROLE_COLUMNS, rates):
                db.session.add(CommissionRate(
                    product_id=product.id, premium_term=term, role_id=role_id,
                    commission_year=year, commission_rate=rate
                ))

    db.session.commit()
    print('Seeding complete.')

from sqlalchemy import select

from app.db import SessionLocal, engine
from app.models import Base, Customer, Property, Tenant, User, UserRole
from app.security.sessions import create_api_session
from app.services.tenant_service import provision_tenant


DEMO_USERS = [
    ('owner@demo-hvac.test', 'Olivia', 'Owner', UserRole.ADMIN, False),
    ('dispatch@demo-hvac.test', 'Dana', 'Dispatch', UserRole.DISPATCHER, False),
    ('tech@demo-hvac.test', 'Theo', 'Tech', UserRole.TECHNICIAN, True),
]


def seed() -> dict[str, str]:
    """Create a demo tenant with one user per role and return their bearer tokens."""
    Base.metadata.create_all(engine)
    tokens: dict[str, str] = {}
    with SessionLocal() as db:
        tenant = db.execute(select(Tenant).where(Tenant.slug == 'demo-hvac')).scalar_one_or_none()
        if not tenant:
            tenant = provision_tenant(db, name='Demo HVAC', slug='demo-hvac')

        for email, first_name, last_name, role, dispatchable in DEMO_USERS:
            user = db.execute(
                select(User).where(User.tenant_id == tenant.id, User.email == email)
            ).scalar_one_or_none()
            if not user:
                user = User(
                    tenant_id=tenant.id,
                    email=email,
                    first_name=first_name,
                    last_name=last_name,
                    role=role,
                    can_be_dispatched=dispatchable,
                    is_active=True,
                )
                db.add(user)
                db.flush()
            tokens[email] = create_api_session(db, user.id, user_agent='seed_example')

        customer = db.execute(
            select(Customer).where(Customer.tenant_id == tenant.id, Customer.email == 'pat@example.test')
        ).scalar_one_or_none()
        if not customer:
            customer = Customer(
                tenant_id=tenant.id,
                first_name='Pat',
                last_name='Example',
                email='pat@example.test',
                phone='555-0100',
            )
            db.add(customer)
            db.flush()
            db.add(
                Property(
                    tenant_id=tenant.id,
                    customer_id=customer.id,
                    address_line1='1 Main St',
                    city='Springfield',
                    state='IL',
                    zip='62701',
                    is_primary=True,
                )
            )

        db.commit()
    return tokens


if __name__ == '__main__':
    for email, token in seed().items():
        print(f'{email}: {token}')

from datetime import timedelta

from loguru import logger
from sqlmodel import Session, select

from agritrace.core.audit import _record_transaction
from agritrace.core.clock import utcnow
from agritrace.db.core import engine, init_db
from agritrace.db.schema import (
    User, UserRole, Batch, BatchStatus, TransactionType
)
from agritrace.services.batch import generate_batch_id, trace_url
from agritrace.services.user import UserService


# 1. One demo account per supply chain role
DEMO_USERS = [
    {
        "name": "John Smith",
        "email": "farmer@test.com",
        "role": UserRole.FARMER,
        "farm_name": "Green Valley Farm",
        "location": "California, USA",
        "phone": "+1-555-0123",
    },
    {
        "name": "Sarah Johnson",
        "email": "distributor@test.com",
        "role": UserRole.DISTRIBUTOR,
        "location": "Los Angeles, CA",
        "phone": "+1-555-0456",
        "license_number": "DIST-2024-001",
    },
    {
        "name": "Mike Chen",
        "email": "retailer@test.com",
        "role": UserRole.RETAILER,
        "location": "San Francisco, CA",
        "phone": "+1-555-0789",
        "license_number": "RET-2024-001",
    },
    {
        "name": "Dr. Lisa Rodriguez",
        "email": "gov@test.com",
        "role": UserRole.GOVERNMENT,
        "location": "Sacramento, CA",
        "phone": "+1-555-0999",
        "license_number": "GOV-AGRI-001",
    },
]

# 2. Sample harvests owned by the demo farmer
SAMPLE_BATCHES = [
    {
        "crop_variety": "Organic Tomatoes",
        "quantity": 500,
        "unit": "kg",
        "quality_grade": "Grade A",
        "expected_price": 3.50,
        "harvested_days_ago": 1,
        "transfer_to_distributor": False,
    },
    {
        "crop_variety": "Fresh Lettuce",
        "quantity": 200,
        "unit": "kg",
        "quality_grade": "Premium",
        "expected_price": 2.25,
        "harvested_days_ago": 2,
        "transfer_to_distributor": True,
    },
]


def seed_users(session: Session) -> dict[UserRole, User]:
    """Creates demo users if their email is not taken. Returns role -> User."""
    logger.info("--- Seeding Users ---")
    users = {}

    for data in DEMO_USERS:
        user = session.exec(
            select(User).where(User.email == data["email"])).first()
        if not user:
            user = User(**data, verified=True)
            session.add(user)
            logger.info(f"Created User: {data['email']}")
        else:
            logger.info(f"Existing User: {data['email']}")

        session.flush()
        users[user.role] = user

    return users


def seed_batches(session: Session, users: dict[UserRole, User]):
    """Creates the sample batches with their ledger history, once."""
    logger.info("--- Seeding Batches ---")

    farmer = users[UserRole.FARMER]
    distributor = users[UserRole.DISTRIBUTOR]

    existing = session.exec(
        select(Batch.id).where(Batch.farmer_id == farmer.id)).first()
    if existing:
        logger.info("Sample batches already present, skipping")
        return

    now = utcnow()
    for sample in SAMPLE_BATCHES:
        harvested_at = now - timedelta(days=sample["harvested_days_ago"])
        batch_id = generate_batch_id(harvested_at)

        batch = Batch(
            batch_id=batch_id,
            farmer_id=farmer.id,
            crop_variety=sample["crop_variety"],
            quantity=sample["quantity"],
            unit=sample["unit"],
            quality_grade=sample["quality_grade"],
            harvest_date=harvested_at,
            expected_price=sample["expected_price"],
            farm_location=farmer.location,
            status=BatchStatus.CREATED,
            current_owner_id=farmer.id,
            qr_code=trace_url(batch_id),
            created_at=harvested_at,
            updated_at=harvested_at,
        )
        session.add(batch)
        session.flush()

        _record_transaction(
            session,
            batch_id=batch_id,
            from_user_id=farmer.id,
            to_user_id=farmer.id,
            transaction_type=TransactionType.CREATION,
            new_status=BatchStatus.CREATED,
            timestamp=harvested_at,
        )

        if sample["transfer_to_distributor"]:
            batch.status = BatchStatus.WITH_DISTRIBUTOR
            batch.current_owner_id = distributor.id
            batch.farmer_price = sample["expected_price"]
            session.add(batch)

            _record_transaction(
                session,
                batch_id=batch_id,
                from_user_id=farmer.id,
                to_user_id=distributor.id,
                transaction_type=TransactionType.TRANSFER,
                previous_status=BatchStatus.CREATED,
                new_status=BatchStatus.WITH_DISTRIBUTOR,
                price=sample["expected_price"],
                notes="Fresh harvest, handle with care",
                timestamp=harvested_at + timedelta(days=1),
            )

        logger.info(f"Created Batch: {batch_id} ({sample['crop_variety']})")


def log_demo_tokens(session: Session, users: dict[UserRole, User]):
    service = UserService(session)
    for role, user in users.items():
        logger.info(
            f"{role.value:<12} {user.email:<24} token: {service.generate_access_token(user)}")


def main():
    init_db()

    with Session(engine) as session:
        try:
            # 1. Users
            users = seed_users(session)

            # 2. Batches and their ledger rows
            seed_batches(session, users)

            session.commit()
            logger.info("Database seeding completed successfully.")

            # 3. Tokens for trying the API by hand
            log_demo_tokens(session, users)

        except Exception as e:
            session.rollback()
            logger.error(f"Seeding failed: {e}")
            raise e


if __name__ == "__main__":
    main()

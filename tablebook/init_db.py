import logging

from .database import SessionLocal, engine
from .models import Base, PricingTier, Restaurant, Table, TableType

logger = logging.getLogger(__name__)


def init_database(session_factory=SessionLocal, bind=engine):
    """Initialize database with a demo restaurant, its table types and tables"""
    # Create tables
    Base.metadata.create_all(bind=bind)

    db = session_factory()

    try:
        # Check if data already exists
        if db.query(Restaurant).first():
            logger.info("Database already initialized. Skipping...")
            return

        restaurant = Restaurant(
            name="Lakeview Gardens",
            address="12 Lakeshore Drive",
            latitude=5.6037,
            longitude=-0.1870,
            owner_email="owner@lakeview.example",
            booking_cost=50,
            currency="GHS",
            reservation_start_time="12:00",
            reservation_end_time="22:00",
            reservation_duration_minutes=120,
        )
        db.add(restaurant)
        db.flush()

        two_seater = TableType(restaurant_id=restaurant.id, name="Small", capacity=2,
                               description="Small rectangular table")
        four_seater = TableType(restaurant_id=restaurant.id, name="Standard", capacity=4,
                                description="Square table")
        twelve_seater = TableType(restaurant_id=restaurant.id, name="Large", capacity=12,
                                  description="Large rectangular table")
        db.add_all([two_seater, four_seater, twelve_seater])
        db.flush()

        tables = []

        # Window side: 2*2 seaters, 2*4 seaters
        tables.extend([
            Table(restaurant_id=restaurant.id, table_type_id=two_seater.id, table_number="1", position_description="Window"),
            Table(restaurant_id=restaurant.id, table_type_id=two_seater.id, table_number="2", position_description="Window"),
            Table(restaurant_id=restaurant.id, table_type_id=four_seater.id, table_number="3", position_description="Window"),
            Table(restaurant_id=restaurant.id, table_type_id=four_seater.id, table_number="4", position_description="Window"),
        ])

        # Garden: 2*4 seaters, 1*12 seater
        tables.extend([
            Table(restaurant_id=restaurant.id, table_type_id=four_seater.id, table_number="5", position_description="Garden"),
            Table(restaurant_id=restaurant.id, table_type_id=four_seater.id, table_number="6", position_description="Garden"),
            Table(restaurant_id=restaurant.id, table_type_id=twelve_seater.id, table_number="7", position_description="Garden"),
        ])
        db.add_all(tables)

        # Larger parties pay a higher deposit; overrides the flat booking cost
        db.add_all([
            PricingTier(restaurant_id=restaurant.id, min_people=1, max_people=4, cost=50),
            PricingTier(restaurant_id=restaurant.id, min_people=5, max_people=12, cost=150),
        ])

        db.commit()

        logger.info("Database initialized: restaurant %s with %d tables", restaurant.id, len(tables))

    except Exception:
        logger.exception("Error initializing database")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_database()

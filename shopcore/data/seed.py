# shopcore/data/seed.py
from decimal import Decimal

from shopcore.data.database import Base, SessionLocal, engine
from shopcore.data.models import CouponModel, ProductModel, ProductVariantModel, UserModel
from shopcore.data.models.coupon import TYPE_PERCENTAGE
from shopcore.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

DEMO_SITE_ID = 1


def seed():
    """Katalog demo: dwa produkty z cennikiem B2C/B2B i progami ilosciowymi, kupon, user."""
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        # tylko gdy baza jest pusta
        if db.query(ProductModel).first():
            logger.info("Catalog already seeded, skipping")
            return

        mug = ProductModel(site_id=DEMO_SITE_ID, name="Ceramic mug", slug="ceramic-mug", image="/img/mug.jpg")
        mug.variants = [
            ProductVariantModel(
                sku="MUG-WHITE",
                name="White",
                weight=350,
                attributes={"color": "white"},
                prices={
                    "EUR": {
                        "B2C": {"base": 10.0, "tiers": [{"min": 5, "price": 8.0}, {"min": 20, "price": 7.0}]},
                        "B2B": {"base": 8.5, "tiers": [{"min": 10, "price": 6.5}]},
                    },
                },
                stock=120,
                safety_stock=5,
            ),
            ProductVariantModel(
                sku="MUG-BLACK",
                name="Black",
                weight=350,
                attributes={"color": "black"},
                prices={"EUR": {"B2C": {"base": 11.0, "tiers": []}}},
                stock=3,
            ),
        ]

        tote = ProductModel(site_id=DEMO_SITE_ID, name="Canvas tote bag", slug="canvas-tote", image="/img/tote.jpg")
        tote.variants = [
            ProductVariantModel(
                sku="TOTE-NATURAL",
                name="Canvas tote bag",
                weight=180,
                attributes={"material": "cotton"},
                prices={
                    "EUR": {"B2C": {"base": 15.0, "tiers": []}},
                    "USD": {"B2C": {"base": 17.0, "tiers": []}},
                },
                stock=40,
            ),
        ]

        db.add_all([mug, tote])
        db.add(
            CouponModel(
                site_id=DEMO_SITE_ID,
                code="WELCOME10",
                type=TYPE_PERCENTAGE,
                value=Decimal("10"),
                maximum_discount=Decimal("25"),
                max_usages=1000,
                max_usages_per_user=1,
                public_message="10% off your first order",
            )
        )
        db.add(UserModel(email="demo@example.com", first_name="Demo", last_name="User"))
        db.commit()
        logger.info("Demo catalog seeded")
    finally:
        db.close()


if __name__ == "__main__":
    setup_logging()
    seed()

import argparse
import asyncio
import random
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.core.config import settings
from app.models.product import Product

CATEGORIES = ["electronics", "books", "home", "garden", "toys", "sports"]
ADJECTIVES = ["Compact", "Classic", "Wireless", "Portable", "Deluxe", "Smart", "Eco"]
NOUNS = ["Lamp", "Speaker", "Chair", "Backpack", "Kettle", "Notebook", "Drone", "Ball"]


def build_products(count: int, *, rng: random.Random) -> list[Product]:
    products = []
    for _ in range(count):
        name = f"{rng.choice(ADJECTIVES)} {rng.choice(NOUNS)}"
        category = rng.choice(CATEGORIES)
        products.append(
            Product(
                name=name,
                description=f"{name} from the {category} range",
                category=category,
                price=Decimal(rng.randint(100, 100_000)) / 100,
            )
        )
    return products


async def seed(count: int, *, batch_size: int, seed_value: int | None, force: bool) -> int:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    rng = random.Random(seed_value)

    inserted = 0
    try:
        async with Session() as db:
            existing = (await db.execute(select(func.count()).select_from(Product))).scalar_one()
            if existing and not force:
                print(f"products table already has {existing} rows, use --force to add more")
                return 0

            while inserted < count:
                batch = build_products(min(batch_size, count - inserted), rng=rng)
                db.add_all(batch)
                await db.commit()
                inserted += len(batch)
    finally:
        await engine.dispose()

    print(f"Inserted {inserted} products")
    return inserted


def main() -> int:
    p = argparse.ArgumentParser(description="Seed the products table with sample rows.")
    p.add_argument("--count", type=int, default=1000)
    p.add_argument("--batch-size", type=int, default=500)
    p.add_argument("--seed", type=int, help="random seed for reproducible data")
    p.add_argument("--force", action="store_true", help="insert even if the table is not empty")
    args = p.parse_args()

    if args.count < 1 or args.batch_size < 1:
        print("--count and --batch-size must be positive")
        return 2

    asyncio.run(seed(args.count, batch_size=args.batch_size, seed_value=args.seed, force=args.force))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

import logging
import os

import motor.motor_asyncio
from dotenv import load_dotenv
from pymongo import ASCENDING, DESCENDING

# Load environment variables from .env
load_dotenv()

logger = logging.getLogger(__name__)

MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "ghazal_library")

client = motor.motor_asyncio.AsyncIOMotorClient(MONGO_URL)
db = client[MONGO_DB_NAME]


def get_db():
    """FastAPI dependency returning the shared database handle."""
    return db


async def ensure_indexes(database) -> None:
    """Create the unique and lookup indexes the routes rely on."""
    await database.users.create_index("email", unique=True)
    await database.categories.create_index("slug", unique=True)
    await database.products.create_index("slug", unique=True)
    await database.discounts.create_index("code", unique=True)
    await database.cart_items.create_index(
        [("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True
    )
    await database.wishlist.create_index(
        [("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True
    )
    await database.reviews.create_index(
        [("user_id", ASCENDING), ("product_id", ASCENDING)], unique=True
    )
    await database.user_ebooks.create_index(
        [("user_id", ASCENDING), ("ebook_id", ASCENDING)], unique=True
    )
    await database.notifications.create_index(
        [("user_id", ASCENDING), ("created_at", DESCENDING)]
    )
    await database.exchange_transactions.create_index(
        [("user_id", ASCENDING), ("status", ASCENDING)]
    )
    logger.info("Database indexes ensured on %s", MONGO_DB_NAME)

from querynox.database import get_db, utcnow
from querynox.errors import ValidationError
from querynox.models.database_models import Product, User


class UserService:

    async def get_user(self, user_id: str) -> User | None:
        async with get_db() as db:
            cursor = await db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = await cursor.fetchone()
            return User.from_row(row) if row else None

    async def get_or_create(self, user_id: str) -> User:
        """Load the user record for an authenticated id, creating it on first sight."""
        if not user_id or not user_id.strip():
            raise ValidationError("Missing user id")
        now = utcnow()
        async with get_db() as db:
            await db.execute(
                """INSERT OR IGNORE INTO users (id, limits_updated_at, created_at)
                   VALUES (?, ?, ?)""",
                (user_id, now, now),
            )
            await db.commit()
            cursor = await db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = await cursor.fetchone()
            return User.from_row(row)

    async def set_product(self, user_id: str, product_id: str | None):
        async with get_db() as db:
            await db.execute(
                "UPDATE users SET product_id = ? WHERE id = ?", (product_id, user_id)
            )
            await db.commit()


class ProductService:

    async def get_product(self, product_id: str) -> Product | None:
        async with get_db() as db:
            cursor = await db.execute("SELECT * FROM products WHERE id = ?", (product_id,))
            row = await cursor.fetchone()
            return Product.from_row(row) if row else None

    async def upsert_product(self, product: Product) -> Product:
        async with get_db() as db:
            await db.execute(
                """INSERT INTO products
                   (id, name, description, chat_generation_limit, image_generation_limit,
                    web_search_limit, file_rag_limit, file_count_limit)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    description = excluded.description,
                    chat_generation_limit = excluded.chat_generation_limit,
                    image_generation_limit = excluded.image_generation_limit,
                    web_search_limit = excluded.web_search_limit,
                    file_rag_limit = excluded.file_rag_limit,
                    file_count_limit = excluded.file_count_limit""",
                (product.id, product.name, product.description,
                 product.chat_generation_limit, product.image_generation_limit,
                 product.web_search_limit, product.file_rag_limit, product.file_count_limit),
            )
            await db.commit()
        return product

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from mailroom.db.postgres import PostgresMessageStore


async def get_account_email(db: "PostgresMessageStore", account_id: str) -> Optional[str]:
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(
                "SELECT email FROM email_accounts WHERE id = %s", (account_id,)
            )
            row = await cur.fetchone()
    return row[0].lower() if row else None


async def upsert_account(db: "PostgresMessageStore", account_id: str, email: str) -> None:
    async with db.connection() as conn:
        async with conn.transaction():
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO email_accounts (id, email) VALUES (%s, %s)
                    ON CONFLICT (id) DO UPDATE SET email = EXCLUDED.email
                    """,
                    (account_id, email.lower()),
                )

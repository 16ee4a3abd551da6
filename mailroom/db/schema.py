from typing import Any


async def initialize_core_schema(cur: Any) -> None:
    await cur.execute(
        """
        CREATE TABLE IF NOT EXISTS email_accounts (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
        """
    )

    await cur.execute(
        """
        CREATE TABLE IF NOT EXISTS messages (
            id BIGSERIAL PRIMARY KEY,
            account_id TEXT NOT NULL,
            message_id TEXT,
            direction TEXT NOT NULL CHECK (direction IN ('sent', 'received')),
            folder TEXT NOT NULL,
            from_address TEXT NOT NULL DEFAULT '',
            to_addresses TEXT[] NOT NULL DEFAULT '{}',
            cc_addresses TEXT[] NOT NULL DEFAULT '{}',
            counterpart TEXT NOT NULL,
            subject TEXT NOT NULL DEFAULT '',
            body_html TEXT NOT NULL DEFAULT '',
            body_text TEXT NOT NULL DEFAULT '',
            snippet TEXT NOT NULL DEFAULT '',
            is_read BOOLEAN NOT NULL DEFAULT FALSE,
            is_flagged BOOLEAN NOT NULL DEFAULT FALSE,
            attachments JSONB NOT NULL DEFAULT '[]'::jsonb,
            has_attachment BOOLEAN NOT NULL DEFAULT FALSE,
            sent_at TIMESTAMPTZ NOT NULL,
            country TEXT,
            lead_status TEXT,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
        """
    )


async def create_indexes(cur: Any) -> None:
    await cur.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_messages_account_message_id
        ON messages(account_id, message_id) WHERE message_id IS NOT NULL
        """
    )
    await cur.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_messages_account_folder_sent
        ON messages(account_id, folder, sent_at DESC, id DESC)
        """
    )
    await cur.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_messages_account_counterpart
        ON messages(account_id, counterpart, folder, sent_at)
        """
    )
    await cur.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_messages_unread
        ON messages(account_id, folder) WHERE NOT is_read
        """
    )

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from mailroom.db.types import RESTORABLE_FOLDERS, MessageFilter, MessagePatch
from mailroom.errors import InvalidCursorError
from mailroom.models import (
    Attachment,
    Conversation,
    ConversationSort,
    Direction,
    Folder,
    Message,
    MessageOrder,
)

if TYPE_CHECKING:
    from mailroom.db.postgres import PostgresMessageStore

MESSAGE_COLUMNS = (
    "id, account_id, message_id, direction, folder, from_address, to_addresses, "
    "cc_addresses, subject, body_html, snippet, is_read, is_flagged, attachments, "
    "sent_at, country, lead_status"
)

NATURAL_FOLDER_SQL = "CASE WHEN direction = 'sent' THEN 'sent' ELSE 'inbox' END"

CONVERSATION_ORDER = {
    ConversationSort.RECENT: "g.last_message_at DESC, g.last_message_id DESC",
    ConversationSort.UNREAD: (
        "g.unread_count DESC, g.last_message_at DESC, g.last_message_id DESC"
    ),
    ConversationSort.SENDER: "g.counterpart ASC, g.folder ASC",
}


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def contains_pattern(value: str) -> str:
    return f"%{escape_like(value)}%"


def build_conditions(filter: MessageFilter) -> tuple[list[str], list[Any]]:
    """Translate a filter into SQL conditions and their parameters."""
    conditions = ["account_id = %s"]
    params: list[Any] = [filter.account_id]

    if filter.folders is not None:
        conditions.append("folder = ANY(%s)")
        params.append([f.value for f in filter.folders])

    if filter.exclude_folders:
        conditions.append("NOT (folder = ANY(%s))")
        params.append([f.value for f in filter.exclude_folders])

    if filter.counterpart is not None:
        conditions.append("counterpart = %s")
        params.append(filter.counterpart)

    if filter.ids is not None:
        conditions.append("id = ANY(%s)")
        params.append(list(filter.ids))

    if filter.sender:
        conditions.append("from_address ILIKE %s")
        params.append(contains_pattern(filter.sender))

    if filter.recipient:
        conditions.append(
            "(array_to_string(to_addresses, ',') ILIKE %s"
            " OR array_to_string(cc_addresses, ',') ILIKE %s)"
        )
        pattern = contains_pattern(filter.recipient)
        params.extend([pattern, pattern])

    if filter.subject:
        conditions.append("subject ILIKE %s")
        params.append(contains_pattern(filter.subject))

    if filter.text:
        conditions.append(
            "(subject ILIKE %s OR body_text ILIKE %s OR from_address ILIKE %s)"
        )
        pattern = contains_pattern(filter.text)
        params.extend([pattern, pattern, pattern])

    if filter.date_from is not None:
        conditions.append("sent_at >= %s")
        params.append(filter.date_from)

    if filter.date_to is not None:
        conditions.append("sent_at <= %s")
        params.append(filter.date_to)

    if filter.has_attachment is not None:
        conditions.append("has_attachment = %s")
        params.append(filter.has_attachment)

    if filter.is_unread is not None:
        conditions.append("is_read = %s")
        params.append(not filter.is_unread)

    if filter.is_flagged is not None:
        conditions.append("is_flagged = %s")
        params.append(filter.is_flagged)

    if filter.country:
        conditions.append("lower(country) = lower(%s)")
        params.append(filter.country)

    if filter.lead_status:
        conditions.append("lower(lead_status) = lower(%s)")
        params.append(filter.lead_status)

    return conditions, params


def build_message_query(
    filter: MessageFilter,
    order: MessageOrder,
    anchor: Optional[dict[str, Any]],
    limit: int,
) -> tuple[str, list[Any]]:
    conditions, params = build_conditions(filter)
    newest_first = order == MessageOrder.NEWEST_FIRST

    if anchor is not None:
        op = "<" if newest_first else ">"
        conditions.append(f"(sent_at, id) {op} (%s, %s)")
        params.extend([anchor["sent_at"], anchor["id"]])

    direction = "DESC" if newest_first else "ASC"
    query = (
        f"SELECT {MESSAGE_COLUMNS} FROM messages WHERE {' AND '.join(conditions)} "
        f"ORDER BY sent_at {direction}, id {direction} LIMIT %s"
    )
    params.append(limit)
    return query, params


def build_conversation_query(
    filter: MessageFilter,
    sort: ConversationSort,
    bound: Optional[tuple],
    limit: int,
    preview_chars: int,
) -> tuple[str, list[Any]]:
    """Grouped conversation summaries, keyset-paginated on ``bound``.

    ``bound`` holds the sort-key values of the cursor conversation:
    ``(last_message_at, id)`` for recent, ``(unread_count, last_message_at, id)``
    for unread and ``(counterpart, folder)`` for sender.
    """
    conditions, params = build_conditions(filter)

    query = f"""
        WITH grouped AS (
            SELECT counterpart, folder,
                   COUNT(*) AS message_count,
                   COUNT(*) FILTER (WHERE NOT is_read) AS unread_count,
                   BOOL_OR(has_attachment) AS has_attachment,
                   BOOL_OR(is_flagged) AS is_flagged,
                   MAX(sent_at) AS last_message_at,
                   (ARRAY_AGG(id ORDER BY sent_at DESC, id DESC))[1] AS last_message_id
            FROM messages
            WHERE {' AND '.join(conditions)}
            GROUP BY counterpart, folder
        )
        SELECT g.counterpart, g.folder, g.message_count, g.unread_count,
               g.has_attachment, g.is_flagged, g.last_message_at, g.last_message_id,
               m.account_id, m.subject, LEFT(m.body_text, %s) AS body_head,
               m.country, m.lead_status
        FROM grouped g
        JOIN messages m ON m.id = g.last_message_id
    """
    params.append(preview_chars)

    if bound is not None:
        if sort == ConversationSort.RECENT:
            query += " WHERE (g.last_message_at, g.last_message_id) < (%s, %s)"
        elif sort == ConversationSort.UNREAD:
            query += (
                " WHERE (g.unread_count, g.last_message_at, g.last_message_id)"
                " < (%s, %s, %s)"
            )
        else:
            query += " WHERE (g.counterpart, g.folder) > (%s, %s)"
        params.extend(bound)

    query += f" ORDER BY {CONVERSATION_ORDER[sort]} LIMIT %s"
    params.append(limit)
    return query, params


def build_update_query(
    account_id: str, ids: list[int], patch: MessagePatch
) -> tuple[str, list[Any]]:
    assignments: list[str] = []
    params: list[Any] = []

    if patch.is_read is not None:
        assignments.append("is_read = %s")
        params.append(patch.is_read)
    if patch.is_flagged is not None:
        assignments.append("is_flagged = %s")
        params.append(patch.is_flagged)
    if patch.folder is not None:
        assignments.append("folder = %s")
        params.append(patch.folder.value)
    if patch.restore:
        assignments.append(f"folder = {NATURAL_FOLDER_SQL}")

    conditions = ["account_id = %s", "id = ANY(%s)"]
    params.extend([account_id, list(ids)])

    if patch.restore:
        conditions.append(f"(folder = ANY(%s) OR folder = {NATURAL_FOLDER_SQL})")
        params.append([f.value for f in RESTORABLE_FOLDERS])
    elif patch.allowed_folders:
        conditions.append("folder = ANY(%s)")
        params.append([f.value for f in patch.allowed_folders])

    query = (
        f"UPDATE messages SET {', '.join(assignments)} "
        f"WHERE {' AND '.join(conditions)} RETURNING id"
    )
    return query, params


def row_to_message(row: dict[str, Any]) -> Message:
    return Message(
        id=row["id"],
        account_id=row["account_id"],
        message_id=row.get("message_id"),
        direction=Direction(row["direction"]),
        folder=Folder(row["folder"]),
        from_address=row.get("from_address") or "",
        to_addresses=list(row.get("to_addresses") or []),
        cc_addresses=list(row.get("cc_addresses") or []),
        subject=row.get("subject") or "",
        body_html=row.get("body_html") or "",
        snippet=row.get("snippet") or "",
        is_read=bool(row.get("is_read")),
        is_flagged=bool(row.get("is_flagged")),
        attachments=[Attachment.from_dict(a) for a in row.get("attachments") or []],
        sent_at=row["sent_at"],
        country=row.get("country"),
        lead_status=row.get("lead_status"),
    )


def row_to_conversation(row: dict[str, Any], preview_length: int) -> Conversation:
    return Conversation(
        account_id=row["account_id"],
        counterpart_address=row["counterpart"],
        folder=Folder(row["folder"]),
        subject=row.get("subject") or "",
        last_message_at=row["last_message_at"],
        last_body_preview=" ".join((row.get("body_head") or "").split())[
            :preview_length
        ],
        unread_count=int(row["unread_count"]),
        has_attachment=bool(row["has_attachment"]),
        is_flagged=bool(row["is_flagged"]),
        message_count=int(row["message_count"]),
        last_message_id=int(row["last_message_id"]),
        country=row.get("country"),
        lead_status=row.get("lead_status"),
    )


async def fetch_anchor(
    db: "PostgresMessageStore", filter: MessageFilter, cursor: int
) -> dict[str, Any]:
    """Load the cursor message, which must satisfy ``filter``."""
    conditions, params = build_conditions(filter)
    conditions.append("id = %s")
    params.append(cursor)
    query = (
        "SELECT id, sent_at, counterpart, folder FROM messages "
        f"WHERE {' AND '.join(conditions)}"
    )
    async with db.connection() as conn:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(query, params)
            row = await cur.fetchone()
    if not row:
        raise InvalidCursorError(cursor, "not found for this account and filter")
    return row


async def find_messages(
    db: "PostgresMessageStore",
    filter: MessageFilter,
    order: MessageOrder,
    cursor: Optional[int],
    limit: int,
) -> list[Message]:
    anchor = await fetch_anchor(db, filter, cursor) if cursor is not None else None
    query, params = build_message_query(filter, order, anchor, limit)
    async with db.connection() as conn:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(query, params)
            rows = await cur.fetchall()
    return [row_to_message(row) for row in rows]


async def find_message_ids(db: "PostgresMessageStore", filter: MessageFilter) -> list[int]:
    conditions, params = build_conditions(filter)
    query = f"SELECT id FROM messages WHERE {' AND '.join(conditions)} ORDER BY id"
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(query, params)
            rows = await cur.fetchall()
    return [row[0] for row in rows]


async def count_messages(db: "PostgresMessageStore", filter: MessageFilter) -> int:
    conditions, params = build_conditions(filter)
    query = f"SELECT COUNT(*) FROM messages WHERE {' AND '.join(conditions)}"
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(query, params)
            row = await cur.fetchone()
    return int(row[0]) if row else 0


async def aggregate_conversations(
    db: "PostgresMessageStore",
    filter: MessageFilter,
    sort: ConversationSort,
    cursor: Optional[int],
    limit: int,
    preview_length: int,
) -> list[Conversation]:
    bound: Optional[tuple] = None
    if cursor is not None:
        anchor = await fetch_anchor(db, filter, cursor)
        if sort == ConversationSort.RECENT:
            bound = (anchor["sent_at"], anchor["id"])
        elif sort == ConversationSort.UNREAD:
            unread = await count_messages(
                db,
                filter.narrowed(
                    counterpart=anchor["counterpart"],
                    folders=[Folder(anchor["folder"])],
                    is_unread=True,
                ),
            )
            bound = (unread, anchor["sent_at"], anchor["id"])
        else:
            bound = (anchor["counterpart"], anchor["folder"])

    query, params = build_conversation_query(
        filter, sort, bound, limit, preview_length * 4
    )
    async with db.connection() as conn:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(query, params)
            rows = await cur.fetchall()
    return [row_to_conversation(row, preview_length) for row in rows]


async def insert_messages(
    db: "PostgresMessageStore", messages: list[Message]
) -> list[Optional[int]]:
    """Insert in one transaction; duplicates by Message-ID come back as None."""
    inserted: list[Optional[int]] = []
    async with db.connection() as conn:
        async with conn.transaction():
            async with conn.cursor() as cur:
                for message in messages:
                    await cur.execute(
                        """
                        INSERT INTO messages (
                            account_id, message_id, direction, folder, from_address,
                            to_addresses, cc_addresses, counterpart, subject,
                            body_html, body_text, snippet, is_read, is_flagged,
                            attachments, has_attachment, sent_at, country, lead_status
                        ) VALUES (
                            %s, %s, %s, %s, %s, %s, %s, %s, %s, %s,
                            %s, %s, %s, %s, %s, %s, %s, %s, %s
                        )
                        ON CONFLICT (account_id, message_id)
                            WHERE message_id IS NOT NULL DO NOTHING
                        RETURNING id
                        """,
                        (
                            message.account_id,
                            message.message_id,
                            message.direction.value,
                            message.folder.value,
                            message.from_address,
                            message.to_addresses,
                            message.cc_addresses,
                            message.counterpart,
                            message.subject,
                            message.body_html,
                            message.body_text,
                            message.snippet,
                            message.is_read,
                            message.is_flagged,
                            Jsonb([a.to_dict() for a in message.attachments]),
                            message.has_attachment,
                            message.sent_at,
                            message.country,
                            message.lead_status,
                        ),
                    )
                    row = await cur.fetchone()
                    inserted.append(row[0] if row else None)
    return inserted


async def update_messages(
    db: "PostgresMessageStore", account_id: str, ids: list[int], patch: MessagePatch
) -> list[int]:
    query, params = build_update_query(account_id, ids, patch)
    async with db.connection() as conn:
        async with conn.transaction():
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                rows = await cur.fetchall()
    return [row[0] for row in rows]


async def delete_messages(
    db: "PostgresMessageStore", account_id: str, ids: list[int]
) -> list[int]:
    async with db.connection() as conn:
        async with conn.transaction():
            async with conn.cursor() as cur:
                await cur.execute(
                    "DELETE FROM messages WHERE account_id = %s AND id = ANY(%s) RETURNING id",
                    (account_id, list(ids)),
                )
                rows = await cur.fetchall()
    return [row[0] for row in rows]


async def distinct_countries(
    db: "PostgresMessageStore", filter: MessageFilter
) -> list[str]:
    conditions, params = build_conditions(filter)
    conditions.append("country IS NOT NULL AND country <> ''")
    query = (
        f"SELECT DISTINCT country FROM messages WHERE {' AND '.join(conditions)} "
        "ORDER BY country"
    )
    async with db.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(query, params)
            rows = await cur.fetchall()
    return [row[0] for row in rows]

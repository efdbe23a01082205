"""
Contact persistence helpers (raw SQL via `core.db`).

Every query is scoped by the owner's `user_id`.
"""

from __future__ import annotations

from typing import Any

from core import db

CONTACT_COLUMNS = """
    id, user_id, first_name, last_name, email, phone, company, position,
    country, city, address, postal_code, website, social_media, tags, notes,
    status, verification_status, last_contacted, next_follow_up, is_favorite,
    updated_by, created_at, updated_at
"""

# Columns a caller may write through create/update.
WRITABLE_COLUMNS: tuple[str, ...] = (
    "first_name",
    "last_name",
    "email",
    "phone",
    "company",
    "position",
    "country",
    "city",
    "address",
    "postal_code",
    "website",
    "social_media",
    "tags",
    "notes",
    "status",
    "last_contacted",
    "next_follow_up",
    "is_favorite",
)

SORTABLE_COLUMNS: frozenset[str] = frozenset(
    {
        "created_at",
        "updated_at",
        "first_name",
        "last_name",
        "email",
        "company",
        "country",
        "status",
        "verification_status",
        "last_contacted",
        "next_follow_up",
    }
)


def order_by_clause(sort: str | None, *, default: str = "-created_at") -> str:
    """
    Turn `-created_at` / `last_name` into a safe ORDER BY clause.
    """
    raw = (sort or default).strip()
    descending = raw.startswith("-")
    column = raw.lstrip("-+")
    if column not in SORTABLE_COLUMNS:
        column, descending = default.lstrip("-"), default.startswith("-")
    direction = "DESC" if descending else "ASC"
    return f"{column} {direction}, id {direction}"


async def insert_contact(*, user_id: int, values: dict[str, Any]) -> dict:
    columns = [c for c in WRITABLE_COLUMNS if c in values]
    placeholders = ", ".join(f"${i}" for i in range(3, len(columns) + 3))
    row = await db.fetch_one(
        f"""
        INSERT INTO contacts (user_id, updated_by, {", ".join(columns)})
        VALUES ($1, $2, {placeholders})
        RETURNING {CONTACT_COLUMNS}
        """,
        user_id,
        user_id,
        *[values[c] for c in columns],
    )
    if row is None:
        raise RuntimeError("Failed to create contact.")
    return row


def _filters_sql(start: int) -> str:
    # NULL parameters disable their filter; numbering starts after the owner id.
    p = [f"${i}" for i in range(start, start + 6)]
    return f"""
        WHERE user_id = $1
          AND ({p[0]}::text IS NULL
               OR first_name ILIKE '%' || {p[0]} || '%'
               OR last_name ILIKE '%' || {p[0]} || '%'
               OR (first_name || ' ' || last_name) ILIKE '%' || {p[0]} || '%'
               OR email ILIKE '%' || {p[0]} || '%'
               OR company ILIKE '%' || {p[0]} || '%'
               OR position ILIKE '%' || {p[0]} || '%'
               OR EXISTS (SELECT 1 FROM unnest(tags) t WHERE t ILIKE '%' || {p[0]} || '%'))
          AND ({p[1]}::text IS NULL OR status = {p[1]})
          AND ({p[2]}::text IS NULL OR verification_status = {p[2]})
          AND ({p[3]}::text[] IS NULL OR tags @> {p[3]})
          AND ({p[4]}::text IS NULL OR lower(country) = lower({p[4]}))
          AND ({p[5]}::boolean IS NULL OR is_favorite = {p[5]})
    """


async def list_contacts(
    *,
    user_id: int,
    search: str | None = None,
    status: str | None = None,
    verification_status: str | None = None,
    tags: list[str] | None = None,
    country: str | None = None,
    is_favorite: bool | None = None,
    sort: str | None = None,
    limit: int = 10,
    offset: int = 0,
) -> tuple[list[dict], int]:
    params = (user_id, search or None, status, verification_status, tags or None, country, is_favorite)
    where = _filters_sql(2)
    rows = await db.fetch_all(
        f"""
        SELECT {CONTACT_COLUMNS}
        FROM contacts
        {where}
        ORDER BY {order_by_clause(sort)}
        LIMIT $8 OFFSET $9
        """,
        *params,
        limit,
        offset,
    )
    total = await db.fetch_val(f"SELECT count(*) FROM contacts {where}", *params)
    return rows, int(total or 0)


async def get_contact(contact_id: int, *, user_id: int) -> dict | None:
    return await db.fetch_one(
        f"SELECT {CONTACT_COLUMNS} FROM contacts WHERE id = $1 AND user_id = $2",
        contact_id,
        user_id,
    )


async def update_contact(contact_id: int, *, user_id: int, values: dict[str, Any]) -> dict | None:
    columns = [c for c in WRITABLE_COLUMNS if c in values]
    if not columns:
        return await get_contact(contact_id, user_id=user_id)
    assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(columns, start=3))
    return await db.fetch_one(
        f"""
        UPDATE contacts
        SET {assignments}, updated_by = $2, updated_at = now()
        WHERE id = $1 AND user_id = $2
        RETURNING {CONTACT_COLUMNS}
        """,
        contact_id,
        user_id,
        *[values[c] for c in columns],
    )


async def delete_contact(contact_id: int, *, user_id: int) -> bool:
    status = await db.execute(
        "DELETE FROM contacts WHERE id = $1 AND user_id = $2",
        contact_id,
        user_id,
    )
    return db.affected_rows(status) > 0


async def toggle_favorite(contact_id: int, *, user_id: int) -> dict | None:
    return await db.fetch_one(
        f"""
        UPDATE contacts
        SET is_favorite = NOT is_favorite, updated_by = $2, updated_at = now()
        WHERE id = $1 AND user_id = $2
        RETURNING {CONTACT_COLUMNS}
        """,
        contact_id,
        user_id,
    )


async def set_verification_status(contact_id: int, *, user_id: int, status: str) -> dict | None:
    return await db.fetch_one(
        f"""
        UPDATE contacts
        SET verification_status = $3, updated_by = $2, updated_at = now()
        WHERE id = $1 AND user_id = $2
        RETURNING {CONTACT_COLUMNS}
        """,
        contact_id,
        user_id,
        status,
    )


async def add_tag(contact_id: int, *, user_id: int, tag: str) -> dict | None:
    return await db.fetch_one(
        f"""
        UPDATE contacts
        SET tags = CASE WHEN $3 = ANY(tags) THEN tags ELSE array_append(tags, $3) END,
            updated_at = now()
        WHERE id = $1 AND user_id = $2
        RETURNING {CONTACT_COLUMNS}
        """,
        contact_id,
        user_id,
        tag,
    )


async def status_counts(user_id: int) -> list[dict]:
    return await db.fetch_all(
        """
        SELECT status, count(*)::int AS count
        FROM contacts
        WHERE user_id = $1
        GROUP BY status
        ORDER BY count DESC, status
        """,
        user_id,
    )


async def existing_emails(user_id: int, emails: list[str]) -> set[str]:
    if not emails:
        return set()
    rows = await db.fetch_all(
        "SELECT lower(email) AS email FROM contacts WHERE user_id = $1 AND lower(email) = ANY($2::text[])",
        user_id,
        [e.lower() for e in emails],
    )
    return {str(r["email"]) for r in rows}


async def duplicate_groups(user_id: int) -> list[dict]:
    """
    Contacts sharing the same normalized full name, largest groups first.
    """
    return await db.fetch_all(
        """
        SELECT lower(trim(first_name) || ' ' || trim(last_name)) AS full_name,
               count(*)::int AS count,
               json_agg(
                   json_build_object(
                       'id', id, 'first_name', first_name, 'last_name', last_name,
                       'email', email, 'company', company, 'created_at', created_at
                   )
                   ORDER BY created_at
               ) AS contacts
        FROM contacts
        WHERE user_id = $1
        GROUP BY lower(trim(first_name) || ' ' || trim(last_name))
        HAVING count(*) > 1
        ORDER BY count(*) DESC, full_name
        """,
        user_id,
    )

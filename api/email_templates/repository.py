"""
Email template persistence helpers.
"""

from __future__ import annotations

from typing import Any

from core import db

TEMPLATE_COLUMNS = """
    id, user_id, name, subject, body, variables, preview_text, is_default,
    category, thumbnail, updated_by, created_at, updated_at
"""

WRITABLE_COLUMNS: tuple[str, ...] = (
    "name",
    "subject",
    "body",
    "variables",
    "preview_text",
    "is_default",
    "category",
    "thumbnail",
)

SORTABLE_COLUMNS = frozenset({"created_at", "updated_at", "name", "category", "subject"})


def order_by_clause(sort: str | None) -> str:
    raw = (sort or "-updated_at").strip()
    column = raw.lstrip("-+")
    if column not in SORTABLE_COLUMNS:
        raw, column = "-updated_at", "updated_at"
    direction = "DESC" if raw.startswith("-") else "ASC"
    return f"{column} {direction}, id {direction}"


async def _clear_other_defaults(conn, *, user_id: int, category: str | None, keep_id: int | None) -> None:
    await conn.execute(
        """
        UPDATE email_templates
        SET is_default = false, updated_at = now()
        WHERE user_id = $1
          AND category IS NOT DISTINCT FROM $2
          AND is_default
          AND ($3::bigint IS NULL OR id <> $3)
        """,
        user_id,
        category,
        keep_id,
    )


async def insert_template(*, user_id: int, values: dict[str, Any]) -> dict:
    """
    Insert a template; a new default unsets the previous default of its category.
    """
    columns = [c for c in WRITABLE_COLUMNS if c in values]
    placeholders = ", ".join(f"${i}" for i in range(3, len(columns) + 3))
    async with db.transaction() as conn:
        if values.get("is_default"):
            await _clear_other_defaults(conn, user_id=user_id, category=values.get("category"), keep_id=None)
        row = await conn.fetchrow(
            f"""
            INSERT INTO email_templates (user_id, updated_by, {", ".join(columns)})
            VALUES ($1, $2, {placeholders})
            RETURNING {TEMPLATE_COLUMNS}
            """,
            user_id,
            user_id,
            *[values[c] for c in columns],
        )
    if row is None:
        raise RuntimeError("Failed to create email template.")
    return dict(row)


async def update_template(template_id: int, *, user_id: int, values: dict[str, Any]) -> dict | None:
    """
    Update a template; when the result is a default, the category's other default is unset first.
    """
    columns = [c for c in WRITABLE_COLUMNS if c in values]
    if not columns:
        return await get_template(template_id, user_id=user_id)
    assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(columns, start=3))
    async with db.transaction() as conn:
        current = await conn.fetchrow(
            "SELECT category, is_default FROM email_templates WHERE id = $1 AND user_id = $2 FOR UPDATE",
            template_id,
            user_id,
        )
        if current is None:
            return None
        # The partial unique index on defaults rejects a second default, so clear before setting.
        if values.get("is_default", current["is_default"]):
            category = values["category"] if "category" in values else current["category"]
            await _clear_other_defaults(conn, user_id=user_id, category=category, keep_id=template_id)
        row = await conn.fetchrow(
            f"""
            UPDATE email_templates
            SET {assignments}, updated_by = $2, updated_at = now()
            WHERE id = $1 AND user_id = $2
            RETURNING {TEMPLATE_COLUMNS}
            """,
            template_id,
            user_id,
            *[values[c] for c in columns],
        )
    return dict(row) if row is not None else None


async def get_template(template_id: int, *, user_id: int) -> dict | None:
    return await db.fetch_one(
        f"SELECT {TEMPLATE_COLUMNS} FROM email_templates WHERE id = $1 AND user_id = $2",
        template_id,
        user_id,
    )


async def get_template_by_name(name: str, *, user_id: int) -> dict | None:
    return await db.fetch_one(
        f"SELECT {TEMPLATE_COLUMNS} FROM email_templates WHERE user_id = $1 AND name = $2",
        user_id,
        name,
    )


async def list_templates(
    *,
    user_id: int,
    category: str | None,
    is_default: bool | None,
    sort: str | None,
    limit: int,
    offset: int,
) -> tuple[list[dict], int]:
    where = """
        WHERE user_id = $1
          AND ($2::text IS NULL OR category = $2)
          AND ($3::boolean IS NULL OR is_default = $3)
    """
    rows = await db.fetch_all(
        f"""
        SELECT {TEMPLATE_COLUMNS}
        FROM email_templates
        {where}
        ORDER BY {order_by_clause(sort)}
        LIMIT $4 OFFSET $5
        """,
        user_id,
        category,
        is_default,
        limit,
        offset,
    )
    total = await db.fetch_val(f"SELECT count(*) FROM email_templates {where}", user_id, category, is_default)
    return rows, int(total or 0)


async def delete_template(template_id: int, *, user_id: int) -> bool:
    status = await db.execute(
        "DELETE FROM email_templates WHERE id = $1 AND user_id = $2",
        template_id,
        user_id,
    )
    return db.affected_rows(status) > 0


async def list_categories(user_id: int) -> list[str]:
    rows = await db.fetch_all(
        """
        SELECT DISTINCT category
        FROM email_templates
        WHERE user_id = $1 AND category IS NOT NULL AND category <> ''
        ORDER BY category
        """,
        user_id,
    )
    return [str(r["category"]) for r in rows]


async def get_default_template(*, user_id: int, category: str | None) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {TEMPLATE_COLUMNS}
        FROM email_templates
        WHERE user_id = $1
          AND is_default
          AND ($2::text IS NULL OR category = $2)
        ORDER BY updated_at DESC
        LIMIT 1
        """,
        user_id,
        category,
    )

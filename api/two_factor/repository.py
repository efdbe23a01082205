"""
Two-factor persistence helpers.
"""

from __future__ import annotations

from core import db


async def get_user_two_factor(user_id: int) -> dict | None:
    return await db.fetch_one(
        """
        SELECT id, email, two_factor_secret, two_factor_enabled
        FROM users
        WHERE id = $1
        """,
        user_id,
    )


async def set_pending_secret(user_id: int, secret: str) -> None:
    await db.execute(
        """
        UPDATE users
        SET two_factor_secret = $2, two_factor_enabled = false, updated_at = now()
        WHERE id = $1
        """,
        user_id,
        secret,
    )


async def enable_with_backup_codes(user_id: int, code_hashes: list[str]) -> None:
    async with db.transaction() as conn:
        await conn.execute(
            "UPDATE users SET two_factor_enabled = true, updated_at = now() WHERE id = $1",
            user_id,
        )
        await _replace_codes(conn, user_id, code_hashes)


async def replace_backup_codes(user_id: int, code_hashes: list[str]) -> None:
    async with db.transaction() as conn:
        await _replace_codes(conn, user_id, code_hashes)


async def _replace_codes(conn, user_id: int, code_hashes: list[str]) -> None:
    await conn.execute("DELETE FROM two_factor_backup_codes WHERE user_id = $1", user_id)
    await conn.executemany(
        "INSERT INTO two_factor_backup_codes (user_id, code_hash) VALUES ($1, $2)",
        [(user_id, code_hash) for code_hash in code_hashes],
    )


async def disable(user_id: int) -> None:
    async with db.transaction() as conn:
        await conn.execute(
            """
            UPDATE users
            SET two_factor_secret = NULL, two_factor_enabled = false, updated_at = now()
            WHERE id = $1
            """,
            user_id,
        )
        await conn.execute("DELETE FROM two_factor_backup_codes WHERE user_id = $1", user_id)


async def consume_backup_code(user_id: int, code_hash: str) -> bool:
    row = await db.fetch_one(
        """
        UPDATE two_factor_backup_codes
        SET used_at = now()
        WHERE id = (
            SELECT id FROM two_factor_backup_codes
            WHERE user_id = $1 AND code_hash = $2 AND used_at IS NULL
            LIMIT 1
        )
        RETURNING id
        """,
        user_id,
        code_hash,
    )
    return row is not None


async def count_unused_backup_codes(user_id: int) -> int:
    value = await db.fetch_val(
        "SELECT count(*) FROM two_factor_backup_codes WHERE user_id = $1 AND used_at IS NULL",
        user_id,
    )
    return int(value or 0)

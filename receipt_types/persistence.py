"""SQLite persistence for receipt type groups and receipt types."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Sequence

from receipt_types.backend import UNSET, Unset
from receipt_types.config import DB_PATH, LEGACY_DEFAULT_GROUP_NAME
from receipt_types.data import DEFAULT_GROUPS, UNGROUPED_DEFAULTS, DefaultGroup
from receipt_types.errors import BulkUpdateError, EntityError, NotFoundError, PersistenceError
from receipt_types.models import Group, ReceiptType, TypeUpdate

logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _group_from_row(row: sqlite3.Row) -> Group:
    return Group(id=int(row["id"]), name=str(row["name"]), display_order=int(row["display_order"]))


def _type_from_row(row: sqlite3.Row) -> ReceiptType:
    group_id = row["group_id"]
    return ReceiptType(
        id=int(row["id"]),
        name=str(row["name"]),
        group_id=int(group_id) if group_id is not None else None,
        display_order=int(row["display_order"]),
    )


def _clean_name(name: str, kind: str, entity_id: int | None = None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise PersistenceError(f"{kind} name cannot be empty", entity_id)
    return cleaned


class SqliteBackend:
    """Stores the taxonomy in one SQLite file.

    Every public coroutine runs its blocking work in a worker thread so the
    UI event loop never stalls on disk I/O.
    """

    def __init__(self, db_path: str | Path = DB_PATH) -> None:
        self.db_path = Path(db_path)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def bootstrap_schema(self, seed_defaults: bool = True) -> None:
        """Create the schema if missing and seed the default catalog into an empty database."""
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS receipt_type_groups (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    display_order INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS receipt_types (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    group_id INTEGER REFERENCES receipt_type_groups(id) ON DELETE SET NULL,
                    display_order INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );
                """
            )
            type_columns = {row[1] for row in conn.execute("PRAGMA table_info(receipt_types)")}
            if "group_id" not in type_columns:
                self._migrate_ungrouped_schema(conn)

            conn.executescript(
                """
                CREATE INDEX IF NOT EXISTS idx_receipt_types_group_id
                    ON receipt_types(group_id);

                CREATE INDEX IF NOT EXISTS idx_receipt_type_groups_display_order
                    ON receipt_type_groups(display_order);
                """
            )

            if seed_defaults:
                group_count = conn.execute("SELECT COUNT(*) FROM receipt_type_groups").fetchone()[0]
                type_count = conn.execute("SELECT COUNT(*) FROM receipt_types").fetchone()[0]
                if group_count == 0 and type_count == 0:
                    self._insert_defaults(conn, DEFAULT_GROUPS, UNGROUPED_DEFAULTS)
                    logger.info("seeded default receipt types db=%s", self.db_path)

    def _migrate_ungrouped_schema(self, conn: sqlite3.Connection) -> None:
        """Add grouping columns to a pre-grouping table and file old types under one group."""
        conn.execute("ALTER TABLE receipt_types ADD COLUMN group_id INTEGER REFERENCES receipt_type_groups(id)")
        conn.execute("ALTER TABLE receipt_types ADD COLUMN display_order INTEGER NOT NULL DEFAULT 0")

        existing = conn.execute("SELECT id FROM receipt_types ORDER BY name").fetchall()
        if not existing:
            return

        conn.execute(
            "INSERT OR IGNORE INTO receipt_type_groups (name, display_order, created_at) VALUES (?, 0, ?)",
            (LEGACY_DEFAULT_GROUP_NAME, _utc_now_iso()),
        )
        group_id = conn.execute(
            "SELECT id FROM receipt_type_groups WHERE name = ?", (LEGACY_DEFAULT_GROUP_NAME,)
        ).fetchone()[0]
        conn.executemany(
            "UPDATE receipt_types SET group_id = ?, display_order = ? WHERE id = ?",
            [(group_id, idx, row[0]) for idx, row in enumerate(existing)],
        )
        logger.info("migrated %d receipt types into %r", len(existing), LEGACY_DEFAULT_GROUP_NAME)

    # Async API

    async def list_groups(self) -> list[Group]:
        return await asyncio.to_thread(self.list_groups_sync)

    async def list_types(self) -> list[ReceiptType]:
        return await asyncio.to_thread(self.list_types_sync)

    async def create_group(self, name: str, display_order: int) -> Group:
        return await asyncio.to_thread(self.create_group_sync, name, display_order)

    async def update_group(
        self,
        group_id: int,
        name: str | None = None,
        display_order: int | None = None,
    ) -> Group:
        return await asyncio.to_thread(self.update_group_sync, group_id, name, display_order)

    async def delete_group(self, group_id: int) -> None:
        await asyncio.to_thread(self.delete_group_sync, group_id)

    async def create_type(
        self,
        name: str,
        group_id: int | None = None,
        display_order: int | None = None,
    ) -> ReceiptType:
        return await asyncio.to_thread(self.create_type_sync, name, group_id, display_order)

    async def update_type(
        self,
        type_id: int,
        name: str | None = None,
        group_id: int | None | Unset = UNSET,
        display_order: int | None = None,
    ) -> ReceiptType:
        return await asyncio.to_thread(self.update_type_sync, type_id, name, group_id, display_order)

    async def delete_type(self, type_id: int) -> None:
        await asyncio.to_thread(self.delete_type_sync, type_id)

    async def bulk_update_types(self, updates: Sequence[TypeUpdate]) -> list[ReceiptType]:
        return await asyncio.to_thread(self.bulk_update_types_sync, list(updates))

    async def reset_to_defaults(self, groups: Sequence[DefaultGroup], ungrouped: Sequence[str]) -> None:
        await asyncio.to_thread(self.reset_to_defaults_sync, list(groups), list(ungrouped))

    # Blocking implementations

    def list_groups_sync(self) -> list[Group]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, name, display_order FROM receipt_type_groups ORDER BY display_order, name"
            ).fetchall()
        return [_group_from_row(row) for row in rows]

    def list_types_sync(self) -> list[ReceiptType]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, name, group_id, display_order FROM receipt_types ORDER BY display_order, name"
            ).fetchall()
        return [_type_from_row(row) for row in rows]

    def create_group_sync(self, name: str, display_order: int) -> Group:
        cleaned = _clean_name(name, "Receipt type group")
        with self._connect() as conn:
            try:
                cur = conn.execute(
                    "INSERT INTO receipt_type_groups (name, display_order, created_at) VALUES (?, ?, ?)",
                    (cleaned, int(display_order), _utc_now_iso()),
                )
            except sqlite3.IntegrityError as exc:
                raise PersistenceError(f"Receipt type group {cleaned!r} already exists") from exc
            return self._fetch_group(conn, int(cur.lastrowid))

    def update_group_sync(self, group_id: int, name: str | None = None, display_order: int | None = None) -> Group:
        with self._connect() as conn:
            existing = self._fetch_group(conn, group_id)
            new_name = _clean_name(name, "Receipt type group", group_id) if name is not None else existing.name
            new_order = int(display_order) if display_order is not None else existing.display_order
            try:
                conn.execute(
                    "UPDATE receipt_type_groups SET name = ?, display_order = ? WHERE id = ?",
                    (new_name, new_order, group_id),
                )
            except sqlite3.IntegrityError as exc:
                raise PersistenceError(f"Receipt type group {new_name!r} already exists", group_id) from exc
            return self._fetch_group(conn, group_id)

    def delete_group_sync(self, group_id: int) -> None:
        """Delete a group; its types become ungrouped."""
        with self._connect() as conn:
            self._fetch_group(conn, group_id)
            conn.execute("UPDATE receipt_types SET group_id = NULL WHERE group_id = ?", (group_id,))
            conn.execute("DELETE FROM receipt_type_groups WHERE id = ?", (group_id,))

    def create_type_sync(self, name: str, group_id: int | None = None, display_order: int | None = None) -> ReceiptType:
        cleaned = _clean_name(name, "Receipt type")
        with self._connect() as conn:
            if group_id is not None:
                self._fetch_group(conn, group_id)
            if display_order is None:
                display_order = self._next_order(conn, group_id)
            try:
                cur = conn.execute(
                    "INSERT INTO receipt_types (name, group_id, display_order, created_at) VALUES (?, ?, ?, ?)",
                    (cleaned, group_id, int(display_order), _utc_now_iso()),
                )
            except sqlite3.IntegrityError as exc:
                raise PersistenceError(f"Receipt type {cleaned!r} already exists") from exc
            return self._fetch_type(conn, int(cur.lastrowid))

    def update_type_sync(
        self,
        type_id: int,
        name: str | None = None,
        group_id: int | None | Unset = UNSET,
        display_order: int | None = None,
    ) -> ReceiptType:
        with self._connect() as conn:
            existing = self._fetch_type(conn, type_id)
            new_name = _clean_name(name, "Receipt type", type_id) if name is not None else existing.name
            new_group = existing.group_id if isinstance(group_id, Unset) else group_id
            if new_group is not None:
                self._fetch_group(conn, new_group)
            new_order = int(display_order) if display_order is not None else existing.display_order
            try:
                conn.execute(
                    "UPDATE receipt_types SET name = ?, group_id = ?, display_order = ? WHERE id = ?",
                    (new_name, new_group, new_order, type_id),
                )
            except sqlite3.IntegrityError as exc:
                raise PersistenceError(f"Receipt type {new_name!r} already exists", type_id) from exc
            return self._fetch_type(conn, type_id)

    def delete_type_sync(self, type_id: int) -> None:
        with self._connect() as conn:
            self._fetch_type(conn, type_id)
            conn.execute("DELETE FROM receipt_types WHERE id = ?", (type_id,))

    def bulk_update_types_sync(self, updates: list[TypeUpdate]) -> list[ReceiptType]:
        """Apply every placement in one transaction, or none of them."""
        with self._connect() as conn:
            type_ids = {row[0] for row in conn.execute("SELECT id FROM receipt_types")}
            group_ids = {row[0] for row in conn.execute("SELECT id FROM receipt_type_groups")}

            failures: list[EntityError] = []
            seen: set[int] = set()
            for update in updates:
                if update.id not in type_ids:
                    failures.append(EntityError(update.id, "Receipt type not found"))
                elif update.id in seen:
                    failures.append(EntityError(update.id, "Receipt type listed twice"))
                elif update.group_id is not None and update.group_id not in group_ids:
                    failures.append(EntityError(update.id, f"Receipt type group {update.group_id} not found"))
                seen.add(update.id)
            if failures:
                raise BulkUpdateError(failures)

            conn.executemany(
                "UPDATE receipt_types SET group_id = ?, display_order = ? WHERE id = ?",
                [(update.group_id, update.display_order, update.id) for update in updates],
            )
            return [self._fetch_type(conn, update.id) for update in updates]

    def reset_to_defaults_sync(self, groups: list[DefaultGroup], ungrouped: list[str]) -> None:
        """Replace every group and receipt type with the given catalog."""
        with self._connect() as conn:
            conn.execute("DELETE FROM receipt_types")
            conn.execute("DELETE FROM receipt_type_groups")
            self._insert_defaults(conn, groups, ungrouped)
        logger.info("reset receipt types to defaults groups=%d ungrouped=%d", len(groups), len(ungrouped))

    def _insert_defaults(
        self,
        conn: sqlite3.Connection,
        groups: Sequence[DefaultGroup],
        ungrouped: Sequence[str],
    ) -> None:
        created_at = _utc_now_iso()
        for group_order, group in enumerate(groups):
            cur = conn.execute(
                "INSERT INTO receipt_type_groups (name, display_order, created_at) VALUES (?, ?, ?)",
                (group.name, group_order, created_at),
            )
            group_id = int(cur.lastrowid)
            conn.executemany(
                "INSERT INTO receipt_types (name, group_id, display_order, created_at) VALUES (?, ?, ?, ?)",
                [(type_name, group_id, idx, created_at) for idx, type_name in enumerate(group.types)],
            )
        conn.executemany(
            "INSERT INTO receipt_types (name, group_id, display_order, created_at) VALUES (?, NULL, ?, ?)",
            [(type_name, idx, created_at) for idx, type_name in enumerate(ungrouped)],
        )

    def _next_order(self, conn: sqlite3.Connection, group_id: int | None) -> int:
        if group_id is None:
            row = conn.execute("SELECT MAX(display_order) FROM receipt_types WHERE group_id IS NULL").fetchone()
        else:
            row = conn.execute("SELECT MAX(display_order) FROM receipt_types WHERE group_id = ?", (group_id,)).fetchone()
        return 0 if row[0] is None else int(row[0]) + 1

    def _fetch_group(self, conn: sqlite3.Connection, group_id: int) -> Group:
        row = conn.execute(
            "SELECT id, name, display_order FROM receipt_type_groups WHERE id = ?", (group_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError("Receipt type group not found", group_id)
        return _group_from_row(row)

    def _fetch_type(self, conn: sqlite3.Connection, type_id: int) -> ReceiptType:
        row = conn.execute(
            "SELECT id, name, group_id, display_order FROM receipt_types WHERE id = ?", (type_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError("Receipt type not found", type_id)
        return _type_from_row(row)

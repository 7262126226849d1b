"""
Database manager for Trellis.

This module handles all roadmap item storage using DuckDB and implements the
ItemRepository interface consumed by the hierarchy engine.
"""

import duckdb
import json
import logging
from datetime import datetime
from typing import List, Optional

from ..errors import ItemNotFoundError
from ..models import Item, ItemStatus, DepthUpdate
from ..repository import ItemRepository


_ITEM_COLUMNS = """
    id, project_id, section_id, type, title, description, start_date, end_date,
    status, parent_item_id, item_depth, order_index, metadata, created_at, updated_at
"""


class DatabaseManager(ItemRepository):
    """
    Manages the DuckDB database holding roadmap items.
    """

    def __init__(self, db_path: str = "trellis.db"):
        """
        Initialize the database manager.

        Args:
            db_path: Path to the DuckDB database file
        """
        self.db_path = db_path
        self.connection = None

    def connect(self):
        """Establish connection to the database."""
        self.connection = duckdb.connect(self.db_path)

    def disconnect(self):
        """Close the database connection."""
        if self.connection:
            self.connection.close()
            self.connection = None

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()

    def _require_connection(self):
        if not self.connection:
            raise RuntimeError("Database connection not established")
        return self.connection

    def initialize_database(self):
        """
        Create all necessary tables if they don't exist.
        """
        connection = self._require_connection()

        connection.execute("""
            CREATE TABLE IF NOT EXISTS roadmap_items (
                id VARCHAR PRIMARY KEY,
                project_id VARCHAR NOT NULL,
                section_id VARCHAR NOT NULL,
                type VARCHAR NOT NULL,
                title VARCHAR NOT NULL,
                description TEXT,
                start_date DATE,
                end_date DATE CHECK (start_date IS NULL OR end_date IS NULL OR end_date >= start_date),
                status VARCHAR NOT NULL DEFAULT 'not_started',
                parent_item_id VARCHAR,
                item_depth INTEGER NOT NULL DEFAULT 0,
                order_index INTEGER NOT NULL DEFAULT 0,
                metadata TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        # parent_item_id and item_depth must stay unindexed: DuckDB turns updates
        # of indexed columns into delete+insert, which conflicts with the primary
        # key when one transaction updates a row twice.

    @staticmethod
    def _row_to_item(row) -> Item:
        """Convert a roadmap_items row into an Item."""
        return Item(
            id=row[0],
            project_id=row[1],
            section_id=row[2],
            type=row[3],
            title=row[4],
            description=row[5],
            start_date=row[6],
            end_date=row[7],
            status=row[8],
            parent_item_id=row[9],
            item_depth=row[10] or 0,
            order_index=row[11] or 0,
            metadata=json.loads(row[12]) if row[12] else {},
            created_at=row[13],
            updated_at=row[14]
        )

    def add_item(self, item: Item) -> bool:
        """
        Add a new roadmap item to the database.

        Args:
            item: The item to add

        Returns:
            True if the item was added, False if it already existed
        """
        connection = self._require_connection()

        now = datetime.now()
        try:
            connection.execute(f"""
                INSERT INTO roadmap_items ({_ITEM_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                item.id,
                item.project_id,
                item.section_id,
                item.type.value,
                item.title,
                item.description,
                item.start_date,
                item.end_date,
                item.status.value,
                item.parent_item_id,
                item.item_depth,
                item.order_index,
                json.dumps(item.metadata, sort_keys=True),
                item.created_at or now,
                item.updated_at or now
            ])
            return True
        except duckdb.IntegrityError:
            # Item already exists
            return False

    def get_item(self, item_id: str) -> Optional[Item]:
        """
        Retrieve a roadmap item by id.

        Args:
            item_id: The id of the item to retrieve

        Returns:
            The item if found, None otherwise
        """
        connection = self._require_connection()

        result = connection.execute(
            f"SELECT {_ITEM_COLUMNS} FROM roadmap_items WHERE id = ?",
            [item_id]
        ).fetchone()

        return self._row_to_item(result) if result else None

    def get_items_by_ids(self, item_ids: List[str]) -> List[Item]:
        """
        Retrieve several items at once. Unknown ids are skipped.
        """
        connection = self._require_connection()
        if not item_ids:
            return []

        placeholders = ", ".join("?" for _ in item_ids)
        results = connection.execute(
            f"SELECT {_ITEM_COLUMNS} FROM roadmap_items WHERE id IN ({placeholders})",
            list(item_ids)
        ).fetchall()

        return [self._row_to_item(row) for row in results]

    def get_children_of(self, parent_id: str) -> List[Item]:
        """
        Retrieve the direct children of an item.
        """
        connection = self._require_connection()

        results = connection.execute(f"""
            SELECT {_ITEM_COLUMNS}
            FROM roadmap_items
            WHERE parent_item_id = ?
            ORDER BY order_index, created_at, id
        """, [parent_id]).fetchall()

        return [self._row_to_item(row) for row in results]

    def update_item_parent_and_depth(self, item_id: str, parent_id: Optional[str], depth: int) -> Item:
        """
        Write the parent pointer and cached depth of one item.

        Raises:
            ItemNotFoundError: If no row has the given id
        """
        connection = self._require_connection()

        result = connection.execute(f"""
            UPDATE roadmap_items
            SET parent_item_id = ?, item_depth = ?, updated_at = ?
            WHERE id = ?
            RETURNING {_ITEM_COLUMNS}
        """, [parent_id, depth, datetime.now(), item_id]).fetchone()

        if not result:
            raise ItemNotFoundError(item_id)
        return self._row_to_item(result)

    def bulk_update_depths(self, updates: List[DepthUpdate]) -> None:
        """
        Write cached depths for a batch of items.

        Raises:
            ItemNotFoundError: If any id in the batch is unknown; nothing is written
        """
        connection = self._require_connection()
        if not updates:
            return

        known = {item.id for item in self.get_items_by_ids([u.id for u in updates])}
        for update in updates:
            if update.id not in known:
                raise ItemNotFoundError(update.id)

        now = datetime.now()
        connection.executemany(
            "UPDATE roadmap_items SET item_depth = ?, updated_at = ? WHERE id = ?",
            [[update.depth, now, update.id] for update in updates]
        )
        logging.debug(f"Updated cached depth of {len(updates)} items")

    def section_of(self, item_id: str) -> Optional[str]:
        """
        Get the section id of an item.
        """
        connection = self._require_connection()

        result = connection.execute(
            "SELECT section_id FROM roadmap_items WHERE id = ?",
            [item_id]
        ).fetchone()
        return result[0] if result else None

    def list_root_items(
        self,
        project_id: Optional[str] = None,
        section_id: Optional[str] = None,
        include_archived: bool = False
    ) -> List[Item]:
        """
        List items without a parent, optionally filtered.

        Args:
            project_id: Filter by project (optional)
            section_id: Filter by section (optional)
            include_archived: Also return archived roots

        Returns:
            List of root items ordered by order_index
        """
        connection = self._require_connection()

        query = f"""
            SELECT {_ITEM_COLUMNS}
            FROM roadmap_items
            WHERE parent_item_id IS NULL
        """
        params = []

        if project_id:
            query += " AND project_id = ?"
            params.append(project_id)

        if section_id:
            query += " AND section_id = ?"
            params.append(section_id)

        if not include_archived:
            query += " AND status <> ?"
            params.append(ItemStatus.ARCHIVED.value)

        query += " ORDER BY order_index, created_at, id"

        results = connection.execute(query, params).fetchall()
        return [self._row_to_item(row) for row in results]

    def list_items_in_section(self, section_id: str) -> List[Item]:
        """
        List every item of a section.
        """
        connection = self._require_connection()

        results = connection.execute(f"""
            SELECT {_ITEM_COLUMNS}
            FROM roadmap_items
            WHERE section_id = ?
            ORDER BY item_depth, order_index, created_at, id
        """, [section_id]).fetchall()

        return [self._row_to_item(row) for row in results]

    def _begin(self) -> None:
        self._require_connection().begin()

    def _commit(self) -> None:
        self._require_connection().commit()

    def _rollback(self) -> None:
        self._require_connection().rollback()
        logging.info("Rolled back database transaction")

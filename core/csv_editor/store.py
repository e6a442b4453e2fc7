from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict
from typing import Callable

from .models import CsvTable
from .service import CsvEditorError


logger = logging.getLogger(__name__)


class TableNotFoundError(CsvEditorError):
    code = "TABLE_NOT_FOUND"


class TableStore:
    """
    table_id -> CsvTable のインメモリ保持。

    - 編集のたびにテーブル全体を差し替える（部分更新はしない）
    - max_tables を超えたら、最も長く触られていないテーブルから捨てる
    - プロセスが落ちれば中身は消える（永続化はしない）
    """

    def __init__(self, max_tables: int = 256):
        if max_tables < 1:
            raise ValueError("max_tables must be >= 1")
        self.max_tables = max_tables
        self._tables: "OrderedDict[str, CsvTable]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tables)

    def __contains__(self, table_id: object) -> bool:
        with self._lock:
            return table_id in self._tables

    def create(self, table: CsvTable) -> str:
        table_id = uuid.uuid4().hex
        with self._lock:
            self._tables[table_id] = table
            while len(self._tables) > self.max_tables:
                evicted_id, _ = self._tables.popitem(last=False)
                logger.info("evicted table %s (store limit %d)", evicted_id, self.max_tables)
        return table_id

    def get(self, table_id: str) -> CsvTable:
        with self._lock:
            return self._get_locked(table_id)

    def replace(self, table_id: str, table: CsvTable) -> CsvTable:
        with self._lock:
            self._get_locked(table_id)
            self._tables[table_id] = table
        return table

    def update(self, table_id: str, fn: Callable[[CsvTable], CsvTable]) -> CsvTable:
        """fn(現在のテーブル) の結果で差し替える。fn が例外を投げたら何も変えない。"""
        with self._lock:
            current = self._get_locked(table_id)
            updated = fn(current)
            self._tables[table_id] = updated
        return updated

    def discard(self, table_id: str) -> bool:
        with self._lock:
            return self._tables.pop(table_id, None) is not None

    def _get_locked(self, table_id: str) -> CsvTable:
        try:
            table = self._tables[table_id]
        except KeyError:
            raise TableNotFoundError(f"Table {table_id} not found") from None
        self._tables.move_to_end(table_id)
        return table

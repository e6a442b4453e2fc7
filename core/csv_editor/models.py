from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.config import ConfigDict


LineEnding = Literal["lf", "crlf"]

# csv.writer に渡すとクォートや改行と区別できなくなる文字
FORBIDDEN_DELIMITERS = frozenset({'"', "\r", "\n"})


class CsvTable(BaseModel):
    """
    読み込んだ CSV のインメモリ表現。

    - headers: 1 行目（列名）
    - rows   : 2 行目以降。各行の長さは headers と同じであることが期待されるが、
               壊れた CSV の短い行・長い行はそのまま保持する（補正しない）

    編集操作はこのモデルを書き換えず、常に新しい CsvTable を返す。
    """

    headers: List[str]
    rows: List[List[str]] = Field(default_factory=list)
    delimiter: str = ","
    filename: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def column_count(self) -> int:
        return len(self.headers)

    @property
    def row_count(self) -> int:
        return len(self.rows)


class Issue(BaseModel):
    type: str
    row: Optional[int] = None
    description: str


class Stats(BaseModel):
    rows: int = 0
    columns: int = 0
    columns_min: int = 0
    columns_max: int = 0
    columns_mode: int = 0
    ragged_rows: int = 0
    delimiter_detected: Optional[str] = None


class TableSummary(BaseModel):
    """API が返すテーブルの現在状態"""

    table_id: str
    filename: Optional[str] = None
    headers: List[str]
    rows: List[List[str]]
    stats: Stats
    issues: List[Issue] = Field(default_factory=list)


class CsvUploadRequest(BaseModel):
    """
    JSON でのアップロード。ブラウザ側で File を Base64 化して送る。
    delimiter 省略時は 1 行目から自動判定する。
    """

    csv_b64: str
    filename: Optional[str] = None
    delimiter: Optional[str] = Field(default=None, min_length=1, max_length=1)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "csv_b64": "<Base64 encoded CSV string>",
                "filename": "people.csv",
            }
        }
    )


class CellEditRequest(BaseModel):
    row: int = Field(ge=0)
    column: int = Field(ge=0)
    value: str


class ExportOptions(BaseModel):
    """書き出し設定。デフォルトはカンマ区切り・CRLF・BOM なし。"""

    delimiter: str = Field(default=",", min_length=1, max_length=1)
    line_ending: LineEnding = "crlf"
    add_bom: bool = False
    filename: str = "edited_data.csv"

    @field_validator("delimiter")
    @classmethod
    def _delimiter_must_be_splittable(cls, value: str) -> str:
        if value in FORBIDDEN_DELIMITERS:
            raise ValueError(f"delimiter {value!r} cannot be used")
        return value

from __future__ import annotations

import base64
import binascii
import csv
import io
import logging
import statistics
from typing import List, Optional, Tuple

from .models import FORBIDDEN_DELIMITERS, CsvTable, ExportOptions, Issue, Stats


logger = logging.getLogger(__name__)

# 読み込み時に順に試すエンコーディング。latin-1 は必ず成功するので最後に置く
FALLBACK_ENCODINGS = ("utf-8-sig", "utf-8", "cp1252", "latin-1")
DELIMITER_CANDIDATES = (",", ";", "\t", "|")


class CsvEditorError(Exception):
    """編集モデルが投げる例外の基底クラス。code は API のエラーコードになる。"""

    code = "CSV_EDITOR_ERROR"


class InvalidBase64Error(CsvEditorError):
    """Base64 デコード失敗時に投げる独自例外"""

    code = "INVALID_BASE64"


class EmptyCsvError(CsvEditorError):
    code = "EMPTY_CSV"


class CsvParseError(CsvEditorError):
    code = "CSV_PARSE_ERROR"


class InvalidDelimiterError(CsvParseError):
    """クォート文字・改行を区切り文字に指定された"""

    code = "INVALID_DELIMITER"


class RowIndexError(CsvEditorError):
    code = "ROW_OUT_OF_RANGE"


class ColumnIndexError(CsvEditorError):
    code = "COLUMN_OUT_OF_RANGE"


# ---------------------------------------------------------------------------
# Base64 / テキストユーティリティ
# ---------------------------------------------------------------------------


def decode_base64(csv_b64: str) -> bytes:
    """Base64 -> bytes に変換

    - 先に空白類（スペース・改行・タブなど）をすべて削除
    - そのうえで validate=True で厳密に Base64 を検証
    """
    try:
        compact = "".join(csv_b64.split())
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidBase64Error("csv_b64 is not valid Base64") from exc


def decode_upload(data: bytes) -> str:
    """アップロードされたバイト列をテキストにする。

    UTF-8 (BOM 付き含む) を優先し、ダメなら Windows 系 -> latin-1 の順に試す。
    """
    text: Optional[str] = None
    for encoding in FALLBACK_ENCODINGS:
        try:
            text = data.decode(encoding)
        except UnicodeDecodeError:
            continue
        if encoding not in ("utf-8-sig", "utf-8"):
            logger.info("upload decoded with fallback encoding %s", encoding)
        break

    # 空白だけの行も 1 セルの CSV として扱う。BOM は utf-8-sig で除去済み
    if text is None or text == "":
        raise EmptyCsvError("CSV file is empty")
    return text


def detect_delimiter(line: str) -> str:
    """ごく簡易な区切り文字推定

    - , ; \\t | の出現回数を比較し、最多のものを採用
    - どれもほぼ出てこない場合は ',' をデフォルトとする
    """
    counts = {c: line.count(c) for c in DELIMITER_CANDIDATES}
    best = max(counts.items(), key=lambda x: x[1])
    if best[1] == 0:
        return ","
    return best[0]


def check_delimiter(delimiter: str) -> str:
    """区切り文字として使えるか確認する。1 文字で、クォート文字・改行以外。"""
    if len(delimiter) != 1 or delimiter in FORBIDDEN_DELIMITERS:
        raise InvalidDelimiterError(f"Delimiter {delimiter!r} cannot be used")
    return delimiter


def _first_non_empty_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip() != "":
            return line
    return ""


# ---------------------------------------------------------------------------
# パース
# ---------------------------------------------------------------------------


def parse_csv(
    text: str,
    delimiter: Optional[str] = None,
    filename: Optional[str] = None,
) -> CsvTable:
    """CSV テキストを CsvTable にする。

    1 行目を headers、それ以降を rows とする。列数の合わない行も補正せずそのまま持つ。
    先頭の空行は読み飛ばすが、データ行の途中の空行は [] として残す。
    """
    if delimiter is None:
        delimiter = detect_delimiter(_first_non_empty_line(text))
    else:
        check_delimiter(delimiter)

    # newline="" で渡し、クォート内の改行をそのまま保持させる
    reader = csv.reader(
        io.StringIO(text, newline=""),
        delimiter=delimiter,
        quotechar='"',
        doublequote=True,
        skipinitialspace=False,
    )
    try:
        all_rows: List[List[str]] = [row for row in reader]
    except csv.Error as exc:
        raise CsvParseError(f"CSV could not be parsed: {exc}") from exc

    while all_rows and len(all_rows[0]) == 0:
        all_rows.pop(0)

    if not all_rows:
        raise EmptyCsvError("CSV file has no rows")

    table = CsvTable(
        headers=all_rows[0],
        rows=all_rows[1:],
        delimiter=delimiter,
        filename=filename,
    )
    logger.info(
        "parsed csv filename=%s columns=%d rows=%d delimiter=%r",
        filename,
        table.column_count,
        table.row_count,
        delimiter,
    )
    return table


def load_upload(
    data: bytes,
    delimiter: Optional[str] = None,
    filename: Optional[str] = None,
) -> CsvTable:
    """バイト列 -> テキスト -> CsvTable の一連の読み込み"""
    return parse_csv(decode_upload(data), delimiter=delimiter, filename=filename)


# ---------------------------------------------------------------------------
# 編集操作（すべて新しい CsvTable を返す）
# ---------------------------------------------------------------------------


def _check_row_index(table: CsvTable, row: int) -> None:
    if row < 0 or row >= table.row_count:
        raise RowIndexError(f"Row {row} does not exist (table has {table.row_count} rows)")


def edit_cell(table: CsvTable, row: int, column: int, value: str) -> CsvTable:
    """1 セルを書き換えた新しいテーブルを返す。

    列数が足りない行は、column の位置まで空文字で埋めてから代入する。
    """
    _check_row_index(table, row)

    target = list(table.rows[row])
    limit = max(table.column_count, len(target))
    if column < 0 or column >= limit:
        raise ColumnIndexError(f"Column {column} does not exist (row has {limit} columns)")

    if column >= len(target):
        target.extend("" for _ in range(column - len(target) + 1))
    target[column] = value

    new_rows = [list(r) for r in table.rows]
    new_rows[row] = target
    return table.model_copy(update={"rows": new_rows})


def add_row(table: CsvTable) -> CsvTable:
    """末尾に空行（列数 = headers の長さ）を追加する"""
    new_row = ["" for _ in range(table.column_count)]
    new_rows = [list(r) for r in table.rows] + [new_row]
    return table.model_copy(update={"rows": new_rows})


def delete_row(table: CsvTable, row: int) -> CsvTable:
    """指定行を除いた新しいテーブルを返す。末尾より後ろの index は何も消さない。"""
    if row < 0:
        raise RowIndexError(f"Row {row} does not exist")
    new_rows = [list(r) for idx, r in enumerate(table.rows) if idx != row]
    return table.model_copy(update={"rows": new_rows})


# ---------------------------------------------------------------------------
# 書き出し
# ---------------------------------------------------------------------------


def to_csv(table: CsvTable, options: Optional[ExportOptions] = None) -> str:
    """headers + rows を CSV テキストに再構成する。"""
    if options is None:
        options = ExportOptions()
    check_delimiter(options.delimiter)

    if options.line_ending == "lf":
        lineterminator = "\n"
    else:
        lineterminator = "\r\n"

    output = io.StringIO(newline="")
    writer = csv.writer(
        output,
        delimiter=options.delimiter,
        quotechar='"',
        quoting=csv.QUOTE_MINIMAL,
        lineterminator=lineterminator,
        doublequote=True,
    )
    writer.writerow(table.headers)
    writer.writerows(table.rows)

    csv_text = output.getvalue()
    if options.add_bom and not csv_text.startswith("\ufeff"):
        csv_text = "\ufeff" + csv_text
    return csv_text


# ---------------------------------------------------------------------------
# 構造解析 / Stats
# ---------------------------------------------------------------------------


def summarize(table: CsvTable) -> Tuple[Stats, List[Issue]]:
    """行ごとの列数を headers と比べる。診断のみで、行は修正しない。"""
    issues: List[Issue] = []
    expected = table.column_count

    if not table.rows:
        stats = Stats(
            rows=0,
            columns=expected,
            columns_min=expected,
            columns_max=expected,
            columns_mode=expected,
            delimiter_detected=table.delimiter,
        )
        return stats, issues

    col_counts = [len(r) for r in table.rows]
    # 最頻値が複数あるときは先に現れた方
    columns_mode = statistics.mode(col_counts)

    for idx, col_count in enumerate(col_counts):
        if col_count != expected:
            issues.append(
                Issue(
                    type="COLUMN_COUNT_MISMATCH",
                    row=idx,
                    description=f"Row has {col_count} columns (header has {expected}).",
                )
            )

    stats = Stats(
        rows=len(col_counts),
        columns=expected,
        columns_min=min(col_counts),
        columns_max=max(col_counts),
        columns_mode=columns_mode,
        ragged_rows=len(issues),
        delimiter_detected=table.delimiter,
    )
    return stats, issues

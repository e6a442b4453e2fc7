# core/csv_editor/__init__.py

"""
CSV Editor core package.

- models.py : Pydantic モデル定義
- service.py: 編集モデル本体（デコード / パース / セル編集 / 行追加・削除 / CSV 書き出し）
- store.py  : テーブルのインメモリ保持（table_id -> CsvTable）
"""

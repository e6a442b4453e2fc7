from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response

# ============================================================
# プロジェクトルートを sys.path に追加
# （Lambda / uvicorn どちらでも core パッケージを解決できるように）
# ============================================================
ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from backend.fastapi_app.settings import Settings, load_settings  # noqa: E402
from core.csv_editor import service  # noqa: E402
from core.csv_editor.models import (  # noqa: E402
    CellEditRequest,
    CsvTable,
    CsvUploadRequest,
    ExportOptions,
    LineEnding,
    TableSummary,
)
from core.csv_editor.service import CsvEditorError  # noqa: E402
from core.csv_editor.store import TableStore  # noqa: E402


API_VERSION = "0.1.0"
INDEX_HTML_PATH = Path(__file__).resolve().parent / "static" / "index.html"

logger = logging.getLogger(__name__)


class UploadTooLargeError(CsvEditorError):
    code = "UPLOAD_TOO_LARGE"


ERROR_STATUS = {
    "INVALID_BASE64": 400,
    "EMPTY_CSV": 400,
    "CSV_PARSE_ERROR": 400,
    "INVALID_DELIMITER": 422,
    "UPLOAD_TOO_LARGE": 413,
    "TABLE_NOT_FOUND": 404,
    "ROW_OUT_OF_RANGE": 422,
    "COLUMN_OUT_OF_RANGE": 422,
}


def _summary(table_id: str, table: CsvTable) -> TableSummary:
    stats, issues = service.summarize(table)
    return TableSummary(
        table_id=table_id,
        filename=table.filename,
        headers=table.headers,
        rows=table.rows,
        stats=stats,
        issues=issues,
    )


def get_store(request: Request) -> TableStore:
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _check_upload_size(data: bytes, settings: Settings) -> None:
    if len(data) > settings.max_upload_bytes:
        raise UploadTooLargeError(
            f"Upload is {len(data)} bytes; limit is {settings.max_upload_bytes} bytes"
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    if settings is None:
        settings = load_settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="CSV Editor",
        version=API_VERSION,
        description="Drop a CSV, edit it as a table, download it again.",
        root_path=settings.root_path,
    )
    app.state.settings = settings
    app.state.store = TableStore(max_tables=settings.max_tables)

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    index_html = INDEX_HTML_PATH.read_text(encoding="utf-8")

    @app.exception_handler(CsvEditorError)
    async def csv_editor_error_handler(_: Request, exc: CsvEditorError) -> JSONResponse:
        status_code = ERROR_STATUS.get(exc.code, 400)
        logger.info("request failed code=%s status=%d: %s", exc.code, status_code, exc)
        return JSONResponse(
            status_code=status_code,
            content={
                "error": {
                    "code": exc.code,
                    "message": str(exc),
                },
                "meta": {
                    "version": API_VERSION,
                },
            },
        )

    @app.get("/", response_class=HTMLResponse, include_in_schema=False)
    async def index_page():
        return HTMLResponse(index_html)

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok", "version": API_VERSION}

    # --------------------------------------------------------
    # 読み込み
    # --------------------------------------------------------

    @app.post("/v0/tables", response_model=TableSummary)
    def create_table_from_base64(
        payload: CsvUploadRequest,
        store: TableStore = Depends(get_store),
        settings: Settings = Depends(get_settings),
    ):
        data = service.decode_base64(payload.csv_b64)
        _check_upload_size(data, settings)
        table = service.load_upload(data, delimiter=payload.delimiter, filename=payload.filename)
        table_id = store.create(table)
        return _summary(table_id, table)

    @app.post("/v0/tables/upload", response_model=TableSummary)
    async def create_table_from_file(
        file: UploadFile = File(...),
        delimiter: Optional[str] = Form(default=None, min_length=1, max_length=1),
        store: TableStore = Depends(get_store),
        settings: Settings = Depends(get_settings),
    ):
        data = await file.read(settings.max_upload_bytes + 1)
        _check_upload_size(data, settings)
        table = service.load_upload(data, delimiter=delimiter, filename=file.filename)
        table_id = store.create(table)
        return _summary(table_id, table)

    # --------------------------------------------------------
    # 参照・編集（毎回テーブル全体を差し替える）
    # --------------------------------------------------------

    @app.get("/v0/tables/{table_id}", response_model=TableSummary)
    def read_table(table_id: str, store: TableStore = Depends(get_store)):
        return _summary(table_id, store.get(table_id))

    @app.put("/v0/tables/{table_id}/cells", response_model=TableSummary)
    def edit_cell(
        table_id: str,
        payload: CellEditRequest,
        store: TableStore = Depends(get_store),
    ):
        table = store.update(
            table_id,
            lambda t: service.edit_cell(t, payload.row, payload.column, payload.value),
        )
        return _summary(table_id, table)

    @app.post("/v0/tables/{table_id}/rows", response_model=TableSummary)
    def add_row(table_id: str, store: TableStore = Depends(get_store)):
        table = store.update(table_id, service.add_row)
        return _summary(table_id, table)

    @app.delete("/v0/tables/{table_id}/rows/{row}", response_model=TableSummary)
    def delete_row(table_id: str, row: int, store: TableStore = Depends(get_store)):
        table = store.update(table_id, lambda t: service.delete_row(t, row))
        return _summary(table_id, table)

    # --------------------------------------------------------
    # 書き出し・破棄
    # --------------------------------------------------------

    @app.get("/v0/tables/{table_id}/export")
    def export_table(
        table_id: str,
        delimiter: str = Query(default=",", min_length=1, max_length=1),
        line_ending: LineEnding = Query(default="crlf"),
        add_bom: bool = Query(default=False),
        store: TableStore = Depends(get_store),
        settings: Settings = Depends(get_settings),
    ):
        # ExportOptions の検証より先に、API のエラー形式で弾く
        service.check_delimiter(delimiter)
        options = ExportOptions(
            delimiter=delimiter,
            line_ending=line_ending,
            add_bom=add_bom,
            filename=settings.export_filename,
        )
        csv_text = service.to_csv(store.get(table_id), options)
        return Response(
            content=csv_text.encode("utf-8"),
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{options.filename}"'},
        )

    @app.delete("/v0/tables/{table_id}", status_code=204)
    def discard_table(table_id: str, store: TableStore = Depends(get_store)):
        # 画面を離れるたびに呼ばれるので、存在しなくてもエラーにしない
        store.discard(table_id)
        return Response(status_code=204)

    return app


app = create_app()


def run() -> None:
    """`csv-editor` コマンド。ローカルで uvicorn を起動する。"""
    import uvicorn

    host = os.getenv("CSV_EDITOR_HOST", "127.0.0.1")
    port = int(os.getenv("CSV_EDITOR_PORT", "8000"))
    uvicorn.run(app, host=host, port=port)

import sys
from pathlib import Path

import pytest

# tests/ から見て 1 つ上 = プロジェクトルート
PROJECT_ROOT = Path(__file__).resolve().parents[1]

# プロジェクトルートを sys.path の先頭に追加
project_root_str = str(PROJECT_ROOT)
if project_root_str not in sys.path:
    sys.path.insert(0, project_root_str)


@pytest.fixture()
def client():
    """毎テスト新しいアプリ（= 空のストア）を使う"""
    pytest.importorskip("httpx")
    from fastapi.testclient import TestClient

    from backend.fastapi_app.main import create_app
    from backend.fastapi_app.settings import Settings

    app = create_app(Settings(max_upload_bytes=4096, max_tables=8))
    return TestClient(app)

import json
from types import SimpleNamespace

import pytest

from backend.fastapi_app.settings import load_settings


def test_settings_defaults(monkeypatch):
    for name in (
        "CSV_EDITOR_ROOT_PATH",
        "CSV_EDITOR_MAX_UPLOAD_BYTES",
        "CSV_EDITOR_MAX_TABLES",
        "CSV_EDITOR_EXPORT_FILENAME",
        "CSV_EDITOR_LOG_LEVEL",
        "CORS_ALLOW_ORIGINS",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.root_path == ""
    assert settings.max_upload_bytes == 10 * 1024 * 1024
    assert settings.max_tables == 256
    assert settings.export_filename == "edited_data.csv"
    assert settings.log_level == "INFO"
    assert settings.cors_origins == []


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("CSV_EDITOR_MAX_TABLES", "3")
    monkeypatch.setenv("CSV_EDITOR_LOG_LEVEL", "debug")
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "http://localhost:5173, ,http://127.0.0.1:5173")

    settings = load_settings()

    assert settings.max_tables == 3
    assert settings.log_level == "DEBUG"
    assert settings.cors_origins == ["http://localhost:5173", "http://127.0.0.1:5173"]


def test_settings_rejects_bad_integer(monkeypatch):
    monkeypatch.setenv("CSV_EDITOR_MAX_UPLOAD_BYTES", "lots")

    with pytest.raises(RuntimeError):
        load_settings()


def test_lambda_stage_base_path():
    pytest.importorskip("mangum")
    from backend.fastapi_app.lambda_handler import _stage_base_path

    assert _stage_base_path({"requestContext": {"stage": "dev"}}) == "/dev"
    assert _stage_base_path({"requestContext": {"stage": "$default"}}) is None
    assert _stage_base_path({}) is None


def test_lambda_handler_serves_healthz_under_stage():
    """
    API Gateway (HTTP API, payload v2) のイベントを handler に通す。
    ステージ名 /dev は剥がされて /healthz にルーティングされる。
    """
    pytest.importorskip("mangum")
    from backend.fastapi_app.lambda_handler import handler

    event = {
        "version": "2.0",
        "routeKey": "$default",
        "rawPath": "/dev/healthz",
        "rawQueryString": "",
        "headers": {"host": "example.execute-api.ap-northeast-1.amazonaws.com"},
        "requestContext": {
            "accountId": "123456789012",
            "apiId": "example",
            "domainName": "example.execute-api.ap-northeast-1.amazonaws.com",
            "http": {
                "method": "GET",
                "path": "/dev/healthz",
                "protocol": "HTTP/1.1",
                "sourceIp": "127.0.0.1",
                "userAgent": "pytest",
            },
            "requestId": "req-1",
            "routeKey": "$default",
            "stage": "dev",
            "time": "19/Oct/2026:00:00:00 +0000",
            "timeEpoch": 1792368000000,
        },
        "isBase64Encoded": False,
    }

    resp = handler(event, SimpleNamespace(aws_request_id="req-1"))

    assert resp["statusCode"] == 200
    assert json.loads(resp["body"])["status"] == "ok"

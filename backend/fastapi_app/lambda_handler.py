from __future__ import annotations

import json
from typing import Dict, Optional

from mangum import Mangum

from backend.fastapi_app.main import app


_ADAPTERS: Dict[Optional[str], Mangum] = {}


def _safe_get(d, *keys, default=None):
    cur = d
    for k in keys:
        if not isinstance(cur, dict) or k not in cur:
            return default
        cur = cur[k]
    return cur


def _stage_base_path(event) -> Optional[str]:
    """API Gateway のステージ名 (/dev, /prod) を base path として返す。$default は剥がさない。"""
    stage = _safe_get(event, "requestContext", "stage", default=None)
    if stage and stage != "$default":
        return f"/{stage}"
    return None


def _adapter(base_path: Optional[str]) -> Mangum:
    # ウォームスタート時は同じアダプタを使い回す
    if base_path not in _ADAPTERS:
        _ADAPTERS[base_path] = Mangum(app, api_gateway_base_path=base_path, lifespan="off")
    return _ADAPTERS[base_path]


def handler(event, context):
    base_path = _stage_base_path(event)

    print(
        json.dumps(
            {
                "diag": "incoming_request",
                "base_path": base_path,
                "method": _safe_get(event, "requestContext", "http", "method", default=None),
                "rawPath": event.get("rawPath"),
                "body_bytes": len(event.get("body") or ""),
            },
            ensure_ascii=False,
        )
    )

    return _adapter(base_path)(event, context)

"""Mock catalog server for exercising catalog updates.

Serves a filament catalog JSON the way the public mirrors do, plus an admin
API to change it so that version detection can be observed.

Usage:
    python -m simulation.mock_catalog

    # Then point the reader at it:
    SPOOLTAG_CATALOG_PRIMARY_URL=http://localhost:8090/filaments_color_codes.json \
        python -m spooltag sync-catalog

Catalog API (port 8090):
    GET  /filaments_color_codes.json  -> current catalog

Admin API (port 8091):
    GET  /admin/health                -> health check
    POST /admin/entries               -> add a catalog row (JSON body)
    POST /admin/reset                 -> restore the seed catalog
    POST /admin/outage                -> toggle HTTP 503 on the catalog API
"""

from __future__ import annotations

import copy
import json
import os

from aiohttp import web

SEED_ENTRIES = [
    {
        "fila_id": "GFA00",
        "fila_color_code": "10100",
        "fila_type": "PLA Basic",
        "fila_color_type": "single",
        "fila_color_name": {"en": "Jade White", "zh": "象牙白"},
        "fila_color": ["#FFFFFFFF"],
    },
    {
        "fila_id": "GFA00",
        "fila_color_code": "10101",
        "fila_type": "PLA Basic",
        "fila_color_type": "single",
        "fila_color_name": {"en": "Black", "zh": "黑色"},
        "fila_color": ["#000000FF"],
    },
    {
        "fila_id": "GFA00",
        "fila_color_code": "10900",
        "fila_type": "PLA Basic",
        "fila_color_type": "multi-color",
        "fila_color_name": {"en": "Red Blue", "zh": "红蓝"},
        "fila_color": ["#FF0000FF", "#0000FFFF"],
    },
    {
        "fila_id": "GFG00",
        "fila_color_code": "33102",
        "fila_type": "PETG HF",
        "fila_color_type": "single",
        "fila_color_name": {"en": "Orange", "zh": "橙色"},
        "fila_color": ["#FF6A13FF"],
    },
]


class CatalogState:
    def __init__(self) -> None:
        self.entries: list[dict] = []
        self.outage = False
        self.reset()

    def reset(self) -> None:
        self.entries = copy.deepcopy(SEED_ENTRIES)
        self.outage = False

    def to_json(self) -> str:
        return json.dumps({"version": len(self.entries), "data": self.entries}, ensure_ascii=False)


state = CatalogState()


async def handle_catalog(request: web.Request) -> web.Response:
    """GET /filaments_color_codes.json"""
    if state.outage:
        return web.Response(status=503, text="Service unavailable")
    return web.Response(text=state.to_json(), content_type="application/json")


async def admin_health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok", "entries": len(state.entries), "outage": state.outage})


async def admin_add_entry(request: web.Request) -> web.Response:
    """POST /admin/entries (body is one catalog row, fila_id required)"""
    data = await request.json()
    if not data.get("fila_id"):
        return web.json_response({"error": "fila_id is required"}, status=400)
    state.entries.append(data)
    print(f"[Mock Catalog] Added {data['fila_id']} {data.get('fila_color_code', '')}")
    return web.json_response({"entries": len(state.entries)}, status=201)


async def admin_reset(request: web.Request) -> web.Response:
    state.reset()
    print("[Mock Catalog] Catalog reset to seed data")
    return web.json_response({"status": "reset"})


async def admin_outage(request: web.Request) -> web.Response:
    state.outage = not state.outage
    print(f"[Mock Catalog] Outage {'on' if state.outage else 'off'}")
    return web.json_response({"outage": state.outage})


def create_catalog_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/filaments_color_codes.json", handle_catalog)
    return app


def create_admin_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/admin/health", admin_health)
    app.router.add_post("/admin/entries", admin_add_entry)
    app.router.add_post("/admin/reset", admin_reset)
    app.router.add_post("/admin/outage", admin_outage)
    return app


async def start_servers() -> None:
    import asyncio

    catalog_port = int(os.environ.get("MOCK_CATALOG_PORT", "8090"))
    admin_port = int(os.environ.get("MOCK_ADMIN_PORT", "8091"))

    catalog_runner = web.AppRunner(create_catalog_app())
    admin_runner = web.AppRunner(create_admin_app())
    await catalog_runner.setup()
    await admin_runner.setup()
    await web.TCPSite(catalog_runner, "0.0.0.0", catalog_port).start()
    await web.TCPSite(admin_runner, "0.0.0.0", admin_port).start()

    print(f"[Mock Catalog] Catalog API running on port {catalog_port}")
    print(f"[Mock Catalog] Admin API running on port {admin_port}")
    print()

    # Keep running
    await asyncio.Event().wait()


if __name__ == "__main__":
    import asyncio
    asyncio.run(start_servers())

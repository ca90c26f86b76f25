from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from fastapi import BackgroundTasks, Depends, FastAPI, File, HTTPException, Query, Request, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from .auth import AuthFailure, Authenticator, ChallengeVerifier, Principal, bearer_dependency, client_ip
from .config import ServiceConfig
from .objects import ObjectStore, content_type_for, valid_key
from .store import ServerStore

_LOGGER = logging.getLogger(__name__)

IMAGE_CACHE_CONTROL = "public, max-age=31536000, immutable"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _require_id(value: str | None) -> str:
    if not value or not value.strip():
        raise HTTPException(status_code=400, detail={"error": "Missing ID"})
    return value


def create_app(
    config: ServiceConfig | None = None,
    *,
    clock: Callable[[], int] | None = None,
    challenge_verifier: ChallengeVerifier | None = None,
) -> FastAPI:
    config = config or ServiceConfig.from_env()
    clock = clock or _now_ms
    app = FastAPI(title="Recipe Box")
    store = ServerStore(config.database_path, clock=clock)
    objects = ObjectStore(config.images_dir)
    authenticator = Authenticator(config, clock=clock, challenge_verifier=challenge_verifier)
    app.state.config = config
    app.state.store = store
    app.state.objects = objects
    app.state.authenticator = authenticator

    require_principal = bearer_dependency(lambda: app.state.config, clock)

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
        content = exc.detail if isinstance(exc.detail, dict) else {"error": str(exc.detail)}
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    def purge_tombstones() -> None:
        removed = store.purge_tombstones(clock() - config.tombstone_retention_ms)
        _LOGGER.debug("Tombstone sweep removed %s rows", removed)

    @app.get("/health")
    async def handle_health() -> dict[str, Any]:
        return {"status": "ok", "provisioned": config.provisioned}

    @app.post("/auth")
    async def handle_auth(data: dict[str, Any], request: Request) -> JSONResponse:
        try:
            result = await authenticator.authenticate(
                data.get("password"),
                data.get("challengeResponse"),
                remote_ip=client_ip(request),
            )
        except AuthFailure as err:
            return JSONResponse(status_code=err.status_code, content=err.as_dict())
        return JSONResponse(content=result)

    # ------------------------------------------------------------------
    @app.get("/recipes")
    def handle_recipes_get(since: int = Query(0, ge=0)) -> list[dict[str, Any]]:
        return store.changes_since(since)

    @app.post("/recipes")
    def handle_recipes_post(
        data: dict[str, Any],
        principal: Principal = Depends(require_principal),  # noqa: B008
    ) -> dict[str, Any]:
        try:
            timestamp = store.upsert_recipe(data)
        except ValueError as err:
            raise HTTPException(status_code=400, detail={"error": str(err)}) from err
        _LOGGER.debug("Stored recipe %s for %s", data.get("id"), principal.subject)
        return {"success": True, "timestamp": timestamp}

    @app.delete("/recipes")
    def handle_recipes_delete(
        background: BackgroundTasks,
        recipe_id: str | None = Query(None, alias="id"),
        principal: Principal = Depends(require_principal),  # noqa: B008
    ) -> dict[str, Any]:
        timestamp = store.delete_recipe(_require_id(recipe_id))
        background.add_task(purge_tombstones)
        return {"success": True, "timestamp": timestamp}

    # ------------------------------------------------------------------
    @app.get("/shopping")
    def handle_shopping_get(
        principal: Principal = Depends(require_principal),  # noqa: B008
    ) -> list[dict[str, Any]]:
        return store.list_shopping()

    @app.post("/shopping")
    def handle_shopping_post(
        data: dict[str, Any],
        principal: Principal = Depends(require_principal),  # noqa: B008
    ) -> dict[str, Any]:
        try:
            store.upsert_shopping_item(data)
        except ValueError as err:
            raise HTTPException(status_code=400, detail={"error": str(err)}) from err
        return {"success": True}

    @app.delete("/shopping")
    def handle_shopping_delete(
        item_id: str | None = Query(None, alias="id"),
        clear_all: str | None = Query(None, alias="clearAll"),
        principal: Principal = Depends(require_principal),  # noqa: B008
    ) -> dict[str, Any]:
        if clear_all == "true":
            removed = store.clear_shopping()
        elif clear_all == "checked":
            removed = store.clear_shopping(only_checked=True)
        else:
            removed = store.delete_shopping_item(_require_id(item_id))
        return {"success": True, "removed": removed}

    # ------------------------------------------------------------------
    @app.get("/plans")
    def handle_plans_get(
        principal: Principal = Depends(require_principal),  # noqa: B008
    ) -> list[dict[str, Any]]:
        return store.list_plans()

    @app.post("/plans")
    def handle_plans_post(
        data: dict[str, Any],
        principal: Principal = Depends(require_principal),  # noqa: B008
    ) -> dict[str, Any]:
        try:
            store.upsert_plan(data)
        except ValueError as err:
            raise HTTPException(status_code=400, detail={"error": str(err)}) from err
        return {"success": True}

    @app.delete("/plans")
    def handle_plans_delete(
        plan_id: str | None = Query(None, alias="id"),
        principal: Principal = Depends(require_principal),  # noqa: B008
    ) -> dict[str, Any]:
        store.delete_plan(_require_id(plan_id))
        return {"success": True}

    # ------------------------------------------------------------------
    @app.get("/images")
    def handle_images_get(key: str | None = Query(None)) -> Response:
        if not key or not valid_key(key):
            raise HTTPException(status_code=400, detail={"error": "Invalid image key"})
        data = objects.get(key)
        if data is None:
            raise HTTPException(status_code=404, detail={"error": "Image not found"})
        etag = f'"{key.split(".", 1)[0]}"'
        return Response(
            content=data,
            media_type=content_type_for(key),
            headers={"Cache-Control": IMAGE_CACHE_CONTROL, "ETag": etag},
        )

    @app.post("/images")
    async def handle_images_post(
        file: UploadFile = File(...),  # noqa: B008
        principal: Principal = Depends(require_principal),  # noqa: B008
    ) -> dict[str, Any]:
        data = await file.read()
        if not data:
            raise HTTPException(status_code=400, detail={"error": "Empty upload"})
        key, deduplicated = await run_in_threadpool(objects.put, data, file.filename)
        _LOGGER.debug("Image %s stored (deduplicated=%s)", key, deduplicated)
        return {"url": f"/images?key={key}", "key": key, "deduplicated": deduplicated}

    return app


def main() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(create_app(), host="0.0.0.0", port=8080)


if __name__ == "__main__":
    main()

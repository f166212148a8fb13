import json
import logging
import os

from aiohttp import web

from .constants import APP_NAME
from .db import DocumentStore
from .errors import ConstraintViolation, DocScanError, InvalidArgument, NotFound, NotInitialized
from .paths import get_max_upload_bytes
from .utils import blob_names, to_optional_int

logger = logging.getLogger("DocScan")

STORE_KEY = web.AppKey("store", DocumentStore)

_TRUTHY = {"1", "true", "yes", "on"}

routes = web.RouteTableDef()


def _json_response(obj, status=200):
    return web.Response(
        status=status,
        text=json.dumps(obj, ensure_ascii=False),
        content_type="application/json",
    )


def _error(msg, status):
    return _json_response({"error": msg}, status=status)


@web.middleware
async def error_middleware(request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except NotFound as exc:
        return _error(str(exc), 404)
    except (InvalidArgument, ValueError) as exc:
        return _error(str(exc), 400)
    except ConstraintViolation as exc:
        return _error(str(exc), 409)
    except NotInitialized as exc:
        return _error(str(exc), 503)
    except DocScanError as exc:
        logger.exception("%s %s failed", request.method, request.path)
        return _error(str(exc), 500)


async def _read_json(request):
    try:
        payload = await request.json()
    except json.JSONDecodeError as exc:
        raise InvalidArgument("invalid JSON body") from exc
    if not isinstance(payload, dict):
        raise InvalidArgument("JSON body must be an object")
    return payload


def _store(request):
    return request.app[STORE_KEY]


def _id(request, name="id"):
    try:
        return int(request.match_info[name])
    except ValueError as exc:
        raise InvalidArgument(f"invalid {name}: {request.match_info[name]!r}") from exc


@routes.get("/docscan/health")
async def health(request):
    store = _store(request)
    return _json_response({"ok": True, "app": APP_NAME, "schema_version": store.schema_version()})


@routes.get("/docscan/items")
async def list_items(request):
    folder_id = to_optional_int(request.query.get("folder_id"))
    return _json_response({"items": _store(request).get_all_items(folder_id)})


@routes.get("/docscan/search")
async def search(request):
    q = request.query.get("q", "")
    return _json_response({"q": q, "items": _store(request).search_items(q)})


@routes.get("/docscan/stats")
async def stats(request):
    return _json_response(_store(request).get_storage_stats())


@routes.get("/docscan/folders")
async def list_folders(request):
    parent_id = to_optional_int(request.query.get("parent_id"))
    return _json_response({"items": _store(request).get_folders(parent_id)})


@routes.post("/docscan/folders")
async def create_folder(request):
    payload = await _read_json(request)
    folder = _store(request).create_folder(
        payload.get("name", ""),
        to_optional_int(payload.get("parent_id")),
    )
    return _json_response(folder, status=201)


@routes.get("/docscan/folders/{id}/path")
async def folder_path(request):
    return _json_response({"items": _store(request).get_folder_path(_id(request))})


@routes.put("/docscan/folders/{id}")
async def update_folder(request):
    store = _store(request)
    folder_id = _id(request)
    payload = await _read_json(request)
    if "name" not in payload and "parent_id" not in payload:
        raise InvalidArgument("expected name and/or parent_id")

    folder = None
    if "name" in payload:
        folder = store.rename_folder(folder_id, payload.get("name"))
    if "parent_id" in payload:
        folder = store.move_folder(folder_id, to_optional_int(payload.get("parent_id")))
    return _json_response(folder)


@routes.delete("/docscan/folders/{id}")
async def delete_folder(request):
    deleted = _store(request).delete_folder(_id(request))
    return _json_response({"deleted": deleted})


@routes.post("/docscan/documents")
async def create_document(request):
    store = _store(request)
    if not (request.content_type or "").lower().startswith("multipart/"):
        raise InvalidArgument("expected multipart/form-data upload")

    form = await request.post()
    upload = form.get("file")
    if upload is None or not getattr(upload, "file", None):
        raise InvalidArgument("missing image file")

    upload_name, enhanced_name = blob_names()
    upload_path = os.path.join(store.staging_dir, "upload_" + upload_name)
    enhanced_path = os.path.join(store.staging_dir, "enhanced_" + enhanced_name)
    source = store.blobs.write_bytes(upload_path, upload.file.read())
    try:
        if str(form.get("enhance", "") or "").strip().lower() in _TRUTHY:
            grayscale = str(form.get("grayscale", "") or "").strip().lower() in _TRUTHY
            source = store.images.enhance(upload_path, enhanced_path, grayscale=grayscale)
        document = store.save_document(
            source,
            title=form.get("title"),
            category=form.get("category") or "general",
            folder_id=to_optional_int(form.get("folder_id")),
            tags=form.get("tags"),
        )
    finally:
        store.discard_blobs([upload_path, enhanced_path])
    return _json_response(document, status=201)


@routes.get("/docscan/documents/{id}")
async def get_document(request):
    return _json_response(_store(request).get_document_by_id(_id(request)))


@routes.get("/docscan/documents/{id}/image")
async def get_document_image(request):
    store = _store(request)
    document = store.get_document_by_id(_id(request))
    return web.Response(body=store.blobs.read_bytes(document["file_path"]), content_type="image/jpeg")


@routes.get("/docscan/documents/{id}/thumbnail")
async def get_document_thumbnail(request):
    store = _store(request)
    document = store.get_document_by_id(_id(request))
    if not document["thumbnail_path"]:
        return _error("thumbnail not found", 404)
    return web.Response(
        body=store.blobs.read_bytes(document["thumbnail_path"]),
        content_type="image/jpeg",
        headers={"Cache-Control": "public, max-age=3600"},
    )


@routes.put("/docscan/documents/{id}")
async def update_document(request):
    payload = await _read_json(request)
    return _json_response(_store(request).update_document(_id(request), payload))


@routes.post("/docscan/documents/{id}/move")
async def move_document(request):
    payload = await _read_json(request)
    document = _store(request).move_document_to_folder(
        _id(request),
        to_optional_int(payload.get("folder_id")),
    )
    return _json_response(document)


@routes.delete("/docscan/documents/{id}")
async def delete_document(request):
    deleted = _store(request).delete_document(_id(request))
    return _json_response({"deleted": deleted})


def create_app(store, client_max_size=None):
    """Build the HTTP app around an already initialized store."""
    app = web.Application(
        middlewares=[error_middleware],
        client_max_size=client_max_size or get_max_upload_bytes(),
    )
    app[STORE_KEY] = store
    app.add_routes(routes)
    return app

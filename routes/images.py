import azure.functions as func
import json, logging
from requests_toolbelt.multipart import decoder as mp

from utils.cors import cors_response
from services import unit_image_service as uis
from services.errors import ImageServiceError, PartialMoveError, UnsupportedPayload

logger = logging.getLogger(__name__)
bp = func.Blueprint()

# image listings and redirects rarely change
CACHE_30_DAYS = {"Cache-Control": "public, max-age=2592000, s-maxage=2592000"}


def _json(payload, status: int = 200, headers=None) -> func.HttpResponse:
    return cors_response(json.dumps(payload), status, "application/json", headers)


def _error(status: int, message: str, **extra) -> func.HttpResponse:
    return _json({"error": True, "message": message, **extra}, status)


def _service_error(e: ImageServiceError) -> func.HttpResponse:
    if isinstance(e, PartialMoveError):
        return _error(e.status_code, e.message, partial=True, operationId=e.operation_id, phase=e.phase)
    return _error(e.status_code, e.message)


def _unit_id(req: func.HttpRequest) -> int:
    return int(req.route_params["unit_id"])


def _read_upload(req: func.HttpRequest) -> bytes:
    """Raw body, or the 'file' part (else the first part) of a multipart body."""
    ctype = req.headers.get("content-type") or req.headers.get("Content-Type") or ""
    body = req.get_body() or b""
    if "multipart/form-data" not in ctype.lower():
        return body
    try:
        parts = mp.MultipartDecoder(body, ctype).parts
    except (mp.ImproperBodyPartContentException, mp.NonMultipartContentTypeException, ValueError) as e:
        raise UnsupportedPayload(f"Malformed multipart body: {e}") from e
    if not parts:
        raise UnsupportedPayload("No multipart parts found")
    for p in parts:
        disp = p.headers.get(b"Content-Disposition", b"").decode("utf-8", "ignore")
        if 'name="file"' in disp:
            return p.content
    return parts[0].content


@bp.function_name(name="UnitImages")
@bp.route(route="units/{unit_id:int}/images", methods=["GET", "POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def unit_images(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return cors_response("", 204)

    try:
        unit_id = _unit_id(req)
    except (KeyError, ValueError):
        return _error(400, "Invalid unit ID")

    try:
        if req.method == "GET":
            return _json(uis.list_images(unit_id), 200, CACHE_30_DAYS)

        rec = uis.upload_image(unit_id, _read_upload(req))
        return _json(rec, 201)
    except ImageServiceError as e:
        return _service_error(e)
    except Exception:
        logger.exception("unit images %s failed for UnitID %s", req.method, unit_id)
        return _error(500, "Image request failed")


@bp.function_name(name="UnitImageItem")
@bp.route(route="units/{unit_id:int}/images/{name}", methods=["GET", "DELETE", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def unit_image_item(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return cors_response("", 204)

    try:
        unit_id = _unit_id(req)
    except (KeyError, ValueError):
        return _error(400, "Invalid unit ID")
    name = req.route_params.get("name", "")

    try:
        if req.method == "GET":
            url = uis.get_image_url(unit_id, name)
            return cors_response("", 302, headers={"Location": url, **CACHE_30_DAYS})

        if not uis.delete_image(unit_id, name):
            return _error(404, f"Image '{name}' not found")
        return cors_response("", 204)
    except ImageServiceError as e:
        return _service_error(e)
    except Exception:
        logger.exception("unit image %s failed for UnitID %s, name %s", req.method, unit_id, name)
        return _error(500, "Image request failed")


@bp.function_name(name="RenameUnitImage")
@bp.route(route="units/{unit_id:int}/images/{old_name}/rename/{new_name}", methods=["PUT", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def rename_unit_image(req: func.HttpRequest) -> func.HttpResponse:
    if req.method == "OPTIONS":
        return cors_response("", 204)

    try:
        unit_id = _unit_id(req)
    except (KeyError, ValueError):
        return _error(400, "Invalid unit ID")
    old_name = req.route_params.get("old_name", "")
    new_name = req.route_params.get("new_name", "")

    try:
        return _json(uis.rename_image(unit_id, old_name, new_name), 200)
    except ImageServiceError as e:
        if isinstance(e, PartialMoveError):
            logger.error("Rename %s -> %s for UnitID %s left a partial move (%s)", old_name, new_name, unit_id, e.operation_id)
        return _service_error(e)
    except Exception:
        logger.exception("Rename image failed for UnitID %s, %s -> %s", unit_id, old_name, new_name)
        return _error(500, "Rename failed")

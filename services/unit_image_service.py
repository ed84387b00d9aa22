# services/unit_image_service.py
import logging
from typing import Dict, List, Tuple

from services import image_mover
from services.blob_service import BlobStore, get_store
from services.errors import NotFound, ValidationError
from services.image_codec import CANONICAL_EXTENSION, decode_and_reencode
from services.index_allocator import next_index
from services.reorder_planner import plan_reorder
from services.unit_service import get_vin_for_unit
from utils.image_names import is_valid_image_name, parse_names, sort_key

logger = logging.getLogger(__name__)


def _require_valid_name(name: str) -> None:
    if not is_valid_image_name(name):
        raise ValidationError("Invalid image name. Use e.g., 1.jpg, 2.png.")


def _collection(unit_id: int) -> Tuple[BlobStore, str, str]:
    """(store, vin, namespace) for a unit; NotFound when the unit has no VIN."""
    vin = get_vin_for_unit(unit_id)
    if not vin:
        raise NotFound(f"UnitID {unit_id} not found")
    store = get_store()
    return store, vin, store.namespace(vin)


def list_images(unit_id: int) -> List[Dict]:
    """[{name, url}] sorted by position, then name. Hidden and non-image blobs are skipped."""
    store, vin, ns = _collection(unit_id)
    images = sorted(parse_names(store.list(ns)), key=sort_key)
    return [{"name": p.name, "url": store.public_url(vin, p.name)} for p in images]


def get_image_url(unit_id: int, name: str) -> str:
    _require_valid_name(name)
    store, vin, ns = _collection(unit_id)
    if not store.exists(ns + name):
        raise NotFound(f"Image '{name}' not found")
    return store.public_url(vin, name)


def upload_image(unit_id: int, data: bytes) -> Dict:
    """
    Normalize the upload to WebP and store it at the next free position.
    The payload is checked before anything in storage is touched.
    """
    store, vin, ns = _collection(unit_id)
    webp, content_type = decode_and_reencode(data)

    with store.lock(ns) as lock:
        image_mover.resume_pending(store, ns, keepalive=lock.renew)
        index = next_index(store, ns)
        name = f"{index}.{CANONICAL_EXTENSION}"
        store.upload(ns + name, webp, content_type, overwrite=False)

    logger.info("Uploaded %s for unit %s (%d bytes in, %d stored)", name, unit_id, len(data), len(webp))
    return {"name": name, "url": store.public_url(vin, name)}


def delete_image(unit_id: int, name: str) -> bool:
    _require_valid_name(name)
    store, vin, ns = _collection(unit_id)
    with store.lock(ns) as lock:
        image_mover.resume_pending(store, ns, keepalive=lock.renew)
        ok = store.delete(ns + name)
    logger.info("Delete %s for unit %s: %s", name, unit_id, "deleted" if ok else "not found")
    return ok


def rename_image(unit_id: int, old_name: str, new_name: str) -> Dict:
    """
    Move old_name to new_name's position, shifting the images in between.
    Returns {oldName, newName, moved}; newName is the stored name, which keeps
    the image's own extension.
    """
    if not is_valid_image_name(old_name) or not is_valid_image_name(new_name):
        raise ValidationError("Invalid image file names. Use numeric names like 1.jpg")
    store, vin, ns = _collection(unit_id)

    if old_name.lower() == new_name.lower():
        if not store.exists(ns + old_name):
            raise NotFound(f"Image '{old_name}' not found")
        return {"oldName": old_name, "newName": old_name, "moved": False}

    with store.lock(ns) as lock:
        image_mover.resume_pending(store, ns, keepalive=lock.renew)
        names = list(store.list(ns))
        plan = plan_reorder(ns, names, old_name, new_name)
        image_mover.execute(store, plan, keepalive=lock.renew)

    return {"oldName": old_name, "newName": plan.new_name, "moved": plan.moved}


def pending_reorders(unit_id: int) -> List[Dict]:
    """Journals of interrupted reorders for a unit (read-only)."""
    store, vin, ns = _collection(unit_id)
    return image_mover.pending_operations(store, ns)


def resume_reorders(unit_id: int) -> List[str]:
    store, vin, ns = _collection(unit_id)
    with store.lock(ns) as lock:
        return image_mover.resume_pending(store, ns, keepalive=lock.renew)

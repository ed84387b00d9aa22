# services/reorder_planner.py
"""
Pure planning for renaming/reordering one image inside a collection.

Given the materialized listing of a namespace, work out every blob move needed
to put one image at a new position while the images in between shift by one.
Nothing here touches storage, so every rejection happens before any mutation.

    1.jpg 2.png 3.webp, rename 1.jpg -> 3.jpg
        2.png  -> 1.png
        3.webp -> 2.webp
        1.jpg  -> 3.jpg
"""
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from services.errors import Conflict, NotFound, ValidationError
from utils.image_names import ImageName, parse_name, parse_names, with_index

STAGING_DIR = "__tmp__"


@dataclass(frozen=True)
class Move:
    source: str
    temp: Optional[str]  # None for a direct rename with no staging
    final: str


@dataclass
class ReorderPlan:
    old_name: str
    new_name: str  # actual final filename of the moved image
    moves: List[Move] = field(default_factory=list)
    operation_id: Optional[str] = None
    staging_prefix: Optional[str] = None

    @property
    def moved(self) -> bool:
        return bool(self.moves)

    @property
    def staged(self) -> bool:
        return any(m.temp for m in self.moves)


def staging_prefix(namespace: str, operation_id: str) -> str:
    return f"{namespace}{STAGING_DIR}/{operation_id}/"


def _by_index(parsed: Iterable[ImageName]) -> Dict[int, List[ImageName]]:
    index: Dict[int, List[ImageName]] = defaultdict(list)
    for p in parsed:
        index[p.index].append(p)
    return index


def plan_reorder(
    namespace: str,
    names: Iterable[str],
    old_name: str,
    new_name: str,
    operation_id: Optional[str] = None,
) -> ReorderPlan:
    """
    names: blob names relative to namespace (already listed; not re-read).
    Raises ValidationError / NotFound / Conflict before anything is moved.
    """
    old = parse_name(old_name)
    new = parse_name(new_name)
    if not old or not new:
        raise ValidationError("Invalid image file names. Use numeric names like 1.jpg")

    present = set(names)

    if old_name.lower() == new_name.lower():
        if old_name not in present:
            raise NotFound(f"Image '{old_name}' not found")
        return ReorderPlan(old_name, old_name)

    if old.index == new.index:
        # extension change only; nothing else can be in the way
        if old_name not in present:
            raise NotFound(f"Image '{old_name}' not found")
        if new_name in present:
            raise Conflict(f"Destination '{new_name}' already exists")
        return ReorderPlan(
            old_name,
            new_name,
            moves=[Move(namespace + old_name, None, namespace + new_name)],
            operation_id=operation_id or uuid.uuid4().hex,
        )

    index = _by_index(parse_names(present))
    if old.index not in index:
        raise NotFound(f"Image '{old_name}' not found")

    lo, hi = min(old.index, new.index), max(old.index, new.index)
    in_range = sorted(i for i in index if lo <= i <= hi)
    for i in in_range:
        if len(index[i]) > 1:
            clash = ", ".join(sorted(p.name for p in index[i]))
            raise Conflict(f"Position {i} is held by more than one image ({clash})")
    source = index[old.index][0]

    op_id = operation_id or uuid.uuid4().hex
    tmp = staging_prefix(namespace, op_id)

    def _move(item: ImageName, target: int) -> Move:
        return Move(namespace + item.name, tmp + item.name, namespace + with_index(item, target))

    moves: List[Move] = []
    if old.index < new.index:
        # moving down the list: (old, new] each step back one
        for i in in_range:
            if i != old.index:
                moves.append(_move(index[i][0], i - 1))
    else:
        # moving up: [new, old) each step forward one
        for i in reversed(in_range):
            if i != old.index:
                moves.append(_move(index[i][0], i + 1))
    moves.append(_move(source, new.index))

    sources = {m.source for m in moves}
    for m in moves:
        final_name = m.final[len(namespace):]
        if final_name in present and m.final not in sources:
            raise Conflict(f"Destination '{final_name}' is occupied by an unrelated image")

    return ReorderPlan(
        old_name,
        with_index(source, new.index),
        moves=moves,
        operation_id=op_id,
        staging_prefix=tmp,
    )

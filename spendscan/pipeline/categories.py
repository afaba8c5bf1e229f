"""
Category resolve-or-create.

Names are matched case-insensitively per ``(user, type)``; lookups are
batched so a large statement costs one SELECT plus one flush.
"""
from __future__ import annotations

import logging
import uuid
from typing import Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from spendscan.exceptions import InvalidCategory
from spendscan.models.category import CategoryModel

logger = logging.getLogger(__name__)


def category_key(name: str, type_: str) -> tuple[str, str]:
    return name.strip().lower(), type_


def list_category_names(db: Session, user_id: str, type_: str) -> list[str]:
    rows = (
        db.query(CategoryModel.name)
        .filter(CategoryModel.user_id == user_id, CategoryModel.type == type_)
        .order_by(CategoryModel.name)
        .all()
    )
    return [r.name for r in rows]


def find_categories(
    db: Session, user_id: str, keys: Iterable[tuple[str, str]]
) -> dict[tuple[str, str], CategoryModel]:
    keys = set(keys)
    existing = (
        db.query(CategoryModel)
        .filter(CategoryModel.user_id == user_id, CategoryModel.name_key.in_({k[0] for k in keys}))
        .all()
    )
    return {(c.name_key, c.type): c for c in existing if (c.name_key, c.type) in keys}


def resolve_categories(
    db: Session, user_id: str, pairs: Iterable[tuple[str, str]]
) -> dict[tuple[str, str], CategoryModel]:
    """Resolve ``(name, type)`` pairs, creating the missing ones.

    Returns a mapping keyed by ``category_key(name, type)``. New rows are
    flushed but not committed; the caller owns the transaction.

    If another request creates one of the same categories first, the unique
    constraint fails: the session is rolled back and the lookup repeated, so
    the winner's rows are reused. Call this before writing anything else in
    the transaction. ``InvalidCategory`` is raised only when the categories
    are still missing after that second lookup.
    """
    wanted: dict[tuple[str, str], str] = {}
    for name, type_ in pairs:
        key = category_key(name, type_)
        wanted.setdefault(key, name.strip())
    if not wanted:
        return {}

    resolved = find_categories(db, user_id, wanted)
    missing = [k for k in wanted if k not in resolved]
    if not missing:
        return resolved

    for key in missing:
        category = CategoryModel(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=wanted[key],
            name_key=key[0],
            type=key[1],
        )
        db.add(category)
        resolved[key] = category

    try:
        db.flush()
    except IntegrityError as e:
        db.rollback()
        logger.info("Category creation raced for user %s; looking up again", user_id)
        resolved = find_categories(db, user_id, wanted)
        unresolved = [wanted[k] for k in wanted if k not in resolved]
        if unresolved:
            raise InvalidCategory(
                "Category could not be resolved, please retry",
                details={"categories": unresolved},
            ) from e
        return resolved

    logger.info("Created %d categories for user %s: %s",
                len(missing), user_id, [wanted[k] for k in missing])
    return resolved


def resolve_or_create(db: Session, user_id: str, name: str, type_: str) -> CategoryModel:
    return resolve_categories(db, user_id, [(name, type_)])[category_key(name, type_)]

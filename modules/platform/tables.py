"""
Platform Module - Table Client
=================================
Table-scoped CRUD over the logical tables (profiles, produce, cart, orders).

Every call opens its own short-lived session on a worker thread and returns
plain row dicts, so callers can await several calls concurrently and never
hold ORM objects past the call.

Filters:
    field=value          equality
    field__in=[...]      membership

Joins follow relationship names, dotted for nesting:
    await client.table("cart").select(join=("produce.farmer",), consumer_id=uid)
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload
from starlette.concurrency import run_in_threadpool

from common.exceptions import RemoteError, NotFoundError
from modules.user.models import Profile
from modules.catalog.models import Produce
from modules.cart.models import CartItem
from modules.order.models import Order

logger = logging.getLogger("farm2home.platform")


TABLES = {
    "profiles": Profile,
    "produce": Produce,
    "cart": CartItem,
    "orders": Order,
}


# ==========================================
# Row serialization
# ==========================================

def _group_joins(join: Sequence[str]) -> Dict[str, List[str]]:
    """("produce.farmer", "consumer") -> {"produce": ["farmer"], "consumer": []}"""
    groups: Dict[str, List[str]] = {}
    for path in join:
        head, _, rest = path.partition(".")
        groups.setdefault(head, [])
        if rest:
            groups[head].append(rest)
    return groups


def row_to_dict(obj, join: Sequence[str] = ()) -> dict:
    """Serialize a mapped object (and the requested relationships) to a dict."""
    mapper = sa_inspect(obj).mapper
    row = {attr.key: getattr(obj, attr.key) for attr in mapper.column_attrs}
    for rel, nested in _group_joins(join).items():
        target = getattr(obj, rel)
        row[rel] = row_to_dict(target, nested) if target is not None else None
    return row


def _check_joins(model, join: Sequence[str]):
    for rel, nested in _group_joins(join).items():
        relationships = sa_inspect(model).relationships
        if rel not in relationships:
            raise RemoteError(f"Could not find a relationship '{rel}' on '{model.__tablename__}'")
        if nested:
            _check_joins(relationships[rel].mapper.class_, nested)


def _loader_options(model, join: Sequence[str]) -> list:
    options = []
    for path in join:
        current_model, option = model, None
        for rel in path.split("."):
            attr = getattr(current_model, rel)
            option = joinedload(attr) if option is None else option.joinedload(attr)
            current_model = sa_inspect(current_model).relationships[rel].mapper.class_
        options.append(option)
    return options


# ==========================================
# Table client
# ==========================================

class TableClient:
    """CRUD for one logical table."""

    def __init__(self, name: str, session_factory: Callable[[], Session]):
        if name not in TABLES:
            raise RemoteError(f"Unknown table '{name}'")
        self.name = name
        self.model = TABLES[name]
        self._session_factory = session_factory

    # ------------------------------------------
    # Public API
    # ------------------------------------------

    async def select(
        self,
        *,
        join: Sequence[str] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        **filters: Any,
    ) -> List[dict]:
        _check_joins(self.model, join)

        def work(db: Session) -> List[dict]:
            query = self._filtered(db, filters).options(*_loader_options(self.model, join))
            if order_by:
                column = self._column(order_by)
                query = query.order_by(column.desc() if descending else column.asc())
            return [row_to_dict(obj, join) for obj in query.all()]

        return await self._run("select", work)

    async def select_one(self, *, join: Sequence[str] = (), **filters: Any) -> dict:
        rows = await self.select(join=join, **filters)
        if not rows:
            raise NotFoundError(f"No row in '{self.name}' matches {filters}")
        return rows[0]

    async def insert(self, values: Dict[str, Any], *, join: Sequence[str] = ()) -> dict:
        _check_joins(self.model, join)
        for key in values:
            self._column(key)

        def work(db: Session) -> dict:
            obj = self.model(**values)
            db.add(obj)
            db.commit()
            db.refresh(obj)
            return row_to_dict(obj, join)

        return await self._run("insert", work)

    async def update(self, values: Dict[str, Any], **filters: Any) -> List[dict]:
        if not filters:
            raise RemoteError("UPDATE requires a filter")
        for key in values:
            self._column(key)

        def work(db: Session) -> List[dict]:
            objs = self._filtered(db, filters).all()
            for obj in objs:
                for key, value in values.items():
                    setattr(obj, key, value)
            db.commit()
            return [row_to_dict(obj) for obj in objs]

        return await self._run("update", work)

    async def delete(self, **filters: Any) -> int:
        if not filters:
            raise RemoteError("DELETE requires a filter")

        def work(db: Session) -> int:
            count = self._filtered(db, filters).delete(synchronize_session=False)
            db.commit()
            return count

        return await self._run("delete", work)

    # ------------------------------------------
    # Private helpers
    # ------------------------------------------

    def _column(self, name: str):
        if name not in sa_inspect(self.model).columns:
            raise RemoteError(f"Column '{name}' does not exist on '{self.name}'")
        return getattr(self.model, name)

    def _filtered(self, db: Session, filters: Dict[str, Any]):
        query = db.query(self.model)
        for key, value in filters.items():
            if key.endswith("__in"):
                query = query.filter(self._column(key[:-4]).in_(list(value)))
            else:
                query = query.filter(self._column(key) == value)
        return query

    async def _run(self, op: str, work: Callable[[Session], Any]) -> Any:
        def call():
            db = self._session_factory()
            try:
                return work(db)
            except IntegrityError as e:
                db.rollback()
                logger.warning(f"{op} on {self.name} violated a constraint: {e.orig}")
                raise RemoteError(f"{self.name}: constraint violation")
            except (SQLAlchemyError, OverflowError, ValueError) as e:
                # The driver rejects out-of-range integers before any SQL runs
                db.rollback()
                logger.error(f"{op} on {self.name} failed: {e}")
                raise RemoteError(f"{self.name}: {op} failed")
            finally:
                db.close()

        return await run_in_threadpool(call)

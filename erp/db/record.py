"""
Generic active-record layer over SQLAlchemy.

``ActiveRecord[T]`` is bound to one mapped class (which must carry ``RecordMixin``)
and to a session factory. It offers CRUD, chainable query building, pagination and
transaction scoping.

Every chain method returns a *new* record with a copy of the query state plus the
new clause; the receiver is never modified. A base record can therefore be shared by
concurrent requests, each chaining its own filters:

    users = ActiveRecord(User, session_factory)
    adults = users.where(User.age >= 18)
    admins = users.where(User.username == "admin")   # independent of ``adults``

Without a bound transaction every operation runs in its own short unit of work
(session checked out from the pool, committed, closed). ``with_transaction(tx)``
binds a record to a caller-owned ``Session``; such a record must stay on the task
that opened the transaction.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Generic, TypeVar

from sqlalchemy import Select, and_, func, not_, or_, select, text, update
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, attributes, load_only, selectinload, sessionmaker
from sqlalchemy.sql.elements import ColumnElement

from erp.db.base import RecordMixin, utcnow
from erp.db.filters import INCLUDE_DELETED
from erp.errors import (
    AppError,
    ConstraintViolation,
    DatabaseError,
    DeadlineExceeded,
    NotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=RecordMixin)
R = TypeVar("R")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 1000
DEFAULT_BATCH_SIZE = 100
ALL_FIELDS = "*"


@dataclass(frozen=True)
class QueryState:
    """Accumulated clauses. Immutable; chain methods build a modified copy."""

    # (operator, clause) pairs folded left to right: "and" | "not" | "or"
    conditions: tuple[tuple[str, Any], ...] = ()
    selects: tuple[Any, ...] = ()
    orders: tuple[Any, ...] = ()
    # (target, onclause, outer)
    joins: tuple[tuple[Any, Any, bool], ...] = ()
    groups: tuple[Any, ...] = ()
    havings: tuple[Any, ...] = ()
    preloads: tuple[str, ...] = ()
    limit: int | None = None
    offset: int | None = None
    include_deleted: bool = False


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list[T]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size


@dataclass(frozen=True)
class ActiveRecord(Generic[T]):
    model: type[T]
    session_factory: sessionmaker[Session]
    state: QueryState = field(default_factory=QueryState)
    tx: Session | None = None
    deadline: float | None = None

    # ------------------------------------------------------------------
    # binding
    # ------------------------------------------------------------------

    def with_transaction(self, tx: Session) -> ActiveRecord[T]:
        """Return a copy whose operations all run inside ``tx``."""
        return replace(self, tx=tx)

    def with_deadline(self, seconds: float) -> ActiveRecord[T]:
        """
        Return a copy that refuses to start any operation after ``seconds`` from now.

        The deadline is checked before each operation starts, not while a statement
        runs. ``transaction(fn)`` hands the callback a bare session, so only records
        derived from this one (``limited.with_transaction(tx)``) keep the deadline;
        ``other.with_transaction(tx)`` carries none.
        """
        return replace(self, deadline=time.monotonic() + seconds)

    # ------------------------------------------------------------------
    # chain methods
    # ------------------------------------------------------------------

    def where(self, *criteria: Any, **equals: Any) -> ActiveRecord[T]:
        return self._add_conditions("and", criteria, equals)

    def not_(self, *criteria: Any, **equals: Any) -> ActiveRecord[T]:
        return self._add_conditions("not", criteria, equals)

    def or_(self, *criteria: Any, **equals: Any) -> ActiveRecord[T]:
        return self._add_conditions("or", criteria, equals)

    def select(self, *columns: Any) -> ActiveRecord[T]:
        return self._derive(selects=self.state.selects + columns)

    def order(self, *clauses: Any) -> ActiveRecord[T]:
        return self._derive(orders=self.state.orders + tuple(_as_clause(c) for c in clauses))

    def limit(self, limit: int) -> ActiveRecord[T]:
        return self._derive(limit=limit)

    def offset(self, offset: int) -> ActiveRecord[T]:
        return self._derive(offset=offset)

    def group(self, *columns: Any) -> ActiveRecord[T]:
        return self._derive(groups=self.state.groups + tuple(self._column(c) for c in columns))

    def having(self, *criteria: Any) -> ActiveRecord[T]:
        return self._derive(havings=self.state.havings + tuple(_as_clause(c) for c in criteria))

    def join(self, target: Any, onclause: Any = None) -> ActiveRecord[T]:
        """LEFT OUTER JOIN ``target`` (a mapped class or relationship attribute)."""
        return self._derive(joins=self.state.joins + ((target, onclause, True),))

    def inner_join(self, target: Any, onclause: Any = None) -> ActiveRecord[T]:
        return self._derive(joins=self.state.joins + ((target, onclause, False),))

    def preload(self, *paths: str) -> ActiveRecord[T]:
        """Eager-load relationships; dotted paths load nested ones (``"roles.permissions"``)."""
        for path in paths:
            self._relationship_chain(path)
        return self._derive(preloads=self.state.preloads + paths)

    def unscoped(self) -> ActiveRecord[T]:
        """Include soft-deleted rows."""
        return self._derive(include_deleted=True)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, item: T) -> T:
        self._check_instance(item)
        with self._translate_errors("create"), self._unit_of_work() as session:
            session.add(item)
            session.flush()
        return item

    def batch_create(self, items: Iterable[T], batch_size: int = DEFAULT_BATCH_SIZE) -> list[T]:
        if batch_size <= 0:
            batch_size = DEFAULT_BATCH_SIZE

        items = list(items)
        for item in items:
            self._check_instance(item)

        with self._translate_errors("batch_create"), self._unit_of_work() as session:
            for start in range(0, len(items), batch_size):
                session.add_all(items[start : start + batch_size])
                session.flush()
        return items

    def read(self, id: int) -> T:
        stmt = self.where(self.model.id == id)._statement().order_by(self.model.id).limit(1)
        with self._translate_errors("read"), self._unit_of_work() as session:
            item = session.scalars(stmt).first()
        if item is None:
            raise NotFound(f"{self._name} {id} not found")
        return item

    def update(self, item: T) -> T:
        """
        Persist ``item`` by primary key.

        Only fields holding a non-zero value (anything but None, 0, "", False) are
        written, so a column cannot be reset to a zero value this way. To write zero
        values, select the columns explicitly:

            users.select("age").update(user)      # writes age even if it is 0
            users.select("*").update(user)        # writes every column

        Raises ``NotFound`` when no live row has ``item.id``.
        """

        self._check_instance(item)
        if item.id is None:
            raise ValidationError(f"{self._name} update requires an id")

        values = self._update_values(item)
        now = utcnow()
        values["updated_at"] = now

        stmt = update(self.model).where(self.model.id == item.id).values(**values)
        stmt = self._scope_update(stmt)

        with self._translate_errors("update"), self._unit_of_work() as session:
            result = session.execute(stmt)
            if result.rowcount == 0:
                raise NotFound(f"{self._name} {item.id} not found")
            if sa_inspect(item).session is session:
                session.refresh(item)
            else:
                attributes.set_committed_value(item, "updated_at", now)
        return item

    def update_columns(self, columns: Mapping[str, Any]) -> int:
        """
        Write ``columns`` as given (zero values included) to every row matched by the
        current where-state. ``updated_at`` is left alone. Returns the affected row count.
        """

        if not self.state.conditions:
            raise ValidationError(f"{self._name} update_columns requires a where condition")
        known = {attr.key for attr in sa_inspect(self.model).column_attrs}
        unknown = sorted(set(columns) - known)
        if unknown:
            raise ValidationError(f"unknown columns for {self._name}: {', '.join(unknown)}")

        stmt = self._scope_update(update(self.model).values(**dict(columns)))
        with self._translate_errors("update_columns"), self._unit_of_work() as session:
            result = session.execute(stmt)
        return result.rowcount

    def delete(self, id: int) -> None:
        """Soft delete: stamp ``deleted_at``. The row stays reachable via ``unscoped()``."""

        stmt = (
            update(self.model)
            .where(self.model.id == id, self.model.deleted_at.is_(None))
            .values(deleted_at=utcnow())
        )
        with self._translate_errors("delete"), self._unit_of_work() as session:
            result = session.execute(stmt)
        if result.rowcount == 0:
            raise NotFound(f"{self._name} {id} not found")

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    def more(self) -> list[T]:
        stmt = self._statement()
        with self._translate_errors("more"), self._unit_of_work() as session:
            return list(session.scalars(stmt).all())

    def one(self) -> T:
        stmt = self._statement().limit(1)
        with self._translate_errors("one"), self._unit_of_work() as session:
            item = session.scalars(stmt).first()
        if item is None:
            raise NotFound(f"{self._name} not found")
        return item

    def exist(self) -> bool:
        stmt = self._statement(with_options=False).limit(1)
        with self._translate_errors("exist"), self._unit_of_work() as session:
            return session.scalars(stmt).first() is not None

    def pluck(self, column: Any) -> list[Any]:
        stmt = self._statement(with_options=False).with_only_columns(self._column(column))
        with self._translate_errors("pluck"), self._unit_of_work() as session:
            return list(session.scalars(stmt).all())

    def count(self) -> int:
        """Rows matched by the filter state; chained ``limit``/``offset`` do not cap it."""
        inner = self._derive(limit=None, offset=None)._statement(with_options=False).order_by(None)
        stmt = select(func.count()).select_from(inner.subquery())
        if self.state.include_deleted:
            stmt = stmt.execution_options(**{INCLUDE_DELETED: True})
        with self._translate_errors("count"), self._unit_of_work() as session:
            return int(session.scalar(stmt) or 0)

    def page(self, page: int, page_size: int) -> Page[T]:
        if page < 1:
            page = 1
        if page_size < 1:
            page_size = DEFAULT_PAGE_SIZE
        elif page_size > MAX_PAGE_SIZE:
            page_size = MAX_PAGE_SIZE

        total = self.count()
        if total == 0:
            return Page(items=[], total=0, page=page, page_size=page_size)

        items = self.offset((page - 1) * page_size).limit(page_size).more()
        return Page(items=items, total=total, page=page, page_size=page_size)

    def first_or_create(self, item: T) -> T:
        """Return the first row matching the current filters and ``item``'s non-zero fields, else create ``item``."""

        self._check_instance(item)
        lookup = {k: v for k, v in self._column_values(item).items() if not _is_zero(v)}
        stmt = self.where(**lookup)._statement().order_by(self.model.id).limit(1)

        with self._translate_errors("first_or_create"), self._unit_of_work() as session:
            existing = session.scalars(stmt).first()
            if existing is not None:
                return existing
            session.add(item)
            session.flush()
        return item

    # ------------------------------------------------------------------
    # transactions
    # ------------------------------------------------------------------

    def transaction(self, fn: Callable[[Session], R]) -> R:
        """
        Run ``fn(tx)`` inside a unit of work.

        - ``fn`` returns normally: commit.
        - ``fn`` raises: roll back and re-raise.

        On a record already bound to a transaction the same session is reused and
        ``fn`` runs inside a SAVEPOINT: an inner failure only undoes the inner work,
        and the outer callback decides whether to let the exception escape (rolling
        back everything) or to swallow it (keeping the outer work).
        """

        self._check_deadline()
        if self.tx is not None:
            with self._translate_errors("transaction"), self.tx.begin_nested():
                return fn(self.tx)

        session = self.session_factory()
        try:
            with self._translate_errors("transaction"), session.begin():
                return fn(session)
        finally:
            session.close()

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    @property
    def _name(self) -> str:
        return self.model.__name__

    def _derive(self, **changes: Any) -> ActiveRecord[T]:
        return replace(self, state=replace(self.state, **changes))

    def _add_conditions(self, op: str, criteria: tuple[Any, ...], equals: Mapping[str, Any]) -> ActiveRecord[T]:
        clauses = [_as_clause(c) for c in criteria]
        clauses.extend(self._column(key) == value for key, value in equals.items())
        if not clauses:
            return self
        clause = clauses[0] if len(clauses) == 1 else and_(*clauses)
        return self._derive(conditions=self.state.conditions + ((op, clause),))

    def _column(self, column: Any) -> Any:
        if isinstance(column, str):
            try:
                return getattr(self.model, column)
            except AttributeError:
                raise ValidationError(f"unknown column for {self._name}: {column}") from None
        return column

    def _condition(self) -> ColumnElement[bool] | None:
        expr: ColumnElement[bool] | None = None
        for op, clause in self.state.conditions:
            if op == "not":
                clause = not_(clause)
            if expr is None:
                expr = clause
            elif op == "or":
                expr = or_(expr, clause)
            else:
                expr = and_(expr, clause)
        return expr

    def _statement(self, with_options: bool = True) -> Select:
        model = self.model
        state = self.state
        stmt = select(model)

        for target, onclause, outer in state.joins:
            if onclause is None:
                stmt = stmt.join(target, isouter=outer)
            else:
                stmt = stmt.join(target, onclause, isouter=outer)

        if not state.include_deleted:
            stmt = stmt.where(model.deleted_at.is_(None))
        condition = self._condition()
        if condition is not None:
            stmt = stmt.where(condition)

        if state.groups:
            stmt = stmt.group_by(*state.groups)
        if state.havings:
            stmt = stmt.having(*state.havings)
        if state.orders:
            stmt = stmt.order_by(*state.orders)
        if state.limit is not None:
            stmt = stmt.limit(state.limit)
        if state.offset is not None:
            stmt = stmt.offset(state.offset)

        if with_options:
            projected = [self._column(c) for c in state.selects if c != ALL_FIELDS]
            if projected:
                stmt = stmt.options(load_only(*projected))
            for path in state.preloads:
                stmt = stmt.options(self._preload_option(path))

        if state.include_deleted:
            stmt = stmt.execution_options(**{INCLUDE_DELETED: True})
        return stmt

    def _scope_update(self, stmt: Any) -> Any:
        if not self.state.include_deleted:
            stmt = stmt.where(self.model.deleted_at.is_(None))
        condition = self._condition()
        if condition is not None:
            stmt = stmt.where(condition)
        return stmt.execution_options(synchronize_session=False)

    def _relationship_chain(self, path: str) -> list[Any]:
        chain = []
        cls: Any = self.model
        for name in path.split("."):
            relationship = sa_inspect(cls).relationships.get(name)
            if relationship is None:
                raise ValidationError(f"unknown relationship for {cls.__name__}: {name}")
            chain.append(getattr(cls, name))
            cls = relationship.mapper.class_
        return chain

    def _preload_option(self, path: str) -> Any:
        chain = self._relationship_chain(path)
        option = selectinload(chain[0])
        for attr in chain[1:]:
            option = option.selectinload(attr)
        return option

    def _column_values(self, item: T) -> dict[str, Any]:
        managed = RecordMixin.__managed_columns__
        return {
            attr.key: getattr(item, attr.key)
            for attr in sa_inspect(self.model).column_attrs
            if attr.key not in managed
        }

    def _update_values(self, item: T) -> dict[str, Any]:
        values = self._column_values(item)
        selected = self.state.selects
        if ALL_FIELDS in selected:
            return values
        if selected:
            keys = {self._column(c).key for c in selected}
            unknown = keys - set(values)
            if unknown:
                raise ValidationError(f"columns cannot be updated for {self._name}: {', '.join(sorted(unknown))}")
            return {k: v for k, v in values.items() if k in keys}
        return {k: v for k, v in values.items() if not _is_zero(v)}

    def _check_instance(self, item: Any) -> None:
        if not isinstance(item, self.model):
            raise ValidationError(f"expected {self._name}, got {type(item).__name__}")

    def _check_deadline(self) -> None:
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise DeadlineExceeded()

    @contextmanager
    def _unit_of_work(self) -> Iterator[Session]:
        self._check_deadline()
        if self.tx is not None:
            yield self.tx
            return

        session = self.session_factory()
        try:
            with session.begin():
                yield session
        finally:
            session.close()

    @contextmanager
    def _translate_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except AppError:
            raise
        except IntegrityError as exc:
            logger.info("Constraint violation model=%s action=%s: %s", self._name, action, exc.orig)
            raise ConstraintViolation(f"{self._name} {action} violates a constraint") from exc
        except SQLAlchemyError as exc:
            logger.warning("Database error model=%s action=%s: %s", self._name, action, type(exc).__name__)
            raise DatabaseError() from exc


def _as_clause(value: Any) -> Any:
    return text(value) if isinstance(value, str) else value


def _is_zero(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (bool, int, float, Decimal, str, bytes)):
        return not value
    return False

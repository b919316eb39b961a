from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import Session, with_loader_criteria

from erp.db.base import RecordMixin

INCLUDE_DELETED = "include_deleted"


@event.listens_for(Session, "do_orm_execute")
def _apply_soft_delete_filter(execute_state) -> None:
    """
    Transparent soft-delete scoping.

    Any ORM select (including relationship loads such as ``selectinload``) skips
    rows whose ``deleted_at`` is set, unless the statement was executed with
    ``execution_options(include_deleted=True)``.
    """

    if not execute_state.is_select:
        return
    if execute_state.is_column_load or execute_state.is_relationship_load:
        # Criteria added to the parent statement already propagate to these.
        return
    if execute_state.execution_options.get(INCLUDE_DELETED, False):
        return

    execute_state.statement = execute_state.statement.options(
        with_loader_criteria(RecordMixin, lambda cls: cls.deleted_at.is_(None), include_aliases=True)
    )

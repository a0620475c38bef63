import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from restopos.errors import Conflict, NotFound, TableUnavailable
from restopos.models import DiningTable

logger = logging.getLogger(__name__)

SEATABLE_STATUSES = ("available", "reserved")


def create_table(db: Session, table_number: str, capacity: int, status: str = "available") -> DiningTable:
    table = DiningTable(table_number=table_number, capacity=capacity, status=status)
    try:
        with db.begin():
            db.add(table)
    except IntegrityError as exc:
        raise Conflict("table number already exists", {"table_number": table_number}) from exc
    return table


def get_table(db: Session, table_id: int) -> DiningTable:
    table = db.get(DiningTable, table_id)
    if table is None:
        raise NotFound("table not found", {"table_id": table_id})
    return table


def list_tables(db: Session) -> list[DiningTable]:
    return list(db.scalars(select(DiningTable).order_by(DiningTable.table_number)))


def set_status(db: Session, table_id: int, status: str) -> DiningTable:
    with db.begin():
        table = get_table(db, table_id)
        table.status = status
    logger.info("table %s set to %s", table_id, status)
    return table


def occupy(db: Session, table_id: int) -> None:
    """Mark a table occupied inside the caller's transaction.

    Only an available or reserved table can be seated; anything else is a
    conflict and the caller's transaction must roll back.
    """
    result = db.execute(
        update(DiningTable)
        .where(DiningTable.id == table_id, DiningTable.status.in_(SEATABLE_STATUSES))
        .values(status="occupied")
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return
    status = db.scalar(select(DiningTable.status).where(DiningTable.id == table_id))
    if status is None:
        raise NotFound("table not found", {"table_id": table_id})
    raise TableUnavailable(f"table is {status}", {"table_id": table_id, "status": status})


def release(db: Session, table_id: int) -> bool:
    # Leaves reserved/maintenance tables alone; only an occupied table frees up.
    result = db.execute(
        update(DiningTable)
        .where(DiningTable.id == table_id, DiningTable.status == "occupied")
        .values(status="available")
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1

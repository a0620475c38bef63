from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from restopos.config import settings
from restopos.db import build_engine, init_db


def main() -> None:
    database_url = settings.database_url
    print(f"DATABASE_URL={database_url}")
    engine = build_engine(database_url)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        init_db(engine)
        with engine.connect() as conn:
            low_stock = conn.execute(
                text("SELECT COUNT(*) FROM inventory WHERE quantity <= min_quantity")
            ).scalar()
        print("DB connection OK")
        print(f"low stock items: {low_stock}")
    except SQLAlchemyError as exc:
        print("DB connection FAILED")
        print(exc)


if __name__ == "__main__":
    main()

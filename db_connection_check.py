import sys

from pos_admin.config import settings
from pos_admin.db import engine, init_db, ping


def main() -> None:
    print(f"DATABASE_URL={settings.database_url}")
    if not ping(engine):
        print("DB connection FAILED")
        sys.exit(1)
    print("DB connection OK")
    if "--create-tables" in sys.argv[1:]:
        init_db(engine)
        print("Tables created")


if __name__ == "__main__":
    main()

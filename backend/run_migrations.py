"""Create the schema and the subject_stats view on the configured database."""
from levelcert.config import settings
from levelcert.database import create_db_and_tables


def run():
    """Apply the table definitions and (re)create the `subject_stats` view.

    Safe to run repeatedly; existing tables and rows are left untouched.
    The database is taken from `DATABASE_URL` (see `levelcert.config`).
    """
    print("Using database:", settings.DATABASE_URL)
    create_db_and_tables()
    print("Schema applied.")

if __name__ == '__main__':
    run()

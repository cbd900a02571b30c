"""Create the dispatch tables and seed max_concurrent. Reads DATABASE_URL."""
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.config import settings  # noqa: E402
from app.database import get_engine, init_db  # noqa: E402
from app.models import Base  # noqa: E402


def main() -> None:
    engine = get_engine()
    init_db(engine)
    print("=== SCHEMA READY ===")
    for table in Base.metadata.sorted_tables:
        print(f"  - {table.name}")
    print(f"max_concurrent seeded to {settings.default_max_concurrent} if it was missing")


if __name__ == "__main__":
    main()

"""
WARM THE OFFLINE CACHE

Mirrors remote collections into the local table cache, the same way the
app does in the background after an online login.

Usage:
    python scripts/warm_cache.py                  # configured tables
    python scripts/warm_cache.py teams products   # only these tables
    python scripts/warm_cache.py --info           # show what is cached
"""

from __future__ import annotations
import argparse
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from order_core.bootstrap import create_services
from order_core.config import load_settings
from order_core.logging import setup_logging


def main() -> int:
    parser = argparse.ArgumentParser(description="Mirror remote tables into the offline cache")
    parser.add_argument("tables", nargs="*", help="Tables to mirror (default: configured list)")
    parser.add_argument("--secrets", help="Path to secrets.toml")
    parser.add_argument("--info", action="store_true", help="Show cached tables and exit")
    parser.add_argument("--wipe", action="store_true", help="Delete all local data first")
    args = parser.parse_args()

    settings = load_settings(Path(args.secrets) if args.secrets else None)
    setup_logging(settings.log_level)
    services = create_services(settings)

    if args.info:
        info = services.store.info() or {}
        print(f"Database: {info.get('path', info.get('db_name'))} ({info.get('doc_count', 0)} records)")
        for table in sorted(services.store.list_tables()):
            rows = services.table_cache.get(table) or []
            print(f"  - {table}: {len(rows)} rows, updated {services.table_cache.updated_at(table)}")
        return 0

    if args.wipe:
        services.store.wipe_all()

    tables = args.tables or settings.warmup_tables
    result = services.warmer.prepare(tables)

    for table, count in sorted(result.counts.items()):
        print(f"✅ {table}: {count} rows")
    for table, error in sorted(result.errors.items()):
        print(f"❌ {table}: {error}")

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())

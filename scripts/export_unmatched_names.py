#!/usr/bin/env python
"""
Export the unmatched organisation names of a source to CSV for curation.

Usage:
    python scripts/export_unmatched_names.py --source-id 100120
    python scripts/export_unmatched_names.py --source-id 100120 --refresh --output reports/100120.csv
"""

import os
import sys
import argparse
from pathlib import Path

from dotenv import load_dotenv

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from mdr_coder.db_utils import DatabaseManager
from mdr_coder.logging_config import setup_logging, get_logger
from mdr_coder.orgs.entities import KINDS_BY_KEY, get_entity_kind
from mdr_coder.orgs.unmatched import UnmatchedNameAggregator

load_dotenv()


def main():
    parser = argparse.ArgumentParser(description='Export unmatched organisation names')
    parser.add_argument(
        '--config',
        default=os.environ.get('DB_CONFIG_PATH', 'config/db_config.yml'),
        help='Path to database config YAML'
    )
    parser.add_argument('--source-id', type=int, required=True, help='Data source id')
    parser.add_argument(
        '--refresh',
        action='store_true',
        help='Recompute the stored unmatched names before exporting'
    )
    parser.add_argument(
        '--table',
        choices=sorted(KINDS_BY_KEY),
        help='Only refresh and export this entity table (default: all tables)'
    )
    parser.add_argument('--output', help='CSV path (default: reports/unmatched_orgs_<source_id>.csv)')

    args = parser.parse_args()

    setup_logging(log_level='INFO')
    logger = get_logger(__name__)

    output = Path(args.output or f"reports/unmatched_orgs_{args.source_id}.csv")

    db = DatabaseManager(args.config)
    try:
        aggregator = UnmatchedNameAggregator(db)
        if args.refresh and args.table:
            stored = {args.table: aggregator.store(get_entity_kind(args.table), args.source_id)}
            logger.info(f"Refreshed {stored[args.table]} unmatched names in {args.table}")
        elif args.refresh:
            stored = aggregator.store_all(args.source_id)
            logger.info(f"Refreshed {sum(stored.values())} unmatched names across {len(stored)} tables")

        df = aggregator.fetch_review_frame(args.source_id, source_table=args.table)
        output.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(output, index=False)
        logger.info(f"Exported {len(df)} unmatched names to {output}")
    except Exception as e:
        logger.error(f"Export failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        db.close()


if __name__ == '__main__':
    main()

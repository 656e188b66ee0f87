"""
MDR Organisation Coder - Database Setup Script
Creates the run tracking and review tables the coder writes to

Usage:
    python scripts/setup_database.py

    Or with custom config:
    python scripts/setup_database.py --config config/db_config.yml
"""

import os
import sys
import argparse
from pathlib import Path

from dotenv import load_dotenv

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from mdr_coder.db_utils import apply_schema
from mdr_coder.logging_config import setup_logging, get_logger

load_dotenv()


def main():
    """Apply the coder's schema"""

    parser = argparse.ArgumentParser(description='MDR Organisation Coder Database Setup')
    parser.add_argument(
        '--config',
        default=os.environ.get('DB_CONFIG_PATH', 'config/db_config.yml'),
        help='Path to database config YAML'
    )
    parser.add_argument(
        '--schema',
        default='db/schema_org_coding.sql',
        help='Path to schema SQL file'
    )

    args = parser.parse_args()

    setup_logging(log_level='INFO')
    logger = get_logger(__name__)

    logger.info("=" * 80)
    logger.info("MDR Organisation Coder - Database Setup")
    logger.info("=" * 80)

    try:
        logger.info(f"Applying schema from {args.schema}...")
        apply_schema(args.config, args.schema)

        logger.info("=" * 80)
        logger.info("✓ Database setup completed successfully!")
        logger.info("=" * 80)

        return 0

    except Exception as e:
        logger.error(f"✗ Database setup failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())

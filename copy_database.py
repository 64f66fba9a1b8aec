#!/usr/bin/env python3
"""
Standalone SQL Server to PostgreSQL copy, without Airflow.

Reads connection settings from the environment or a .env file
(MSSQL_* and POSTGRES_*, see mssql_pg_copy.config), prints an inventory
of the source tables and copies them in a single transaction.

Usage:
    python copy_database.py                  # inventory, copy, validate
    python copy_database.py --inventory-only
    python copy_database.py --env-file prod.env --no-validate
"""

import argparse
import logging
import os
import sys

# Setup path to include our modules
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), 'plugins'))

from mssql_pg_copy.config import load_config
from mssql_pg_copy.connections import open_source, open_target
from mssql_pg_copy.errors import MigrationError
from mssql_pg_copy.orchestrator import MigrationOrchestrator
from mssql_pg_copy.schema_introspector import log_inventory
from mssql_pg_copy.validation import validate_migration

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Copy a SQL Server database into PostgreSQL')
    parser.add_argument('--env-file', type=str, default=None, help='Path to a .env file')
    parser.add_argument('--inventory-only', action='store_true', help='Only list source tables')
    parser.add_argument('--no-validate', action='store_true', help='Skip row count validation')
    args = parser.parse_args(argv)

    try:
        config = load_config(args.env_file)

        with open_source(config.source) as source:
            orchestrator = MigrationOrchestrator.from_connections(source, config)
            log_inventory(orchestrator.introspector.inventory())
            if args.inventory_only:
                return 0

            with open_target(config.target) as target:
                result = orchestrator.copy_database(source, target)
                if not args.no_validate:
                    validation = validate_migration(source, target, result)
                    if not validation['success']:
                        return 2
    except MigrationError as e:
        logger.error(f"Migration aborted: {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())

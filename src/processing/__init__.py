"""Processing module for spreadsheet imports.

This module contains:
- Spreadsheet reading (xlsx/xlsm via openpyxl, xls/csv via pandas)
- Mapping model, row validation and data type coercion
- Foreign key resolution with a per-run cache
- The import executor and its run result

Key components:
- ImportExecutor: Runs one import per call with a savepoint per row
- ForeignKeyResolver: Resolves lookup values to referenced keys
- RowValidator: Checks and coerces one row against a mapping

Submodules are imported directly (``from processing.executor import
ImportExecutor``); this package module stays import-light because
``config.settings`` depends on ``processing.errors``.
"""

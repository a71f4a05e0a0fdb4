"""Pipeline components.

This package contains the staging writer/reader, the sequence allocator, the
reconciler and commit guard that make up a consolidation run, the table store
backends (in-memory, DuckDB), the availability flag, and the Parquet export of
the consolidated output tables.
"""

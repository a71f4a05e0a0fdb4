"""Project version constants.

These constants are used in logs and embedded in exported datasets (Parquet
metadata) so that consolidated survey outputs can be traced back to the engine
and table-layout version that produced them.
"""

ENGINE_NAME: str = "surveystaging"
ENGINE_VERSION: str = "0.1.0"

SCHEMA_VERSION: int = 1

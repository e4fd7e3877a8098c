"""Users table. Its rows are read and written outside this service.

Only the DDL lives here, so the metadata connection can create the table
on every (re)connect alongside the instance tables.
"""

USERS_DDL = (
    "CREATE TABLE IF NOT EXISTS users (email varchar, first_name varchar, last_name varchar, "
    "provider varchar, created_at int64, PRIMARY KEY (email));"
)

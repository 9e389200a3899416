"""Lending library: catalog, search and loans over a PostgreSQL store."""

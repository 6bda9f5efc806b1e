"""Vault registry: creation, indexing, upgrade and schema migration."""

"""Sync bundles: church-scoped export files and their id-keyed merge."""

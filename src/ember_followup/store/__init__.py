"""
Persistence.

Components:
- document.py: the persisted JSON document, migration and atomic file I/O
- seed.py: plan catalog and demo data for a fresh installation
- data_store.py: DataStore, the entity repository and business rules
"""

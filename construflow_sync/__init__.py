"""
Sync Construflow -> warehouse.
"""

"""
Entrega al warehouse (PostgreSQL): truncate + insert por lotes.
"""

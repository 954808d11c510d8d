"""
Clientes de Construflow para el sync one-way Construflow -> warehouse.

Dos protocolos, dos esquemas de credenciales:
- GraphQL (issues, comentarios, historial): login usuario/password con tokens
  access + refresh, mas un API key estatico.
- REST data-lake (lookups y relaciones): Basic auth con API key/secret.

Ambos comparten la misma politica de reintentos (retry.py).
"""

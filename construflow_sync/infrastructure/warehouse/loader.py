"""
Carga al warehouse (psycopg v3, API async).

Estrategia truncate-then-insert:
- Sin historico ni upsert: tras una carga exitosa la tabla contiene
  exactamente las filas de esta corrida.
- TRUNCATE + INSERTs van en la misma transaccion; si un INSERT falla de forma
  no tolerable, el rollback deja la tabla como estaba.
- Filas invalidas (tipo/constraint) se descartan de a una (savepoint por fila)
  sin tumbar el lote.
- Las keys que no son columnas de la tabla se ignoran; las columnas ausentes
  en una fila van como NULL.
"""

from __future__ import annotations

import json
from typing import Any, Awaitable, Callable, Iterable, Optional

import psycopg
from loguru import logger
from psycopg.rows import dict_row

from construflow_sync.shared.exceptions.sync import WarehouseError

# Errores por fila: se descarta la fila, el lote sigue
ROW_LEVEL_ERRORS = (psycopg.DataError, psycopg.IntegrityError)

Connect = Callable[[], Awaitable[psycopg.AsyncConnection]]


def _adapt_value(value: Any) -> Any:
    # dict/list no tienen adaptador por defecto en psycopg
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value


class WarehouseLoader:
    """
    Entrega filas a tablas de un schema Postgres.

    No depende de ningun otro componente del pipeline.
    """

    def __init__(
        self,
        dsn: str,
        *,
        schema: str = "construflow_data",
        batch_size: int = 1000,
        strict_truncate: bool = False,
        connect: Optional[Connect] = None,
    ) -> None:
        self._dsn = dsn
        self._schema = schema
        self._batch_size = batch_size
        self._strict_truncate = strict_truncate
        self._connect = connect or self._default_connect

    async def _default_connect(self) -> psycopg.AsyncConnection:
        try:
            return await psycopg.AsyncConnection.connect(self._dsn, row_factory=dict_row)
        except psycopg.OperationalError as e:
            raise psycopg.OperationalError(
                f"{e}\n"
                f"Sugerencia: verifica que DATABASE_URL sea accesible desde donde corre el sync."
            ) from e

    def _qualified(self, table_name: str) -> str:
        return f'"{self._schema}"."{table_name}"'

    async def insert(self, table_name: str, rows: Iterable[dict[str, Any]]) -> int:
        """
        Reemplaza el contenido de la tabla por `rows`.

        Returns:
            Cantidad de filas insertadas (descontando las rechazadas).

        Raises:
            WarehouseError: si la tabla no existe
        """
        rows_list = list(rows)
        if not rows_list:
            logger.warning(f"{table_name}: ningun dato para insertar")
            return 0

        logger.info(f"Insertando {len(rows_list)} filas en {table_name}...")

        conn = await self._connect()
        async with conn:
            async with conn.transaction():
                columns = await self._table_columns(conn, table_name)
                if not columns:
                    raise WarehouseError(
                        f"La tabla {self._qualified(table_name)} no existe (ver schema.sql)",
                        table=table_name,
                    )

                await self._truncate(conn, table_name)

                total_inserted = 0
                for start in range(0, len(rows_list), self._batch_size):
                    batch = rows_list[start:start + self._batch_size]
                    total_inserted += await self._insert_batch(conn, table_name, columns, batch)

        logger.info(f"   {total_inserted} filas insertadas en {table_name}")
        return total_inserted

    async def fetch_active_issue_ids(self, issues_table: str = "issues") -> dict[str, list[Any]]:
        """
        Issues activas ya cargadas, agrupadas por proyecto.

        Se lee del warehouse (no de memoria) para que la fase de comentarios
        pueda correr sola.
        """
        conn = await self._connect()
        async with conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"SELECT DISTINCT id, project_id FROM {self._qualified(issues_table)} "
                    f"WHERE status = 'active'"
                )
                rows = await cur.fetchall()

        by_project: dict[str, list[Any]] = {}
        for row in rows:
            by_project.setdefault(str(row["project_id"]), []).append(row["id"])
        return by_project

    async def _table_columns(self, conn: psycopg.AsyncConnection, table_name: str) -> list[str]:
        async with conn.cursor() as cur:
            await cur.execute(
                """
                SELECT column_name
                FROM information_schema.columns
                WHERE table_schema = %s
                  AND table_name = %s
                ORDER BY ordinal_position
                """,
                (self._schema, table_name),
            )
            return [row["column_name"] for row in await cur.fetchall()]

    async def _truncate(self, conn: psycopg.AsyncConnection, table_name: str) -> None:
        """
        TRUNCATE best-effort: si falla se loguea y la carga sigue (puede
        duplicar filas), salvo strict_truncate.
        """
        try:
            async with conn.transaction():
                async with conn.cursor() as cur:
                    await cur.execute(f"TRUNCATE TABLE {self._qualified(table_name)}")
            logger.info(f"   Tabla {table_name} truncada")
        except psycopg.Error as e:
            if self._strict_truncate:
                raise WarehouseError(f"No se pudo truncar {table_name}: {e}", table=table_name) from e
            logger.warning(f"Error al truncar {table_name}: {e}. Se inserta igual (riesgo de duplicados)")

    async def _insert_batch(
        self,
        conn: psycopg.AsyncConnection,
        table_name: str,
        table_columns: list[str],
        batch: list[dict[str, Any]],
    ) -> int:
        present = {key for row in batch for key in row.keys()}
        columns = [c for c in table_columns if c in present]
        if not columns:
            logger.warning(f"   {table_name}: ninguna key del lote coincide con columnas de la tabla")
            return 0

        quoted_cols = ", ".join(f'"{c}"' for c in columns)
        placeholders = ", ".join(["%s"] * len(columns))
        sql = f"INSERT INTO {self._qualified(table_name)} ({quoted_cols}) VALUES ({placeholders})"
        values = [tuple(_adapt_value(row.get(c)) for c in columns) for row in batch]

        try:
            async with conn.transaction():
                async with conn.cursor() as cur:
                    await cur.executemany(sql, values)
            return len(values)
        except ROW_LEVEL_ERRORS as e:
            logger.warning(f"   Lote con filas invalidas en {table_name} ({e}); insertando fila por fila")

        inserted = 0
        failed = 0
        for value in values:
            try:
                async with conn.transaction():
                    async with conn.cursor() as cur:
                        await cur.execute(sql, value)
                inserted += 1
            except ROW_LEVEL_ERRORS:
                failed += 1

        logger.warning(f"   {failed} filas fallaron en el lote de {table_name}")
        return inserted

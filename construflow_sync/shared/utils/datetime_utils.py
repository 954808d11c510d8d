"""
Utilidades para manejo de fechas, horas y duraciones de corrida.
"""
from datetime import datetime, timezone


class DateTimeUtils:
    """Clase de utilidades para operaciones con fechas y horas."""

    @staticmethod
    def now_utc() -> datetime:
        """
        Obtiene la fecha y hora actual en UTC.

        Returns:
            datetime: Fecha y hora actual en UTC
        """
        return datetime.now(timezone.utc)

    @staticmethod
    def to_iso_string(dt: datetime) -> str:
        """
        Convierte un datetime a string ISO 8601 con sufijo 'Z'.

        Args:
            dt: Objeto datetime (naive se asume UTC)

        Returns:
            str: Fecha en formato ISO 8601, e.g. "2025-12-16T10:15:00.123Z"
        """
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        dt = dt.astimezone(timezone.utc)
        return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    @staticmethod
    def format_duration(seconds: float) -> str:
        """
        Formatea una duracion en segundos con un decimal ("12.3s").

        Args:
            seconds: Duracion en segundos

        Returns:
            str: Duracion formateada
        """
        return f"{seconds:.1f}s"

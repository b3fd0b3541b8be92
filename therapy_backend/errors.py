from __future__ import annotations


class AlertEngineError(Exception):
    """Errore base del motore alert/promemoria."""


class NotFoundError(AlertEngineError):
    """Alert, assegnazione o appuntamento inesistente."""

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity} non trovato: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(AlertEngineError):
    """Chiave (soggetto, destinatari, messaggio, data) già presente."""


class DispatchError(AlertEngineError):
    """Canale notifiche non disponibile."""


class ValidationError(AlertEngineError):
    """Campo data malformato su un record."""

    def __init__(self, field: str, value: object) -> None:
        super().__init__(f"Valore non valido per '{field}': {value!r}")
        self.field = field
        self.value = value

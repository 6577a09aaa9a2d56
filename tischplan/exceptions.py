"""
Fehlerklassen des Tischplans.

- ValidationError (422): fehlerhafte Eingaben, vor jeder Änderung geprüft
- NotFoundError (404): Tisch/Buchung/Wartelisteneintrag existiert nicht (mehr)
- ConflictError (409): Zeitfenster überschneidet sich mit einer aktiven Buchung,
  trägt den Konflikt und einen Terminvorschlag mit
"""
import logging
from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger("tischplan.exceptions")


class NotFoundError(HTTPException):

    def __init__(self, detail: str):
        logger.info(f"Nicht gefunden: {detail}")
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ValidationError(HTTPException):

    def __init__(self, detail: str):
        logger.info(f"Validierung fehlgeschlagen: {detail}")
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class ConflictError(HTTPException):
    """
    Buchungskonflikt. Wird nie automatisch aufgelöst, der Aufrufer entscheidet:
    Vorschlag bestätigen, anderen Tisch wählen oder Warteliste.
    """

    def __init__(
        self,
        detail: str,
        conflict: Optional[dict] = None,
        conflicts: Optional[list[dict]] = None,
        suggested_time: Optional[str] = None,
        estimated_wait_time: Optional[dict] = None,
    ):
        self.conflict = conflict
        self.conflicts = conflicts or ([conflict] if conflict else [])
        self.suggested_time = suggested_time
        self.estimated_wait_time = estimated_wait_time
        logger.info(f"Konflikt: {detail} (Vorschlag: {suggested_time})")
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)

    def to_dict(self) -> dict[str, Any]:
        return {
            "detail": self.detail,
            "conflict": self.conflict,
            "conflicts": self.conflicts,
            "suggested_time": self.suggested_time,
            "estimated_wait_time": self.estimated_wait_time,
        }


async def conflict_error_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

# Overview: Per-stage capture records for VN order stage data.

"""
Stage capture records.

Each stage has its own record type listing exactly which fields it accepts
and deciding its own exit criteria. Capture data is persisted as JSON under
vn_orders.stage_completion_dates[<stage>]["data"]; the JSON keys below are
the persisted keys.

Reading is lenient (legacy rows may hold odd values; a blank value simply
counts as absent). Writing goes through CaptureField.coerce, which is strict.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Any, ClassVar, Mapping

from dealerdesk.time_utils import parse_iso_datetime
from dealerdesk.validation import MAX_AMOUNT

from .stages import (
    INSCRIPTION,
    PROFORMA,
    COMMANDE,
    VALIDATION,
    ACCUSE,
    FACTURATION,
    ARRIVAGE,
    CARTE_JAUNE,
    LIVRAISON,
    DOSSIER_DAIRA,
    get_stage,
)


VEHICLE_LOCATIONS = ("PARC1", "PARC2", "SHOWROOM")

CALL_RESULTS = ("injoignable", "ok_pour_venir", "hesitant", "faux_numero", "pas_pret")

YES_NO = ("oui", "non")

DAMAGE_CHOICES = ("ras", "oui")

MAX_TEXT_LENGTH = 2000

VIN_MAX_LENGTH = 32

BOOL = "bool"
CHOICE = "choice"
TEXT = "text"
AMOUNT = "amount"
DATE = "date"


class CaptureFieldError(ValueError):
    """Raised when a stage field is unknown or its value is unacceptable."""
    pass


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


@dataclass(frozen=True)
class CaptureField:
    key: str
    label: str
    kind: str
    choices: tuple[str, ...] = ()
    max_length: int = MAX_TEXT_LENGTH
    # Set by recording a document rather than by direct entry
    document_flag: bool = False

    def is_satisfied(self, value: Any) -> bool:
        if self.kind == BOOL:
            return value is True
        return not _is_blank(value)

    def coerce(self, value: Any) -> Any:
        if value is None:
            return None

        if self.kind == BOOL:
            if isinstance(value, bool):
                return value
            raise CaptureFieldError(f"{self.key} must be true or false")

        if self.kind == CHOICE:
            if not isinstance(value, str):
                raise CaptureFieldError(f"{self.key} must be one of: {', '.join(self.choices)}")
            stripped = value.strip()
            if not stripped:
                return None
            if stripped not in self.choices:
                raise CaptureFieldError(f"{self.key} must be one of: {', '.join(self.choices)}")
            return stripped

        if self.kind == TEXT:
            if not isinstance(value, str):
                raise CaptureFieldError(f"{self.key} must be a string")
            stripped = value.strip()
            if len(stripped) > self.max_length:
                raise CaptureFieldError(f"{self.key} exceeds max length {self.max_length}")
            return stripped

        if self.kind == AMOUNT:
            if isinstance(value, bool):
                raise CaptureFieldError(f"{self.key} must be a number")
            if isinstance(value, str):
                stripped = value.strip()
                if not stripped:
                    return None
                try:
                    value = float(stripped)
                except ValueError:
                    raise CaptureFieldError(f"{self.key} must be a number") from None
            if not isinstance(value, (int, float)) or math.isnan(value) or math.isinf(value):
                raise CaptureFieldError(f"{self.key} must be a number")
            if value < 0:
                raise CaptureFieldError(f"{self.key} must be >= 0")
            if value > MAX_AMOUNT:
                raise CaptureFieldError(f"{self.key} cannot exceed {MAX_AMOUNT:,}")
            return value

        if self.kind == DATE:
            if not isinstance(value, str):
                raise CaptureFieldError(f"{self.key} must be a YYYY-MM-DD date")
            stripped = value.strip()
            if not stripped:
                return None
            try:
                if len(stripped) == 10:
                    return date.fromisoformat(stripped).isoformat()
                return parse_iso_datetime(stripped).date().isoformat()
            except ValueError:
                raise CaptureFieldError(f"{self.key} must be a YYYY-MM-DD date") from None

        raise CaptureFieldError(f"{self.key} has unsupported kind {self.kind}")


DOCUMENT_UPLOADED = CaptureField("documentUploaded", "Document uploaded", BOOL, document_flag=True)


class StageCapture:
    """Base record: holds the raw bag and answers field-level questions."""

    stage: ClassVar[str]
    fields: ClassVar[tuple[CaptureField, ...]] = ()

    def __init__(self, values: Mapping[str, Any] | None = None):
        self.values = dict(values or {})

    @classmethod
    def get_field(cls, key: str) -> CaptureField:
        for field in cls.fields:
            if field.key == key:
                return field
        raise CaptureFieldError(
            f"Field '{key}' is not captured at stage {cls.stage}. "
            f"Allowed: {', '.join(f.key for f in cls.fields)}"
        )

    @classmethod
    def field_keys(cls) -> tuple[str, ...]:
        return tuple(f.key for f in cls.fields)

    def get(self, key: str) -> Any:
        return self.values.get(key)

    def is_set(self, key: str) -> bool:
        return self.get_field(key).is_satisfied(self.values.get(key))

    def _require(self, *keys: str) -> list[str]:
        return [self.get_field(k).label for k in keys if not self.is_set(k)]

    def missing_requirements(self) -> list[str]:
        return []

    def warnings(self) -> list[str]:
        return []

    def is_complete(self) -> bool:
        return not self.missing_requirements()


class InscriptionCapture(StageCapture):
    stage = INSCRIPTION
    fields = (
        CaptureField("callResult", "Call outcome", CHOICE, CALL_RESULTS),
    )

    def missing_requirements(self):
        return self._require("callResult")


class _SingleDocumentCapture(StageCapture):
    fields = (DOCUMENT_UPLOADED,)

    def missing_requirements(self):
        return self._require("documentUploaded")


class ProformaCapture(_SingleDocumentCapture):
    stage = PROFORMA


class CommandeCapture(_SingleDocumentCapture):
    stage = COMMANDE


class ValidationCapture(_SingleDocumentCapture):
    stage = VALIDATION


class AccuseCapture(_SingleDocumentCapture):
    stage = ACCUSE


class DossierDairaCapture(_SingleDocumentCapture):
    stage = DOSSIER_DAIRA


class FacturationCapture(StageCapture):
    stage = FACTURATION
    fields = (
        # Written through to vn_orders.vehicle_vin, never kept in the bag
        CaptureField("vehicle_vin", "Vehicle VIN", TEXT, max_length=VIN_MAX_LENGTH),
        CaptureField("tropPercu", "Overpayment (yes/no)", CHOICE, YES_NO),
        CaptureField("tropPercuAmount", "Overpayment amount", AMOUNT),
    )

    def vin(self) -> str | None:
        value = self.get("vehicle_vin")
        return None if _is_blank(value) else value.strip()

    def missing_requirements(self):
        missing = []
        if self.vin() is None:
            missing.append(self.get_field("vehicle_vin").label)
        missing.extend(self._require("tropPercu"))
        return missing

    def warnings(self):
        if self.get("tropPercu") == "oui" and not self.is_set("tropPercuAmount"):
            return ["Overpayment declared without an amount"]
        return []


class ArrivageCapture(StageCapture):
    stage = ARRIVAGE
    fields = (
        DOCUMENT_UPLOADED,
        CaptureField("avaries", "Damage check", CHOICE, DAMAGE_CHOICES),
        CaptureField("avariesNote", "Damage description", TEXT),
        CaptureField("location", "Parking location", CHOICE, VEHICLE_LOCATIONS),
        CaptureField("position", "Parking position", TEXT),
    )

    def missing_requirements(self):
        # A damage note is not gating, even when damage is reported.
        return self._require("documentUploaded", "avaries", "location")

    def warnings(self):
        if self.get("avaries") == "oui" and not self.is_set("avariesNote"):
            return ["Damage reported without a description"]
        return []


class CarteJauneCapture(StageCapture):
    stage = CARTE_JAUNE
    fields = (
        CaptureField("scanFacture", "Invoice scan uploaded", BOOL, document_flag=True),
        CaptureField("carteJaune", "Yellow card uploaded", BOOL, document_flag=True),
    )

    def missing_requirements(self):
        return self._require("scanFacture", "carteJaune")


class LivraisonCapture(StageCapture):
    stage = LIVRAISON
    fields = (
        DOCUMENT_UPLOADED,
        CaptureField("deliveryDate", "Delivery date", DATE),
    )

    def missing_requirements(self):
        return self._require("documentUploaded", "deliveryDate")


CAPTURE_TYPES: dict[str, type[StageCapture]] = {
    cls.stage: cls
    for cls in (
        InscriptionCapture,
        ProformaCapture,
        CommandeCapture,
        ValidationCapture,
        AccuseCapture,
        FacturationCapture,
        ArrivageCapture,
        CarteJauneCapture,
        LivraisonCapture,
        DossierDairaCapture,
    )
}


def capture_type(stage: str) -> type[StageCapture]:
    get_stage(stage)
    return CAPTURE_TYPES[stage]


def capture_for(stage: str, data: Mapping[str, Any] | None) -> StageCapture:
    return capture_type(stage)(data)


def read_stage_entry(snapshot: Mapping[str, Any] | None, stage: str) -> dict:
    """
    Normalized copy of one stage's snapshot entry: {"data": {...}, "completed_at"?: str}.

    Older rows stored a bare ISO timestamp instead of an object.
    """
    raw = (snapshot or {}).get(stage)
    if isinstance(raw, str):
        return {"data": {}, "completed_at": raw}
    if not isinstance(raw, Mapping):
        return {"data": {}}
    entry = dict(raw)
    data = entry.get("data")
    entry["data"] = dict(data) if isinstance(data, Mapping) else {}
    return entry

# Overview: Ordered registry of VN order stages.

"""
VN order stage registry.

The ten stages below are the only legal values of vn_orders.status, in
pipeline order. Advancement always goes to the immediate successor.
"""

from __future__ import annotations

from dataclasses import dataclass


class UnknownStageError(ValueError):
    """Raised when a stage name is not part of the registry."""
    pass


@dataclass(frozen=True)
class StageDescriptor:
    name: str
    label: str
    required_documents: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "label": self.label,
            "index": index_of(self.name),
            "required_documents": list(self.required_documents),
        }


INSCRIPTION = "INSCRIPTION"
PROFORMA = "PROFORMA"
COMMANDE = "COMMANDE"
VALIDATION = "VALIDATION"
ACCUSE = "ACCUSÉ"
FACTURATION = "FACTURATION"
ARRIVAGE = "ARRIVAGE"
CARTE_JAUNE = "CARTE_JAUNE"
LIVRAISON = "LIVRAISON"
DOSSIER_DAIRA = "DOSSIER_DAIRA"

STAGES: tuple[StageDescriptor, ...] = (
    StageDescriptor(INSCRIPTION, "Inscription"),
    StageDescriptor(PROFORMA, "Proforma", ("Proforma Invoice",)),
    StageDescriptor(COMMANDE, "Commande", ("Purchase Order",)),
    StageDescriptor(VALIDATION, "Validation", ("Validation Certificate",)),
    StageDescriptor(ACCUSE, "Accusé", ("Acknowledgement Receipt",)),
    StageDescriptor(FACTURATION, "Facturation"),
    StageDescriptor(ARRIVAGE, "Arrivage", ("Route Sheet",)),
    StageDescriptor(CARTE_JAUNE, "Carte Jaune", ("Invoice Scan", "Yellow Card")),
    StageDescriptor(LIVRAISON, "Livraison", ("Delivery Note",)),
    StageDescriptor(DOSSIER_DAIRA, "Dossier Daira", ("Document Scan",)),
)

STAGE_NAMES: tuple[str, ...] = tuple(stage.name for stage in STAGES)
FIRST_STAGE = STAGES[0]
TERMINAL_STAGE = STAGES[-1]

_BY_NAME = {stage.name: stage for stage in STAGES}
_INDEX = {stage.name: i for i, stage in enumerate(STAGES)}


def is_known_stage(name: str | None) -> bool:
    return name in _BY_NAME


def get_stage(name: str) -> StageDescriptor:
    try:
        return _BY_NAME[name]
    except KeyError:
        raise UnknownStageError(
            f"Unknown stage '{name}'. Must be one of: {', '.join(STAGE_NAMES)}"
        ) from None


def index_of(name: str) -> int:
    get_stage(name)
    return _INDEX[name]


def successor(name: str) -> StageDescriptor | None:
    """Immediate next stage, or None at the terminal stage."""
    i = index_of(name)
    if i + 1 >= len(STAGES):
        return None
    return STAGES[i + 1]


def is_terminal(name: str) -> bool:
    return successor(name) is None


def stages_through(name: str) -> tuple[str, ...]:
    """Names of every stage up to and including name."""
    return STAGE_NAMES[: index_of(name) + 1]

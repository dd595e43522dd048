"""
Roster Module - reporting views

Paginated rosters, full rosters for export, participant catalogs and history.
"""

from training_registry.roster.models import (
    CatalogItem,
    CatalogView,
    HistoryItem,
    Page,
    PageRequest,
    PersonnelProjection,
    RosterFilter,
    RosterRow,
)
from training_registry.roster.personnel import InMemoryPersonnelDirectory, PersonnelDirectory

__all__ = [
    "RosterFilter",
    "RosterRow",
    "PageRequest",
    "Page",
    "PersonnelProjection",
    "PersonnelDirectory",
    "InMemoryPersonnelDirectory",
    "CatalogView",
    "CatalogItem",
    "HistoryItem",
]

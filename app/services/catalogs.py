"""
Medication and condition catalogs used for semantic validation.

Catalogs are owned by the clinic inventory (an external REST API). The
compiler only ever sees a read-only `CatalogSnapshot`, loaded once per
request by a provider:

- FileCatalogProvider: JSON file, for local development and the CLI
- ClinicApiCatalogProvider: live inventory over HTTP (httpx)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Protocol

import anyio.to_thread
import httpx

from app.core.errors import CatalogUnavailableError

logger = logging.getLogger(__name__)


def normalize_name(name: str) -> str:
    """Catalog lookup key: trimmed, inner whitespace collapsed, casefolded."""
    return " ".join(name.split()).casefold()


@dataclass(frozen=True, slots=True)
class MedicationRecord:
    id: int
    name: str
    dosage: str | None = None
    unit: str | None = None
    is_controlled: bool = False
    stock: float | None = None


@dataclass(frozen=True, slots=True)
class ConditionRecord:
    id: int
    name: str
    type: str | None = None


@dataclass(frozen=True, slots=True)
class CatalogSnapshot:
    """
    Immutable name -> record mappings.

    Keys are normalized with `normalize_name`; use `find_medication` /
    `find_condition` rather than indexing with raw names.
    """

    medications: Mapping[str, MedicationRecord] = field(
        default_factory=lambda: MappingProxyType({})
    )
    conditions: Mapping[str, ConditionRecord] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_records(
        cls,
        medications: Iterable[MedicationRecord] = (),
        conditions: Iterable[ConditionRecord] = (),
    ) -> CatalogSnapshot:
        # First record wins when two normalize to the same key
        meds: dict[str, MedicationRecord] = {}
        for med in medications:
            meds.setdefault(normalize_name(med.name), med)
        conds: dict[str, ConditionRecord] = {}
        for cond in conditions:
            conds.setdefault(normalize_name(cond.name), cond)
        return cls(MappingProxyType(meds), MappingProxyType(conds))

    def find_medication(self, name: str) -> MedicationRecord | None:
        return self.medications.get(normalize_name(name))

    def find_condition(self, name: str) -> ConditionRecord | None:
        return self.conditions.get(normalize_name(name))


class CatalogProvider(Protocol):
    async def load(self) -> CatalogSnapshot: ...


# ----------------------------------------------------------------------
# Record mapping (clinic inventory payloads -> records)
# ----------------------------------------------------------------------


def _unwrap(payload: Any) -> list[dict[str, Any]]:
    """Accept a bare list or a Laravel-style {"data": [...]} envelope."""
    if isinstance(payload, dict):
        payload = payload.get("data", [])
    if not isinstance(payload, list):
        raise ValueError(f"expected a list of records, got {type(payload).__name__}")
    return [item for item in payload if isinstance(item, dict)]


def medication_from_payload(item: dict[str, Any]) -> MedicationRecord:
    stock = item.get("stock", item.get("quantity"))
    return MedicationRecord(
        id=int(item["id"]),
        name=str(item.get("name") or item["medication_name"]),
        dosage=item.get("dosage") or item.get("strength"),
        unit=item.get("unit"),
        is_controlled=bool(item.get("is_controlled", False)),
        stock=float(stock) if stock is not None else None,
    )


def condition_from_payload(item: dict[str, Any]) -> ConditionRecord:
    return ConditionRecord(
        id=int(item["id"]),
        name=str(item.get("name") or item["condition_name"]),
        type=item.get("type") or item.get("condition_type"),
    )


def snapshot_from_payload(payload: dict[str, Any]) -> CatalogSnapshot:
    """Build a snapshot from `{"medications": [...], "conditions": [...]}`."""
    return CatalogSnapshot.from_records(
        medications=[medication_from_payload(m) for m in _unwrap(payload.get("medications", []))],
        conditions=[condition_from_payload(c) for c in _unwrap(payload.get("conditions", []))],
    )


# ----------------------------------------------------------------------
# Providers
# ----------------------------------------------------------------------


class StaticCatalogProvider:
    """Serves a fixed snapshot (tests, embedding)."""

    def __init__(self, snapshot: CatalogSnapshot):
        self.snapshot = snapshot

    async def load(self) -> CatalogSnapshot:
        return self.snapshot


class FileCatalogProvider:
    """Reads a JSON catalog file on every load so edits are picked up."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load_sync(self) -> CatalogSnapshot:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            return snapshot_from_payload(payload)
        except FileNotFoundError as e:
            raise CatalogUnavailableError(
                "Catalog file not found", details={"path": str(self.path)}
            ) from e
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise CatalogUnavailableError(
                "Catalog file is invalid", details={"path": str(self.path), "error": str(e)}
            ) from e

    async def load(self) -> CatalogSnapshot:
        return await anyio.to_thread.run_sync(self.load_sync)


class ClinicApiCatalogProvider:
    """
    Loads medications and chronic conditions from the clinic REST API.

    Endpoints: GET {base_url}/medications and GET {base_url}/chronic-conditions.
    Failures are surfaced as CatalogUnavailableError; there is no retry.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _fetch(self, client: httpx.AsyncClient, path: str) -> list[dict[str, Any]]:
        response = await client.get(path)
        response.raise_for_status()
        return _unwrap(response.json())

    async def load(self) -> CatalogSnapshot:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                medications = await self._fetch(client, "/medications")
                conditions = await self._fetch(client, "/chronic-conditions")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Failed to load catalogs from clinic API: %s", e)
            raise CatalogUnavailableError(
                "Clinic catalog service unavailable",
                details={"base_url": self.base_url, "error": str(e)},
            ) from e

        try:
            snapshot = CatalogSnapshot.from_records(
                medications=[medication_from_payload(m) for m in medications],
                conditions=[condition_from_payload(c) for c in conditions],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CatalogUnavailableError(
                "Clinic catalog returned malformed records", details={"error": str(e)}
            ) from e

        logger.debug(
            "Loaded catalogs: %d medications, %d conditions",
            len(snapshot.medications),
            len(snapshot.conditions),
        )
        return snapshot

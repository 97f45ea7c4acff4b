from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass

from auth.errors import FhirClientError
from auth.session_manager import SmartSessionManager
from auth.urls import query_params_from_url

from .constants import LOGGER
from .resources import FhirClient


def empty_bundle() -> dict:
    return {"total": 0, "entry": []}


@dataclass
class PatientRecord:
    patient: dict
    allergies: dict
    medications: dict
    conditions: dict
    vitals: dict
    labs: dict

    def to_dict(self) -> dict:
        return asdict(self)


async def initialize(manager: SmartSessionManager) -> bool:
    """Finish a pending callback if the current URL carries one, then restore the session."""
    callback_query = query_params_from_url(manager.navigator.current_url())
    if "code" in callback_query or "error" in callback_query:
        await manager.complete_authorization(callback_query)
    return await manager.restore_session()


async def _optional(name: str, fetch) -> dict:
    try:
        return await fetch
    except FhirClientError as error:
        LOGGER.warning("Could not load %s: %s", name, error)
        return empty_bundle()


async def load_patient_data(client: FhirClient) -> PatientRecord:
    patient, allergies, medications, conditions, vitals, labs = await asyncio.gather(
        client.get_patient(),
        _optional("allergies", client.get_allergies()),
        _optional("medications", client.get_medications(status="active")),
        _optional("conditions", client.get_conditions()),
        _optional("vital signs", client.get_vital_signs()),
        _optional("lab results", client.get_lab_results()),
    )
    return PatientRecord(
        patient=patient,
        allergies=allergies,
        medications=medications,
        conditions=conditions,
        vitals=vitals,
        labs=labs,
    )

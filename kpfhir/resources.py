from __future__ import annotations

from auth.errors import NotAuthenticatedError
from auth.session_manager import SmartSessionManager


class FhirClient:
    """Read-only FHIR resource fetches scoped to the authenticated patient.

    Every method defaults ``patient_id`` to the patient returned by the token
    endpoint and passes the API response through unmodified.
    """

    def __init__(self, manager: SmartSessionManager) -> None:
        self.manager = manager

    def _patient(self, patient_id: str | None) -> str:
        pid = patient_id or self.manager.patient_id
        if not pid:
            raise NotAuthenticatedError("No patient context - please authenticate first.")
        return pid

    async def _search(self, resource_type: str, patient_id: str | None, **params: str | None):
        query = {"patient": self._patient(patient_id)}
        query.update({key: value for key, value in params.items() if value})
        return await self.manager.authenticated_request(resource_type, query)

    async def get_patient(self, patient_id: str | None = None):
        return await self.manager.authenticated_request(f"Patient/{self._patient(patient_id)}")

    async def get_allergies(self, patient_id: str | None = None):
        return await self._search("AllergyIntolerance", patient_id)

    async def get_conditions(self, patient_id: str | None = None):
        return await self._search("Condition", patient_id)

    async def get_medications(self, patient_id: str | None = None, status: str | None = None):
        return await self._search("MedicationRequest", patient_id, status=status)

    async def get_immunizations(self, patient_id: str | None = None):
        return await self._search("Immunization", patient_id)

    async def get_observations(self, patient_id: str | None = None, category: str | None = None):
        return await self._search("Observation", patient_id, _sort="-date", category=category)

    async def get_vital_signs(self, patient_id: str | None = None):
        return await self.get_observations(patient_id, "vital-signs")

    async def get_lab_results(self, patient_id: str | None = None):
        return await self.get_observations(patient_id, "laboratory")

    async def get_procedures(self, patient_id: str | None = None):
        return await self._search("Procedure", patient_id)

    async def get_diagnostic_reports(self, patient_id: str | None = None):
        return await self._search("DiagnosticReport", patient_id)

    async def get_care_plans(self, patient_id: str | None = None):
        return await self._search("CarePlan", patient_id)

    async def get_devices(self, patient_id: str | None = None):
        return await self._search("Device", patient_id)

    async def get_document_references(self, patient_id: str | None = None):
        return await self._search("DocumentReference", patient_id)

    async def get_goals(self, patient_id: str | None = None):
        return await self._search("Goal", patient_id)

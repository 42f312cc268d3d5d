"""Company directory backed by the row store."""

import logging
from typing import Optional

from bookingpro.errors import NotFoundError
from bookingpro.schemas.booking_schema import Company, CompanyStatus
from bookingpro.storage.store import TABLE_COMPANIES, RowStore

logger = logging.getLogger(__name__)


class CompanyDirectory:
    def __init__(self, store: RowStore, default_slot_duration: int = 30) -> None:
        self._store = store
        self._default_slot_duration = default_slot_duration

    def add_company(self, company: Company) -> int:
        """Store a company. One created without a slot duration gets the configured default."""
        if "slot_duration_minutes" not in company.model_fields_set:
            company = Company.model_validate(
                {**company.model_dump(), "slot_duration_minutes": self._default_slot_duration}
            )
        company_id = self._store.insert(TABLE_COMPANIES, company.model_dump(exclude={"id"}))
        logger.info("Company registered: %s (#%d)", company.name, company_id)
        return company_id

    def get_company(self, company_id: int) -> Company:
        """Return the company or raise NotFoundError."""
        return Company.model_validate(self._store.get(TABLE_COMPANIES, company_id))

    def find_company(self, company_id: int) -> Optional[Company]:
        try:
            return self.get_company(company_id)
        except NotFoundError:
            return None

    def get_company_by_name(self, name: str) -> Optional[Company]:
        wanted = name.strip().lower()
        for row in self._store.query(TABLE_COMPANIES):
            if row["name"].lower() == wanted:
                return Company.model_validate(row)
        return None

    def list_active(self) -> list[Company]:
        rows = self._store.query(TABLE_COMPANIES, {"status": CompanyStatus.ACTIVE.value})
        return [Company.model_validate(row) for row in rows]

    def set_status(self, company_id: int, status: CompanyStatus) -> None:
        if not self._store.update(TABLE_COMPANIES, {"id": company_id}, {"status": status.value}):
            raise NotFoundError(f"Company {company_id} not found")
        logger.info("Company %d set to %s", company_id, status.value)

"""Student importer."""

import logging
from typing import Optional, Tuple

from .base import BaseImporter
from ..models.record import FailureReason, Outcome, SourceRecord
from ..services.transformer import (
    DEFAULT_FIRST_NAME,
    DEFAULT_LAST_NAME,
    class_for_year,
    normalize_legacy_id,
    numeric_id,
    parse_date,
    split_name,
    to_iso,
)

logger = logging.getLogger(__name__)


class StudentImporter(BaseImporter):
    """Imports students, deduplicated by admission number."""

    entity = "students"

    def import_record(self, record: SourceRecord) -> Outcome:
        legacy_id = self.legacy_id(record)

        names = self._names(record)
        if names is None:
            return Outcome.skipped(FailureReason.MISSING_NAME.value, f"student {legacy_id} has no name")
        first_name, last_name = names

        admission_number = normalize_legacy_id(self.value(record, "admission_number")) or f"S{legacy_id}"

        existing = self.store.find_one("students", admission_number=admission_number)
        if existing is not None:
            self.resolver.register(self.entity, legacy_id, existing["id"])
            return self.existing(existing["id"], admission_number=admission_number)

        class_grade = self._class_grade(record)
        email = self.value(record, "email")
        phone = self.value(record, "phone")
        address = self.value(record, "address")

        student = self.store.insert("students", {
            "admission_number": admission_number,
            "first_name": first_name,
            "last_name": last_name,
            "email": str(email) if email is not None else None,
            "phone": str(phone) if phone is not None else None,
            "date_of_birth": to_iso(parse_date(self.value(record, "date_of_birth"))),
            "address": str(address) if address is not None else None,
            "class_grade": class_grade,
            "status": "graduated" if class_grade == "graduated" else "active",
            "legacy_student_id": numeric_id(legacy_id),
            "notes": self.annotation(legacy_id),
        })

        self.resolver.register(self.entity, legacy_id, student["id"])
        return self.created(student["id"], admission_number=admission_number)

    def _names(self, record: SourceRecord) -> Optional[Tuple[str, str]]:
        """First and last name; explicit columns win over splitting a full name."""
        first = self.value(record, "first_name")
        last = self.value(record, "last_name")
        if first is not None or last is not None:
            return str(first or DEFAULT_FIRST_NAME), str(last or DEFAULT_LAST_NAME)

        full_name = self.value(record, "name")
        if full_name is None:
            return None
        return split_name(full_name)

    def _class_grade(self, record: SourceRecord) -> str:
        admission_year = self.value(record, "admission_year")
        if admission_year is None:
            explicit = self.value(record, "class")
            if explicit is not None:
                return str(explicit)
        return class_for_year(admission_year, self.config.class_assignments)

"""Category importer."""

import logging

from .base import BaseImporter
from ..models.record import FailureReason, Outcome, SourceRecord

logger = logging.getLogger(__name__)


class CategoryImporter(BaseImporter):
    """
    Imports categories, deduplicated by name.

    A name already in the store counts as imported, even when an earlier
    row of the same run created it.
    """

    entity = "categories"

    def import_record(self, record: SourceRecord) -> Outcome:
        legacy_id = self.legacy_id(record)
        name = self.value(record, "name")
        if name is None:
            return Outcome.skipped(FailureReason.MISSING_NAME.value, "category has no name")
        name = str(name)

        existing = self.store.find_one("categories", name=name)
        if existing is not None:
            self.resolver.register(self.entity, legacy_id, existing["id"])
            return Outcome.matched(str(existing["id"]), name=name)

        description = self.value(record, "description")
        category = self.store.insert("categories", {
            "name": name,
            "description": str(description) if description is not None else "Imported from legacy system",
            "location": self.value(record, "location"),
            "notes": self.annotation(legacy_id),
        })

        self.resolver.register(self.entity, legacy_id, category["id"])
        logger.debug(f"Created category {name} ({category['id']})")
        return self.created(category["id"], name=name)

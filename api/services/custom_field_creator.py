# api/services/custom_field_creator.py

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from config import AppConfig
from api.services.ghl_api import GoHighLevelAPI
from api.services.errors import FieldCreationFailed

logger = logging.getLogger(__name__)


def chunk(items: List[str], size: int) -> List[List[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def is_already_exists_error(error: Any) -> bool:
    """True for an exception or GHL error body saying the field already exists"""
    return "already exists" in str(error).lower()


@dataclass
class FieldCreationReport:
    created: Dict[str, Dict[str, Any]] = field(default_factory=dict)  # field name -> GHL response
    failures: List[FieldCreationFailed] = field(default_factory=list)
    already_existing: List[str] = field(default_factory=list)
    batch_count: int = 0

    @property
    def created_count(self) -> int:
        return len(self.created)


class CustomFieldBatchCreator:
    """
    Creates unmatched custom fields in fixed-size batches, pausing between
    batches to stay under GHL's rate limit. A failing field is skipped; it
    never stops the remaining fields.
    """

    def __init__(self, ghl_api: GoHighLevelAPI, batch_size: Optional[int] = None,
                 batch_delay: Optional[float] = None, sleep: Callable[[float], None] = time.sleep):
        self.ghl_api = ghl_api
        self.batch_size = batch_size or AppConfig.FIELD_PROCESSING_BATCH_SIZE
        self.batch_delay = AppConfig.BATCH_PROCESSING_DELAY if batch_delay is None else batch_delay
        self.sleep = sleep

    def create_custom_fields(self, unmatched_fields: List[str], location_access_token: str,
                             location_id: str) -> FieldCreationReport:
        report = FieldCreationReport()
        if not unmatched_fields:
            return report

        batches = chunk(unmatched_fields, self.batch_size)
        report.batch_count = len(batches)
        logger.info(f"🛠️ Creating {len(unmatched_fields)} custom fields in {len(batches)} batch(es) for location {location_id}")

        for batch_index, batch in enumerate(batches):
            for field_name in batch:
                self._create_one(field_name, location_access_token, location_id, report)

            if batch_index < len(batches) - 1:
                self.sleep(self.batch_delay)

        if report.created:
            logger.info(f"✅ Custom fields created successfully: {report.created_count}")
        if report.failures:
            logger.info(f"⚠️ Custom fields skipped after errors: {[f.field_name for f in report.failures]}")

        return report

    def _create_one(self, field_name: str, location_access_token: str, location_id: str,
                    report: FieldCreationReport):
        try:
            result = self.ghl_api.create_custom_field(location_access_token, location_id, field_name, "TEXT")
        except Exception as e:
            self._record_error(field_name, location_id, e, report)
            return

        if result and (result.get("customField") or {}).get("fieldKey"):
            report.created[field_name] = result
        elif result and result.get("error"):
            self._record_error(field_name, location_id, result["error"], report)
        else:
            report.failures.append(FieldCreationFailed(field_name, "GHL returned no fieldKey"))

    @staticmethod
    def _record_error(field_name: str, location_id: str, error: Any, report: FieldCreationReport):
        if is_already_exists_error(error):
            logger.debug(f"Custom field '{field_name}' already exists in location {location_id}")
            report.already_existing.append(field_name)
        else:
            logger.warning(f"⚠️ Failed to create custom field '{field_name}' (location {location_id}): {error}")
            report.failures.append(FieldCreationFailed(field_name, str(error)))

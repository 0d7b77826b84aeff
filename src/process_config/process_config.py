"""Well-known process and project-type identifiers.

Stage adjustment and completion rules key off a handful of fixed ids
(CTP, digital printing, cutting, dispatch ...). They live here so the
engines can be exercised with alternate id sets.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from src.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_SINGLE_CATCH_PROCESSES = ("Digital Printing", "CTP", "Offset Printing", "Cutting")


@dataclass(frozen=True)
class ProcessConstants:
    """Process/type ids the aggregation engines depend on."""

    ctp: int = 1
    offset_printing: int = 2
    digital_printing: int = 3
    cutting: int = 4
    catch_completion: int = 12
    dispatch: int = 14
    booklet_type: int = 1
    paper_type: int = 2
    booklet_quarter: int = 4
    independent_process_type: str = "Independent"
    # Transactions for these processes are recorded per catch, not fanned out to series siblings
    single_catch_processes: tuple[str, ...] = field(default=DEFAULT_SINGLE_CATCH_PROCESSES)

    @classmethod
    def from_dict(cls, data: dict) -> "ProcessConstants":
        defaults = cls()
        return cls(
            ctp=data.get("ctp", defaults.ctp),
            offset_printing=data.get("offset_printing", defaults.offset_printing),
            digital_printing=data.get("digital_printing", defaults.digital_printing),
            cutting=data.get("cutting", defaults.cutting),
            catch_completion=data.get("catch_completion", defaults.catch_completion),
            dispatch=data.get("dispatch", defaults.dispatch),
            booklet_type=data.get("booklet_type", defaults.booklet_type),
            paper_type=data.get("paper_type", defaults.paper_type),
            booklet_quarter=data.get("booklet_quarter", defaults.booklet_quarter),
            independent_process_type=data.get(
                "independent_process_type", defaults.independent_process_type
            ),
            single_catch_processes=tuple(
                data.get("single_catch_processes", defaults.single_catch_processes)
            ),
        )

    @classmethod
    def load(cls, path: str = "config/process_config.json") -> "ProcessConstants":
        """Load ids from JSON, falling back to the built-in defaults."""
        config_path = Path(path)
        if not config_path.exists():
            logger.debug("Process config %s not found, using defaults", config_path)
            return cls()

        try:
            with config_path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid process config {config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Process config {config_path} must hold a JSON object")
        return cls.from_dict(data)

    def is_booklet(self, type_id: int | None) -> bool:
        return type_id == self.booklet_type

    def records_single_catch(self, process_name: str | None) -> bool:
        return process_name in self.single_catch_processes

"""Concept-set CSV adapter (OHDSI Atlas exports).

Overview:
--------
Atlas exports a concept set as CSV (``includedConcepts.csv``,
``mappedConcepts.csv``): one row per concept, with the concept set it belongs
to. Rows are grouped by ``Concept Set ID`` and each group becomes one draft
ValueSet whose ``compose.include`` lists the codes per vocabulary.

CSV Format:
----------
```
Concept Set ID,Name,Concept ID,Concept Code,Concept Name,Vocabulary
1234,Diabetes,201826,44054006,Type 2 diabetes mellitus,SNOMED
1234,Diabetes,1567956,E11,Type 2 diabetes mellitus,ICD10CM
```

Header names are matched case-insensitively, with the aliases listed in
``CONCEPT_SET_COLUMN_ALIASES``. Column order does not matter.

Error Handling:
--------------
- MalformedRowError: required column missing from the header (reported on
  the header line) or required value blank on a data row (reported on that
  row's line)
- A file with only a header, or nothing at all, yields no value sets
"""

import csv
import io
import re
from dataclasses import dataclass, field
from typing import Annotated, Any
from urllib.parse import quote

import structlog
from pydantic import BaseModel, BeforeValidator, ConfigDict, ValidationError

from ..constants import (
    CONCEPT_SET_COLUMN_ALIASES,
    CONCEPT_SET_ID_PREFIX,
    CONCEPT_SET_IDENTIFIER_SYSTEM,
    OMOP_VOCABULARY_FALLBACK_PREFIX,
    OMOP_VOCABULARY_SYSTEMS,
    REQUIRED_CONCEPT_SET_COLUMNS,
)
from ..models.resources import ValueSet, format_validation_error
from ..utils.exceptions import MalformedRowError
from .base import ArtifactFormat, DocumentKind, FormatAdapter, ParsedArtifact, decode_text

logger = structlog.get_logger(__name__)

_INVALID_ID_CHARS = re.compile(r"[^A-Za-z0-9\-.]+")
_MAX_ID_LENGTH = 64


def strip_whitespace(v: Any) -> Any:
    """Strip string cells; blank cells become None."""
    if isinstance(v, str):
        return v.strip() or None
    return v


Cell = Annotated[str | None, BeforeValidator(strip_whitespace)]


class ConceptSetRow(BaseModel):
    """One concept row of an Atlas concept-set export."""

    model_config = ConfigDict(extra="ignore")

    concept_set_id: Annotated[str, BeforeValidator(strip_whitespace)]
    concept_set_name: Annotated[str, BeforeValidator(strip_whitespace)]
    concept_code: Annotated[str, BeforeValidator(strip_whitespace)]
    vocabulary_id: Annotated[str, BeforeValidator(strip_whitespace)]
    concept_name: Cell = None
    concept_id: Cell = None


def normalize_header(header: str) -> str:
    """Lower-case and collapse whitespace (" Concept  Set ID" -> "concept set id")."""
    return " ".join(header.replace("\ufeff", "").strip().lower().split())


def vocabulary_system(vocabulary_id: str) -> str:
    """
    Map an OMOP vocabulary_id to a FHIR code system URL.

    Args:
        vocabulary_id: OMOP vocabulary identifier ("SNOMED", "ICD10CM", ...)

    Returns:
        Canonical URL; unknown vocabularies get an ohdsi.org URL
    """
    system = OMOP_VOCABULARY_SYSTEMS.get(vocabulary_id.strip().upper())
    if system:
        return system
    return OMOP_VOCABULARY_FALLBACK_PREFIX + quote(vocabulary_id.strip(), safe="")


def concept_set_resource_id(concept_set_id: str) -> str:
    """FHIR-legal resource id for a concept set."""
    cleaned = _INVALID_ID_CHARS.sub("-", concept_set_id).strip("-") or "unnamed"
    return (CONCEPT_SET_ID_PREFIX + cleaned)[:_MAX_ID_LENGTH]


@dataclass
class _ConceptSetGroup:
    """Rows of one concept set, grouped by code system in first-seen order."""

    concept_set_id: str
    name: str
    systems: dict[str, list[dict[str, str]]] = field(default_factory=dict)
    seen: set[tuple[str, str]] = field(default_factory=set)

    def add(self, row: ConceptSetRow) -> bool:
        system = vocabulary_system(row.vocabulary_id)
        if (system, row.concept_code) in self.seen:
            return False
        self.seen.add((system, row.concept_code))

        concept = {"code": row.concept_code}
        if row.concept_name:
            concept["display"] = row.concept_name
        self.systems.setdefault(system, []).append(concept)
        return True

    def to_value_set(self) -> ValueSet:
        return ValueSet.model_validate(
            {
                "resourceType": "ValueSet",
                "id": concept_set_resource_id(self.concept_set_id),
                "identifier": [
                    {"system": CONCEPT_SET_IDENTIFIER_SYSTEM, "value": self.concept_set_id}
                ],
                "name": self.name,
                "title": self.name,
                "status": "draft",
                "compose": {
                    "include": [
                        {"system": system, "concept": concepts}
                        for system, concepts in self.systems.items()
                    ]
                },
            }
        )


class ConceptSetCsvAdapter(FormatAdapter):
    """
    Parse Atlas concept-set CSV exports into ValueSets.

    Features:
    - Column order doesn't matter (headers are mapped through aliases)
    - UTF-8 byte order mark tolerated
    - Blank lines skipped
    - Duplicate codes within one system are dropped
    """

    format = ArtifactFormat.CSV

    def parse(self, content: bytes, source: str) -> ParsedArtifact:
        """
        Parse a concept-set CSV.

        Args:
            content: Raw CSV bytes
            source: Artifact label

        Returns:
            ParsedArtifact with one ValueSet per concept set, in first-seen order

        Raises:
            MalformedRowError: If a required column or value is missing
        """
        return self.parse_text(decode_text(content, source), source)

    def parse_text(self, text: str, source: str) -> ParsedArtifact:
        """Parse already-decoded CSV text."""
        reader = csv.reader(io.StringIO(text))
        columns: dict[int, str] | None = None
        groups: dict[str, _ConceptSetGroup] = {}
        rows_parsed = 0
        duplicates = 0

        for line_num, row_list in enumerate(reader, start=1):
            if not row_list or all(not cell.strip() for cell in row_list):
                continue

            if columns is None:
                columns = self._map_columns(row_list, line_num, source)
                continue

            row = self._validate_row(row_list, columns, line_num, source)
            rows_parsed += 1

            group = groups.get(row.concept_set_id)
            if group is None:
                group = _ConceptSetGroup(row.concept_set_id, row.concept_set_name)
                groups[row.concept_set_id] = group
            if not group.add(row):
                duplicates += 1

        if rows_parsed == 0:
            logger.warning("Concept-set CSV contains no concept rows", source=source)

        value_sets = [group.to_value_set() for group in groups.values()]
        logger.info(
            "Concept-set CSV parsed",
            source=source,
            rows_parsed=rows_parsed,
            value_sets=len(value_sets),
            duplicate_codes=duplicates,
        )
        return ParsedArtifact(kind=DocumentKind.TABULAR, resources=value_sets)

    def _map_columns(self, headers: list[str], line_num: int, source: str) -> dict[int, str]:
        """Map header positions to row model fields; the first matching column wins."""
        columns: dict[int, str] = {}
        for position, header in enumerate(headers):
            field_name = CONCEPT_SET_COLUMN_ALIASES.get(normalize_header(header))
            if field_name and field_name not in columns.values():
                columns[position] = field_name

        missing = [
            display
            for field_name, display in REQUIRED_CONCEPT_SET_COLUMNS.items()
            if field_name not in columns.values()
        ]
        if missing:
            raise MalformedRowError(
                f"Missing required column(s): {', '.join(missing)}",
                line_number=line_num,
                source=source,
            )

        logger.debug("Concept-set CSV columns mapped", source=source, columns=columns)
        return columns

    def _validate_row(
        self, row_list: list[str], columns: dict[int, str], line_num: int, source: str
    ) -> ConceptSetRow:
        values = {
            field_name: row_list[position] if position < len(row_list) else ""
            for position, field_name in columns.items()
        }

        for field_name, display in REQUIRED_CONCEPT_SET_COLUMNS.items():
            if not values.get(field_name, "").strip():
                raise MalformedRowError(
                    f"Missing value for required column '{display}'",
                    line_number=line_num,
                    source=source,
                )

        try:
            return ConceptSetRow.model_validate(values)
        except ValidationError as e:
            raise MalformedRowError(
                format_validation_error(e), line_number=line_num, source=source
            ) from e

"""Configuration constants for termbundle.

Named constants for media types, file names, FHIR resource types and the
OHDSI vocabulary mapping used by the concept-set CSV adapter.
"""

# -----------------------------------------------------------------------------
# FHIR Resource Types
# -----------------------------------------------------------------------------

VALUE_SET: str = "ValueSet"
CODE_SYSTEM: str = "CodeSystem"
BUNDLE: str = "Bundle"

TERMINOLOGY_RESOURCE_TYPES: frozenset[str] = frozenset({VALUE_SET, CODE_SYSTEM})

FHIR_JSON_MEDIA_TYPE: str = "application/fhir+json"

# Default file name for the working bundle (matches the download name of the web editor)
DEFAULT_BUNDLE_FILENAME: str = "Terminology.bundle.json"


# -----------------------------------------------------------------------------
# Artifact Classification
# -----------------------------------------------------------------------------
# Declared media type is checked first, file extension second.

JSON_MEDIA_TYPES: frozenset[str] = frozenset(
    {"application/json", FHIR_JSON_MEDIA_TYPE, "text/json"}
)
CSV_MEDIA_TYPES: frozenset[str] = frozenset({"text/csv", "application/csv"})
ZIP_MEDIA_TYPES: frozenset[str] = frozenset(
    {"application/zip", "application/x-zip-compressed", "application/x-zip"}
)

JSON_EXTENSIONS: frozenset[str] = frozenset({".json"})
CSV_EXTENSIONS: frozenset[str] = frozenset({".csv"})
ZIP_EXTENSIONS: frozenset[str] = frozenset({".zip"})

# Member that must be present in an Atlas "exportedConceptSet" ZIP archive
DEFAULT_ARCHIVE_MEMBER: str = "mappedConcepts.csv"


# -----------------------------------------------------------------------------
# Concept-Set CSV Schema (OHDSI Atlas export)
# -----------------------------------------------------------------------------
# Maps normalized (lower-cased, trimmed) header names to row model fields.

CONCEPT_SET_COLUMN_ALIASES: dict[str, str] = {
    "concept set id": "concept_set_id",
    "conceptset id": "concept_set_id",
    "name": "concept_set_name",
    "concept set name": "concept_set_name",
    "concept code": "concept_code",
    "source code": "concept_code",
    "vocabulary": "vocabulary_id",
    "vocabulary id": "vocabulary_id",
    "source vocabulary": "vocabulary_id",
    "source vocabulary id": "vocabulary_id",
    "concept name": "concept_name",
    "source code description": "concept_name",
    "concept id": "concept_id",
    "source concept id": "concept_id",
}

# Human-readable column names reported when a required field is missing
REQUIRED_CONCEPT_SET_COLUMNS: dict[str, str] = {
    "concept_set_id": "Concept Set ID",
    "concept_set_name": "Name",
    "concept_code": "Concept Code",
    "vocabulary_id": "Vocabulary",
}

CONCEPT_SET_IDENTIFIER_SYSTEM: str = "urn:ohdsi:atlas:concept-set"
CONCEPT_SET_ID_PREFIX: str = "ohdsi-concept-set-"

# OMOP vocabulary_id -> FHIR code system canonical URL
OMOP_VOCABULARY_SYSTEMS: dict[str, str] = {
    "SNOMED": "http://snomed.info/sct",
    "LOINC": "http://loinc.org",
    "ICD10CM": "http://hl7.org/fhir/sid/icd-10-cm",
    "ICD10": "http://hl7.org/fhir/sid/icd-10",
    "ICD10PCS": "http://www.cms.gov/Medicare/Coding/ICD10",
    "ICD9CM": "http://hl7.org/fhir/sid/icd-9-cm",
    "ICD9PROC": "http://hl7.org/fhir/sid/icd-9-cm",
    "RXNORM": "http://www.nlm.nih.gov/research/umls/rxnorm",
    "CPT4": "http://www.ama-assn.org/go/cpt",
    "HCPCS": "urn:oid:2.16.840.1.113883.6.285",
    "NDC": "http://hl7.org/fhir/sid/ndc",
    "CVX": "http://hl7.org/fhir/sid/cvx",
    "UCUM": "http://unitsofmeasure.org",
    "NUCC": "http://nucc.org/provider-taxonomy",
}

OMOP_VOCABULARY_FALLBACK_PREFIX: str = "http://ohdsi.org/omop/vocabulary/"


# -----------------------------------------------------------------------------
# Network
# -----------------------------------------------------------------------------

# Upper bound on search result pages followed through Bundle.link[next]
MAX_SEARCH_PAGES: int = 100

# Maximum number of times a 429 response is retried
MAX_RATE_LIMIT_RETRIES: int = 3


# -----------------------------------------------------------------------------
# Release
# -----------------------------------------------------------------------------

VERSION: str = "0.1.0"

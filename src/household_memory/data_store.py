"""Data persistence for Household Memory.

Every store keeps one versioned JSON document per household at
``{data_dir}/{household_id}/{file_name}``. Documents are validated with
pydantic on load, migrated to the current schema version when needed, and
written atomically with a backup of the previous file.
"""

import json
import logging
import os
import shutil
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Generic, TypeVar
from uuid import UUID, uuid4

from pydantic import ValidationError

from .models import SCHEMA_VERSION, StoreDocument, utc_now

logger = logging.getLogger(__name__)

DocT = TypeVar("DocT", bound=StoreDocument)

DOCUMENT_FIELD = "<document>"


class MemoryStoreError(Exception):
    """Base class for store errors."""


@dataclass(frozen=True)
class SchemaIssue:
    """A single schema violation found while loading a document."""

    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class SchemaValidationError(MemoryStoreError):
    """Raised when a stored document does not match its schema."""

    def __init__(self, path: Path, issues: list[SchemaIssue]):
        self.path = path
        self.issues = issues
        details = "; ".join(str(issue) for issue in issues)
        super().__init__(f"Invalid document at '{path}': {details}")

    @property
    def fields(self) -> list[str]:
        """Names of the offending fields."""
        return [issue.field for issue in self.issues]

    @classmethod
    def from_validation_error(cls, path: Path, error: ValidationError) -> "SchemaValidationError":
        issues = []
        for err in error.errors():
            field = ".".join(str(part) for part in err["loc"]) or DOCUMENT_FIELD
            issues.append(SchemaIssue(field=field, message=err["msg"]))
        return cls(path, issues)


class StoreNotLoadedError(MemoryStoreError):
    """Raised when a store's document is accessed before loading."""

    def __init__(self, store_name: str):
        self.store_name = store_name
        super().__init__(f"Store '{store_name}' has not been loaded")


class RecordNotFoundError(MemoryStoreError):
    """Raised when a write targets a record that does not exist."""

    def __init__(self, record_id: str, kind: str = "Record"):
        self.record_id = record_id
        super().__init__(f"{kind} with ID '{record_id}' not found")


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder for our data types."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, date):
            return obj.isoformat()
        if isinstance(obj, time):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


def backup_path_for(path: Path) -> Path:
    """Path of the backup kept beside a store file."""
    return path.with_name(f"{path.name}.backup")


def atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON to path without ever leaving a partial file behind.

    The data is written to a uniquely named temporary file in the same
    directory, the previous file (if any) is copied to its backup path, and
    the temporary file then replaces the target.

    Args:
        path: Destination file
        data: JSON-serialisable data
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.tmp.{uuid4().hex}")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, cls=JSONEncoder, indent=2)
            f.flush()
            os.fsync(f.fileno())
        if path.exists():
            shutil.copy2(path, backup_path_for(path))
        os.replace(tmp_path, path)
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise


def _version_key(path: Path, version: str) -> tuple[int, ...]:
    try:
        return tuple(int(part) for part in version.split("."))
    except ValueError:
        raise SchemaValidationError(
            path, [SchemaIssue("version", f"invalid version '{version}'")]
        ) from None


class BaseStore(Generic[DocT]):
    """Load / validate / migrate / save lifecycle for one store document.

    Subclasses set ``file_name`` and ``document_model`` and may override
    ``migrate`` to upgrade documents written by older schema versions.
    """

    file_name: ClassVar[str]
    document_model: ClassVar[type[StoreDocument]]

    def __init__(self, household_id: str, data_dir: Path | None = None):
        """Initialize store.

        Args:
            household_id: Household the document belongs to
            data_dir: Root data directory. Defaults to ./data
        """
        if not household_id:
            raise ValueError("household_id must not be empty")
        self.household_id = household_id
        self.data_dir = Path(data_dir) if data_dir else Path.cwd() / "data"
        self._document: DocT | None = None

    @property
    def store_name(self) -> str:
        return self.file_name.removesuffix(".json")

    @property
    def file_path(self) -> Path:
        """Path to this store's document."""
        return self.data_dir / self.household_id / self.file_name

    @property
    def backup_path(self) -> Path:
        """Path to the backup of the previous document."""
        return backup_path_for(self.file_path)

    @property
    def is_loaded(self) -> bool:
        return self._document is not None

    @property
    def document(self) -> DocT:
        """The loaded document.

        Raises:
            StoreNotLoadedError: If load() has not been called yet
        """
        if self._document is None:
            raise StoreNotLoadedError(self.store_name)
        return self._document

    def empty_document(self) -> DocT:
        """Return a fresh, schema-valid document."""
        return self.document_model(household_id=self.household_id)  # type: ignore[return-value]

    def validate(self, raw: Any) -> DocT:
        """Validate raw JSON data against the document schema.

        Raises:
            SchemaValidationError: Naming each offending field
        """
        try:
            return self.document_model.model_validate(raw)  # type: ignore[return-value]
        except ValidationError as e:
            raise SchemaValidationError.from_validation_error(self.file_path, e) from e

    def migrate(self, document: DocT, from_version: str) -> DocT:
        """Upgrade a document written by an older schema version.

        Args:
            document: Validated document as loaded from disk
            from_version: Version recorded in the document

        Returns:
            The migrated document
        """
        return document

    def load(self) -> DocT:
        """Load the document from disk.

        A missing file yields an empty document. A document with an outdated
        version is migrated and saved before this returns.

        Returns:
            The loaded document

        Raises:
            SchemaValidationError: If the file is not valid JSON or fails validation
        """
        path = self.file_path
        if not path.exists():
            logger.debug("No %s document at %s, starting empty", self.store_name, path)
            self._document = self.empty_document()
            return self._document

        try:
            with open(path, encoding="utf-8") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SchemaValidationError(path, [SchemaIssue(DOCUMENT_FIELD, str(e))]) from e

        document = self.validate(raw)
        if document.household_id != self.household_id:
            logger.warning(
                "Document %s belongs to household '%s', expected '%s'",
                path,
                document.household_id,
                self.household_id,
            )

        if document.version != SCHEMA_VERSION:
            from_version = document.version
            if _version_key(path, from_version) > _version_key(path, SCHEMA_VERSION):
                raise SchemaValidationError(
                    path,
                    [SchemaIssue("version", f"newer than supported version {SCHEMA_VERSION}")],
                )
            logger.info(
                "Migrating %s from version %s to %s", self.store_name, from_version, SCHEMA_VERSION
            )
            document = self.migrate(document, from_version)
            document.version = SCHEMA_VERSION
            self._document = document
            self.save()
        else:
            self._document = document

        logger.debug("Loaded %s from %s", self.store_name, path)
        return self._document

    def ensure_loaded(self) -> DocT:
        """Load the document if it has not been loaded yet."""
        if self._document is None:
            return self.load()
        return self._document

    def save(self) -> None:
        """Stamp updated_at and write the document atomically."""
        document = self.ensure_loaded()
        document.updated_at = utc_now()
        atomic_write_json(
            self.file_path, document.model_dump(by_alias=True, exclude_none=True)
        )
        logger.debug("Saved %s to %s", self.store_name, self.file_path)

    def clear(self) -> None:
        """Reset to an empty document and persist it."""
        self._document = self.empty_document()
        self.save()

    def reload(self) -> DocT:
        """Discard in-memory state and load from disk again."""
        self._document = None
        return self.load()

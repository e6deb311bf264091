"""
Identity store: person name -> list of face descriptors, persisted as one JSON
object under a single storage key.
"""
from __future__ import annotations
import json
import logging
from typing import Dict, List, Sequence, Union

from pydantic import StrictFloat, StrictInt, TypeAdapter, ValidationError

from facelab.errors import InvalidImportDocument
from facelab.storage import FileKeyValueStore

logger = logging.getLogger(__name__)

IdentityDB = Dict[str, List[List[float]]]

_DOCUMENT = TypeAdapter(Dict[str, List[List[Union[StrictInt, StrictFloat]]]])


def validate_document(doc, descriptor_length: int) -> IdentityDB:
    """
    Check an identity document: names map to lists of numeric vectors of
    `descriptor_length` elements each.

    Raises:
        InvalidImportDocument: on any shape violation.
    """
    try:
        _DOCUMENT.validate_python(doc)
    except ValidationError as e:
        raise InvalidImportDocument(f"Invalid identity document: {e.error_count()} schema error(s)") from e

    for name, vectors in doc.items():
        for i, vec in enumerate(vectors):
            if len(vec) != descriptor_length:
                raise InvalidImportDocument(
                    f"Descriptor {i} of {name!r} has {len(vec)} values, expected {descriptor_length}"
                )
    return doc


class IdentityStore:
    """Load/save/clear/import/export of the identity database."""

    def __init__(
        self,
        kv: FileKeyValueStore,
        key: str = "facelab_db_v1",
        descriptor_length: int = 128,
        strict_import: bool = True,
    ):
        self.kv = kv
        self.key = key
        self.descriptor_length = int(descriptor_length)
        self.strict_import = bool(strict_import)

    def load(self) -> IdentityDB:
        """
        Return the persisted database, or an empty one when nothing is stored
        or the stored text is not a JSON object.
        """
        raw = self.kv.get_item(self.key)
        try:
            db = json.loads(raw or "{}")
        except ValueError:
            logger.warning(f"[store] corrupt persisted state under key={self.key}; using empty store")
            return {}
        if not isinstance(db, dict):
            logger.warning(f"[store] persisted state is {type(db).__name__}, not an object; using empty store")
            return {}
        return db

    def save(self, db: IdentityDB) -> None:
        self.kv.set_item(self.key, json.dumps(db))
        logger.debug(f"[store] saved names={len(db)}")

    def clear(self) -> None:
        self.kv.remove_item(self.key)
        logger.info("[store] cleared")

    def append(self, name: str, descriptors: Sequence[Sequence[float]]) -> IdentityDB:
        db = self.load()
        existing = db.get(name)
        if existing is None:
            existing = []
        elif not isinstance(existing, list):
            logger.warning(f"[store] entry for {name!r} is {type(existing).__name__}, not a list; replacing it")
            existing = []
        db[name] = list(existing) + [[float(v) for v in d] for d in descriptors]
        self.save(db)
        logger.info(f"[store] appended {len(descriptors)} descriptor(s) to {name!r} (total={len(db[name])})")
        return db

    def export_document(self) -> str:
        return json.dumps(self.load())

    def import_document(self, text: str | bytes) -> IdentityDB:
        """
        Replace the whole database with a JSON document.

        Nothing is written unless the document parses (and, in strict mode,
        validates).
        """
        try:
            parsed = json.loads(text)
        except ValueError as e:
            raise InvalidImportDocument("Invalid JSON file") from e
        if self.strict_import:
            validate_document(parsed, self.descriptor_length)
        self.kv.set_item(self.key, json.dumps(parsed))
        logger.info(f"[store] imported document strict={self.strict_import}")
        return parsed

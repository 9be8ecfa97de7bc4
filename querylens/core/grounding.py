"""
Grounding of free-text table references against the live catalog.

Table names are pulled out of SQL with a lexical scan rather than a parser;
anything implementing `TableExtractor` can replace it.
"""
import logging
import re
from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel

from querylens.database.base import DatabaseAdapter

logger = logging.getLogger(__name__)


class TableExtractor(Protocol):
    def extract(self, sql: str) -> List[str]:
        ...


class RegexTableExtractor:
    """Captures the identifier following every FROM / JOIN keyword."""

    pattern = re.compile(r"\b(?:FROM|JOIN)\s+([\w.`\"]+)", re.IGNORECASE)
    quote_chars = "`\""

    def extract(self, sql: str) -> List[str]:
        sql = re.sub(r"\s+", " ", sql.strip())
        names = []
        for match in self.pattern.findall(sql):
            name = match
            for char in self.quote_chars:
                name = name.replace(char, "")
            if name:
                names.append(name)
        # unique, first occurrence order
        return list(dict.fromkeys(names))


class TableDefinition(BaseModel):
    name: str
    ddl: str


class SchemaGrounder:
    def __init__(self, db: DatabaseAdapter, extractor: Optional[TableExtractor] = None):
        self.db = db
        self.extractor = extractor or RegexTableExtractor()

    @staticmethod
    def resolve(names: List[str], catalog: List[str], schema: Optional[str] = None) -> List[str]:
        """
        Map extracted names to catalog table names. Exact names win over
        case-insensitive matches; names with no match are dropped.
        """
        exact = set(catalog)
        lowered: Dict[str, str] = {}
        for table in catalog:
            lowered.setdefault(table.lower(), table)

        resolved = []
        for name in names:
            if "." in name:
                qualifier, _, name = name.rpartition(".")
                if schema is None or qualifier.lower() != schema.lower():
                    continue
            if name in exact:
                table = name
            else:
                table = lowered.get(name.lower())
            if table is not None and table not in resolved:
                resolved.append(table)
        return resolved

    async def ground(self, sql: str, schema: str) -> List[TableDefinition]:
        names = self.extractor.extract(sql)
        if not names:
            return []

        catalog = await self.db.list_tables(schema)
        tables = self.resolve(names, catalog, schema)
        skipped = len(names) - len(tables)
        if skipped:
            logger.debug(f"{skipped} referenced name(s) not found in catalog of {schema}")

        definitions = []
        for table in tables:
            try:
                ddl = await self.db.get_table_ddl(schema, table)
            except Exception as e:
                logger.warning(f"Could not fetch DDL of {schema}.{table}: {e}")
                continue
            definitions.append(TableDefinition(name=table, ddl=ddl))
        return definitions

from typing import List, Optional

from querylens.core.grounding import TableDefinition

ANALYSIS_INTRO = """
I need help with optimizing a MySQL 8 query. I have identified this query using performance_schema as consuming too many resources. I will provide you with an example query and the schema of tables used in the query.

Analyze all information and provide me with instructions to change the query, update schema or how to split it into more manageable queries.
""".strip()

DATABASE_ACCESS_NOTE = """
### Additional information
You have live read access to the database. Use the provided tool to get more information about tables, their data distribution or index statistics if needed. You can also check statistics in performance_schema.events_statements_summary_by_digest by the provided digest.
""".strip()


def build_analysis_prompt(
    sql: str,
    schema: str,
    digest: str,
    tables: List[TableDefinition],
    explain: Optional[str] = None,
    use_database_access: bool = False,
) -> str:
    sections = [ANALYSIS_INTRO, f"### Query\n```\n{sql}\n```"]

    if use_database_access:
        sections.append(DATABASE_ACCESS_NOTE)

    if explain:
        sections.append(f"### Explain result\n```\n{explain}\n```")

    schema_section = ["### Schema of tables and their indexes"]
    for table in tables:
        schema_section.append(f"#### {table.name}\n```\n{table.ddl}\n```")
    if len(schema_section) == 1:
        schema_section.append("No referenced tables were found in the database catalog.")
    sections.append("\n\n".join(schema_section))

    sections.append(f"## General information\n\nDatabase: {schema}\n\nQuery digest: {digest}")

    return "\n\n".join(sections) + "\n"

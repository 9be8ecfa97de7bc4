from typing import Optional

STATISTICS_TABLE_DDL = """
CREATE TABLE performance_schema.events_statements_summary_by_digest (
  SCHEMA_NAME varchar(64),
  DIGEST varchar(64),
  DIGEST_TEXT longtext,
  COUNT_STAR bigint unsigned NOT NULL,
  SUM_TIMER_WAIT bigint unsigned NOT NULL,
  MIN_TIMER_WAIT bigint unsigned NOT NULL,
  AVG_TIMER_WAIT bigint unsigned NOT NULL,
  MAX_TIMER_WAIT bigint unsigned NOT NULL,
  SUM_LOCK_TIME bigint unsigned NOT NULL,
  SUM_ERRORS bigint unsigned NOT NULL,
  SUM_WARNINGS bigint unsigned NOT NULL,
  SUM_ROWS_AFFECTED bigint unsigned NOT NULL,
  SUM_ROWS_SENT bigint unsigned NOT NULL,
  SUM_ROWS_EXAMINED bigint unsigned NOT NULL,
  SUM_CREATED_TMP_DISK_TABLES bigint unsigned NOT NULL,
  SUM_CREATED_TMP_TABLES bigint unsigned NOT NULL,
  SUM_SELECT_FULL_JOIN bigint unsigned NOT NULL,
  SUM_SELECT_FULL_RANGE_JOIN bigint unsigned NOT NULL,
  SUM_SELECT_RANGE bigint unsigned NOT NULL,
  SUM_SELECT_RANGE_CHECK bigint unsigned NOT NULL,
  SUM_SELECT_SCAN bigint unsigned NOT NULL,
  SUM_SORT_MERGE_PASSES bigint unsigned NOT NULL,
  SUM_SORT_RANGE bigint unsigned NOT NULL,
  SUM_SORT_ROWS bigint unsigned NOT NULL,
  SUM_SORT_SCAN bigint unsigned NOT NULL,
  SUM_NO_INDEX_USED bigint unsigned NOT NULL,
  SUM_NO_GOOD_INDEX_USED bigint unsigned NOT NULL,
  SUM_CPU_TIME bigint unsigned NOT NULL,
  MAX_CONTROLLED_MEMORY bigint unsigned NOT NULL,
  MAX_TOTAL_MEMORY bigint unsigned NOT NULL,
  COUNT_SECONDARY bigint unsigned NOT NULL,
  FIRST_SEEN timestamp(6) NOT NULL,
  LAST_SEEN timestamp(6) NOT NULL,
  QUANTILE_95 bigint unsigned NOT NULL,
  QUANTILE_99 bigint unsigned NOT NULL,
  QUANTILE_999 bigint unsigned NOT NULL,
  QUERY_SAMPLE_TEXT longtext,
  QUERY_SAMPLE_SEEN timestamp(6) NOT NULL,
  QUERY_SAMPLE_TIMER_WAIT bigint unsigned NOT NULL
);
""".strip()

SELECTION_PROMPT = f"""
I need help to optimize my SQL queries on a MySQL 8 server. I will provide a tool to query performance_schema.events_statements_summary_by_digest and get specific queries to optimize.

Query optimization can be achieved from different perspectives like execution time, memory usage, IOPS usage, temporary tables, sorting or missing indexes. You must use multiple optimization types and request query candidates with different queries to the performance schema.

Table events_statements_summary_by_digest looks like:

{STATISTICS_TABLE_DDL}

All timer columns are in picoseconds. For analyzing use just attributes that exist in this table.

After examining each group, you MUST submit your selection of queries for this group using tool "submit_selection". I am expecting to get at least four groups with up to 20 queries each. DO NOT end your response asking if you should proceed. Actually submit the selections immediately.
""".strip()


def build_selection_prompt(special_instructions: Optional[str] = None) -> str:
    prompt = SELECTION_PROMPT
    if special_instructions:
        prompt += "\n\n**Special instructions:**\n\n" + special_instructions
    return prompt

import re
from typing import Optional, Tuple
from querylens.core.config import SandboxConfig

READ_STATEMENTS = ("SELECT", "WITH", "SHOW", "EXPLAIN", "DESCRIBE", "DESC")
SHOW_CREATE = re.compile(r"^SHOW\s+CREATE\b", re.IGNORECASE)

class SecurityGuard:
    def __init__(self, config: SandboxConfig):
        self.config = config
        # Keyword scan, not a parser: string literals containing these words are rejected too
        self.forbidden_patterns = [
            re.compile(rf"\b{op}\b", re.IGNORECASE) for op in self.config.forbidden_operations
        ]

    def validate_sql(self, sql: str) -> Tuple[bool, Optional[str]]:
        """
        Check if SQL is safe to execute on behalf of the model.
        Returns (is_safe, error_message)
        """
        stripped = sql.strip().rstrip(";").strip()
        if not stripped:
            return False, "Empty query"

        # 1. Only read statements
        first_word = stripped.split(None, 1)[0].upper()
        if first_word not in READ_STATEMENTS:
            return False, f"Only read statements are allowed ({', '.join(READ_STATEMENTS)}), got {first_word}"

        # 2. Check for forbidden operations; SHOW CREATE only reads a definition
        scanned = SHOW_CREATE.sub("SHOW", stripped)
        for pattern in self.forbidden_patterns:
            if pattern.search(scanned):
                return False, f"Forbidden operation detected: {pattern.pattern}"

        # 3. Single statement only
        if ";" in stripped:
            return False, "Multiple statements are not allowed for security reasons"

        return True, None

import os
import logging
from typing import List, Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
import yaml

logger = logging.getLogger(__name__)

class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1

class DatabaseConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 3306
    database: str = "performance_schema"
    user: str = "root"
    password: str = ""
    pool_size: int = 10

class LLMProviderConfig(BaseModel):
    api_key: str
    model: str
    base_url: Optional[str] = None

class LLMConfig(BaseModel):
    default_provider: str = "openai"
    timeout: float = 600.0
    max_retries: int = 3
    qwen: Optional[LLMProviderConfig] = None
    deepseek: Optional[LLMProviderConfig] = None
    glm: Optional[LLMProviderConfig] = None
    openai: Optional[LLMProviderConfig] = None
    ollama: Optional[LLMProviderConfig] = None

class SelectionConfig(BaseModel):
    model: Optional[str] = None
    temperature: float = 1.0
    max_tokens: int = 120_000

class AnalysisConfig(BaseModel):
    model: Optional[str] = None
    temperature: float = 1.0
    max_tokens: int = 32_767
    max_concurrency: int = 4

class SandboxConfig(BaseModel):
    cache_size: int = 256
    cache_results: bool = False
    forbidden_operations: List[str] = [
        "DROP", "TRUNCATE", "DELETE", "UPDATE", "INSERT", "ALTER", "CREATE",
        "RENAME", "GRANT", "REVOKE", "LOCK", "KILL", "SHUTDOWN", "OUTFILE", "DUMPFILE",
    ]

class StateConfig(BaseModel):
    path: str = "var/querylens.sqlite"

class LoggingConfig(BaseModel):
    level: str = "INFO"

class Settings(BaseSettings):
    server: ServerConfig = Field(default_factory=ServerConfig)
    analyzed_database: Optional[DatabaseConfig] = None
    llm: LLMConfig = Field(default_factory=LLMConfig)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    state: StateConfig = Field(default_factory=StateConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix='QUERYLENS_',
        env_nested_delimiter='__',
        env_file='.env',
        extra='ignore'
    )

    @classmethod
    def load_from_yaml(cls, path: str = "config/config.example.yaml") -> "Settings":
        if not os.path.exists(path):
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r") as f:
            yaml_data = yaml.safe_load(f) or {}

        return cls(**yaml_data)

def load_settings() -> Settings:
    config_path = os.getenv("QUERYLENS_CONFIG", "config/config.yaml")
    if not os.path.exists(config_path):
        config_path = "config/config.example.yaml"

    try:
        return Settings.load_from_yaml(config_path)
    except Exception as e:
        logger.warning(f"Failed to load config from {config_path}: {e}; using defaults")
        return Settings()

# Global settings instance
settings = load_settings()

import base64
import binascii
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Loads application configuration from a .env file and environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    PROJECT_NAME: str = "Linear Cache MCP"
    LOG_LEVEL: str = "INFO"

    # Linear GraphQL API. The key is sent as-is in the Authorization header.
    LINEAR_API_KEY: Optional[str] = None
    LINEAR_API_URL: str = "https://api.linear.app/graphql"
    LINEAR_USER_ID: Optional[str] = None
    LINEAR_TIMEOUT_SECONDS: float = 30.0
    LINEAR_ISSUE_FETCH_LIMIT: int = 250

    # Endpoint of the AI summarize route, e.g. http://localhost:3000/api/ai/summarize.
    # Summaries are only regenerated during apply when this is set.
    SUMMARY_API_URL: Optional[str] = None
    SUMMARY_TIMEOUT_SECONDS: float = 60.0

    PREVIEW_MAX_AGE_MINUTES: int = 30

    # DUMMY DATABASE_URL for Alembic CLI.
    # This is NOT used by the running application, which generates the URL per workspace.
    DATABASE_URL: str = "sqlite:///./dummy_for_alembic_cli.db"


def get_data_dir_for_workspace(workspace_id: str) -> Path:
    """Creates and returns a dedicated data directory within the specified workspace.
    This keeps one cache per workspace. The folder is named .linear_cache_data.
    """
    workspace_path = Path(workspace_id)
    if not workspace_path.is_dir():
        try:
            workspace_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ValueError(
                f"The specified workspace_id is not a valid directory and could not be created: {workspace_id} - Error: {e}"
            )

    data_dir = workspace_path / ".linear_cache_data"
    data_dir.mkdir(exist_ok=True)
    return data_dir


def get_database_url_for_workspace(workspace_id: str) -> str:
    """Generates the SQLite DATABASE_URL for a specific workspace."""
    data_dir = get_data_dir_for_workspace(workspace_id)
    db_path = data_dir / "linear_cache.db"
    return f"sqlite:///{db_path.resolve()}"


def encode_workspace_id(workspace_id: str) -> str:
    """Encodes a workspace path to a URL-safe base64 string."""
    return base64.urlsafe_b64encode(workspace_id.encode()).decode()


def decode_workspace_id(encoded_id: str) -> str:
    """Decodes a URL-safe base64 string back to a workspace path."""
    try:
        return base64.urlsafe_b64decode(encoded_id.encode()).decode()
    except (binascii.Error, UnicodeDecodeError):
        raise ValueError("Invalid workspace_id encoding.")


settings = Settings()

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="SCOPED_RAG_"
    )

    # Attribute storage: xattr keys are read/written under this namespace
    attribute_namespace: str = "user."
    strict_attributes: bool = False

    # Policy keys (shared by document attributes and requester context)
    identity_key: str = "user_id"
    location_key: str = "location"
    department_key: str = "department"
    sensitivity_key: str = "sensitivity"
    privileged_departments: list[str] = ["IT"]
    privileged_identities: list[str] = ["123"]

    # Embeddings
    embed_provider: str = "hash"  # hash|sentence-transformers
    embed_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimension: int = 8
    provider_timeout_s: float | None = None

    log_level: str = "INFO"


settings = Settings()

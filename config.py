from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PORT: int = 8000
    DATABASE_URL: str = ""
    FIRESTORE_DATABASE_ID: str = "carpool"
    CREDENTIALS_FILE: str = "credentials.json"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file='.env')

settings = Settings()

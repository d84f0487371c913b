"""Configuration management."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings from environment."""
    
    # ZooKeeper
    zks: str = ""  # comma-separated host:port list
    zk_connect_timeout_seconds: float = 1.0
    
    # HTTP basic auth
    auth_username: str = "admin"
    auth_password: str
    
    # Server
    host: str = "localhost"
    port: int = 8000
    
    # Logging
    log_level: str = "DEBUG"
    log_json: bool = True
    
    @property
    def zk_endpoints(self) -> list[str]:
        """ZooKeeper endpoints with empty entries dropped."""
        return [zk.strip() for zk in self.zks.split(",") if zk.strip()]
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

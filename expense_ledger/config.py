from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # MySQL配置
    mysql_host: str = "127.0.0.1"
    mysql_port: int = 3306
    mysql_database: str = "expense_ledger"
    mysql_user: str = "expense"
    mysql_password: str = ""

    # 完整连接串，设置后覆盖MySQL配置（测试时可用sqlite+aiosqlite）
    database_url: Optional[str] = None

    # MiniO配置
    minio_endpoint: str = "localhost:9000"
    minio_access_key: str = ""
    minio_secret_key: str = ""
    minio_bucket: str = "bills"
    minio_secure: bool = False
    minio_public_url: Optional[str] = None

    # 应用配置
    app_host: str = "0.0.0.0"
    app_port: int = 5000
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: List[str] = ["*"]

    # 审计日志连续写入失败多少次后触发告警
    audit_alert_threshold: int = 3

    # 被拒绝的账单是否允许修改后重新提交
    reopen_rejected_bills: bool = False

    class Config:
        env_file = ".env"

    @property
    def database_dsn(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"mysql+aiomysql://{self.mysql_user}:{self.mysql_password}"
            f"@{self.mysql_host}:{self.mysql_port}/{self.mysql_database}"
        )


settings = Settings()

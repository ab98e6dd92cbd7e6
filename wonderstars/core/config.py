from pydantic_settings import BaseSettings
from typing import Optional
from enum import Enum


class Environment(str, Enum):

    """运行环境枚举"""
    TESTING = "testing"
    PRODUCTION = "production"


class Settings(BaseSettings):

    # 应用基础配置
    app_name: str = "WonderStars Rewards"
    app_version: str = "1.0.0"
    environment: Environment = Environment.TESTING
    debug: bool = True

    # 数据库配置
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "wonderstars_db"
    db_user: str = "wonderstars_user"
    db_password: str = "wonderstars_password"

    # 数据库调用约束：单次调用超时 + 只读查询重试次数
    datastore_timeout_seconds: float = 5.0
    read_retry_attempts: int = 3
    read_retry_backoff_seconds: float = 0.2

    # Redis配置 (优惠券目录缓存)
    redis_url: Optional[str] = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0
    voucher_cache_ttl: int = 1800

    # 业务日历：每日券按该时区的自然日重置
    business_timezone: str = "Asia/Kuala_Lumpur"
    default_max_products_per_use: int = 6
    checkin_voucher_ttl_hours: int = 24

    # 手机验证码配置
    otp_expiry_seconds: int = 300
    otp_max_sends_per_hour: int = 3
    otp_phone_prefix: str = "+60"

    # iSMS短信网关
    isms_url: str = "https://ww3.isms.com.my/isms_send_all_id.php"
    isms_username: Optional[str] = None
    isms_password: Optional[str] = None
    isms_sender_id: str = "63001"
    isms_timeout: int = 15

    # 日志配置
    log_level: str = "INFO"

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def database_url_computed(self) -> str:
        """计算数据库URL"""
        if self.database_url:
            return self.database_url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def redis_url_computed(self) -> str:
        """计算Redis URL"""
        if self.redis_url:
            return self.redis_url
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    class Config:
        env_file = ".env"
        case_sensitive = False


# 全局配置实例
settings = Settings()

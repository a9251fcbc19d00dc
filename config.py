"""
Конфигурация приложения курьера с валидацией через Pydantic.
"""
from typing import List, Optional
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Config(BaseSettings):
    """Конфигурация приложения с валидацией."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Database
    DB_DIALECT: str = Field(default="sqlite", description="Тип БД: postgres или sqlite")
    DB_POOL_SIZE: int = Field(default=10, description="Размер пула соединений PostgreSQL")
    DB_MAX_OVERFLOW: int = Field(default=10, description="Доп. соединений поверх pool_size")
    DB_USER: str = Field(default="postgres", description="Пользователь БД")
    DB_PASS: str = Field(default="postgres", description="Пароль БД")
    DB_HOST: str = Field(default="localhost", description="Хост БД")
    DB_PORT: str = Field(default="5432", description="Порт БД")
    DB_NAME: str = Field(default="courier_bot", description="Имя БД")
    SQLITE_PATH: str = Field(default="courier_bot.sqlite3", description="Путь к SQLite файлу")
    DATABASE_URL_OVERRIDE: Optional[str] = Field(default=None, description="URL БД", validation_alias="DATABASE_URL")

    @field_validator("DB_DIALECT")
    @classmethod
    def validate_db_dialect(cls, v: str) -> str:
        """Валидация типа БД."""
        v = v.lower()
        if v not in ("postgres", "postgresql", "sqlite", "sqlite3"):
            raise ValueError(f"Неподдерживаемый тип БД: {v}")
        return v

    @computed_field
    @property
    def DATABASE_URL(self) -> str:
        """URL подключения к БД. Если задан DATABASE_URL — используем его."""
        raw = self.DATABASE_URL_OVERRIDE
        if raw:
            raw = raw.strip()
            # postgresql://... → для asyncpg нужен postgresql+asyncpg://
            if raw.startswith("postgresql://") and "+asyncpg" not in raw:
                return raw.replace("postgresql://", "postgresql+asyncpg://", 1)
            return raw
        if self.DB_DIALECT in ("sqlite", "sqlite3"):
            base_dir = Path(__file__).resolve().parent
            db_path = Path(self.SQLITE_PATH)
            if not db_path.is_absolute():
                db_path = base_dir / db_path
            return f"sqlite+aiosqlite:///{db_path.resolve().as_posix()}"
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASS}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # Bot
    # Токен проверяется при старте в main.py, чтобы сервисы импортировались без него
    BOT_TOKEN: str = Field(default="", description="Токен Telegram бота")
    ADMIN_IDS: str = Field(default="", description="ID администраторов через запятую")
    AUTO_ACTIVATE_COURIERS: bool = Field(
        default=True,
        description="Активировать курьера сразу при /start (иначе работа без сохранения до активации)"
    )

    @computed_field
    @property
    def ADMIN_IDS_LIST(self) -> List[int]:
        """Список ID администраторов."""
        if not self.ADMIN_IDS:
            return []
        return [int(id_str.strip()) for id_str in self.ADMIN_IDS.split(",") if id_str.strip()]

    # Redis (FSM storage)
    REDIS_HOST: str = Field(default="localhost", description="Хост Redis")
    REDIS_PORT: int = Field(default=6379, description="Порт Redis")
    REDIS_DB: int = Field(default=0, description="Номер БД Redis")
    REDIS_PASSWORD: Optional[str] = Field(default=None, description="Пароль Redis")

    # Курьер: взаиморасчёты и предложения заказов
    WORKER_TIMEZONE: str = Field(default="Asia/Kolkata", description="Часовой пояс курьера (даты для долгов и счётчиков)")
    DUES_CHARGE_PER_DAY: int = Field(default=30, ge=0, description="Плата платформы за один рабочий день")
    DUES_WEEKLY_CAP: int = Field(default=7, ge=1, description="Максимум оплачиваемых дней; больше — блокировка заказов")
    NETWORK_DELAY_SECONDS: float = Field(default=1.5, ge=0, description="Имитация сетевой задержки для действий курьера")
    FIRST_OFFER_DELAY_SECONDS: float = Field(default=5.0, ge=0, description="Через сколько секунд после выхода на линию придёт первый заказ")
    NEXT_OFFER_DELAY_SECONDS: float = Field(default=20.0, ge=0, description="Пауза между предложениями заказов")

    @field_validator("WORKER_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Валидация часового пояса."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Неизвестный часовой пояс: {v}")
        return v

    @property
    def worker_tz(self) -> ZoneInfo:
        return ZoneInfo(self.WORKER_TIMEZONE)

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Уровень логирования")
    DEBUG: bool = Field(default=False, description="Режим отладки")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Валидация уровня логирования."""
        v = v.upper()
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if v not in valid_levels:
            raise ValueError(f"Неподдерживаемый уровень логирования: {v}. Допустимые: {valid_levels}")
        return v


# Создаем экземпляр конфигурации с валидацией
try:
    config = Config()
except Exception as e:
    import sys
    print(f"❌ Ошибка загрузки конфигурации: {e}", file=sys.stderr)
    sys.exit(1)

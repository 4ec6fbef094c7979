from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ONE_PER_TASK_TERMINATION_MILLIS = 5000
BOUNDED_POOL_TERMINATION_MILLIS = 60000


class ExecutorConfiguration(BaseSettings):
    """
    Settings for the task executor.

    Read once at startup. Every field can be set from the environment with
    a `TASK_EXECUTION_` prefix, e.g. `TASK_EXECUTION_USE_ONE_PER_TASK_MODEL=true`.
    """

    model_config = SettingsConfigDict(env_prefix='TASK_EXECUTION_', frozen=True)

    use_one_per_task_model: bool = Field(False, description='Start a new thread per task instead of using a pool')
    pool_name_prefix: str = Field('async-thread-', description='Prefix for worker thread names')
    core_pool_size: int = Field(
        10,
        gt=0,
        description='Validated and logged only; the bounded pool starts workers on demand up to max_pool_size',
    )
    max_pool_size: int = Field(100, gt=0)
    queue_capacity: int = Field(50, ge=0)
    termination_timeout_millis: Optional[int] = Field(
        None, ge=0, description='Grace period on shutdown; defaults depend on the executor model'
    )

    @model_validator(mode='after')
    def check_pool_sizes(self) -> 'ExecutorConfiguration':
        if self.core_pool_size > self.max_pool_size:
            raise ValueError(
                f'core_pool_size ({self.core_pool_size}) must not exceed max_pool_size ({self.max_pool_size})'
            )
        return self

    @property
    def termination_timeout(self) -> float:
        """Shutdown grace period in seconds."""
        if self.termination_timeout_millis is not None:
            return self.termination_timeout_millis / 1000
        if self.use_one_per_task_model:
            return ONE_PER_TASK_TERMINATION_MILLIS / 1000
        return BOUNDED_POOL_TERMINATION_MILLIS / 1000


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix='APP_', frozen=True)

    downstream_base_url: str = 'http://localhost:8080'
    fan_out_timeout_seconds: float = Field(30.0, gt=0)
    request_header_name: str = 'X-Request-ID'

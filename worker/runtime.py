"""
Process-wide resources for running payroll jobs.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine

from app.database.engine import create_database_engine
from app.database.session import create_session_factory
from app.services.config_service import ConfigService
from app.services.job_processor import JobProcessor
from app.services.job_repository import JobRepository
from app.services.payments_adapter import create_payments_adapter

logger = logging.getLogger("worker.runtime")


@dataclass
class WorkerRuntime:
    """Engine, repository and processor opened together and closed together."""

    engine: Engine
    repository: JobRepository
    processor: JobProcessor

    @classmethod
    def from_config(cls, config: ConfigService) -> "WorkerRuntime":
        engine = create_database_engine(config=config)
        repository = JobRepository(create_session_factory(engine))
        processor = JobProcessor(
            repository,
            create_payments_adapter(config),
            batch_size=config.batch_size,
            max_retries=config.max_retries,
        )
        logger.info(f"Job processor ready: batch_size={processor.batch_size}, max_retries={processor.max_retries}")
        return cls(engine=engine, repository=repository, processor=processor)

    def close(self) -> None:
        self.engine.dispose()

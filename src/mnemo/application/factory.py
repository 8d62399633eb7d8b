"""
Service Factory
Centralizes the wiring of stores and services from the resolved config.
"""

from mnemo.application.config import AppConfig
from mnemo.application.history_store import ReviewHistoryStore
from mnemo.application.review_service import ReviewService
from mnemo.application.scheduler import ScheduleEngine
from mnemo.infrastructure.history_backend import FileHistoryBackend
from mnemo.infrastructure.vault_store import VaultDocumentStore


def get_history_store(config: AppConfig) -> ReviewHistoryStore:
    """
    Returns a history store backed by the configured history file.
    The caller owns its lifecycle (initialize / flush).
    """
    return ReviewHistoryStore(FileHistoryBackend(config.history_path))


def get_review_service(config: AppConfig, history: ReviewHistoryStore) -> ReviewService:
    return ReviewService(
        store=VaultDocumentStore(config.vault_path),
        history=history,
        engine=ScheduleEngine(config.scheduler_settings()),
        damping_factor=config.pagerank_damping,
        epsilon=config.pagerank_epsilon,
        max_iterations=config.pagerank_max_iterations,
    )

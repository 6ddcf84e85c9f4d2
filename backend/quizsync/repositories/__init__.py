"""Repository layer for quiz persistence."""

from .quiz_sessions import QuizSessionRepository, quiz_session_repository

__all__ = ["QuizSessionRepository", "quiz_session_repository"]

"""Service layer orchestrating ingestion and retrieval."""

from .retrieval import AnswerResult, RetrievalService, get_retrieval_service

__all__ = ["AnswerResult", "RetrievalService", "get_retrieval_service"]

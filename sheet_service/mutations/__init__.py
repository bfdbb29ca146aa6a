"""Mutation orchestrators: load, check optimistic tokens, apply rules, persist and record."""

from .common import MutationResult, Services

__all__ = ["MutationResult", "Services"]

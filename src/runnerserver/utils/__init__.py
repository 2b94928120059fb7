"""Shared helpers for runnerserver."""

"""Completion-service drivers."""

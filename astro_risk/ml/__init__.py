"""Scoring network, training, persistence and inference."""

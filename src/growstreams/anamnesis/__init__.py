"""Anamnesis - deployment state persistence."""

"""Schemas shared between the study-group server and its clients."""

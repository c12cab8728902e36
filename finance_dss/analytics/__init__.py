"""Analytical decision models registered with the model subsystem."""

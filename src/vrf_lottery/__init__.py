"""Verifiable-randomness lottery: core state machine, local oracle and deployment tooling."""

__version__ = "1.0.0"

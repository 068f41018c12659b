"""Local chain environment, randomness oracle and deployment tooling."""

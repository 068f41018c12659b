"""Revert-style errors shared by the local contracts."""

from __future__ import annotations


class ContractRevert(Exception):
    """A contract call was rejected; nothing it touched has changed."""

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason or type(self).__name__
        super().__init__(self.reason)


class InsufficientFunds(ContractRevert):
    def __init__(self, address: str, balance: int, required: int) -> None:
        self.address = address
        self.balance = balance
        self.required = required
        super().__init__(f"insufficient funds for {address}: have {balance}, need {required}")


class NonexistentRequest(ContractRevert):
    """A fulfillment referenced an unknown or already consumed request id."""

    def __init__(self, request_id: int) -> None:
        self.request_id = request_id
        super().__init__("nonexistent request")


class InvalidSubscription(ContractRevert):
    pass


class InvalidConsumer(ContractRevert):
    def __init__(self, sub_id: int, consumer: str) -> None:
        self.sub_id = sub_id
        self.consumer = consumer
        super().__init__(f"InvalidConsumer({sub_id}, {consumer})")


class MustBeSubOwner(ContractRevert):
    def __init__(self, owner: str) -> None:
        self.owner = owner
        super().__init__(f"MustBeSubOwner({owner})")


class InsufficientBalance(ContractRevert):
    pass


class InvalidRandomWords(ContractRevert):
    pass


class DeploymentConfigError(RuntimeError):
    """The target environment is missing configuration needed to deploy."""

import pytest

from vrf_lottery.blockchain.chain import LocalChain
from vrf_lottery.blockchain.deploy import LotteryDeployer

GENESIS_TIMESTAMP = 1_700_000_000


def advance(chain, seconds):
    """evm_increaseTime followed by evm_mine."""
    chain.increase_time(seconds)
    chain.mine()


@pytest.fixture
def chain():
    return LocalChain(name="hardhat", chain_id=31337, genesis_timestamp=GENESIS_TIMESTAMP)


@pytest.fixture
def accounts(chain):
    return [account.address for account in chain.accounts]


@pytest.fixture
def deployer(accounts):
    return accounts[0]


@pytest.fixture
def deployment(chain):
    return LotteryDeployer(chain).deploy()


@pytest.fixture
def lottery(deployment):
    return deployment.lottery


@pytest.fixture
def coordinator(deployment):
    return deployment.coordinator


@pytest.fixture
def entrance_fee(lottery):
    return lottery.get_entrance_fee()


@pytest.fixture
def interval(lottery):
    return lottery.get_interval()


@pytest.fixture
def ready_lottery(chain, lottery, deployer, entrance_fee, interval):
    """One paid entry and the interval elapsed: upkeep is due."""
    lottery.enter_lottery(deployer, entrance_fee)
    advance(chain, interval + 1)
    return lottery

import pytest

from vrf_lottery.blockchain.errors import ContractRevert, NonexistentRequest
from vrf_lottery.blockchain.vrf import OnlyCoordinatorCanFulfill, VRFCoordinatorV2Mock
from vrf_lottery.lottery.errors import (
    LotteryNotOpen,
    SendMoreToEnterLottery,
    TransferFailed,
    UpkeepNotNeeded,
)
from vrf_lottery.lottery.models import LotteryState
from vrf_lottery.networks import NETWORK_CONFIG

from conftest import advance


def enter_players(lottery, accounts, count, fee):
    players = accounts[1:count + 1]
    for player in players:
        lottery.enter_lottery(player, fee)
    return players


# ----------------------------------------------------------------------
# constructor
# ----------------------------------------------------------------------
def test_initializes_the_lottery_correctly(chain, lottery, interval):
    assert lottery.get_lottery_state() == LotteryState.OPEN
    assert int(lottery.get_lottery_state()) == 0
    assert interval == NETWORK_CONFIG[31337].interval
    assert lottery.get_number_of_players() == 0
    assert lottery.get_recent_winner() is None
    assert lottery.get_pending_request_id() is None
    assert lottery.get_last_timestamp() <= chain.block_timestamp()


def test_request_confirmations_and_num_words_are_fixed(lottery):
    assert lottery.get_request_confirmations() == 3
    assert lottery.get_num_words() == 1


# ----------------------------------------------------------------------
# enter_lottery
# ----------------------------------------------------------------------
def test_reverts_when_you_dont_pay_enough(lottery, deployer):
    with pytest.raises(SendMoreToEnterLottery) as excinfo:
        lottery.enter_lottery(deployer, 0)
    assert excinfo.value.reason == "Lottery__SendMoreToEnterLottery"
    assert lottery.get_number_of_players() == 0


@pytest.mark.parametrize("shortfall", [1, 10**15, 10**17 - 1])
def test_underpayment_leaves_players_and_balances_unchanged(chain, lottery, deployer, entrance_fee, shortfall):
    before = chain.get_balance(deployer)
    with pytest.raises(SendMoreToEnterLottery):
        lottery.enter_lottery(deployer, entrance_fee - shortfall)
    assert lottery.get_number_of_players() == 0
    assert lottery.get_balance() == 0
    assert chain.get_balance(deployer) == before


def test_records_player_when_they_enter(lottery, deployer, entrance_fee):
    lottery.enter_lottery(deployer, entrance_fee)
    assert lottery.get_player(0) == deployer


def test_emits_event_on_enter(chain, lottery, deployer, entrance_fee):
    lottery.enter_lottery(deployer, entrance_fee)
    logs = chain.events.get_logs("LotteryEnter", address=lottery.address)
    assert len(logs) == 1
    assert logs[0].args == {"player": deployer}


def test_overpayment_is_kept_in_the_pot(chain, lottery, deployer, entrance_fee):
    lottery.enter_lottery(deployer, entrance_fee * 2)
    assert lottery.get_balance() == entrance_fee * 2


def test_doesnt_allow_entrance_when_lottery_is_calculating(ready_lottery, accounts, entrance_fee):
    ready_lottery.perform_upkeep(b"")
    with pytest.raises(LotteryNotOpen) as excinfo:
        ready_lottery.enter_lottery(accounts[1], entrance_fee)
    assert excinfo.value.reason == "Lottery__LotteryNotOpen"
    assert ready_lottery.get_number_of_players() == 1


def test_returns_total_number_of_players(chain, lottery, accounts, entrance_fee):
    lottery.enter_lottery(accounts[0], entrance_fee)
    enter_players(lottery, accounts, 3, entrance_fee)
    assert lottery.get_number_of_players() == 4
    assert lottery.get_balance() == entrance_fee * 4


def test_players_are_kept_in_entry_order(lottery, accounts, entrance_fee):
    order = [accounts[3], accounts[1], accounts[2], accounts[1]]
    for player in order:
        lottery.enter_lottery(player, entrance_fee)
    assert [lottery.get_player(i) for i in range(len(order))] == order
    with pytest.raises(IndexError):
        lottery.get_player(len(order))


# ----------------------------------------------------------------------
# check_upkeep
# ----------------------------------------------------------------------
def test_check_upkeep_false_if_nobody_entered(chain, lottery, interval):
    advance(chain, interval + 1)
    upkeep_needed, perform_data = lottery.check_upkeep(b"")
    assert not upkeep_needed
    assert perform_data == b""


def test_check_upkeep_false_if_lottery_isnt_open(ready_lottery):
    ready_lottery.perform_upkeep(b"")
    upkeep_needed, _ = ready_lottery.check_upkeep(b"")
    assert ready_lottery.get_lottery_state() == LotteryState.CALCULATING
    assert int(ready_lottery.get_lottery_state()) == 1
    assert upkeep_needed is False


def test_check_upkeep_false_if_enough_time_hasnt_passed(chain, lottery, deployer, entrance_fee, interval):
    lottery.enter_lottery(deployer, entrance_fee)
    advance(chain, interval - 5)
    upkeep_needed, _ = lottery.check_upkeep(b"")
    assert upkeep_needed is False


def test_check_upkeep_true_when_time_passed_with_players_funds_and_open(ready_lottery):
    upkeep_needed, _ = ready_lottery.check_upkeep(b"")
    assert upkeep_needed is True


def test_check_upkeep_true_exactly_at_interval(chain, lottery, deployer, entrance_fee, interval):
    lottery.enter_lottery(deployer, entrance_fee)
    chain.increase_time(interval - (chain.block_timestamp() - lottery.get_last_timestamp()))
    chain.mine()
    assert chain.block_timestamp() - lottery.get_last_timestamp() == interval
    assert lottery.check_upkeep(b"")[0] is True


def test_check_upkeep_has_no_side_effects(chain, ready_lottery):
    logs_before = len(chain.events.get_logs())
    for _ in range(3):
        ready_lottery.check_upkeep(b"")
    assert ready_lottery.get_lottery_state() == LotteryState.OPEN
    assert len(chain.events.get_logs()) == logs_before


# ----------------------------------------------------------------------
# perform_upkeep
# ----------------------------------------------------------------------
def test_perform_upkeep_runs_when_check_upkeep_is_true(ready_lottery):
    assert ready_lottery.perform_upkeep(b"")


def test_perform_upkeep_reverts_if_check_upkeep_is_false(lottery):
    with pytest.raises(UpkeepNotNeeded) as excinfo:
        lottery.perform_upkeep(b"")
    error = excinfo.value
    assert error.reason.startswith("Lottery__UpkeepNotNeeded")
    assert (error.balance, error.num_players, error.lottery_state) == (0, 0, LotteryState.OPEN)


def test_upkeep_not_needed_carries_diagnostics(chain, lottery, deployer, entrance_fee):
    lottery.enter_lottery(deployer, entrance_fee)
    with pytest.raises(UpkeepNotNeeded) as excinfo:
        lottery.perform_upkeep(b"")
    assert excinfo.value.balance == entrance_fee
    assert excinfo.value.num_players == 1
    assert lottery.get_lottery_state() == LotteryState.OPEN


def test_perform_upkeep_updates_state_and_emits_request_id(chain, ready_lottery, coordinator):
    request_id = ready_lottery.perform_upkeep(b"")

    requested = chain.events.get_logs("RequestedLotteryWinner", address=ready_lottery.address)
    assert [entry.args["request_id"] for entry in requested] == [request_id]
    assert request_id > 0
    assert ready_lottery.get_lottery_state() == LotteryState.CALCULATING
    assert ready_lottery.get_pending_request_id() == request_id
    assert request_id in coordinator.pending_request_ids()

    # the coordinator's log comes first, then the lottery's
    last_two = chain.events.get_logs(limit=2)
    assert [entry.name for entry in last_two] == ["RandomWordsRequested", "RequestedLotteryWinner"]


def test_perform_upkeep_sends_configured_request(chain, ready_lottery):
    ready_lottery.perform_upkeep(b"")
    request = chain.events.get_logs("RandomWordsRequested")[-1].args
    assert request["key_hash"] == ready_lottery.get_gas_lane()
    assert request["sub_id"] == ready_lottery.get_subscription_id()
    assert request["minimum_request_confirmations"] == 3
    assert request["callback_gas_limit"] == ready_lottery.get_callback_gas_limit()
    assert request["num_words"] == 1
    assert request["sender"] == ready_lottery.address


def test_perform_upkeep_cannot_request_twice(ready_lottery, coordinator):
    ready_lottery.perform_upkeep(b"")
    with pytest.raises(UpkeepNotNeeded) as excinfo:
        ready_lottery.perform_upkeep(b"")
    assert excinfo.value.lottery_state == LotteryState.CALCULATING
    assert len(coordinator.pending_request_ids()) == 1


def test_failed_request_leaves_lottery_open(ready_lottery, coordinator):
    coordinator.remove_consumer(ready_lottery.get_subscription_id(), ready_lottery.address)
    with pytest.raises(ContractRevert):
        ready_lottery.perform_upkeep(b"")
    assert ready_lottery.get_lottery_state() == LotteryState.OPEN
    assert ready_lottery.get_pending_request_id() is None


# ----------------------------------------------------------------------
# fulfill_random_words
# ----------------------------------------------------------------------
def test_fulfill_can_only_be_called_after_perform_upkeep(ready_lottery, coordinator):
    for request_id in (0, 1):
        with pytest.raises(NonexistentRequest) as excinfo:
            coordinator.fulfill_random_words(request_id, ready_lottery.address)
        assert excinfo.value.reason == "nonexistent request"
    assert ready_lottery.get_lottery_state() == LotteryState.OPEN


def test_direct_fulfill_with_unknown_id_changes_nothing(ready_lottery):
    request_id = ready_lottery.perform_upkeep(b"")
    with pytest.raises(NonexistentRequest):
        ready_lottery.fulfill_random_words(request_id + 1, [5])
    assert ready_lottery.get_lottery_state() == LotteryState.CALCULATING
    assert ready_lottery.get_number_of_players() == 1
    assert ready_lottery.get_pending_request_id() == request_id


def test_only_coordinator_can_deliver_words(ready_lottery, accounts):
    request_id = ready_lottery.perform_upkeep(b"")
    with pytest.raises(OnlyCoordinatorCanFulfill):
        ready_lottery.raw_fulfill_random_words(accounts[1], request_id, [5])
    assert ready_lottery.get_lottery_state() == LotteryState.CALCULATING


def test_single_player_wins_with_word_five(chain, lottery, coordinator, accounts, entrance_fee, interval):
    player = accounts[1]
    lottery.enter_lottery(player, entrance_fee)
    advance(chain, interval + 1)
    assert lottery.check_upkeep(b"")[0]
    request_id = lottery.perform_upkeep(b"")
    assert lottery.get_lottery_state() == LotteryState.CALCULATING
    starting_balance = chain.get_balance(player)

    assert coordinator.fulfill_random_words_with_override(request_id, lottery.address, [5]) is True

    assert lottery.get_recent_winner() == player
    assert lottery.get_lottery_state() == LotteryState.OPEN
    assert lottery.get_number_of_players() == 0
    assert chain.get_balance(player) == starting_balance + entrance_fee


def test_picks_a_winner_resets_and_sends_money(chain, lottery, coordinator, accounts, entrance_fee, interval):
    lottery.enter_lottery(accounts[0], entrance_fee)
    enter_players(lottery, accounts, 3, entrance_fee)
    entrants = accounts[:4]
    round_object = lottery.round
    starting_timestamp = lottery.get_last_timestamp()

    advance(chain, interval + 1)
    request_id = lottery.perform_upkeep(b"")
    starting_balances = {address: chain.get_balance(address) for address in entrants}
    expected_word = VRFCoordinatorV2Mock.default_words(request_id, 1)[0]
    expected_winner = entrants[expected_word % 4]

    picked = []
    chain.events.once("WinnerPicked", picked.append)
    coordinator.fulfill_random_words(request_id, lottery.address)

    assert [entry.args["winner"] for entry in picked] == [expected_winner]
    assert lottery.get_recent_winner() == expected_winner
    assert lottery.get_lottery_state() == LotteryState.OPEN
    assert lottery.get_number_of_players() == 0
    with pytest.raises(IndexError):
        lottery.get_player(0)
    assert lottery.get_balance() == 0
    assert chain.get_balance(expected_winner) == starting_balances[expected_winner] + entrance_fee * 4
    assert lottery.get_last_timestamp() > starting_timestamp
    assert lottery.round is round_object
    assert lottery.get_round_number() == 2


@pytest.mark.parametrize("word", [0, 1, 2, 3, 7, 13, 2**255 + 1])
def test_winner_is_word_modulo_player_count(chain, lottery, coordinator, accounts, entrance_fee, interval, word):
    entrants = enter_players(lottery, accounts, 4, entrance_fee)
    advance(chain, interval + 1)
    request_id = lottery.perform_upkeep(b"")
    winner = entrants[word % 4]
    before = chain.get_balance(winner)

    coordinator.fulfill_random_words_with_override(request_id, lottery.address, [word])

    assert lottery.get_recent_winner() == winner
    assert chain.get_balance(winner) == before + 4 * entrance_fee


def test_second_fulfillment_for_same_request_fails(chain, ready_lottery, coordinator, deployer):
    request_id = ready_lottery.perform_upkeep(b"")
    coordinator.fulfill_random_words(request_id, ready_lottery.address)
    balance_after_payout = chain.get_balance(deployer)

    with pytest.raises(NonexistentRequest):
        coordinator.fulfill_random_words(request_id, ready_lottery.address)
    with pytest.raises(NonexistentRequest):
        ready_lottery.raw_fulfill_random_words(coordinator.address, request_id, [5])
    assert chain.get_balance(deployer) == balance_after_payout
    assert ready_lottery.get_lottery_state() == LotteryState.OPEN


def test_failed_payout_rolls_back_everything(chain, lottery, coordinator, accounts, entrance_fee, interval):
    entrants = enter_players(lottery, accounts, 2, entrance_fee)
    advance(chain, interval + 1)
    request_id = lottery.perform_upkeep(b"")
    last_timestamp = lottery.get_last_timestamp()
    advance(chain, 10)
    chain.ledger.set_rejects_payments(entrants[1])

    with pytest.raises(TransferFailed) as excinfo:
        lottery.raw_fulfill_random_words(coordinator.address, request_id, [1])

    assert excinfo.value.reason == "Lottery__TransferFailed"
    assert lottery.get_lottery_state() == LotteryState.CALCULATING
    assert lottery.get_players() == entrants
    assert lottery.get_recent_winner() is None
    assert lottery.get_pending_request_id() == request_id
    assert lottery.get_pending_request(request_id) is not None
    assert lottery.get_last_timestamp() == last_timestamp
    assert lottery.get_balance() == 2 * entrance_fee
    assert chain.events.get_logs("WinnerPicked") == []


def test_coordinator_records_rejected_fulfillment(chain, ready_lottery, coordinator, deployer):
    request_id = ready_lottery.perform_upkeep(b"")
    chain.ledger.set_rejects_payments(deployer)

    assert coordinator.fulfill_random_words(request_id, ready_lottery.address) is False

    fulfilled = chain.events.get_logs("RandomWordsFulfilled")[-1].args
    assert fulfilled["request_id"] == request_id
    assert fulfilled["success"] is False
    # the request is gone on the oracle side, so the round stays closed
    assert ready_lottery.get_lottery_state() == LotteryState.CALCULATING
    assert request_id not in coordinator.pending_request_ids()


def test_lottery_runs_consecutive_rounds(chain, lottery, coordinator, accounts, entrance_fee, interval):
    winners = []
    for word in (0, 1):
        entrants = enter_players(lottery, accounts, 2, entrance_fee)
        advance(chain, interval + 1)
        request_id = lottery.perform_upkeep(b"")
        coordinator.fulfill_random_words_with_override(request_id, lottery.address, [word])
        winners.append(lottery.get_recent_winner())
        assert winners[-1] == entrants[word]
    assert lottery.get_round_number() == 3
    assert [entry.args["winner"] for entry in chain.events.get_logs("WinnerPicked")] == winners

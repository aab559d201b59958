"""
Dice Factory - Factory Subsystem Tests

Tests for the card catalog, the effect market, reservations, blind
auctions and lifecycle triggers.
"""

import random

import pytest
from src.engine.base import Auction, Bid, CardKind, Reservation, Trigger
from src.engine.catalog import (
    CORPORATE_DEBT,
    DICE_POOL_SIZE,
    DICE_POOL_UPGRADE,
    DIVIDEND,
    EFFECTS,
    HEADCOUNT,
    JOB_FAIR,
    MARKET_MANIPULATION,
    MODIFICATIONS,
    NIGHT_SHIFT,
    RAINBOW_DIE,
    SHINY_DICE,
    SYNERGY,
    TWORUS,
    YEAR_END_BONUS,
    build_modification_deck,
    get_card,
)
from src.engine.factory_system import FactoryEngine


@pytest.fixture
def market(make_state, make_player):
    """Build a state with a known market and the given players."""
    def build(*players, **kwargs):
        kwargs.setdefault("available_effects", (JOB_FAIR, SHINY_DICE, HEADCOUNT))
        kwargs.setdefault("available_modifications", (SYNERGY, DIVIDEND, DICE_POOL_SIZE))
        kwargs.setdefault("modification_deck", (TWORUS, SYNERGY, MARKET_MANIPULATION))
        return make_state(*(players or (make_player("p1"), make_player("p2"))), **kwargs)
    return build


class TestCatalog:
    """Tests for card descriptors."""

    def test_deck_has_forty_five_cards(self):
        deck = build_modification_deck(random.Random(3))
        assert len(deck) == 45
        assert deck.count(DICE_POOL_SIZE) == 5

    def test_costs(self):
        assert all(c.cost == 9 and c.kind == CardKind.MODIFICATION for c in MODIFICATIONS.values())
        assert all(c.cost == 7 and c.stackable for c in EFFECTS.values())

    def test_triggers(self):
        assert MODIFICATIONS[CORPORATE_DEBT].trigger == Trigger.TURN_START
        assert EFFECTS[YEAR_END_BONUS].trigger == Trigger.TURN_END
        assert get_card(JOB_FAIR).trigger is None
        assert get_card("nonsense") is None


class TestMarket:
    """Tests for market setup and dealing."""

    def test_initialize(self, make_state):
        state = FactoryEngine.initialize_market(make_state(), random.Random(5))
        assert len(state.available_effects) == 3
        assert len(set(state.available_effects)) == 3
        assert len(state.available_modifications) == 3
        assert len(set(state.available_modifications)) == 3
        assert len(state.modification_deck) == 42

    def test_deal_skips_duplicates_and_recycles(self, make_state):
        state = make_state(
            available_modifications=(DIVIDEND,),
            modification_deck=(SYNERGY, SYNERGY, TWORUS, CORPORATE_DEBT),
        )
        dealt = FactoryEngine.deal_modifications(state)
        assert dealt.available_modifications == (SYNERGY, TWORUS, CORPORATE_DEBT)
        assert dealt.modification_deck == (SYNERGY, DIVIDEND)

    def test_market_manipulation_discount(self, make_player):
        player = make_player(modifications=(MARKET_MANIPULATION,))
        assert FactoryEngine.card_cost(player, MODIFICATIONS[SYNERGY]) == 5
        assert FactoryEngine.card_cost(player, EFFECTS[JOB_FAIR]) == 3


class TestEffects:
    """Tests for buying and playing effects."""

    def test_purchase(self, market):
        outcome = FactoryEngine.purchase_effect(market(), "p1", JOB_FAIR)
        player = outcome.state.get_player("p1")
        assert player.free_pips == 2
        assert player.factory_hand == (JOB_FAIR,)

    def test_purchase_not_offered(self, market):
        outcome = FactoryEngine.purchase_effect(market(), "p1", RAINBOW_DIE)
        assert outcome.message == "Effect not available"

    def test_purchase_unaffordable(self, market, make_player):
        state = market(make_player("p1", free_pips=6), make_player("p2"))
        assert not FactoryEngine.purchase_effect(state, "p1", JOB_FAIR).success

    def test_play_job_fair(self, market, make_player, scripted_rng):
        state = market(make_player("p1", factory_hand=(JOB_FAIR,)), make_player("p2"))
        outcome = FactoryEngine.play_effect(state, "p1", JOB_FAIR, scripted_rng(3))
        player = outcome.state.get_player("p1")
        assert player.factory_hand == ()
        assert player.effects == (JOB_FAIR,)
        assert [(d.sides, d.value) for d in player.dice_pool] == [(4, 3)]

    def test_play_shiny_targets_highest(self, market, make_player, make_die, scripted_rng):
        pool = (make_die(6, 2, "a"), make_die(8, 7, "b"))
        state = market(make_player("p1", dice_pool=pool, factory_hand=(SHINY_DICE,)), make_player("p2"))
        player = FactoryEngine.play_effect(state, "p1", SHINY_DICE, scripted_rng()).state.get_player("p1")
        assert player.get_die("b").shiny
        assert not player.get_die("a").shiny

    def test_shiny_without_dice_fails(self, market, make_player, scripted_rng):
        state = market(make_player("p1", factory_hand=(SHINY_DICE,)), make_player("p2"))
        outcome = FactoryEngine.play_effect(state, "p1", SHINY_DICE, scripted_rng())
        assert not outcome.success
        assert outcome.state is state

    def test_play_rainbow(self, market, make_player, scripted_rng):
        state = market(make_player("p1", factory_hand=(RAINBOW_DIE,)), make_player("p2"))
        player = FactoryEngine.play_effect(state, "p1", RAINBOW_DIE, scripted_rng(5)).state.get_player("p1")
        assert player.dice_pool[0].rainbow

    def test_triggered_effect_is_armed(self, market, make_player, scripted_rng):
        state = market(make_player("p1", factory_hand=(NIGHT_SHIFT,)), make_player("p2"))
        outcome = FactoryEngine.play_effect(state, "p1", NIGHT_SHIFT, scripted_rng())
        assert outcome.details["armed"]
        player = outcome.state.get_player("p1")
        assert player.armed_effects == (NIGHT_SHIFT,)
        assert player.dice_pool == ()

    def test_play_not_in_hand(self, market, scripted_rng):
        assert FactoryEngine.play_effect(market(), "p1", HEADCOUNT, scripted_rng()).message == "Effect not in hand"


class TestReservations:
    """Tests for reserving modifications and settling them."""

    def test_reserve(self, market):
        outcome = FactoryEngine.reserve_modification(market(), "p1", SYNERGY)
        assert outcome.success
        assert not outcome.details["contested"]
        assert outcome.state.reservations == (Reservation(SYNERGY, "p1"),)
        assert outcome.state.get_player("p1").free_pips == 9

    def test_reserve_twice(self, market):
        state = FactoryEngine.reserve_modification(market(), "p1", SYNERGY).state
        assert "already reserved" in FactoryEngine.reserve_modification(state, "p1", SYNERGY).message

    def test_reserve_owned_non_stackable(self, market, make_player):
        state = market(make_player("p1", modifications=(SYNERGY,)), make_player("p2"))
        assert "already own" in FactoryEngine.reserve_modification(state, "p1", SYNERGY).message

    def test_reserve_owned_stackable(self, market, make_player):
        state = market(make_player("p1", modifications=(DICE_POOL_SIZE,)), make_player("p2"))
        assert FactoryEngine.reserve_modification(state, "p1", DICE_POOL_SIZE).success

    def test_reserve_unaffordable_bid(self, market):
        outcome = FactoryEngine.reserve_modification(market(), "p1", SYNERGY, bid=10)
        assert not outcome.success

    def test_single_reservation_buys_at_cost(self, market):
        state = FactoryEngine.reserve_modification(market(), "p1", DICE_POOL_SIZE).state
        outcome = FactoryEngine.settle_reservations(state)
        player = outcome.state.get_player("p1")
        assert player.modifications == (DICE_POOL_SIZE,)
        assert player.free_pips == 0
        assert player.dice_floor == 5
        assert DICE_POOL_SIZE not in outcome.state.available_modifications
        assert outcome.state.reservations == ()
        assert outcome.details["auctions"] == ()

    def test_contested_opens_auction_with_eager_bid_escrowed(self, market):
        state = FactoryEngine.reserve_modification(market(), "p1", SYNERGY, bid=4).state
        state = FactoryEngine.reserve_modification(state, "p2", SYNERGY).state
        outcome = FactoryEngine.settle_reservations(state)

        auction = outcome.state.get_auction(SYNERGY)
        assert auction.bidders == ("p1", "p2")
        assert auction.bids == (Bid("p1", 4),)
        assert outcome.state.get_player("p1").free_pips == 5
        assert outcome.state.awaiting_bids

    def test_eager_bid_withdrawn_when_unaffordable(self, market, make_player):
        state = market(make_player("p1"), make_player("p2"))
        state = FactoryEngine.reserve_modification(state, "p1", DIVIDEND).state
        state = FactoryEngine.reserve_modification(state, "p1", SYNERGY, bid=9).state
        state = FactoryEngine.reserve_modification(state, "p2", SYNERGY).state
        outcome = FactoryEngine.settle_reservations(state)
        # Dividend was bought first, leaving p1 unable to cover the bid
        auction = outcome.state.get_auction(SYNERGY)
        assert auction.bids == ()
        assert outcome.state.get_player("p1").free_pips == 0

    def test_fled_claims_are_dropped(self, market, make_player):
        state = market(
            make_player("p1", has_fled=True),
            make_player("p2", free_pips=20),
            reservations=(Reservation(SYNERGY, "p1", bid=3), Reservation(SYNERGY, "p2")),
        )
        outcome = FactoryEngine.settle_reservations(state)
        assert outcome.details["auctions"] == ()
        assert outcome.state.get_player("p2").has_modification(SYNERGY)
        assert not outcome.state.get_player("p1").has_modification(SYNERGY)


class TestAuctions:
    """Tests for sealed bids and resolution."""

    @pytest.fixture
    def contested(self, market, make_player):
        return market(
            make_player("p1", free_pips=20),
            make_player("p2", free_pips=20),
            current_auctions=(Auction(SYNERGY, ("p1", "p2")),),
            modification_deck=(TWORUS, CORPORATE_DEBT, MARKET_MANIPULATION),
        )

    def test_bid_escrowed(self, contested):
        outcome = FactoryEngine.submit_bid(contested, "p1", SYNERGY, 6)
        assert outcome.state.get_player("p1").free_pips == 14
        assert not outcome.details["all_bids_in"]

    def test_second_bid_rejected(self, contested):
        state = FactoryEngine.submit_bid(contested, "p1", SYNERGY, 6).state
        assert FactoryEngine.submit_bid(state, "p1", SYNERGY, 7).message == "Bid already submitted"

    def test_outsider_cannot_bid(self, contested):
        assert not FactoryEngine.submit_bid(contested, "p3", SYNERGY, 1).success

    def test_fled_player_cannot_bid(self, contested, make_player):
        state = contested.with_player(make_player("p1", free_pips=20, has_fled=True))
        outcome = FactoryEngine.submit_bid(state, "p1", SYNERGY, 4)
        assert outcome.message == "Player has fled the factory"
        assert outcome.state.get_player("p1").free_pips == 20

    def test_negative_bid(self, contested):
        assert "negative" in FactoryEngine.submit_bid(contested, "p1", SYNERGY, -1).message

    def test_resolve_waits_for_bids(self, contested):
        assert not FactoryEngine.resolve_auctions(contested).success

    def test_strict_winner_pays_loser_refunded(self, contested):
        state = FactoryEngine.submit_bid(contested, "p1", SYNERGY, 6).state
        state = FactoryEngine.submit_bid(state, "p2", SYNERGY, 5).state
        outcome = FactoryEngine.resolve_auctions(state)

        assert outcome.details["winners"] == {SYNERGY: "p1"}
        assert outcome.state.get_player("p1").free_pips == 14
        assert outcome.state.get_player("p1").has_modification(SYNERGY)
        assert outcome.state.get_player("p2").free_pips == 20
        assert SYNERGY not in outcome.state.available_modifications
        assert outcome.state.current_auctions == ()

    def test_tie_refunds_everyone(self, contested):
        state = FactoryEngine.submit_bid(contested, "p1", SYNERGY, 5).state
        state = FactoryEngine.submit_bid(state, "p2", SYNERGY, 5).state
        outcome = FactoryEngine.resolve_auctions(state)

        assert outcome.details["winners"] == {SYNERGY: None}
        for pid in ("p1", "p2"):
            player = outcome.state.get_player(pid)
            assert player.free_pips == 20
            assert not player.has_modification(SYNERGY)
        assert SYNERGY in outcome.state.available_modifications

    def test_tied_card_returns_to_deck_at_next_deal(self, contested):
        state = FactoryEngine.submit_bid(contested, "p1", SYNERGY, 0).state
        state = FactoryEngine.submit_bid(state, "p2", SYNERGY, 0).state
        state = FactoryEngine.resolve_auctions(state).state
        dealt = FactoryEngine.deal_modifications(state)
        assert SYNERGY in dealt.modification_deck

    def test_zero_high_bid_has_no_winner(self, contested):
        state = FactoryEngine.submit_bid(contested, "p1", SYNERGY, 0).state
        state = FactoryEngine.submit_bid(state, "p2", SYNERGY, 0).state
        assert FactoryEngine.resolve_auctions(state).details["winners"] == {SYNERGY: None}

    def test_force_leaves_out_missing_bids(self, contested):
        state = FactoryEngine.submit_bid(contested, "p1", SYNERGY, 1).state
        outcome = FactoryEngine.resolve_auctions(state, force=True)
        assert outcome.details["winners"] == {SYNERGY: "p1"}
        assert outcome.state.get_player("p2").free_pips == 20


class TestModifications:
    """Tests for applying and selling modifications."""

    def test_dice_pool_upgrade_converts_d4s(self, make_state, make_player, make_die):
        pool = (make_die(4, 3, "a"), make_die(8, 2, "b"))
        state = make_state(make_player(dice_pool=pool, exhausted_dice=frozenset({"a"})))
        player = FactoryEngine.apply_modification(state, "p1", DICE_POOL_UPGRADE).get_player("p1")
        assert [(d.sides, d.value) for d in player.dice_pool] == [(6, 3), (8, 2)]
        assert player.dice_pool[0].id in player.exhausted_dice
        assert "a" not in player.exhausted_dice

    def test_sell_corporate_debt(self, make_state, make_player):
        state = make_state(make_player(free_pips=0, modifications=(CORPORATE_DEBT,)))
        outcome = FactoryEngine.sell_modification(state, "p1", CORPORATE_DEBT)
        player = outcome.state.get_player("p1")
        assert player.free_pips == 8
        assert player.modifications == ()

    def test_cannot_sell_in_debt(self, make_state, make_player):
        state = make_state(make_player(free_pips=-3, modifications=(CORPORATE_DEBT,)))
        assert "debt" in FactoryEngine.sell_modification(state, "p1", CORPORATE_DEBT).message

    def test_unsellable(self, make_state, make_player):
        state = make_state(make_player(modifications=(SYNERGY,)))
        assert "cannot be sold" in FactoryEngine.sell_modification(state, "p1", SYNERGY).message


class TestTriggers:
    """Tests for turn-start and turn-end triggers."""

    def test_corporate_debt_interest(self, make_state, make_player, scripted_rng):
        state = make_state(make_player(free_pips=-6, score=10, modifications=(CORPORATE_DEBT,)))
        outcome = FactoryEngine.process_triggers(state, Trigger.TURN_START, scripted_rng())
        assert outcome.state.get_player("p1").score == 4
        assert outcome.details["fired"] == (("p1", CORPORATE_DEBT),)

    def test_wrong_trigger_does_nothing(self, make_state, make_player, scripted_rng):
        state = make_state(make_player(free_pips=-6, score=10, modifications=(CORPORATE_DEBT,)))
        outcome = FactoryEngine.process_triggers(state, Trigger.TURN_END, scripted_rng())
        assert outcome.state is state

    def test_tworus_rerolls_twos(self, make_state, make_player, make_die, scripted_rng):
        pool = (make_die(6, 2, "a"), make_die(6, 5, "b"))
        state = make_state(make_player(dice_pool=pool, modifications=(TWORUS,)))
        outcome = FactoryEngine.process_triggers(state, Trigger.TURN_START, scripted_rng(2, 4))
        player = outcome.state.get_player("p1")
        assert [d.value for d in player.dice_pool] == [4, 5]

    def test_armed_effect_fires_once(self, make_state, make_player, scripted_rng):
        state = make_state(make_player(armed_effects=(NIGHT_SHIFT,)))
        first = FactoryEngine.process_triggers(state, Trigger.TURN_START, scripted_rng(6))
        player = first.state.get_player("p1")
        assert player.armed_effects == ()
        assert [(d.sides, d.value) for d in player.dice_pool] == [(6, 6)]

        second = FactoryEngine.process_triggers(first.state, Trigger.TURN_START, scripted_rng())
        assert second.details["fired"] == ()

    def test_year_end_bonus(self, make_state, make_player, make_die, scripted_rng):
        state = make_state(make_player(dice_pool=(make_die(), make_die()), armed_effects=(YEAR_END_BONUS,)))
        outcome = FactoryEngine.process_triggers(state, Trigger.TURN_END, scripted_rng())
        assert outcome.state.get_player("p1").score == 2

    def test_fled_players_skipped(self, make_state, make_player, scripted_rng):
        state = make_state(make_player(free_pips=-6, has_fled=True, modifications=(CORPORATE_DEBT,)))
        assert FactoryEngine.process_triggers(state, Trigger.TURN_START, scripted_rng()).details["fired"] == ()

    def test_limit_to_one_player(self, make_state, make_player, scripted_rng):
        state = make_state(
            make_player("p1", free_pips=-1, modifications=(CORPORATE_DEBT,)),
            make_player("p2", free_pips=-1, modifications=(CORPORATE_DEBT,)),
        )
        outcome = FactoryEngine.process_triggers(state, Trigger.TURN_START, scripted_rng(), player_id="p2")
        assert outcome.details["fired"] == (("p2", CORPORATE_DEBT),)

"""
Dice Factory - Dice Subsystem Tests
"""

import pytest
from src.engine.catalog import (
    ARBITRAGE,
    CASH_FLOW_ENHANCEMENT,
    CORPORATE_DEBT,
    DICE_POOL_UPGRADE,
    DICE_TOWER,
    DIVIDEND,
    DUE_DILIGENCE,
    IMPROVED_ROLLERS,
    OUTSOURCING,
    QUALITY_CONTROL,
    TWORUS,
    VARIABLE_DICE_POOL,
)
from src.engine.base import ActionRecord
from src.engine.dice_system import DiceEngine


@pytest.fixture
def pool(make_die):
    return (
        make_die(4, 1, "a"),
        make_die(6, 2, "b"),
        make_die(8, 8, "c"),
        make_die(10, 7, "d"),
    )


class TestRecruit:
    """Tests for recruitment."""

    def test_d6_on_two_recruits_d6_and_d4(self, make_state, make_player, pool):
        state = make_state(make_player(dice_pool=pool))
        outcome = DiceEngine.recruit(state, "p1", ["b"])
        assert outcome.success
        assert outcome.details["recruited"] == (6, 4)

        player = outcome.state.get_player("p1")
        assert len(player.dice_pool) == 6
        assert "b" in player.exhausted_dice
        assert player.get_die("b") is not None
        new = [player.get_die(i) for i in outcome.details["new_dice_ids"]]
        assert [d.sides for d in new] == [6, 4]
        assert all(d.value is None for d in new)

    def test_appends_one_log_entry(self, make_state, make_player, pool):
        state = make_state(make_player(dice_pool=pool))
        outcome = DiceEngine.recruit(state, "p1", ["a"])
        assert len(outcome.state.game_log) == len(state.game_log) + 1

    def test_failure_leaves_state_untouched(self, make_state, make_player, pool):
        state = make_state(make_player(dice_pool=pool))
        outcome = DiceEngine.recruit(state, "p1", ["d"])
        assert not outcome.success
        assert outcome.state is state

    def test_exhausted_die_cannot_recruit_again(self, make_state, make_player, pool):
        state = make_state(make_player(dice_pool=pool))
        first = DiceEngine.recruit(state, "p1", ["a"])
        second = DiceEngine.recruit(first.state, "p1", ["a"])
        assert not second.success
        assert "already used" in second.message

    def test_outsourcing_once_per_turn(self, make_state, make_player, make_die):
        player = make_player(
            dice_pool=(make_die(10, 9, "x"), make_die(10, 9, "y")),
            modifications=(OUTSOURCING,),
        )
        state = make_state(player)
        first = DiceEngine.recruit(state, "p1", ["x"])
        assert first.success
        assert first.details["recruited"] == (10,)
        assert "Outsourcing" in first.message

        second = DiceEngine.recruit(first.state, "p1", ["y"])
        assert not second.success

    def test_outsourcing_not_used_when_table_allows(self, make_state, make_player, make_die):
        player = make_player(dice_pool=(make_die(6, 1, "x"),), modifications=(OUTSOURCING,))
        outcome = DiceEngine.recruit(make_state(player), "p1", ["x"])
        assert outcome.details["recruited"] == (6, 4)
        assert OUTSOURCING not in outcome.state.get_player("p1").turn_flags

    def test_unknown_player(self, make_state):
        assert DiceEngine.recruit(make_state(), "ghost", ["a"]).message == "Player not found"


class TestPromote:
    """Tests for promotion."""

    def test_replaces_in_place(self, make_state, make_player, pool):
        state = make_state(make_player(dice_pool=pool))
        outcome = DiceEngine.promote(state, "p1", ["c"])
        assert outcome.success

        player = outcome.state.get_player("p1")
        assert player.get_die("c") is None
        promoted = player.dice_pool[2]
        assert promoted.sides == 10
        assert promoted.value is None
        assert len(player.dice_pool) == 4

    def test_rejects_non_max(self, make_state, make_player, pool):
        outcome = DiceEngine.promote(make_state(make_player(dice_pool=pool)), "p1", ["d"])
        assert not outcome.success


class TestProcess:
    """Tests for processing dice into pips."""

    def test_two_times_value(self, make_state, make_player, pool):
        state = make_state(make_player(dice_pool=pool, free_pips=0))
        outcome = DiceEngine.process(state, "p1", ["c", "d"])
        player = outcome.state.get_player("p1")
        assert outcome.details["pips_gained"] == 30
        assert player.free_pips == 30
        assert player.get_die("c") is None and player.get_die("d") is None

    def test_cash_flow_first_die_triples(self, make_state, make_player, pool):
        state = make_state(make_player(dice_pool=pool, free_pips=0, modifications=(CASH_FLOW_ENHANCEMENT,)))
        first = DiceEngine.process(state, "p1", ["d"])
        assert first.details["pips_gained"] == 21
        second = DiceEngine.process(first.state, "p1", ["c"])
        assert second.details["pips_gained"] == 16

    def test_arbitrage_for_points(self, make_state, make_player, pool):
        state = make_state(make_player(dice_pool=pool, modifications=(ARBITRAGE,)))
        outcome = DiceEngine.process(state, "p1", ["d"], for_points=True)
        player = outcome.state.get_player("p1")
        assert player.score == 14
        assert player.free_pips == 9
        again = DiceEngine.process(outcome.state, "p1", ["c"], for_points=True)
        assert again.message == "Arbitrage already used this turn"

    def test_points_without_arbitrage(self, make_state, make_player, pool):
        outcome = DiceEngine.process(make_state(make_player(dice_pool=pool)), "p1", ["d"], for_points=True)
        assert not outcome.success


class TestModifyValue:
    """Tests for paid +1 / -1 changes."""

    def test_increase_costs_four(self, make_state, make_player, pool):
        outcome = DiceEngine.modify_value(make_state(make_player(dice_pool=pool)), "p1", "b", 1)
        player = outcome.state.get_player("p1")
        assert outcome.details["new_value"] == 3
        assert player.free_pips == 5

    def test_decrease_costs_three(self, make_state, make_player, pool):
        outcome = DiceEngine.modify_value(make_state(make_player(dice_pool=pool)), "p1", "b", -1)
        assert outcome.state.get_player("p1").free_pips == 6

    def test_due_diligence(self, make_state, make_player, pool):
        player = make_player(dice_pool=pool, modifications=(DUE_DILIGENCE,))
        outcome = DiceEngine.modify_value(make_state(player), "p1", "b", 1)
        assert outcome.details["cost"] == 3

    def test_not_enough_pips(self, make_state, make_player, pool):
        state = make_state(make_player(dice_pool=pool, free_pips=3))
        outcome = DiceEngine.modify_value(state, "p1", "b", 1)
        assert outcome.message == "Not enough pips (need 4, have 3)"
        assert outcome.state is state

    def test_corporate_debt_allows_negative(self, make_state, make_player, pool):
        state = make_state(make_player(dice_pool=pool, free_pips=0, modifications=(CORPORATE_DEBT,)))
        outcome = DiceEngine.modify_value(state, "p1", "b", 1)
        assert outcome.state.get_player("p1").free_pips == -4

    def test_out_of_range(self, make_state, make_player, pool):
        outcome = DiceEngine.modify_value(make_state(make_player(dice_pool=pool)), "p1", "c", 1)
        assert "cannot go above" in outcome.message


class TestReroll:
    """Tests for rerolls."""

    def test_costs_two(self, make_state, make_player, pool, scripted_rng):
        state = make_state(make_player(dice_pool=pool))
        outcome = DiceEngine.reroll(state, "p1", "d", scripted_rng(3))
        assert outcome.details["new_value"] == 3
        assert outcome.details["old_value"] == 7
        assert outcome.state.get_player("p1").free_pips == 7

    def test_forced_value(self, make_state, make_player, pool, scripted_rng):
        outcome = DiceEngine.reroll(make_state(make_player(dice_pool=pool)), "p1", "d", scripted_rng(), forced_value=10)
        assert outcome.state.get_player("p1").get_die("d").value == 10

    def test_forced_value_out_of_range(self, make_state, make_player, pool, scripted_rng):
        outcome = DiceEngine.reroll(make_state(make_player(dice_pool=pool)), "p1", "a", scripted_rng(), forced_value=5)
        assert not outcome.success

    def test_quality_control_first_free(self, make_state, make_player, pool, scripted_rng):
        state = make_state(make_player(dice_pool=pool, modifications=(QUALITY_CONTROL,)))
        rng = scripted_rng(1, 1)
        first = DiceEngine.reroll(state, "p1", "d", rng)
        second = DiceEngine.reroll(first.state, "p1", "c", rng)
        assert first.details["cost"] == 0
        assert second.details["cost"] == 2

    def test_improved_rollers(self, make_state, make_player, pool, scripted_rng):
        state = make_state(make_player(dice_pool=pool, modifications=(IMPROVED_ROLLERS,)))
        assert DiceEngine.reroll(state, "p1", "d", scripted_rng(1)).details["cost"] == 1

    def test_tworus_never_lands_on_two(self, make_state, make_player, pool, scripted_rng):
        state = make_state(make_player(dice_pool=pool, modifications=(TWORUS,)))
        outcome = DiceEngine.reroll(state, "p1", "d", scripted_rng(2, 2, 9))
        assert outcome.details["new_value"] == 9


class TestFloorAndConversion:
    """Tests for turn-boundary helpers."""

    def test_enforce_floor_adds_blank_d4s(self, make_state, make_player, make_die):
        state = make_state(make_player(dice_pool=(make_die(8, 3),), dice_floor=4))
        outcome = DiceEngine.enforce_floor(state, "p1")
        pool = outcome.state.get_player("p1").dice_pool
        assert outcome.details["added"] == 3
        assert len(pool) == 4
        assert [d.sides for d in pool[1:]] == [4, 4, 4]

    def test_enforce_floor_with_upgrade_adds_d6s(self, make_state, make_player):
        state = make_state(make_player(dice_pool=(), dice_floor=2, modifications=(DICE_POOL_UPGRADE,)))
        pool = DiceEngine.enforce_floor(state, "p1").state.get_player("p1").dice_pool
        assert [d.sides for d in pool] == [6, 6]

    def test_convert_unused(self, make_state, make_player, pool):
        player = make_player(dice_pool=pool, free_pips=0, exhausted_dice=frozenset({"a"}))
        outcome = DiceEngine.convert_unused_to_pips(make_state(player), "p1")
        assert outcome.state.get_player("p1").free_pips == 17

    def test_convert_ignores_unset(self, make_state, make_player, make_die):
        player = make_player(dice_pool=(make_die(6, 4), make_die(6)), free_pips=0)
        outcome = DiceEngine.convert_unused_to_pips(make_state(player), "p1")
        assert outcome.details["pips_gained"] == 4

    def test_dividend_takes_points(self, make_state, make_player, pool):
        player = make_player(dice_pool=pool, modifications=(DIVIDEND,))
        outcome = DiceEngine.convert_unused_to_pips(make_state(player), "p1", as_points=True)
        assert outcome.state.get_player("p1").score == 18

    def test_dividend_required(self, make_state, make_player, pool):
        outcome = DiceEngine.convert_unused_to_pips(make_state(make_player(dice_pool=pool)), "p1", as_points=True)
        assert not outcome.success


class TestModificationActions:
    """Tests for modification-driven dice actions."""

    def test_expand_dice_pool(self, make_state, make_player):
        state = make_state(make_player(free_pips=12, modifications=(VARIABLE_DICE_POOL,)))
        outcome = DiceEngine.expand_dice_pool(state, "p1")
        player = outcome.state.get_player("p1")
        assert player.dice_floor == 5
        assert player.free_pips == 2

    def test_expand_requires_modification(self, make_state, make_player):
        assert not DiceEngine.expand_dice_pool(make_state(make_player(free_pips=20)), "p1").success

    def test_tower_reroll(self, make_state, make_player, pool, scripted_rng):
        state = make_state(make_player(dice_pool=pool, modifications=(DICE_TOWER,)))
        outcome = DiceEngine.tower_reroll(state, "p1", scripted_rng(4, 6, 8, 10))
        assert outcome.details["values"] == (4, 6, 8, 10)
        again = DiceEngine.tower_reroll(outcome.state, "p1", scripted_rng())
        assert again.message == "Dice Tower already used this turn"

    def test_tower_only_before_other_actions(self, make_state, make_player, pool, scripted_rng):
        player = make_player(
            dice_pool=pool,
            modifications=(DICE_TOWER,),
            current_turn_actions=(ActionRecord("recruit"),),
        )
        outcome = DiceEngine.tower_reroll(make_state(player), "p1", scripted_rng())
        assert "before any other action" in outcome.message

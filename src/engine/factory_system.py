"""
Dice Factory - Factory Subsystem

The market of one-time effects and permanent modifications.

Market:
    - Effects: a fixed selection offered all game, bought into a hand and
      played later. Effects without a trigger apply when played; effects
      with a trigger are armed and fire once at the next matching event.
    - Modifications: dealt from a shuffled deck each turn. Players reserve
      them during the turn. At the end of the turn a card with one
      reservation is bought at cost; a card with two or more goes to a
      blind auction.

Blind auction:
    Sealed bids are held in escrow as soon as they are placed. The strictly
    highest bid wins and pays; everyone else is refunded. A tie for the top
    bid, or a top bid of zero, means no winner: every bid is refunded and
    the card goes back to the deck.
"""

import logging
import random
from dataclasses import replace

from src.engine.base import (
    Auction,
    Bid,
    GameState,
    Outcome,
    Player,
    Reservation,
    Trigger,
)
from src.engine.catalog import (
    CORPORATE_DEBT,
    DICE_POOL_SIZE,
    DICE_POOL_UPGRADE,
    EFFECTS,
    HEADCOUNT,
    JOB_FAIR,
    MARKET_MANIPULATION,
    MODIFICATIONS,
    NIGHT_SHIFT,
    RAINBOW_DIE,
    SHINY_DICE,
    TWORUS,
    YEAR_END_BONUS,
    FactoryCard,
    build_modification_deck,
    draw_effects,
    get_card,
)
from src.engine.constants import (
    DICE_POOL_UPGRADE_SIDES,
    MARKET_MANIPULATION_DISCOUNT,
    TWORUS_BANNED_VALUE,
)
from src.engine.dice import add_dice, create_die, roll_die
from src.engine.game_log import log_action, log_system
from src.engine.validators import minimum_pips, validate_bid_amount, validate_pip_cost

logger = logging.getLogger(__name__)


def _without_one(items: tuple[str, ...], item: str) -> tuple[str, ...]:
    """Remove the first occurrence of ``item``."""
    index = items.index(item)
    return items[:index] + items[index + 1:]


class FactoryEngine:
    """
    Stateless engine for the factory market.

    All methods are class methods operating on immutable data.
    State is passed in and returned, never stored.
    """

    @classmethod
    def card_cost(cls, player: Player, card: FactoryCard) -> int:
        """Price of a card for a player after discounts."""
        if player.has_modification(MARKET_MANIPULATION):
            return max(0, card.cost - MARKET_MANIPULATION_DISCOUNT)
        return card.cost

    # -------------------------------------------------------------------------
    # Market
    # -------------------------------------------------------------------------

    @classmethod
    def initialize_market(cls, state: GameState, rng: random.Random) -> GameState:
        """Pick the game's effects, shuffle the deck and deal the first offers."""
        state = replace(
            state,
            available_effects=draw_effects(rng, state.config.effect_market_size),
            modification_deck=build_modification_deck(rng),
            available_modifications=(),
        )
        return cls.deal_modifications(state)

    @classmethod
    def deal_modifications(cls, state: GameState) -> GameState:
        """
        Refresh the modification offers for a new turn.

        Unclaimed offers go to the bottom of the deck. New offers are taken
        from the top, skipping copies of a card already on offer.
        """
        deck = list(state.modification_deck + state.available_modifications)
        offers: list[str] = []
        remaining: list[str] = []
        for card_id in deck:
            if len(offers) < state.config.modification_market_size and card_id not in offers:
                offers.append(card_id)
            else:
                remaining.append(card_id)
        return replace(
            state,
            available_modifications=tuple(offers),
            modification_deck=tuple(remaining),
        )

    # -------------------------------------------------------------------------
    # Effects
    # -------------------------------------------------------------------------

    @classmethod
    def purchase_effect(cls, state: GameState, player_id: str, effect_id: str) -> Outcome:
        """Buy an effect into the player's hand."""
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        card = EFFECTS.get(effect_id)
        if card is None or effect_id not in state.available_effects:
            return Outcome.fail(state, "Effect not available")

        cost = cls.card_cost(player, card)
        payable = validate_pip_cost(player.free_pips, cost, minimum_pips(player))
        if not payable.is_valid:
            return Outcome.fail(state, payable.reason)

        player = replace(
            player,
            free_pips=player.free_pips - cost,
            factory_hand=player.factory_hand + (effect_id,),
        )
        message = f"Bought {card.name} for {cost} pips"
        state = log_action(state.with_player(player), player.name, message)
        return Outcome.ok(state, message, effect_id=effect_id, cost=cost)

    @classmethod
    def play_effect(
        cls,
        state: GameState,
        player_id: str,
        effect_id: str,
        rng: random.Random,
    ) -> Outcome:
        """Play an effect from hand, applying or arming it."""
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        card = EFFECTS.get(effect_id)
        if card is None or effect_id not in player.factory_hand:
            return Outcome.fail(state, "Effect not in hand")

        player = replace(
            player,
            factory_hand=_without_one(player.factory_hand, effect_id),
            effects=player.effects + (effect_id,),
        )
        if card.trigger is None:
            applied, note = cls._apply_effect(player, effect_id, rng)
            if applied is None:
                return Outcome.fail(state, note)
            player = applied
            message = f"Played {card.name}: {note}"
        else:
            player = replace(player, armed_effects=player.armed_effects + (effect_id,))
            message = f"Played {card.name}; it takes effect at {card.trigger.value.replace('_', ' ')}"

        state = log_action(state.with_player(player), player.name, message)
        return Outcome.ok(state, message, effect_id=effect_id, armed=card.trigger is not None)

    @classmethod
    def _apply_effect(
        cls,
        player: Player,
        effect_id: str,
        rng: random.Random,
    ) -> tuple[Player | None, str]:
        """
        Apply one effect to a player.

        Returns:
            Tuple of (updated player, note), or (None, reason) if it cannot apply
        """
        if effect_id == JOB_FAIR:
            die = roll_die(create_die(4), rng)
            return replace(player, dice_pool=add_dice(player.dice_pool, [die])), f"recruited {die}"

        if effect_id == SHINY_DICE:
            candidates = [d for d in player.available_dice if not d.shiny]
            if not candidates:
                return None, "No unspent die to make shiny"
            target = max(candidates, key=lambda d: (d.value, d.sides))
            shiny = replace(target, shiny=True)
            pool = tuple(shiny if d.id == target.id else d for d in player.dice_pool)
            return replace(player, dice_pool=pool), f"{target} is now shiny"

        if effect_id == RAINBOW_DIE:
            die = roll_die(create_die(6, rainbow=True), rng)
            return replace(player, dice_pool=add_dice(player.dice_pool, [die])), f"gained rainbow {die}"

        if effect_id == HEADCOUNT:
            floor = player.dice_floor + 1
            return replace(player, dice_floor=floor), f"dice floor is now {floor}"

        if effect_id == NIGHT_SHIFT:
            die = roll_die(create_die(6), rng)
            return replace(player, dice_pool=add_dice(player.dice_pool, [die])), f"recruited {die}"

        if effect_id == YEAR_END_BONUS:
            gained = len(player.dice_pool)
            return replace(player, score=player.score + gained), f"gained {gained} points"

        raise ValueError(f"Unknown effect {effect_id!r}.")

    # -------------------------------------------------------------------------
    # Modifications
    # -------------------------------------------------------------------------

    @classmethod
    def reserve_modification(
        cls,
        state: GameState,
        player_id: str,
        modification_id: str,
        bid: int | None = None,
    ) -> Outcome:
        """
        Claim an offered modification for the end of the turn.

        Args:
            state: Current game state
            player_id: Reserving player
            modification_id: Card on offer
            bid: Sealed bid to use if the card ends up contested (bots
                supply this up front)
        """
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        card = MODIFICATIONS.get(modification_id)
        if card is None or modification_id not in state.available_modifications:
            return Outcome.fail(state, "Modification not available")
        if not card.stackable and player.has_modification(modification_id):
            return Outcome.fail(state, f"You already own {card.name}")
        if any(r.player_id == player_id for r in state.reservations_for(modification_id)):
            return Outcome.fail(state, f"You already reserved {card.name}")

        floor = minimum_pips(player)
        cost = cls.card_cost(player, card)
        payable = validate_pip_cost(player.free_pips, cost, floor)
        if not payable.is_valid:
            return Outcome.fail(state, payable.reason)
        if bid is not None:
            try:
                validate_bid_amount(bid)
            except ValueError as exc:
                return Outcome.fail(state, str(exc))
            covered = validate_pip_cost(player.free_pips, bid, floor)
            if not covered.is_valid:
                return Outcome.fail(state, covered.reason)

        reservation = Reservation(modification_id=modification_id, player_id=player_id, bid=bid)
        state = replace(state, reservations=state.reservations + (reservation,))
        message = f"Reserved {card.name}"
        state = log_action(state, player.name, message)
        return Outcome.ok(
            state,
            message,
            modification_id=modification_id,
            contested=len(state.reservations_for(modification_id)) > 1,
        )

    @classmethod
    def settle_reservations(cls, state: GameState) -> Outcome:
        """
        Turn the turn's reservations into purchases or auctions.

        Eager bids are moved into escrow as the auction opens; an eager bid
        the player can no longer cover is withdrawn and must be resubmitted.
        """
        auctions: list[Auction] = []
        live = [r for r in state.reservations if state.get_player(r.player_id).is_active]
        for modification_id in dict.fromkeys(r.modification_id for r in live):
            claims = [r for r in live if r.modification_id == modification_id]
            if len(claims) == 1:
                state = cls._buy_outright(state, claims[0])
                continue

            bids: list[Bid] = []
            for claim in claims:
                if claim.bid is None:
                    continue
                player = state.get_player(claim.player_id)
                covered = validate_pip_cost(player.free_pips, claim.bid, minimum_pips(player))
                if not covered.is_valid:
                    state = log_system(state, f"{player.name}'s sealed bid was withdrawn: {covered.reason}")
                    continue
                state = state.with_player(replace(player, free_pips=player.free_pips - claim.bid))
                bids.append(Bid(player_id=claim.player_id, amount=claim.bid))

            auction = Auction(
                modification_id=modification_id,
                bidders=tuple(c.player_id for c in claims),
                bids=tuple(bids),
            )
            auctions.append(auction)
            names = ", ".join(state.get_player(p).name for p in auction.bidders)
            state = log_system(
                state, f"Blind auction opened for {MODIFICATIONS[modification_id].name} between {names}"
            )

        state = replace(state, reservations=(), current_auctions=tuple(auctions))
        return Outcome.ok(state, "", auctions=tuple(a.modification_id for a in auctions))

    @classmethod
    def _buy_outright(cls, state: GameState, claim: Reservation) -> GameState:
        player = state.get_player(claim.player_id)
        card = MODIFICATIONS[claim.modification_id]
        cost = cls.card_cost(player, card)
        payable = validate_pip_cost(player.free_pips, cost, minimum_pips(player))
        if not payable.is_valid:
            return log_system(state, f"{player.name} could no longer afford {card.name}")

        state = state.with_player(replace(player, free_pips=player.free_pips - cost))
        state = cls.apply_modification(state, player.id, card.id)
        state = replace(
            state,
            available_modifications=_without_one(state.available_modifications, card.id),
        )
        return log_action(state, player.name, f"Bought {card.name} for {cost} pips")

    @classmethod
    def submit_bid(
        cls,
        state: GameState,
        player_id: str,
        modification_id: str,
        amount: int,
    ) -> Outcome:
        """Place a sealed bid; the pips go into escrow immediately."""
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        if player.has_fled:
            return Outcome.fail(state, "Player has fled the factory")
        auction = state.get_auction(modification_id)
        if auction is None:
            return Outcome.fail(state, "No auction is open for that modification")
        if player_id not in auction.bidders:
            return Outcome.fail(state, "Player is not bidding on this modification")
        if auction.bid_for(player_id) is not None:
            return Outcome.fail(state, "Bid already submitted")
        try:
            validate_bid_amount(amount)
        except ValueError as exc:
            return Outcome.fail(state, str(exc))
        covered = validate_pip_cost(player.free_pips, amount, minimum_pips(player))
        if not covered.is_valid:
            return Outcome.fail(state, covered.reason)

        updated = replace(auction, bids=auction.bids + (Bid(player_id=player_id, amount=amount),))
        state = replace(
            state,
            current_auctions=tuple(
                updated if a.modification_id == modification_id else a
                for a in state.current_auctions
            ),
        )
        state = state.with_player(replace(player, free_pips=player.free_pips - amount))
        message = f"Placed a sealed bid on {MODIFICATIONS[modification_id].name}"
        state = log_action(state, player.name, message)
        return Outcome.ok(
            state,
            message,
            all_bids_in=all(a.is_complete for a in state.current_auctions),
        )

    @classmethod
    def resolve_auctions(cls, state: GameState, force: bool = False) -> Outcome:
        """
        Reveal and settle every open auction.

        Args:
            state: Current game state
            force: Resolve even if some bidders never bid; their bids are
                left out of the auction
        """
        if not state.current_auctions:
            return Outcome.ok(state, "", winners={})

        missing = [p for a in state.current_auctions for p in a.missing_bidders]
        if missing and not force:
            return Outcome.fail(state, "Waiting for sealed bids")

        winners: dict[str, str | None] = {}
        for auction in state.current_auctions:
            state, winner = cls._resolve_auction(state, auction)
            winners[auction.modification_id] = winner
        state = replace(state, current_auctions=())
        return Outcome.ok(state, "", winners=winners)

    @classmethod
    def _resolve_auction(cls, state: GameState, auction: Auction) -> tuple[GameState, str | None]:
        card = MODIFICATIONS[auction.modification_id]
        if not auction.bids:
            return log_system(state, f"No bids for {card.name}; it returns to the deck"), None

        high = max(b.amount for b in auction.bids)
        leaders = [b for b in auction.bids if b.amount == high]
        winner = leaders[0] if len(leaders) == 1 and high > 0 else None

        for bid in auction.bids:
            if winner is not None and bid.player_id == winner.player_id:
                continue
            player = state.get_player(bid.player_id)
            state = state.with_player(replace(player, free_pips=player.free_pips + bid.amount))

        if winner is None:
            reason = f"Tie at {high} pips" if len(leaders) > 1 else "No positive bids"
            message = f"{reason} for {card.name}; no winner, bids refunded, card returns to the deck"
            logger.info("Auction for %s ended without a winner", card.id)
            return log_system(state, message), None

        state = cls.apply_modification(state, winner.player_id, card.id)
        state = replace(
            state,
            available_modifications=_without_one(state.available_modifications, card.id),
        )
        name = state.get_player(winner.player_id).name
        state = log_system(state, f"{name} won {card.name} with a bid of {winner.amount} pips")
        return state, winner.player_id

    @classmethod
    def apply_modification(cls, state: GameState, player_id: str, modification_id: str) -> GameState:
        """Give a player a modification and apply its immediate part."""
        player = state.get_player(player_id)
        player = replace(player, modifications=player.modifications + (modification_id,))

        if modification_id == DICE_POOL_SIZE:
            player = replace(player, dice_floor=player.dice_floor + 1)
        elif modification_id == DICE_POOL_UPGRADE:
            pool = []
            exhausted = set(player.exhausted_dice)
            for die in player.dice_pool:
                if die.sides < DICE_POOL_UPGRADE_SIDES:
                    upgraded = create_die(
                        DICE_POOL_UPGRADE_SIDES, die.value, shiny=die.shiny, rainbow=die.rainbow
                    )
                    if die.id in exhausted:
                        exhausted.discard(die.id)
                        exhausted.add(upgraded.id)
                    pool.append(upgraded)
                else:
                    pool.append(die)
            player = replace(player, dice_pool=tuple(pool), exhausted_dice=frozenset(exhausted))

        return state.with_player(player)

    @classmethod
    def sell_modification(cls, state: GameState, player_id: str, modification_id: str) -> Outcome:
        """Sell a sellable modification back for its sale value."""
        player = state.get_player(player_id)
        if player is None:
            return Outcome.fail(state, "Player not found")
        card = MODIFICATIONS.get(modification_id)
        if card is None or not player.has_modification(modification_id):
            return Outcome.fail(state, "You do not own that modification")
        if card.sale_value is None:
            return Outcome.fail(state, f"{card.name} cannot be sold")
        if modification_id == CORPORATE_DEBT and player.free_pips < 0:
            return Outcome.fail(state, "Pay off your debt before selling Corporate Debt")

        player = replace(
            player,
            modifications=_without_one(player.modifications, modification_id),
            free_pips=player.free_pips + card.sale_value,
        )
        message = f"Sold {card.name} for {card.sale_value} pips"
        state = log_action(state.with_player(player), player.name, message)
        return Outcome.ok(state, message, pips_gained=card.sale_value)

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    @classmethod
    def process_triggers(
        cls,
        state: GameState,
        trigger: Trigger,
        rng: random.Random,
        player_id: str | None = None,
    ) -> Outcome:
        """
        Fire every owned card reacting to a lifecycle event.

        Modifications fire every time. Armed effects fire once and are then
        disarmed. Fled players are skipped.

        Args:
            state: Current game state
            trigger: The event taking place
            rng: Random source for cards that roll dice
            player_id: Limit to one player (default: everyone)
        """
        fired: list[tuple[str, str]] = []
        for seat in state.players:
            if player_id is not None and seat.id != player_id:
                continue
            if seat.has_fled:
                continue

            for modification_id in dict.fromkeys(seat.modifications):
                card = MODIFICATIONS[modification_id]
                if card.trigger != trigger:
                    continue
                state = cls._run_passive(state, seat.id, modification_id, rng)
                fired.append((seat.id, modification_id))

            player = state.get_player(seat.id)
            for effect_id in player.armed_effects:
                card = EFFECTS[effect_id]
                if card.trigger != trigger:
                    continue
                player = state.get_player(seat.id)
                applied, note = cls._apply_effect(player, effect_id, rng)
                if applied is None:
                    applied, note = player, f"fizzled ({note})"
                applied = replace(applied, armed_effects=_without_one(applied.armed_effects, effect_id))
                state = log_system(state.with_player(applied), f"{card.name} for {player.name}: {note}")
                fired.append((seat.id, effect_id))

        return Outcome.ok(state, "", fired=tuple(fired))

    @classmethod
    def _run_passive(
        cls,
        state: GameState,
        player_id: str,
        modification_id: str,
        rng: random.Random,
    ) -> GameState:
        player = state.get_player(player_id)

        if modification_id == CORPORATE_DEBT:
            if player.free_pips >= 0:
                return state
            debt = -player.free_pips
            player = replace(player, score=player.score - debt)
            return log_system(
                state.with_player(player),
                f"{player.name} paid {debt} points of interest on Corporate Debt",
            )

        if modification_id == TWORUS:
            twos = [d for d in player.dice_pool if d.value == TWORUS_BANNED_VALUE]
            if not twos:
                return state
            rerolled = {d.id: roll_die(d, rng, (TWORUS_BANNED_VALUE,)) for d in twos}
            pool = tuple(rerolled.get(d.id, d) for d in player.dice_pool)
            player = replace(player, dice_pool=pool)
            return log_system(
                state.with_player(player),
                f"2rUS rerolled {len(twos)} of {player.name}'s 2s",
            )

        card = get_card(modification_id)
        logger.warning("No passive handler for %s", card.id if card else modification_id)
        return state

"""Action Arbiter for the IDL Arena.

The arbiter is the authoritative state-transition function of the
simulation: it owns every agent's economic state, the market registry and
the protocol totals, and stands in for the on-chain instruction handlers.

Every transition is validated in full before any state is touched, so a
rejected action leaves everything unchanged. Validation failures raise
ActionRejected inside a handler and are turned into a failed ActionOutcome
at the apply() boundary. InvariantViolation is never caught here.
"""

import logging
import random
from collections.abc import Callable

from .actions import (
    Action,
    ClaimWinningsAction,
    CreateMarketAction,
    LockVeAction,
    PlaceBetAction,
    StakeAction,
    UnstakeAction,
)
from .economics import (
    BPS_DENOMINATOR,
    CREATOR_FEE_SHARE_BPS,
    MAX_LOCK_DURATION,
    MAX_TARGET_VALUE,
    MAX_TIMESTAMP,
    MIN_LOCK_DURATION,
    MIN_RESOLUTION_WINDOW,
    TOKEN_UNIT,
    checked_add,
    checked_mul,
    checked_signed_add,
    checked_sub,
    effective_amount,
    fee_split,
    market_fee_revenue,
    parimutuel_payout,
    staking_bonus_bps,
    vote_escrow,
)
from .errors import ActionRejected, InvariantViolation
from .models import (
    ActionOutcome,
    ActionType,
    AgentState,
    BetPosition,
    CompetitorSummary,
    FailureCode,
    MarketInfo,
    MetricType,
    ProtocolTotals,
    SettlementRecord,
    Side,
    SimulationContext,
)

logger = logging.getLogger(__name__)

MAX_PROTOCOL_ID_LEN = 32
MAX_DESCRIPTION_LEN = 200


class ActionArbiter:
    """Validates and applies agent actions against protocol rules.

    Agent states are kept in declaration order, which is also the
    leaderboard tie-break order.
    """

    def __init__(self, agent_names: list[str], initial_balance: int):
        """Initialize the arbiter.

        Args:
            agent_names: Agents in declaration order
            initial_balance: Starting liquid balance for each agent (base units)
        """
        if initial_balance < 0:
            raise InvariantViolation("initial_balance must be non-negative")
        if len(set(agent_names)) != len(agent_names):
            raise ValueError("agent names must be unique")

        self.states: dict[str, AgentState] = {
            name: AgentState(
                name=name,
                initial_balance=initial_balance,
                liquid_balance=initial_balance,
            )
            for name in agent_names
        }
        self.markets: dict[str, MarketInfo] = {}
        self.protocol = ProtocolTotals()
        self._market_counter = 0
        self._creator_fee_paid: set[str] = set()

        self._handlers: dict[ActionType, Callable[[AgentState, Action, int], dict]] = {
            ActionType.STAKE: self._stake,
            ActionType.UNSTAKE: self._unstake,
            ActionType.LOCK_VE: self._lock_ve,
            ActionType.UNLOCK_VE: self._unlock_ve,
            ActionType.CREATE_MARKET: self._create_market,
            ActionType.PLACE_BET: self._place_bet,
            ActionType.CLAIM_WINNINGS: self._claim_winnings,
            ActionType.WAIT: self._no_op,
            ActionType.ANALYZE: self._no_op,
        }

        logger.info(
            f"ActionArbiter initialized for {len(agent_names)} agents",
            extra={"initial_balance": initial_balance},
        )

    def get_state(self, agent_name: str) -> AgentState | None:
        """Get an agent's state."""
        return self.states.get(agent_name)

    def get_all_states(self) -> list[AgentState]:
        """Get all agent states in declaration order."""
        return list(self.states.values())

    def get_market(self, market_id: str) -> MarketInfo | None:
        return self.markets.get(market_id)

    def unresolved_markets(self) -> list[MarketInfo]:
        return [m for m in self.markets.values() if not m.resolved]

    def begin_round(self) -> None:
        """Reset every agent's per-round PnL."""
        for state in self.states.values():
            state.round_pnl = 0

    def apply(self, agent_name: str, action: Action, now: int) -> ActionOutcome:
        """Apply one action for an agent.

        Args:
            agent_name: The acting agent
            action: Validated action
            now: Current simulation timestamp

        Returns:
            ActionOutcome; on failure nothing was mutated
        """
        action_type = action.action_type
        state = self.states.get(agent_name)
        if state is None:
            return ActionOutcome(
                success=False,
                action_type=action_type,
                error_code=FailureCode.UNKNOWN_AGENT,
                error=f"Unknown agent: {agent_name}",
            )

        try:
            details = self._handlers[action_type](state, action, now)
        except ActionRejected as e:
            logger.info(
                f"{agent_name} {action_type.value} rejected: {e.code.value} - {e.message}",
                extra={"agent": agent_name, "action": action_type.value, "code": e.code.value},
            )
            return ActionOutcome(
                success=False,
                action_type=action_type,
                error_code=e.code,
                error=e.message,
            )

        self._check_agent(state)
        logger.debug(
            f"{agent_name} {action_type.value} applied",
            extra={"agent": agent_name, "action": action_type.value, **details},
        )
        return ActionOutcome(success=True, action_type=action_type, details=details)

    # Handlers. Each validates everything first, then mutates.

    def _no_op(self, state: AgentState, action: Action, now: int) -> dict:
        return {}

    def _stake(self, state: AgentState, action: StakeAction, now: int) -> dict:
        amount = action.amount
        if amount <= 0 or amount > state.liquid_balance:
            raise ActionRejected(
                FailureCode.INVALID_AMOUNT,
                f"Stake amount {amount} must be in (0, {state.liquid_balance}]",
            )

        liquid = checked_sub(state.liquid_balance, amount)
        staked = checked_add(state.staked_amount, amount)
        total_staked = checked_add(self.protocol.total_staked, amount)

        state.liquid_balance = liquid
        state.staked_amount = staked
        self.protocol.total_staked = total_staked
        return {"amount": amount, "staked_amount": staked}

    def _unstake(self, state: AgentState, action: UnstakeAction, now: int) -> dict:
        amount = action.amount
        if amount <= 0:
            raise ActionRejected(FailureCode.INVALID_AMOUNT, f"Unstake amount must be positive, got {amount}")
        if amount > state.staked_amount:
            raise ActionRejected(
                FailureCode.INSUFFICIENT_STAKE,
                f"Unstake amount {amount} exceeds staked {state.staked_amount}",
            )
        if now < state.lock_end_time:
            unlocked = checked_sub(state.staked_amount, state.locked_stake)
            if amount > unlocked:
                raise ActionRejected(
                    FailureCode.TOKENS_LOCKED,
                    f"Only {unlocked} of {state.staked_amount} staked is unlocked until {state.lock_end_time}",
                )

        staked = checked_sub(state.staked_amount, amount)
        liquid = checked_add(state.liquid_balance, amount)
        total_staked = checked_sub(self.protocol.total_staked, amount)
        # ve power never exceeds what is still staked
        ve = min(state.ve_amount, staked)
        ve_supply = checked_sub(self.protocol.total_ve_supply, state.ve_amount - ve)

        state.staked_amount = staked
        state.liquid_balance = liquid
        # An expired lock may still cover more than what is left staked
        state.locked_stake = min(state.locked_stake, staked)
        state.ve_amount = ve
        self.protocol.total_staked = total_staked
        self.protocol.total_ve_supply = ve_supply
        return {"amount": amount, "staked_amount": staked, "ve_amount": ve}

    def _lock_ve(self, state: AgentState, action: LockVeAction, now: int) -> dict:
        duration = action.duration
        if state.staked_amount <= 0:
            raise ActionRejected(FailureCode.INSUFFICIENT_STAKE, "Nothing staked to lock")
        if duration < MIN_LOCK_DURATION or duration > MAX_LOCK_DURATION:
            raise ActionRejected(
                FailureCode.INVALID_LOCK_DURATION,
                f"Lock duration {duration}s outside [{MIN_LOCK_DURATION}, {MAX_LOCK_DURATION}]",
            )

        # Re-locking extends, never shortens, and never reduces ve power
        lock_end = max(state.lock_end_time, checked_add(now, duration))
        ve = max(state.ve_amount, vote_escrow(state.staked_amount, lock_end - now))
        ve_supply = checked_add(self.protocol.total_ve_supply, ve - state.ve_amount)

        state.lock_end_time = lock_end
        state.ve_amount = ve
        state.locked_stake = state.staked_amount
        self.protocol.total_ve_supply = ve_supply
        return {"duration": duration, "lock_end_time": lock_end, "ve_amount": ve}

    def _unlock_ve(self, state: AgentState, action: Action, now: int) -> dict:
        if state.lock_end_time == 0:
            raise ActionRejected(FailureCode.INVALID_INPUT, "No vote-escrow lock to release")
        if now < state.lock_end_time:
            raise ActionRejected(
                FailureCode.LOCK_NOT_EXPIRED,
                f"Lock expires at {state.lock_end_time}, now {now}",
            )

        released = state.ve_amount
        ve_supply = checked_sub(self.protocol.total_ve_supply, released)

        state.ve_amount = 0
        state.locked_stake = 0
        state.lock_end_time = 0
        self.protocol.total_ve_supply = ve_supply
        return {"released_ve": released}

    def _create_market(self, state: AgentState, action: CreateMarketAction, now: int) -> dict:
        protocol_id = action.protocol_id.strip()
        if not 1 <= len(protocol_id) <= MAX_PROTOCOL_ID_LEN:
            raise ActionRejected(
                FailureCode.INVALID_INPUT,
                f"protocol_id must be 1-{MAX_PROTOCOL_ID_LEN} characters",
            )
        if len(action.description) > MAX_DESCRIPTION_LEN:
            raise ActionRejected(
                FailureCode.INVALID_INPUT,
                f"description exceeds {MAX_DESCRIPTION_LEN} characters",
            )
        if action.resolution_offset < MIN_RESOLUTION_WINDOW:
            raise ActionRejected(
                FailureCode.INVALID_TIMESTAMP,
                f"Resolution must be at least {MIN_RESOLUTION_WINDOW}s in the future",
            )
        if action.resolution_offset > MAX_TIMESTAMP - now:
            raise ActionRejected(
                FailureCode.INVALID_TIMESTAMP,
                f"Resolution offset {action.resolution_offset}s is past the representable range",
            )
        if action.target_value > MAX_TARGET_VALUE:
            raise ActionRejected(
                FailureCode.INVALID_INPUT,
                f"target_value exceeds {MAX_TARGET_VALUE}",
            )

        market = self._register_market(
            protocol_id=protocol_id,
            metric_type=action.metric_type,
            target_value=action.target_value,
            resolution_time=checked_add(now, action.resolution_offset),
            description=action.description,
            creator=state.name,
            now=now,
        )
        return {"market_id": market.market_id, "resolution_time": market.resolution_time}

    def _place_bet(self, state: AgentState, action: PlaceBetAction, now: int) -> dict:
        market = self.markets.get(action.market_id)
        if market is None:
            raise ActionRejected(FailureCode.MARKET_NOT_FOUND, f"Market not found: {action.market_id}")
        if market.resolved:
            raise ActionRejected(FailureCode.MARKET_RESOLVED, f"Market {market.market_id} is resolved")
        if now >= market.resolution_time:
            raise ActionRejected(
                FailureCode.BETTING_CLOSED,
                f"Betting on {market.market_id} closed at {market.resolution_time}",
            )
        amount = action.amount
        if amount <= 0 or amount > state.liquid_balance:
            raise ActionRejected(
                FailureCode.INVALID_AMOUNT,
                f"Bet amount {amount} must be in (0, {state.liquid_balance}]",
            )

        bonus_bps = staking_bonus_bps(state.staked_amount)
        effective = effective_amount(amount, bonus_bps)
        if effective < amount:
            raise InvariantViolation(f"effective amount {effective} below principal {amount}")

        liquid = checked_sub(state.liquid_balance, amount)
        if action.side == "yes":
            yes_pool, no_pool = checked_add(market.yes_pool, effective), market.no_pool
        else:
            yes_pool, no_pool = market.yes_pool, checked_add(market.no_pool, effective)
        total_bet_amount = checked_add(state.total_bet_amount, amount)

        nonce = market.bet_count
        bet = BetPosition(
            bet_id=f"{market.market_id}-{nonce}",
            market_id=market.market_id,
            amount=amount,
            effective_amount=effective,
            side=action.side,
            nonce=nonce,
            placed_at=now,
        )

        state.liquid_balance = liquid
        state.total_bets += 1
        state.total_bet_amount = total_bet_amount
        state.open_bets.append(bet)
        market.yes_pool = yes_pool
        market.no_pool = no_pool
        market.bet_count = nonce + 1
        return {
            "bet_id": bet.bet_id,
            "market_id": market.market_id,
            "amount": amount,
            "effective_amount": effective,
            "bonus_bps": bonus_bps,
            "side": action.side,
        }

    def _claim_winnings(self, state: AgentState, action: ClaimWinningsAction, now: int) -> dict:
        bet = state.find_bet(action.bet_id)
        if bet is None:
            raise ActionRejected(FailureCode.BET_NOT_FOUND, f"No open bet {action.bet_id}")
        market = self.markets.get(bet.market_id)
        if market is None:
            raise InvariantViolation(f"Bet {bet.bet_id} references missing market {bet.market_id}")
        if not market.resolved:
            raise ActionRejected(
                FailureCode.MARKET_NOT_RESOLVED,
                f"Market {market.market_id} is not resolved",
            )
        if market.outcome != bet.side:
            raise ActionRejected(
                FailureCode.BET_LOST,
                f"Bet {bet.bet_id} on {bet.side.upper()} lost (outcome {market.outcome})",
            )

        record = self._settle_winner(state, bet, market)
        return {
            "bet_id": bet.bet_id,
            "payout": record.payout,
            "fee": record.fee,
            "pnl": record.pnl,
        }

    # Settlement

    def _settle_winner(self, state: AgentState, bet: BetPosition, market: MarketInfo) -> SettlementRecord:
        if bet.side == "yes":
            winning_pool, losing_pool = market.yes_pool, market.no_pool
        else:
            winning_pool, losing_pool = market.no_pool, market.yes_pool

        payout = parimutuel_payout(bet.amount, bet.effective_amount, winning_pool, losing_pool)
        split = fee_split(payout.fee)
        pnl = payout.net - bet.amount

        liquid = checked_add(state.liquid_balance, payout.net)
        total_pnl = checked_signed_add(state.total_pnl, pnl)
        round_pnl = checked_signed_add(state.round_pnl, pnl)
        fees_collected = checked_add(self.protocol.total_fees_collected, payout.fee)
        reward_pool = checked_add(self.protocol.reward_pool, split.staker_share)
        # Creators are paid from market volume at resolution; their claim-fee share stays with the treasury
        treasury = checked_add(self.protocol.treasury, split.treasury_share + split.creator_share)
        burned = checked_add(self.protocol.total_burned, split.burn_share)

        state.liquid_balance = liquid
        state.total_pnl = total_pnl
        state.round_pnl = round_pnl
        state.won_bets += 1
        state.settled_bets += 1
        state.open_bets.remove(bet)
        self.protocol.total_fees_collected = fees_collected
        self.protocol.reward_pool = reward_pool
        self.protocol.treasury = treasury
        self.protocol.total_burned = burned

        return SettlementRecord(
            agent_name=state.name,
            bet_id=bet.bet_id,
            market_id=market.market_id,
            side=bet.side,
            amount=bet.amount,
            won=True,
            payout=payout.net,
            fee=payout.fee,
            pnl=pnl,
        )

    def _settle_loser(self, state: AgentState, bet: BetPosition, market: MarketInfo) -> SettlementRecord:
        total_pnl = checked_signed_add(state.total_pnl, -bet.amount)
        round_pnl = checked_signed_add(state.round_pnl, -bet.amount)

        state.total_pnl = total_pnl
        state.round_pnl = round_pnl
        state.settled_bets += 1
        state.open_bets.remove(bet)

        return SettlementRecord(
            agent_name=state.name,
            bet_id=bet.bet_id,
            market_id=market.market_id,
            side=bet.side,
            amount=bet.amount,
            won=False,
            payout=0,
            fee=0,
            pnl=-bet.amount,
        )

    def resolve_market(self, market_id: str, outcome: Side, actual_value: int) -> MarketInfo:
        """Resolve a market exactly once.

        Raises:
            ActionRejected: MarketNotFound, or MarketResolved on a second attempt
        """
        market = self.markets.get(market_id)
        if market is None:
            raise ActionRejected(FailureCode.MARKET_NOT_FOUND, f"Market not found: {market_id}")
        if market.resolved:
            raise ActionRejected(
                FailureCode.MARKET_RESOLVED,
                f"Market {market_id} already resolved {market.outcome}",
            )
        if outcome not in ("yes", "no"):
            raise ActionRejected(FailureCode.INVALID_INPUT, f"Invalid outcome: {outcome}")

        market.resolved = True
        market.outcome = outcome
        market.actual_value = actual_value

        logger.info(
            f"Market {market_id} resolved {outcome.upper()}",
            extra={
                "market": market_id,
                "outcome": outcome,
                "yes_pool": market.yes_pool,
                "no_pool": market.no_pool,
            },
        )
        return market

    def settle_market(self, market_id: str) -> list[SettlementRecord]:
        """Settle every open bet on a resolved market.

        Winners are paid via the parimutuel formula; losers realize their
        principal as a loss. Settled positions are removed.

        Returns:
            Settlement records in agent declaration order
        """
        market = self.markets.get(market_id)
        if market is None:
            raise ActionRejected(FailureCode.MARKET_NOT_FOUND, f"Market not found: {market_id}")
        if not market.resolved:
            raise ActionRejected(FailureCode.MARKET_NOT_RESOLVED, f"Market {market_id} is not resolved")

        records: list[SettlementRecord] = []
        for state in self.states.values():
            for bet in [b for b in state.open_bets if b.market_id == market_id]:
                if bet.side == market.outcome:
                    record = self._settle_winner(state, bet, market)
                else:
                    record = self._settle_loser(state, bet, market)
                records.append(record)
                logger.info(
                    f"Settled {bet.bet_id} for {state.name}: {bet.side} -> {market.outcome}, P&L: {record.pnl}",
                    extra={
                        "agent": state.name,
                        "market": market_id,
                        "won": record.won,
                        "pnl": record.pnl,
                    },
                )
            self._check_agent(state)
        return records

    def pay_creator_fee(self, market_id: str) -> tuple[str | None, int]:
        """Pay a resolved market's creator their share of its fee revenue.

        Seeded markets have no creator and pay nothing.

        Returns:
            (creator, fee paid)
        """
        market = self.markets.get(market_id)
        if market is None:
            raise ActionRejected(FailureCode.MARKET_NOT_FOUND, f"Market not found: {market_id}")
        if not market.resolved:
            raise ActionRejected(FailureCode.MARKET_NOT_RESOLVED, f"Market {market_id} is not resolved")
        if market_id in self._creator_fee_paid:
            raise ActionRejected(FailureCode.INVALID_INPUT, f"Creator fee for {market_id} already paid")

        creator = self.states.get(market.creator) if market.creator else None
        if creator is None:
            return market.creator, 0

        revenue = market_fee_revenue(market.yes_pool, market.no_pool)
        fee = checked_mul(revenue, CREATOR_FEE_SHARE_BPS) // BPS_DENOMINATOR
        self._creator_fee_paid.add(market_id)
        if fee == 0:
            return creator.name, 0

        creator.liquid_balance = checked_add(creator.liquid_balance, fee)
        creator.total_pnl = checked_signed_add(creator.total_pnl, fee)
        creator.round_pnl = checked_signed_add(creator.round_pnl, fee)
        self.protocol.creator_fees_paid = checked_add(self.protocol.creator_fees_paid, fee)

        logger.info(
            f"Paid creator fee {fee} to {creator.name} for {market_id}",
            extra={"agent": creator.name, "market": market_id, "fee": fee},
        )
        return creator.name, fee

    # Markets

    def _register_market(
        self,
        protocol_id: str,
        metric_type: MetricType,
        target_value: int,
        resolution_time: int,
        description: str,
        creator: str | None,
        now: int,
        yes_pool: int = 0,
        no_pool: int = 0,
    ) -> MarketInfo:
        self._market_counter += 1
        market_id = f"mkt-{self._market_counter:04d}"
        if not description:
            description = f"Will {protocol_id} {metric_type.value} reach {target_value}?"
        market = MarketInfo(
            market_id=market_id,
            protocol_id=protocol_id,
            metric_type=metric_type,
            target_value=target_value,
            resolution_time=resolution_time,
            description=description,
            yes_pool=yes_pool,
            no_pool=no_pool,
            creator=creator,
            created_at=now,
        )
        self.markets[market_id] = market
        logger.info(
            f"Market {market_id} created: {description}",
            extra={"market": market_id, "creator": creator, "resolution_time": resolution_time},
        )
        return market

    def seed_market(
        self,
        protocol_id: str,
        metric_type: MetricType,
        target_value: int,
        resolution_time: int,
        description: str,
        now: int,
        yes_pool: int = 0,
        no_pool: int = 0,
        creator: str | None = None,
    ) -> MarketInfo:
        """Create a market outside the action flow, optionally with initial liquidity."""
        if yes_pool < 0 or no_pool < 0:
            raise InvariantViolation("seeded pools must be non-negative")
        if creator is not None and creator not in self.states:
            raise ValueError(f"Unknown creator: {creator}")
        return self._register_market(
            protocol_id=protocol_id,
            metric_type=metric_type,
            target_value=target_value,
            resolution_time=resolution_time,
            description=description,
            creator=creator,
            now=now,
            yes_pool=yes_pool,
            no_pool=no_pool,
        )

    def perturb_pools(self, rng: random.Random, max_tokens: int = 100) -> list[dict]:
        """Add exogenous order flow to every unresolved market.

        Each market receives 0..max_tokens-1 whole tokens on a random side.
        """
        changes = []
        for market in self.unresolved_markets():
            noise = checked_mul(rng.randrange(max_tokens), TOKEN_UNIT)
            if rng.random() < 0.5:
                market.yes_pool = checked_add(market.yes_pool, noise)
                side = "yes"
            else:
                market.no_pool = checked_add(market.no_pool, noise)
                side = "no"
            changes.append({"market_id": market.market_id, "side": side, "amount": noise})
        return changes

    # Views

    def build_context(self, round_num: int, now: int) -> SimulationContext:
        """Build the read-only snapshot shared by all agents this round."""
        competitors = [
            CompetitorSummary(
                name=s.name,
                total_pnl=s.total_pnl,
                staked_amount=s.staked_amount,
                open_bets=len(s.open_bets),
            )
            for s in self.states.values()
        ]
        return SimulationContext.snapshot(
            round_num=round_num,
            timestamp=now,
            markets=self.unresolved_markets(),
            protocol=self.protocol,
            competitors=competitors,
        )

    def _check_agent(self, state: AgentState) -> None:
        if state.liquid_balance < 0 or state.staked_amount < 0 or state.ve_amount < 0:
            raise InvariantViolation(f"{state.name} reached a negative balance")
        if state.locked_stake > state.staked_amount:
            raise InvariantViolation(
                f"{state.name} locked stake {state.locked_stake} exceeds staked {state.staked_amount}"
            )
        for bet in state.open_bets:
            if bet.effective_amount < bet.amount:
                raise InvariantViolation(f"{bet.bet_id} effective amount below principal")

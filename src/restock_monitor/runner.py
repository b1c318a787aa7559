#!/usr/bin/env python3
"""
Restock runner - poll, cart and check out for every configured target
"""
import asyncio
import logging
from typing import Callable, Dict, List, Optional
from urllib.parse import urlparse

from .cancellation import CancelToken
from .config import Settings
from .exceptions import AddToCartFailure, HygieneFailure
from .models import OUT_OF_STOCK, TargetConfig
from .monitoring import Backoff, FeedClient, MonitorSession, PollLoop
from .purchasing import (CartController, ChallengeBridge, CheckoutHooks, CheckoutStateMachine,
                         HttpSolverChannel, NoSolverChannel, strategy_for)
from .store_session import StoreSession


def build_bridge(solver_settings: Dict) -> ChallengeBridge:
    timeout = float(solver_settings.get('timeout_seconds', 120))
    url = solver_settings.get('url')
    channel = HttpSolverChannel(url, timeout=timeout) if url else NoSolverChannel()
    return ChallengeBridge(channel, timeout=timeout)


class RestockRunner:
    """Runs one independent poll -> cart -> checkout pipeline per target"""

    def __init__(self, settings: Settings, bridge: Optional[ChallengeBridge] = None,
                 hooks: Optional[CheckoutHooks] = None,
                 session_factory: Callable[..., StoreSession] = StoreSession,
                 max_cycles: Optional[int] = None):
        self.settings = settings
        self.bridge = bridge or build_bridge(settings.solver)
        self.hooks = hooks or CheckoutHooks()
        self.session_factory = session_factory
        self.max_cycles = max_cycles
        self.logger = logging.getLogger(__name__)
        self.purchase_log = logging.getLogger('purchases')

        self.stopped = False
        self.active_tokens = set()
        self.active_checkouts = set()

    def stop(self, reason: str = 'operator stop'):
        """Cancel every running poll loop and checkout"""
        if self.stopped:
            return
        self.stopped = True
        self.logger.warning(f"Stopping all sessions: {reason}")
        for token in list(self.active_tokens):
            token.cancel(reason)
        for machine in list(self.active_checkouts):
            machine.cancel(reason)

    def _result(self, target: TargetConfig, success: bool, reason: str, **extra) -> Dict:
        result = {'success': success, 'target': target.name, 'reason': reason}
        result.update(extra)
        return result

    def _strategy_key(self, target: TargetConfig) -> str:
        if target.store_id and target.store_id != 'default':
            return target.store_id
        return urlparse(target.store_url).hostname or ''

    async def run_target(self, target: TargetConfig) -> Dict:
        """Monitor one target until it is carted (and checked out in production).

        A checkout that hits stock problems goes back to monitoring with the
        last snapshot as the baseline, so the variant is bought again once the
        feed shows it restocked.
        """
        backoff = Backoff.from_settings(self.settings.polling)
        timeout = float(self.settings.polling.get('request_timeout_seconds', 10))
        last_snapshot = None

        async with self.session_factory(target.store_url, timeout=timeout) as store:
            while True:
                if self.stopped:
                    return self._result(target, False, 'stopped')

                token = CancelToken(target.name)
                self.active_tokens.add(token)
                session = MonitorSession(criteria=target.criteria, cancel_token=token,
                                         poll_interval=backoff.base_delay,
                                         last_snapshot=last_snapshot)
                loop = PollLoop(FeedClient(store), session, backoff, max_cycles=self.max_cycles)
                try:
                    match = await loop.run()
                finally:
                    self.active_tokens.discard(token)

                if match is None:
                    return self._result(target, False, token.reason or 'cancelled',
                                        cycles=session.cycles)

                variant = match.variant
                self.purchase_log.info(f"Starting purchase: {match.product.name} variant {variant.id} ({target.name})")
                cart = CartController(store)
                try:
                    item = await cart.prepare_and_add(variant.id)
                except (HygieneFailure, AddToCartFailure) as e:
                    self.purchase_log.warning(f"Candidate {variant.id} aborted: {e}")
                    if self.settings.retry_candidates and not self.stopped:
                        last_snapshot = session.last_snapshot
                        self.logger.info("Resuming monitoring for the next candidate")
                        continue
                    return self._result(target, False, e.__class__.__name__, variant_id=variant.id)

                if not self.settings.production:
                    self.purchase_log.info(f"TEST MODE: carted {item.product_title}, not checking out")
                    return self._result(target, True, 'carted_test_mode', variant_id=variant.id,
                                        product=item.product_title)

                result = await self._checkout(target, store, variant.id)
                if (result['reason'] == OUT_OF_STOCK and self.settings.resume_on_stock_problems
                        and not self.stopped):
                    self.purchase_log.warning(f"OUT OF STOCK at checkout for {variant.id}, monitoring for a restock")
                    last_snapshot = session.last_snapshot
                    continue
                return result

    async def _checkout(self, target: TargetConfig, store: StoreSession, variant_id: str) -> Dict:
        if self.stopped:
            return self._result(target, False, 'stopped', variant_id=variant_id)
        checkout_settings = self.settings.checkout
        machine = CheckoutStateMachine(
            store,
            strategy_for(self._strategy_key(target), self.settings.store_strategies),
            self.bridge,
            hooks=self.hooks,
            loop_guard_max=int(checkout_settings.get('loop_guard_max', 1)),
            settle_delay=float(checkout_settings.get('challenge_settle_seconds', 1.0)),
            checkpoint_timeout=float(checkout_settings.get('checkpoint_timeout_seconds', 60)),
            checkpoint_poll=float(checkout_settings.get('checkpoint_poll_seconds', 1.0)),
        )
        self.active_checkouts.add(machine)
        try:
            outcome = await machine.run()
        finally:
            self.active_checkouts.discard(machine)
        return self._result(target, outcome.success, outcome.reason, variant_id=variant_id,
                            url=outcome.url)

    async def run(self) -> List[Dict]:
        targets = self.settings.enabled_targets()
        if not targets:
            self.logger.error("No enabled targets to monitor")
            return []

        self.logger.info("=" * 60)
        self.logger.info(f"RESTOCK MONITOR STARTED - {len(targets)} targets")
        self.logger.info(f"Mode: {self.settings.mode}")
        self.logger.info("=" * 60)

        results = await asyncio.gather(*(self.run_target(t) for t in targets), return_exceptions=True)
        final = []
        for target, result in zip(targets, results):
            if isinstance(result, Exception):
                self.logger.error(f"Target {target.name} crashed: {result!r}")
                result = self._result(target, False, f'error: {result}')
            level = logging.INFO if result['success'] else logging.WARNING
            self.logger.log(level, f"{target.name}: {result['reason']}")
            final.append(result)
        return final

#!/usr/bin/env python3
"""
Checkout state machine

Drives one purchase attempt from a carted item to the queue/checkout page:

    CART_READY -> CHECKOUT_REQUESTED -> [CHALLENGE_GATE] -> AWAITING_NEXT_STEP
        -> [CHECKPOINT_CHALLENGE] -> SUBMITTED -> SUCCESS

FAILED is reachable from every state. Backward edges (cart bounce, stale
checkpoint) go through the loop guard so the machine always terminates. On
failure control is handed back to the original checkout URL. A redirect to the
stock problems page ends the attempt with reason "out_of_stock".
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import aiohttp

from ..cancellation import CancelToken
from ..exceptions import (ChallengeUnresolved, LoopGuardExceeded, MonitorCancelled,
                          OutOfStock, ProtocolMismatch)
from ..models import (OUT_OF_STOCK, ChallengeDescriptor, ChallengeKind, CheckoutOutcome,
                      CheckoutState)
from ..store_session import HTML_ACCEPT, PATHS, PageResponse, StoreSession, url_has_path
from .challenge_bridge import ChallengeBridge
from .checkout_strategies import CheckoutInitiation
from .checkpoint_watcher import CheckpointMessage, CheckpointWatcher
from .loop_guard import CART_BOUNCE, STALE_CHECKPOINT, LoopGuard
from . import page_parsing


class CheckoutHooks:
    """Seams to whatever is showing the flow to a human; defaults only log"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    async def set_continue_enabled(self, enabled: bool):
        self.logger.debug(f"Continue action {'enabled' if enabled else 'disabled'}")

    async def hand_off(self, url: str, success: bool):
        self.logger.info(f"Handing off to {url} ({'success' if success else 'recovery'})")


@dataclass
class CheckoutContext:
    """Per-attempt protocol state, owned by one CheckoutStateMachine"""
    session_id: str
    guard: LoopGuard
    state: CheckoutState = CheckoutState.CART_READY
    checkout_url: Optional[str] = None
    checkout_token: Optional[str] = None
    last_status: Optional[int] = None
    last_url: Optional[str] = None
    resubmitting: bool = False
    challenges_solved: int = 0
    history: List[Tuple[str, str]] = field(default_factory=list)

    def observe(self, response: PageResponse):
        self.last_status = response.status
        self.last_url = response.url


def checkout_token_from(url: str) -> Optional[str]:
    """The <token> of a .../checkouts/<token> URL"""
    parts = [p for p in urlparse(url).path.split('/') if p]
    if 'checkouts' in parts:
        index = parts.index('checkouts')
        if index + 1 < len(parts):
            return parts[index + 1]
    return None


class CheckoutStateMachine:
    """One checkout attempt; not reusable"""

    def __init__(self, store: StoreSession, strategy: CheckoutInitiation, bridge: ChallengeBridge,
                 hooks: Optional[CheckoutHooks] = None, loop_guard_max: int = 1,
                 settle_delay: float = 1.0, checkpoint_timeout: float = 60,
                 checkpoint_poll: float = 1.0, session_id: Optional[str] = None,
                 cancel_token: Optional[CancelToken] = None):
        self.store = store
        self.strategy = strategy
        self.bridge = bridge
        self.hooks = hooks or CheckoutHooks()
        self.settle_delay = settle_delay
        self.checkpoint_timeout = checkpoint_timeout
        session_id = session_id or uuid.uuid4().hex[:12]
        self.cancel_token = cancel_token or CancelToken(f'checkout-{session_id}')
        self.context = CheckoutContext(session_id=session_id, guard=LoopGuard(loop_guard_max))
        self.checkpoint_channel: asyncio.Queue = asyncio.Queue()
        self.watcher = CheckpointWatcher(store, session_id, self.checkpoint_channel,
                                         self.cancel_token, poll_interval=checkpoint_poll)
        self.logger = logging.getLogger(__name__)
        self.purchase_log = logging.getLogger('purchases')
        self._handlers = {
            CheckoutState.CART_READY: self._cart_ready,
            CheckoutState.CHECKOUT_REQUESTED: self._checkout_requested,
            CheckoutState.CHALLENGE_GATE: self._challenge_gate,
            CheckoutState.AWAITING_NEXT_STEP: self._awaiting_next_step,
            CheckoutState.CHECKPOINT_CHALLENGE: self._checkpoint_challenge,
            CheckoutState.SUBMITTED: self._submitted,
        }

    @property
    def state(self) -> CheckoutState:
        return self.context.state

    @property
    def safe_url(self) -> str:
        return self.context.checkout_url or self.store.url_for(PATHS.checkout)

    def cancel(self, reason: str = 'operator stop'):
        self.cancel_token.cancel(reason)

    def _transition(self, new_state: CheckoutState):
        old_state = self.context.state
        self.context.history.append((old_state.value, new_state.value))
        self.context.state = new_state
        self.logger.debug(f"[{self.context.session_id}] {old_state.value} -> {new_state.value}")

    async def run(self) -> CheckoutOutcome:
        """Run to SUCCESS or FAILED and hand off accordingly"""
        if self.context.state != CheckoutState.CART_READY or self.context.history:
            raise RuntimeError("CheckoutStateMachine instances are single-use")

        response: Optional[PageResponse] = None
        outcome = None
        try:
            while not self.context.state.terminal:
                self.cancel_token.raise_if_cancelled()
                response = await self._handlers[self.context.state](response)
            outcome = CheckoutOutcome.succeeded(response.url)
        except (LoopGuardExceeded, ChallengeUnresolved, ProtocolMismatch) as e:
            outcome = self._fail(f"{e.__class__.__name__}: {e.message}")
        except MonitorCancelled:
            outcome = self._fail(f"cancelled: {self.cancel_token.reason}")
        except OutOfStock:
            outcome = self._fail(OUT_OF_STOCK)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            outcome = self._fail(f"network error: {e.__class__.__name__}")
        except Exception as e:
            self.logger.error(f"[{self.context.session_id}] checkout step {self.context.state.value} raised {e!r}",
                              exc_info=True)
            outcome = self._fail(f"unexpected error: {e.__class__.__name__}")
        finally:
            self.cancel_token.cancel('checkout finished')
            await self.watcher.stop()

        if outcome.success:
            self.purchase_log.warning(f"CHECKOUT SUBMITTED: {outcome.url}")
        else:
            self.purchase_log.warning(f"CHECKOUT FAILED: {outcome.reason} - recovering to {outcome.url}")
        await self.hooks.hand_off(outcome.url, outcome.success)
        return outcome

    def _fail(self, reason: str) -> CheckoutOutcome:
        if self.context.state != CheckoutState.FAILED:
            self._transition(CheckoutState.FAILED)
        return CheckoutOutcome.failed(self.safe_url, reason)

    async def _initiate(self) -> PageResponse:
        response = await self.strategy.initiate(self.store)
        self.context.observe(response)
        self.logger.info(f"After going to checkout, url is {response.url} ({response.status})")
        return response

    def _check_stock(self, response: PageResponse):
        if page_parsing.is_stock_problem(response.url):
            self.logger.warning(f"Checkout reported stock problems at {response.url}")
            raise OutOfStock("Carted variant sold out during checkout", {'url': response.url})

    async def _cart_ready(self, _response):
        response = await self._initiate()
        self._transition(CheckoutState.CHECKOUT_REQUESTED)
        return response

    async def _checkout_requested(self, response: PageResponse):
        if response.status != 200:
            raise ProtocolMismatch("Go to checkout failed", response.summary())
        self._check_stock(response)

        if url_has_path(response.url, PATHS.cart):
            self.context.guard.check(CART_BOUNCE)
            self.logger.info("Got cart, will try again")
            self._transition(CheckoutState.CART_READY)
            return None

        if self.context.checkout_url is None and url_has_path(response.url, PATHS.checkouts):
            self.context.checkout_url = response.url
            self.context.checkout_token = checkout_token_from(response.url)
        self.watcher.start()

        if self.context.resubmitting:
            self.context.resubmitting = False
            self._transition(CheckoutState.SUBMITTED)
            return response

        if page_parsing.has_challenge(response.text):
            self._transition(CheckoutState.CHALLENGE_GATE)
        else:
            self._transition(CheckoutState.AWAITING_NEXT_STEP)
        return response

    async def _challenge_gate(self, response: PageResponse):
        sitekey = page_parsing.extract_sitekey(response.text)
        if not sitekey:
            raise ChallengeUnresolved("Challenge present but no sitekey found", {'url': response.url})

        descriptor = ChallengeDescriptor(kind=ChallengeKind.INTERACTIVE, sitekey=sitekey,
                                         origin_url=response.url)
        await self.hooks.set_continue_enabled(False)
        try:
            token = await self.bridge.solve(descriptor, self.cancel_token)
            self.context.challenges_solved += 1
            if not await self.cancel_token.sleep(self.settle_delay):
                self.cancel_token.raise_if_cancelled()
        finally:
            await self.hooks.set_continue_enabled(True)

        field_name = 'h-captcha-response' if page_parsing.is_hcaptcha(response.text) else 'g-recaptcha-response'
        form = {field_name: token}
        authenticity_token = page_parsing.extract_token(response.text)
        if authenticity_token:
            form['authenticity_token'] = authenticity_token
        submitted = await self.store.post(response.url, data=form, headers={'accept': HTML_ACCEPT})
        self.context.observe(submitted)
        self._transition(CheckoutState.AWAITING_NEXT_STEP)
        return submitted

    async def _awaiting_next_step(self, response: PageResponse):
        self._check_stock(response)
        if url_has_path(response.url, PATHS.checkpoint):
            self.logger.info("Checkout redirected to checkpoint")
            self._transition(CheckoutState.CHECKPOINT_CHALLENGE)
        else:
            self._transition(CheckoutState.SUBMITTED)
        return response

    async def _next_checkpoint_message(self) -> CheckpointMessage:
        self.watcher.start()
        while True:
            try:
                message = await self.cancel_token.run(self.checkpoint_channel.get(),
                                                      timeout=self.checkpoint_timeout)
            except asyncio.TimeoutError as e:
                raise ChallengeUnresolved(
                    f"No checkpoint details within {self.checkpoint_timeout}s") from e
            if message.session_id == self.context.session_id:
                return message
            self.logger.warning(f"Ignoring checkpoint message for session {message.session_id}")

    async def _checkpoint_challenge(self, _response):
        message = await self._next_checkpoint_message()
        if not message.token or message.descriptor is None:
            raise ProtocolMismatch(
                "Could not get data from checkpoint, missing token or captcha details",
                {'has_token': bool(message.token), 'has_captcha': message.descriptor is not None}
            )

        self.logger.info("Got checkpoint details")
        solution = await self.bridge.solve(message.descriptor, self.cancel_token)
        self.context.challenges_solved += 1

        self.logger.info("About to submit checkpoint")
        form = {'authenticity_token': message.token, 'g-recaptcha-response': solution}
        submitted = await self.store.post(PATHS.checkpoint, data=form, headers={'accept': HTML_ACCEPT})
        self.context.observe(submitted)
        self.logger.info(f"Checkpoint submitted ({submitted.status})")
        self._transition(CheckoutState.SUBMITTED)
        return submitted

    async def _submitted(self, response: PageResponse):
        if response.status in (404, 409):
            self.context.guard.check(STALE_CHECKPOINT)
            self.logger.info(f"Submission returned {response.status}, will attempt to get checkout URL")
            self.context.resubmitting = True
            self._transition(CheckoutState.CHECKOUT_REQUESTED)
            return await self._initiate()

        self._check_stock(response)
        if response.status == 200 and (url_has_path(response.url, PATHS.queue)
                                       or url_has_path(response.url, PATHS.checkouts)):
            self.logger.info("Response was good")
            self._transition(CheckoutState.SUCCESS)
            return response

        raise ProtocolMismatch("Got bad response", response.summary())

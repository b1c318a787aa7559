"""
Purchasing: cart hygiene, checkout protocol, challenge solving handoff
"""

from .cart_controller import CartController
from .challenge_bridge import (ChallengeBridge, HttpSolverChannel, NoSolverChannel,
                               QueueSolverChannel, SolverChannel)
from .checkout_machine import CheckoutContext, CheckoutHooks, CheckoutStateMachine
from .checkout_strategies import CartPostCheckout, GetCheckout, strategy_for
from .checkpoint_watcher import CheckpointMessage, CheckpointWatcher
from .loop_guard import LoopGuard

__all__ = [
    'CartController', 'ChallengeBridge', 'HttpSolverChannel', 'NoSolverChannel',
    'QueueSolverChannel', 'SolverChannel', 'CheckoutContext', 'CheckoutHooks',
    'CheckoutStateMachine', 'CartPostCheckout', 'GetCheckout', 'strategy_for',
    'CheckpointMessage', 'CheckpointWatcher', 'LoopGuard',
]

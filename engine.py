"""Wires the engine components together and hangs them off the Flask app.

Blueprints reach the components through get_engine(); the worker and the
job script build their own app and use the same accessor.
"""

from dataclasses import dataclass
from typing import Callable

from flask import current_app

from clock import utcnow
from exclusive_tokens import ExclusiveTokenService
from incentive_config import IncentiveConfig
from points import PointsLedger
from quiz import QuizScorer
from scheduler import IncentiveScheduler


@dataclass
class IncentiveEngine:
    config: IncentiveConfig
    ledger: PointsLedger
    quiz: QuizScorer
    tokens: ExclusiveTokenService
    scheduler: IncentiveScheduler

    @classmethod
    def build(cls, config: IncentiveConfig, clock: Callable = utcnow) -> "IncentiveEngine":
        ledger = PointsLedger(config)
        tokens = ExclusiveTokenService(config, clock=clock)
        return cls(
            config=config,
            ledger=ledger,
            quiz=QuizScorer(ledger, config, clock=clock),
            tokens=tokens,
            scheduler=IncentiveScheduler(ledger, tokens, config, clock=clock),
        )


def init_engine(app, config: IncentiveConfig, clock: Callable = utcnow) -> IncentiveEngine:
    engine = IncentiveEngine.build(config, clock=clock)
    app.extensions["incentive_engine"] = engine
    app.extensions["incentive_clock"] = clock
    return engine


def get_engine() -> IncentiveEngine:
    return current_app.extensions["incentive_engine"]


def now():
    """Current time according to the app's clock."""
    return current_app.extensions["incentive_clock"]()

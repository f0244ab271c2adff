import logging
from typing import Callable, List, NamedTuple, Optional
from vjoin.domain.models import StepOutcome

class Strategy(NamedTuple):
    name: str
    attempt: Callable[[], StepOutcome]

def run_strategies(strategies: List[Strategy], logger: Optional[logging.Logger] = None,
                   on_result: Optional[Callable[[Strategy, StepOutcome], None]] = None) -> StepOutcome:
    """Evaluates strategies in order and returns the first success.

    If every strategy fails the result is an err carrying each strategy's reason.
    """
    logger = logger or logging.getLogger(__name__)
    reasons = []
    for i, strategy in enumerate(strategies, start=1):
        logger.info(f"Attempt {i}/{len(strategies)}: {strategy.name}")
        outcome = strategy.attempt()
        if on_result is not None:
            on_result(strategy, outcome)
        if outcome.success:
            return StepOutcome.ok(outcome.method or strategy.name)
        logger.warning(f"{strategy.name} failed: {outcome.reason}")
        reasons.append(f"{strategy.name}: {outcome.reason}")
    return StepOutcome.err("; ".join(reasons) or "no strategies to run")

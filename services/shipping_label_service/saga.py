import logging
from shared.observability import shipping_label_compensation_total

logger = logging.getLogger(__name__)

class SagaStep:
    def __init__(self, name, action, compensation=None):
        self.name = name
        self.action = action
        self.compensation = compensation

class SagaOrchestrator:
    def __init__(self):
        self.steps = []

    def add_step(self, name: str, action, compensation=None):
        """Builder pattern to add a step and its rollback compensation."""
        self.steps.append(SagaStep(name, action, compensation))
        return self

    async def execute(self, ctx: dict):
        """Runs steps in order. On failure, compensates completed steps and re-raises.

        The failing step and its exception are left in ``ctx["failed_step"]`` and
        ``ctx["failure"]`` so compensations can tell why they are running.
        """
        completed = []
        step = None
        try:
            for step in self.steps:
                ctx["state"] = step.name
                await step.action(ctx)
                completed.append(step)
            return True
        except Exception as e:
            logger.error(f"Label saga failed at step '{step.name}' for order {ctx.get('order_id')}: {e}")
            ctx["failed_step"] = step.name
            ctx["failure"] = e
            await self._rollback(completed, ctx)
            raise

    async def _rollback(self, completed: list, ctx: dict):
        """Runs compensations newest-first. A failing compensation never stops the others."""
        ctx["state"] = "compensating"
        for step in reversed(completed):
            if step.compensation:
                try:
                    await step.compensation(ctx)
                    logger.info(f"Compensation for step '{step.name}' completed")
                    shipping_label_compensation_total.labels(step_name=step.name).inc()
                except Exception as ce:
                    logger.critical(
                        f"CRITICAL: Compensation failed for '{step.name}' on order {ctx.get('order_id')}. "
                        f"Manual intervention may be required. Error: {ce}"
                    )

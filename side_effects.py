# side_effects.py
# Post-commit effects: auxiliary work that runs after the primary write is durable.

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Tuple

log = logging.getLogger(__name__)

Effect = Callable[[], Awaitable[Any]]


@dataclass
class EffectResult:
    name: str
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PostCommitEffects:
    """
    Ordered list of named async callables.

    Each effect runs inside its own error boundary: a failure is logged and
    recorded on its EffectResult, and the remaining effects still run.
    Nothing here can undo the primary write.
    """

    def __init__(self, context: str = ""):
        self.context = context
        self._effects: List[Tuple[str, Effect]] = []

    def add(self, name: str, effect: Effect) -> "PostCommitEffects":
        self._effects.append((name, effect))
        return self

    def __len__(self) -> int:
        return len(self._effects)

    async def run(self) -> List[EffectResult]:
        results = []
        for name, effect in self._effects:
            try:
                value = await effect()
                results.append(EffectResult(name, value=value))
            except Exception as e:
                log.warning(f"Post-commit effect '{name}' failed ({self.context}): {e!r}")
                results.append(EffectResult(name, error=e))
        return results

    @staticmethod
    def find(results: List[EffectResult], name: str) -> Optional[EffectResult]:
        for result in results:
            if result.name == name:
                return result
        return None

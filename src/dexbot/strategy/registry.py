"""Registry mapping strategy type names to strategy implementations."""

from dataclasses import dataclass
from typing import Any, Callable

from dexbot.strategy.base import BaseStrategy, StrategyConfig, StrategyContext


@dataclass(frozen=True)
class StrategyRegistration:
    factory: Callable[..., BaseStrategy]
    config_cls: type[StrategyConfig]


_STRATEGY_REGISTRY: dict[str, StrategyRegistration] = {}
_BUILTINS_REGISTERED = False


def register_strategy(
    strategy_type: str,
    factory: Callable[..., BaseStrategy],
    config_cls: type[StrategyConfig] = StrategyConfig,
    *,
    replace: bool = False,
) -> None:
    """Register a strategy implementation under a type name.

    Re-registering an existing name is a no-op unless ``replace`` is set.
    """
    if not strategy_type:
        raise ValueError("strategy_type must be non-empty")
    if strategy_type in _STRATEGY_REGISTRY and not replace:
        return
    _STRATEGY_REGISTRY[strategy_type] = StrategyRegistration(
        factory=factory, config_cls=config_cls
    )


def _ensure_builtins_registered() -> None:
    global _BUILTINS_REGISTERED
    if _BUILTINS_REGISTERED:
        return
    from dexbot.strategy.consecutive_buy import ConsecutiveBuyConfig, ConsecutiveBuyStrategy

    register_strategy("consecutive_buy", ConsecutiveBuyStrategy, ConsecutiveBuyConfig)
    _BUILTINS_REGISTERED = True


def _get_registration(strategy_type: str) -> StrategyRegistration:
    _ensure_builtins_registered()
    reg = _STRATEGY_REGISTRY.get(strategy_type)
    if reg is None:
        raise KeyError(f"strategy type '{strategy_type}' not registered")
    return reg


def list_strategy_types() -> list[str]:
    _ensure_builtins_registered()
    return sorted(_STRATEGY_REGISTRY.keys())


def create_strategy(
    strategy_type: str,
    config: StrategyConfig,
    context: StrategyContext,
    **kwargs: Any,
) -> BaseStrategy:
    """Instantiate a registered strategy.

    Raises:
        KeyError: If the type is not registered.
        TypeError: If ``config`` is not the registered config class.
    """
    reg = _get_registration(strategy_type)
    if not isinstance(config, reg.config_cls):
        raise TypeError(
            f"strategy '{strategy_type}' expects {reg.config_cls.__name__}, "
            f"got {type(config).__name__}"
        )
    return reg.factory(config, context, **kwargs)

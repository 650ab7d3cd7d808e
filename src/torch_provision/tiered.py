"""
Tiered Package Installer

Installs a component by trying its strategies in order, typically a
prebuilt artifact first and a source build second.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from common.exceptions import InstallFailure, StrategyError

from .environment import Environment
from .strategies import Strategy, StrategyKind

logger = logging.getLogger(__name__)


@dataclass
class InstallTarget:
    """A component and its ordered acquisition strategies."""
    component: str
    strategies: List[Strategy] = field(default_factory=list)


@dataclass
class InstallResult:
    """Successful install of a component."""
    component: str
    strategy: StrategyKind
    attempted: List[StrategyKind] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return len(self.attempted) > 1


class TieredInstaller:
    """Runs strategies until one succeeds."""

    def install(self, target: InstallTarget, env: Environment) -> InstallResult:
        """
        Install ``target`` into ``env``.

        Returns:
            InstallResult naming the strategy that succeeded.

        Raises:
            InstallFailure: Every strategy failed; ``attempted`` lists them.
        """
        attempted: List[StrategyKind] = []
        errors: List[str] = []

        for index, strategy in enumerate(target.strategies):
            if index:
                logger.info(f"Falling back to {strategy.description} for {target.component}...")
            else:
                logger.info(f"Installing {target.component} ({strategy.description})...")

            attempted.append(strategy.kind)
            try:
                strategy.run(target.component, env)
            except StrategyError as e:
                logger.warning(f"Failed to install {target.component}: {e.message}")
                errors.append(str(e))
                continue

            logger.info(f"{target.component} installed successfully via {strategy.kind.value}.")
            return InstallResult(
                component=target.component,
                strategy=strategy.kind,
                attempted=attempted,
            )

        logger.error(f"Error: Failed to install {target.component}.")
        raise InstallFailure(
            target.component,
            attempted=[kind.value for kind in attempted],
            errors=errors,
        )

"""Production configuration guard: enforces hard constraints in production.

The guard validates that production-critical settings are correctly
configured before any claim is touched.  It runs once at startup and fails
hard (raises ``ProductionConfigError``) if any constraint is violated.

Other code should not scatter ``if is_production`` checks; the guard puts
the process in a known-good state up front.
"""

from __future__ import annotations

import logging

from claimflow.config import Settings

logger = logging.getLogger(__name__)


class ProductionConfigError(RuntimeError):
    """Raised when production configuration constraints are violated.

    The process cannot safely start in production mode with the current
    configuration and should exit.
    """


def enforce_production_constraints(settings: Settings) -> None:
    """Validate all production-critical configuration constraints.

    Constraints enforced
    --------------------
    1. Debug mode must be disabled.
    2. A PII master key must be configured.
    3. Claims must persist: the in-memory backend is refused.
    4. An agent API key must be configured.

    Raises
    ------
    ProductionConfigError
        Listing every violated constraint at once.
    """
    if not settings.is_production:
        return  # Guard only applies in production

    violations: list[str] = []

    if settings.debug:
        violations.append(
            "debug=True is not allowed in production. Set CLAIMFLOW_DEBUG=false."
        )

    if not settings.master_key_b64:
        violations.append(
            "PII master key is required in production but not configured. "
            "Set CLAIMFLOW_MASTER_KEY_B64 (see `claimflow keygen`)."
        )

    if settings.storage_backend == "memory":
        violations.append(
            "storage_backend='memory' loses claims on exit and is not allowed in "
            "production. Set CLAIMFLOW_STORAGE_BACKEND=sqlite."
        )

    if not settings.openrouter_api_key:
        violations.append(
            "Agent API key is required in production but not configured. "
            "Set CLAIMFLOW_OPENROUTER_API_KEY."
        )

    # Collect and report all violations at once
    if violations:
        msg = (
            "Production configuration guard failed.\n"
            + "\n".join(f"  - {v}" for v in violations)
        )
        logger.critical(msg)
        raise ProductionConfigError(msg)

    logger.info("Production configuration guard passed.")

"""Challenge solving across every authorization of an order."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from cert_issuer.challenges.base import CleanUp, PreSolver, Solver
from cert_issuer.errors import ObtainError, ProtocolError
from cert_issuer.models import STATUS_VALID, Authorization, SelectedAuthSolver

logger = logging.getLogger(__name__)


def choose_solver(authz: Authorization, solvers: Mapping[str, Solver]) -> tuple[int, Solver] | None:
    """First challenge, in the CA's order, whose type has a registered solver."""
    for index, challenge in enumerate(authz.challenges):
        solver = solvers.get(challenge.type)
        if solver is not None:
            return index, solver
        logger.info("[%s] acme: Could not find solver for: %s", authz.domain, challenge.type)
    return None


def solve_authorizations(authorizations: Iterable[Authorization], solvers: Mapping[str, Solver]) -> None:
    """Select a solver per authorization, pre-solve, solve, then clean up.

    Authorizations that are already valid are skipped entirely. A failure for
    one domain never stops the others; all failures are raised together as
    an :class:`ObtainError`.
    """
    failures: dict[str, Exception] = {}
    selected: list[SelectedAuthSolver] = []

    for authz in authorizations:
        if authz.status == STATUS_VALID:
            # The CA may hand back a recently validated authorization
            logger.info("[%s] acme: Authorization already valid; skipping challenge", authz.domain)
            continue
        choice = choose_solver(authz, solvers)
        if choice is None:
            failures[authz.domain] = ProtocolError(f"[{authz.domain}] acme: Could not determine solvers")
            continue
        index, solver = choice
        selected.append(SelectedAuthSolver(authorization=authz, challenge_index=index, solver=solver))

    # Presolvers first, so their proof material has the longest time to propagate
    for item in selected:
        if isinstance(item.solver, PreSolver):
            try:
                item.solver.pre_solve(item.challenge, item.domain)
            except Exception as error:
                failures[item.domain] = error

    # Domains that never got as far as the solve step have nothing to clean up
    not_started = set(failures)

    try:
        for item in selected:
            if item.domain in failures:
                continue
            try:
                item.solver.solve(item.challenge, item.domain)
            except Exception as error:
                failures[item.domain] = error
    finally:
        for item in selected:
            if item.domain in not_started or not isinstance(item.solver, CleanUp):
                continue
            try:
                item.solver.clean_up(item.challenge, item.domain)
            except Exception as error:
                logger.warning("[%s] acme: Error cleaning up: %s", item.domain, error)

    error = ObtainError.from_failures(failures)
    if error is not None:
        raise error

"""
Turn possibly partial user input into a unique (environment, service) target

Matching is applied to environment names and service names independently:

1. exact, case-sensitive name match wins outright
2. otherwise a case-insensitive substring match on exactly one name needs a
   yes/no confirmation
3. two or more substring matches need an explicit choice, sorted by name
4. nothing matched

A service name that exists in two namespaces of the same environment is
never picked silently; both qualified candidates come back as a choice.
"""
from dataclasses import dataclass
from typing import Callable, Generic, Optional, Sequence, TypeVar, Union

from davit.core.config import Environment
from davit.deploy.models import Service, Target

T = TypeVar("T")

ENVIRONMENT = "environment"
SERVICE = "service"


@dataclass(frozen=True)
class Unique(Generic[T]):
    target: T
    scope: str = ""


@dataclass(frozen=True)
class NeedsConfirmation(Generic[T]):
    candidate: T
    scope: str = ""
    fragment: str = ""


@dataclass(frozen=True)
class NeedsChoice(Generic[T]):
    candidates: tuple
    scope: str = ""
    fragment: str = ""


@dataclass(frozen=True)
class NotFound:
    scope: str = ""
    fragment: str = ""


ResolveOutcome = Union[Unique, NeedsConfirmation, NeedsChoice, NotFound]


def _sort_key(name_of: Callable) -> Callable:
    def key(item):
        qualified = getattr(item, "qualified_name", "")
        return (name_of(item), qualified)
    return key


def match_name(candidates: Sequence[T], fragment: Optional[str],
               name_of: Callable[[T], str] = lambda c: c.name,
               scope: str = "") -> ResolveOutcome:
    """Apply the matching policy to one name space"""
    fragment = fragment or ""
    ordered = sorted(candidates, key=_sort_key(name_of))

    exact = [c for c in ordered if name_of(c) == fragment]
    if len(exact) == 1:
        return Unique(exact[0], scope)
    if len(exact) > 1:
        # Same name in several namespaces
        return NeedsChoice(tuple(exact), scope, fragment)

    needle = fragment.lower()
    matches = [c for c in ordered if needle in name_of(c).lower()]
    if len(matches) == 1:
        return NeedsConfirmation(matches[0], scope, fragment)
    if len(matches) > 1:
        return NeedsChoice(tuple(matches), scope, fragment)
    return NotFound(scope, fragment)


def resolve(environments: Sequence[Environment], fragment_env: Optional[str],
            services: Sequence[Service], fragment_service: Optional[str]) -> ResolveOutcome:
    """
    Resolve both name spaces into a Target

    The environment is settled first; services are then narrowed to the
    ones discovered in that environment. The first outcome that is not
    Unique is returned as-is so the caller can confirm or choose and call
    again with the exact name.
    """
    env_outcome = match_name(environments, fragment_env, scope=ENVIRONMENT)
    if not isinstance(env_outcome, Unique):
        return env_outcome

    environment = env_outcome.target
    in_env = [s for s in services if s.environment == environment.name]

    service_outcome = match_name(in_env, fragment_service, scope=SERVICE)
    if not isinstance(service_outcome, Unique):
        return service_outcome

    return Unique(Target(environment, service_outcome.target))

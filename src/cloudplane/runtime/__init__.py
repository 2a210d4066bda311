"""
Shared runtime beneath the resource-specific clients.

* :mod:`.transport` builds, sends and renders HTTP requests.
* :mod:`.classifier` maps responses onto outcomes.
* :mod:`.ratelimit` turns 429 responses into wait directives.
* :mod:`.pagination` follows ``links.pages.next`` cursors.
* :mod:`.resources` fetches and deletes single resources.
* :mod:`.create` detects naming collisions on create.
* :mod:`.poller` waits for asynchronous state transitions.
"""

from .base import ConflictPredicate, Creatable, Listable, MatchMapper, PageMapper, Refetchable
from .classifier import AccessDenied, Fatal, NotFound, Outcome, RateLimited, Success, ValidationConflict, classify, expect, unwrap
from .create import CreateResult, create_or_detect_conflict, create_resource, message_equals
from .pagination import collect_all, find_first, iter_pages, list_resources, next_page
from .poller import BackoffDelay, Poller, PollState, PollStatus
from .ratelimit import RATE_LIMIT_WINDOW_FACTOR, MissingRateLimitHeader, RateLimitDirective, retry_transient, wait_for_rate_limit
from .resources import destroy_resource, get_resource
from .transport import Transport, describe_request, describe_response, make_replayable

__all__ = [
    "AccessDenied",
    "BackoffDelay",
    "ConflictPredicate",
    "Creatable",
    "CreateResult",
    "Fatal",
    "Listable",
    "MatchMapper",
    "MissingRateLimitHeader",
    "NotFound",
    "Outcome",
    "PageMapper",
    "PollState",
    "PollStatus",
    "Poller",
    "RATE_LIMIT_WINDOW_FACTOR",
    "RateLimitDirective",
    "RateLimited",
    "Refetchable",
    "Success",
    "Transport",
    "ValidationConflict",
    "classify",
    "collect_all",
    "create_or_detect_conflict",
    "create_resource",
    "describe_request",
    "describe_response",
    "destroy_resource",
    "expect",
    "find_first",
    "get_resource",
    "iter_pages",
    "list_resources",
    "make_replayable",
    "message_equals",
    "next_page",
    "retry_transient",
    "unwrap",
    "wait_for_rate_limit",
]

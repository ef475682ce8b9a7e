"""
credbroker.operator.predicates

Event filtering for the reconcilers.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping

from credbroker.kube.identities import EventType, IdentityEvent

AdmitFn = Callable[[str, str, Mapping[str, str]], bool]


def should_reconcile(admit: AdmitFn, event: IdentityEvent) -> bool:
    """
    True if a backend with the given `admit` function cares about `event`.

    Updates pass when either side is admitted: losing an annotation must still
    trigger the removal path.
    """

    new = event.new
    if admit(new.namespace, new.name, new.annotations):
        return True
    if event.type is EventType.UPDATED and event.old is not None:
        old = event.old
        return admit(old.namespace, old.name, old.annotations)
    return False

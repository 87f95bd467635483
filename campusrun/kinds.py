"""Per-kind dispatch settings: which table, which channels, which filters."""

from __future__ import annotations

from dataclasses import dataclass

from campusrun.db_models import Commission, Errand, TaskBase, TaskKind


@dataclass(frozen=True)
class KindProfile:
    kind: TaskKind
    model: type[TaskBase]
    offer_channel_prefix: str
    offer_event: str
    # Commissions only offer to runners seen recently; errands rely on
    # availability alone. Product has not confirmed the difference.
    presence_filter: bool
    honours_declined_runner: bool

    @property
    def plural(self) -> str:
        return f"{self.kind.value}s"

    def offer_channel(self, runner_id: str) -> str:
        return f"{self.offer_channel_prefix}{runner_id}"


ERRAND = KindProfile(
    kind=TaskKind.errand,
    model=Errand,
    offer_channel_prefix="errand_notify_",
    offer_event="errand_notification",
    presence_filter=False,
    honours_declined_runner=False,
)

COMMISSION = KindProfile(
    kind=TaskKind.commission,
    model=Commission,
    offer_channel_prefix="commission_notify_",
    offer_event="commission_notification",
    presence_filter=True,
    honours_declined_runner=True,
)

PROFILES: dict[TaskKind, KindProfile] = {ERRAND.kind: ERRAND, COMMISSION.kind: COMMISSION}


def profile_for(kind: TaskKind | str) -> KindProfile:
    return PROFILES[TaskKind(kind)]


def caller_channel(requester_id: str) -> str:
    return f"caller_notify_{requester_id}"

"""Lead status state machine.

``NEW -> CONTACTED -> QUALIFIED -> CONVERTED``, with ``LOST`` reachable from
any open status. Callers may jump directly to any status; what the machine
guarantees are the side effects of a change:

* every change appends exactly one ``STATUS_CHANGE`` activity carrying
  ``oldStatus``/``newStatus``, in the same session as the lead row;
* ``NEW -> CONTACTED`` stamps ``last_contact_at``;
* leaving ``NEW`` stamps ``responded_at`` when still unset, which suppresses
  any pending auto-response.

Re-applying the current status is a no-op and records nothing.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.models.lead import Lead, LeadActivity, LeadActivityType, LeadStatus
from dealer_crm.models.user import User
from dealer_crm.utils.logging import LeadLogger
from dealer_crm.utils.time import Clock, utc_now

OPEN_STATUSES = frozenset({LeadStatus.NEW, LeadStatus.CONTACTED, LeadStatus.QUALIFIED})
TERMINAL_STATUSES = frozenset({LeadStatus.CONVERTED, LeadStatus.LOST})


def is_open(status: str) -> bool:
    return LeadStatus(status) in OPEN_STATUSES


class LeadStateMachine:
    def __init__(self, db: AsyncSession, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    def change_status(
        self,
        lead: Lead,
        new_status: LeadStatus,
        actor_id: int,
    ) -> Optional[LeadActivity]:
        old_status = LeadStatus(lead.status)
        if new_status == old_status:
            return None

        now = self.clock()
        lead.status = new_status.value
        if old_status == LeadStatus.NEW:
            if new_status == LeadStatus.CONTACTED:
                lead.last_contact_at = now
            if lead.responded_at is None:
                lead.responded_at = now

        activity = LeadActivity(
            lead_id=lead.id,
            user_id=actor_id,
            type=LeadActivityType.STATUS_CHANGE.value,
            content=None,
            metadata_={"oldStatus": old_status.value, "newStatus": new_status.value},
            created_at=now,
        )
        self.db.add(activity)
        LeadLogger(lead.id, lead.dealer_id).status_changed(
            old_status.value, new_status.value, actor_id
        )
        return activity

    def change_assignee(
        self,
        lead: Lead,
        assignee: Optional[User],
        actor_id: int,
    ) -> Optional[LeadActivity]:
        new_assignee_id = assignee.id if assignee is not None else None
        old_assignee_id = lead.assigned_to_id
        if new_assignee_id == old_assignee_id:
            return None

        lead.assigned_to_id = new_assignee_id
        activity = LeadActivity(
            lead_id=lead.id,
            user_id=actor_id,
            type=LeadActivityType.ASSIGNMENT.value,
            content=None,
            metadata_={
                "oldAssigneeId": old_assignee_id,
                "newAssigneeId": new_assignee_id,
                "assignedToName": assignee.display_name if assignee is not None else "Sin asignar",
            },
            created_at=self.clock(),
        )
        self.db.add(activity)
        LeadLogger(lead.id, lead.dealer_id).assigned(old_assignee_id, new_assignee_id)
        return activity

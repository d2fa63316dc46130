"""Delayed, human-suppressible auto-response to new leads.

``AutoResponseScheduler.schedule`` never waits: it persists an
``AutoResponseJob`` due at ``now + delay_minutes``. The worker
(``dealer_crm.worker``) later hands due jobs to ``AutoResponseProcessor``,
which re-checks ``Lead.responded_at`` *after* the delay. Once a human has
responded nothing is sent and the human timestamp is kept.

Delivery is at-most-once: whatever happens while rendering or sending, the
lead ends up with ``responded_at`` set and the job is never retried.
"""

from dataclasses import asdict, dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dealer_crm.config import settings
from dealer_crm.errors import ValidationError
from dealer_crm.models.auto_response import (
    AutoResponseConfig,
    AutoResponseJob,
    AutoResponseJobStatus,
    MessageTemplate,
    TemplateChannel,
)
from dealer_crm.models.lead import Lead, LeadActivity, LeadActivityType
from dealer_crm.services.config_cache import ConfigCache
from dealer_crm.services.email import NotificationSink, get_email_sink
from dealer_crm.services.team import TeamService
from dealer_crm.services.templates import (
    format_price_clp,
    interpolate_template,
    wrap_in_email_layout,
)
from dealer_crm.utils.logging import LeadLogger, get_logger
from dealer_crm.utils.time import Clock, as_utc, utc_now

logger = get_logger("services.auto_response")

DEFAULT_SUBJECT = "Gracias por tu consulta"
AUTO_ACTIVITY_CONTENT = "Respuesta automática enviada"


@dataclass(frozen=True)
class AutoResponseSettings:
    dealer_id: int
    enabled: bool
    email_template_id: Optional[int]
    delay_minutes: int

    @classmethod
    def from_record(cls, config: AutoResponseConfig) -> "AutoResponseSettings":
        return cls(
            dealer_id=config.dealer_id,
            enabled=config.enabled,
            email_template_id=config.email_template_id,
            delay_minutes=max(0, config.delay_minutes or 0),
        )

    @classmethod
    def defaults(cls, dealer_id: int) -> "AutoResponseSettings":
        return cls(dealer_id=dealer_id, enabled=False, email_template_id=None, delay_minutes=0)


@dataclass
class AutoResponseContext:
    """Customer and dealer facts captured when the lead is created."""

    nombre: str
    email: str
    dealer_nombre: str
    telefono: Optional[str] = None
    vehiculo: Optional[str] = None
    vehiculo_precio: Optional[float] = None
    dealer_telefono: Optional[str] = None
    dealer_direccion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutoResponseContext":
        fields = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in fields})

    def interpolation_values(self) -> Dict[str, str]:
        return {
            "nombre": self.nombre,
            "email": self.email,
            "telefono": self.telefono or "",
            "vehiculo": self.vehiculo or "",
            "vehiculo_precio": format_price_clp(self.vehiculo_precio),
            "dealer_nombre": self.dealer_nombre,
            "dealer_telefono": self.dealer_telefono or "",
            "dealer_direccion": self.dealer_direccion or "",
        }


async def load_settings(
    db: AsyncSession,
    cache: ConfigCache,
    dealer_id: int,
) -> Optional[AutoResponseSettings]:
    async def _load() -> Optional[AutoResponseSettings]:
        result = await db.execute(
            select(AutoResponseConfig).where(AutoResponseConfig.dealer_id == dealer_id)
        )
        config = result.scalar_one_or_none()
        return AutoResponseSettings.from_record(config) if config is not None else None

    return await cache.get_or_load(("auto_response", dealer_id), _load)


class AutoResponseConfigService:
    """Read and update a dealer's auto-response settings."""

    def __init__(self, db: AsyncSession, cache: ConfigCache):
        self.db = db
        self.cache = cache

    async def get_config(self, dealer_id: int) -> AutoResponseSettings:
        current = await load_settings(self.db, self.cache, dealer_id)
        return current or AutoResponseSettings.defaults(dealer_id)

    async def update_config(
        self,
        dealer_id: int,
        enabled: Optional[bool] = None,
        email_template_id: Optional[int] = None,
        delay_minutes: Optional[int] = None,
    ) -> AutoResponseSettings:
        if email_template_id:
            result = await self.db.execute(
                select(MessageTemplate.id).where(
                    MessageTemplate.id == email_template_id,
                    MessageTemplate.dealer_id == dealer_id,
                    MessageTemplate.channel == TemplateChannel.EMAIL.value,
                )
            )
            if result.scalar_one_or_none() is None:
                raise ValidationError("Plantilla no encontrada")

        result = await self.db.execute(
            select(AutoResponseConfig).where(AutoResponseConfig.dealer_id == dealer_id)
        )
        config = result.scalar_one_or_none()
        if config is None:
            config = AutoResponseConfig(dealer_id=dealer_id)
            self.db.add(config)

        config.enabled = bool(enabled)
        config.email_template_id = email_template_id or None
        config.delay_minutes = max(0, delay_minutes or 0)
        await self.db.flush()

        self.cache.invalidate(("auto_response", dealer_id))
        logger.info(
            "auto_response_config_updated",
            dealer_id=dealer_id,
            enabled=config.enabled,
            delay_minutes=config.delay_minutes,
        )
        return AutoResponseSettings.from_record(config)


class AutoResponseScheduler:
    def __init__(
        self,
        db: AsyncSession,
        cache: ConfigCache,
        clock: Clock = utc_now,
        on_enqueue: Optional[Callable[[AutoResponseJob], None]] = None,
    ):
        self.db = db
        self.cache = cache
        self.clock = clock
        self.on_enqueue = on_enqueue

    async def schedule(
        self,
        dealer_id: int,
        lead_id: int,
        context: AutoResponseContext,
    ) -> Optional[AutoResponseJob]:
        """Queue an auto-response for ``lead_id`` if the dealer has one enabled."""
        config = await load_settings(self.db, self.cache, dealer_id)
        if config is None or not config.enabled:
            return None

        payload = context.to_dict()
        payload["template_id"] = config.email_template_id
        job = AutoResponseJob(
            dealer_id=dealer_id,
            lead_id=lead_id,
            context=payload,
            due_at=self.clock() + timedelta(minutes=config.delay_minutes),
            status=AutoResponseJobStatus.PENDING.value,
        )
        self.db.add(job)
        await self.db.flush()

        LeadLogger(lead_id, dealer_id).log(
            "auto_response_scheduled",
            job_id=job.id,
            delay_minutes=config.delay_minutes,
        )
        if self.on_enqueue is not None:
            self.on_enqueue(job)
        return job


class AutoResponseProcessor:
    def __init__(
        self,
        db: AsyncSession,
        sink: Optional[NotificationSink] = None,
        clock: Clock = utc_now,
        tz_name: Optional[str] = None,
    ):
        self.db = db
        self.sink = sink
        self.clock = clock
        self.tz_name = tz_name or settings.timezone

    async def due_job_ids(self, limit: int = 50) -> list:
        result = await self.db.execute(
            select(AutoResponseJob.id)
            .where(
                AutoResponseJob.status == AutoResponseJobStatus.PENDING.value,
                AutoResponseJob.due_at <= self.clock(),
            )
            .order_by(AutoResponseJob.due_at, AutoResponseJob.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def claim(self, job_id: int) -> Optional[AutoResponseJob]:
        """Move a job PENDING -> PROCESSING; ``None`` if someone else got it."""
        result = await self.db.execute(
            update(AutoResponseJob)
            .where(
                AutoResponseJob.id == job_id,
                AutoResponseJob.status == AutoResponseJobStatus.PENDING.value,
            )
            .values(status=AutoResponseJobStatus.PROCESSING.value)
        )
        if result.rowcount != 1:
            return None
        job = await self.db.get(AutoResponseJob, job_id)
        if job is not None:
            await self.db.refresh(job)
        return job

    async def process(self, job_id: int) -> Optional[str]:
        job = await self.claim(job_id)
        if job is None:
            return None
        status = await self._run(job)
        await self.db.flush()
        return status

    async def _finish(self, job: AutoResponseJob, status: AutoResponseJobStatus, error: Optional[str] = None) -> str:
        job.status = status.value
        job.attempts = (job.attempts or 0) + 1
        job.processed_at = self.clock()
        job.error = error
        return status.value

    async def _run(self, job: AutoResponseJob) -> str:
        lead_log = LeadLogger(job.lead_id, job.dealer_id)
        lead = await self.db.get(Lead, job.lead_id)
        if lead is None:
            lead_log.warning("auto_response_lead_missing", job_id=job.id)
            return await self._finish(job, AutoResponseJobStatus.SKIPPED, "lead_missing")

        if lead.responded_at is not None:
            lead_log.log(
                "auto_response_suppressed",
                job_id=job.id,
                responded_at=as_utc(lead.responded_at).isoformat(),
            )
            return await self._finish(job, AutoResponseJobStatus.SKIPPED, "already_responded")

        status = AutoResponseJobStatus.SKIPPED
        error: Optional[str] = "no_template"
        template_id = (job.context or {}).get("template_id")

        if template_id:
            try:
                sent = await self._send(job, lead, template_id)
            except Exception as exc:
                lead_log.error("auto_response_send_failed", job_id=job.id, error=str(exc))
                status, error = AutoResponseJobStatus.FAILED, str(exc)
            else:
                if sent:
                    status, error = AutoResponseJobStatus.SENT, None
                else:
                    error = "template_unavailable"

        # Always stamped, so the lead is never auto-responded twice.
        lead.responded_at = self.clock()
        lead_log.log("auto_response_processed", job_id=job.id, status=status.value)
        return await self._finish(job, status, error)

    async def _send(self, job: AutoResponseJob, lead: Lead, template_id: int) -> bool:
        result = await self.db.execute(
            select(MessageTemplate).where(
                MessageTemplate.id == template_id,
                MessageTemplate.dealer_id == job.dealer_id,
                MessageTemplate.channel == TemplateChannel.EMAIL.value,
                MessageTemplate.is_active == True,  # noqa: E712
            )
        )
        template = result.scalar_one_or_none()
        if template is None:
            return False

        context = AutoResponseContext.from_dict(job.context or {})
        values = context.interpolation_values()
        now = self.clock()
        subject = interpolate_template(
            template.subject or DEFAULT_SUBJECT, values, now=now, tz_name=self.tz_name
        )
        body = interpolate_template(template.content, values, now=now, tz_name=self.tz_name)

        sink = self.sink or get_email_sink()
        outcome = await sink.send_email(context.email, subject, wrap_in_email_layout(body))
        if not outcome.success:
            raise RuntimeError(outcome.error or "email rejected")

        # No system user exists, so automated activity is attributed to the owner.
        owner = await TeamService(self.db).owner(job.dealer_id)
        if owner is None:
            LeadLogger(lead.id, job.dealer_id).warning("auto_response_no_owner", job_id=job.id)
        else:
            self.db.add(
                LeadActivity(
                    lead_id=lead.id,
                    user_id=owner.id,
                    type=LeadActivityType.EMAIL.value,
                    content=AUTO_ACTIVITY_CONTENT,
                    metadata_={"auto": True, "templateId": template.id},
                    created_at=now,
                )
            )
        return True

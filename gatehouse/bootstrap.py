"""Service Wiring — builds every long-lived handle from Settings, once per process.

Invariants:
    - One construction site for stores, queue, transport and services; the API
      lifespan and the worker entry point both call build_services()
    - Nothing here opens a connection eagerly except the engine pool itself
    - close() releases everything build_services() acquired
"""

from dataclasses import dataclass

from gatehouse.config import Settings
from gatehouse.core.repository_protocols import EmailTransport, SentMarkerStore
from gatehouse.infrastructure.database import DatabaseSessionManager
from gatehouse.infrastructure.sent_markers import RedisSentMarkerStore, SqlSentMarkerStore
from gatehouse.infrastructure.smtp_transport import SmtpTransport
from gatehouse.services.credential_store import SqlCredentialStore
from gatehouse.services.email_dispatcher import EmailDispatcher
from gatehouse.services.email_templates import EmailRenderer
from gatehouse.services.job_queue import JobQueue
from gatehouse.services.lockout import LockoutCoordinator
from gatehouse.services.login import LoginService
from gatehouse.services.password_reset import PasswordResetService
from gatehouse.services.session_auth import SessionAuthenticator
from gatehouse.services.session_issuer import SessionIssuer


@dataclass
class Services:
    settings: Settings
    db: DatabaseSessionManager
    store: SqlCredentialStore
    jobs: JobQueue
    login: LoginService
    sessions: SessionAuthenticator
    password_reset: PasswordResetService
    markers: SentMarkerStore | None = None
    transport: EmailTransport | None = None
    emails: EmailDispatcher | None = None

    async def close(self) -> None:
        if self.markers is not None:
            await self.markers.close()
        await self.db.dispose()


def build_transport(settings: Settings) -> SmtpTransport:
    return SmtpTransport(
        host=settings.smtp_host,
        port=settings.smtp_port,
        use_ssl=settings.smtp_secure,
        use_starttls=settings.smtp_starttls,
        user=settings.smtp_user,
        password=settings.smtp_password,
        timeout=settings.smtp_timeout_seconds,
    )


def build_marker_store(
    settings: Settings, db: DatabaseSessionManager,
) -> RedisSentMarkerStore | SqlSentMarkerStore:
    if settings.sent_marker_backend == "redis":
        return RedisSentMarkerStore.from_url(
            settings.redis_url, settings.sent_marker_ttl_seconds,
        )
    return SqlSentMarkerStore(db)


def build_services(
    settings: Settings,
    db: DatabaseSessionManager | None = None,
    *,
    with_email: bool = False,
    transport: EmailTransport | None = None,
    markers: SentMarkerStore | None = None,
) -> Services:
    """Wire the auth core; with_email adds the dispatcher side used by the worker."""
    db = db or DatabaseSessionManager.from_url(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    store = SqlCredentialStore(db)
    jobs = JobQueue(
        db,
        default_max_attempts=settings.job_max_attempts,
        backoff_base_ms=settings.job_backoff_base_ms,
        backoff_max_ms=settings.job_backoff_max_ms,
        visibility_timeout_seconds=settings.job_visibility_timeout_seconds,
    )
    services = Services(
        settings=settings,
        db=db,
        store=store,
        jobs=jobs,
        login=LoginService(
            store,
            LockoutCoordinator(store, settings.max_failed_login_attempts),
            SessionIssuer(store, settings.session_expiry_days),
            jobs,
        ),
        sessions=SessionAuthenticator(
            store, settings.session_activity_staleness_seconds,
        ),
        password_reset=PasswordResetService(
            store, store, jobs, settings.password_reset_expiry_hours,
        ),
    )
    if with_email:
        services.transport = transport or build_transport(settings)
        services.markers = markers or build_marker_store(settings, db)
        services.emails = EmailDispatcher(
            services.transport,
            services.markers,
            EmailRenderer(settings.app_base_url, settings.password_reset_expiry_hours),
            settings.email_from,
        )
    return services

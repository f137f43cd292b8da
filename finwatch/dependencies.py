"""
dependencies.py - Service Wiring
Builds the repository, LLM router, email sender and the components that use
them from configuration, once per application.
"""

import logging

from fastapi import Request

from finwatch import config
from finwatch.database import build_engine, build_session_factory, init_db
from finwatch.providers import GeminiProvider, GroqProvider, OpenAIProvider
from finwatch.repositories import AlertRepository, SqlRepository, SupabaseRepository
from finwatch.services.alert_dispatcher import AlertDispatcher
from finwatch.services.content_service import ContentGenerator
from finwatch.services.dedup_service import AlertDeduplicator
from finwatch.services.email_service import EmailService
from finwatch.services.llm_router import LLMRouter
from finwatch.services.receipt_service import ReceiptExtractor
from finwatch.services.threshold_service import ThresholdEvaluator
from finwatch.supabase_client import SupabaseAdmin
from finwatch.supabase_rest import SupabaseRest

logger = logging.getLogger(__name__)


class Services:
    """Everything a request handler needs, built once per app."""

    def __init__(
        self,
        repository: AlertRepository,
        dispatcher: AlertDispatcher,
        receipt_extractor: ReceiptExtractor,
        llm_router: LLMRouter | None = None,
    ):
        self.repository = repository
        self.dispatcher = dispatcher
        self.receipt_extractor = receipt_extractor
        self.llm_router = llm_router


def build_llm_router() -> LLMRouter:
    # One provider instance per configured key, cheapest first
    providers = []
    providers += [GroqProvider(api_key=k) for k in config.GROQ_API_KEYS]
    providers += [GeminiProvider(api_key=k) for k in config.GEMINI_API_KEYS]
    providers += [OpenAIProvider(api_key=k) for k in config.OPENAI_API_KEYS]
    if not providers:
        logger.warning("No LLM provider keys configured; alerts will use fallback templates")
    return LLMRouter(providers)


def build_repository() -> AlertRepository:
    if config.is_supabase_configured():
        logger.info("Using Supabase repository at %s", config.SUPABASE_URL)
        return SupabaseRepository(
            SupabaseRest(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY),
            SupabaseAdmin(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY),
        )

    logger.info("Supabase not configured; using SQL repository")
    engine = build_engine(config.DATABASE_URL)
    init_db(engine, config.DATABASE_URL)
    return SqlRepository(build_session_factory(engine))


def build_services(
    repository: AlertRepository | None = None,
    llm_router: LLMRouter | None = None,
    email_service: EmailService | None = None,
) -> Services:
    repository = repository or build_repository()
    llm_router = llm_router if llm_router is not None else build_llm_router()
    email_service = email_service or EmailService(config.RESEND_API_KEY, config.ALERT_EMAIL_FROM)
    evaluator = ThresholdEvaluator()

    dispatcher = AlertDispatcher(
        repository=repository,
        content_generator=ContentGenerator(
            llm_router=llm_router,
            currency_symbol=config.CURRENCY_SYMBOL,
            timeout=config.CONTENT_TIMEOUT_SECONDS,
            evaluator=evaluator,
            dashboard_url=config.DASHBOARD_URL,
        ),
        email_service=email_service,
        evaluator=evaluator,
        deduplicator=AlertDeduplicator(cooldown_hours=config.ALERT_COOLDOWN_HOURS),
        max_concurrency=config.MAX_CONCURRENT_DISPATCHES,
    )
    return Services(
        repository=repository,
        dispatcher=dispatcher,
        receipt_extractor=ReceiptExtractor(llm_router=llm_router),
        llm_router=llm_router,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency - the app's Services, built on first use."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        services = build_services()
        request.app.state.services = services
    return services
